"""Appointments Domain - recurring rules, materialization and manual appointments"""
