"""
Recurrence Domain

Descriptor types, the pure occurrence expander, and the pydantic schemas
that parse stored/incoming recurrence payloads into descriptors.
"""
