"""Schedule Ledger - recurring appointments and bookkeeping backend"""
