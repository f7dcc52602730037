"""
Finance Domain

Expenses and revenues, the monthly entries derived from the recurring ones,
and the reconciler that removes entries whose source is gone.
"""
