"""
Ledger Core

A single-user ledger for a toy banking application: one customer, one
balance, at most one loan and a newest-first transaction history, with
Decimal money math and snapshot persistence.
"""

__version__ = "1.0.0"
