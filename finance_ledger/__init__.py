"""
Personal Finance Ledger Engine

Loan amortization, debt payment tracking and a monthly-expense ledger kept
in agreement through atomic units of work. All money uses Decimal.
"""

__version__ = "1.0.0"
