"""
SACCO Ledger

Ledger core for a savings and credit cooperative: members, savings,
deposits, loans and repayments, with every balance change backed by an
append-only transaction record and a hash-chained audit trail.
"""

__version__ = "1.0.0"
