"""
Fleet Kernel

Trip ledger for a trucking operation with:
- Derived trip financials (revenue, expenses, balance, outstanding)
- A guarded PLANNED -> ACTIVE -> CLOSED lifecycle
- Frozen financial snapshot on close
- Bill documents attached through an object store
"""

__version__ = "0.1.0"
