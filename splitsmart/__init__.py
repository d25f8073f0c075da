"""
SplitSmart Ledger - Source Package

The balance engine behind a shared-expense app: members of a group log
expenses, the ledger computes who owes whom, settlements record
repayments and a change bus keeps every client's copy current.

DESIGN PRINCIPLES:
1. Balances are derived, never stored
2. A settlement counts only once the recipient confirms it
3. Bad input is rejected before it touches the ledger
4. Lost connectivity degrades, never crashes
5. Every change is auditable
"""

__version__ = "1.0.0"
__author__ = "SplitSmart Team"
