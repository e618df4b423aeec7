"""
Wallet Ledger - Source Package

The ledger-consistency engine behind a personal finance tracker:
wallets, transactions, transfers, monthly budgets, debts and savings goals.

DESIGN PRINCIPLES:
1. A wallet balance always equals the sum of its transactions
2. Fail early, fail visibly
3. Never return success with a half-applied change
4. Every mutation is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Wallet Ledger Team"
