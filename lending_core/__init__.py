"""
Lending Core

Tenant-scoped loan origination and installment ledger for field collection
lines. All financial calculations use Decimal precision and every balance
mutation is written atomically with its installment row.
"""

__version__ = "1.0.0"
