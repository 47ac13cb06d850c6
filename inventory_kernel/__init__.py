"""
Inventory Kernel

Append-only stock ledger for school-book distribution:
- Batches of received quantity consumed first-in, first-out
- Soft reservations derived from the transaction log
- Compensating reversals for issues and receipts
- Purchase-order fulfilment status derived from received quantities
"""

__version__ = "0.1.0"
