"""Services for the inventory kernel (write side)."""

from inventory_kernel.services.batch_ledger import BatchLedger
from inventory_kernel.services.party_ledger_service import PartyLedgerService
from inventory_kernel.services.reservation_service import ReservationManager
from inventory_kernel.services.retry_service import RetryPolicy, RetryService
from inventory_kernel.services.transaction_log import TransactionLog

__all__ = [
    "BatchLedger",
    "PartyLedgerService",
    "ReservationManager",
    "RetryPolicy",
    "RetryService",
    "TransactionLog",
]
