"""
inventory_services -- Package init and public API.

Responsibility:
    Stateful orchestration over the kernel and the pure engines: FIFO
    issue, reversals, purchase-order reconciliation, receipt posting, and
    the transactional ``InventoryStockService`` facade that callers use.

Architecture position:
    Services -- stateful orchestration over engines + kernel.

    Dependency direction (enforced by tests/kernel/test_kernel_boundary.py):
        inventory_services/ -> inventory_engines/  (allowed)
        inventory_services/ -> inventory_kernel/   (allowed)
        inventory_services/ -> inventory_config/   (allowed)
        inventory_engines/  -> inventory_services/ (FORBIDDEN)
        inventory_kernel/   -> inventory_services/ (FORBIDDEN)

Invariants enforced:
    - Only InventoryStockService opens and commits transactions; the
      services below it work inside the session they are handed.
"""

from inventory_services.allocation_service import FifoAllocator
from inventory_services.order_reconciler import OrderReconciler
from inventory_services.receipt_posting import (
    PostedReceipt,
    ReceiptLine,
    ReceiptPostingService,
    SupplierReceiptInput,
    receipt_ref,
)
from inventory_services.reversal_service import ReversalCoordinator
from inventory_services.stock_service import InventoryStockService

__all__ = [
    "FifoAllocator",
    "InventoryStockService",
    "OrderReconciler",
    "PostedReceipt",
    "ReceiptLine",
    "ReceiptPostingService",
    "ReversalCoordinator",
    "SupplierReceiptInput",
    "receipt_ref",
]
