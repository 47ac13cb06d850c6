"""ORM models for the inventory kernel."""

from inventory_kernel.models.inventory import AllocationRecord, InventoryBatch, InventoryTxn
from inventory_kernel.models.party_ledger import PartyLedgerEntry
from inventory_kernel.models.purchase_order import (
    PurchaseOrder,
    PurchaseOrderLine,
    RequirementOrderLink,
    SchoolRequirement,
)
from inventory_kernel.models.receipt import SupplierReceipt, SupplierReceiptLine
from inventory_kernel.models.sequence import SequenceCounter

__all__ = [
    "AllocationRecord",
    "InventoryBatch",
    "InventoryTxn",
    "PartyLedgerEntry",
    "PurchaseOrder",
    "PurchaseOrderLine",
    "RequirementOrderLink",
    "SchoolRequirement",
    "SequenceCounter",
    "SupplierReceipt",
    "SupplierReceiptLine",
]
