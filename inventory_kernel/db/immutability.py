"""
ORM-Level Immutability Enforcement for the inventory transaction log.

===============================================================================
HOW IT WORKS
===============================================================================

SQLAlchemy fires events before UPDATE/DELETE operations reach the database.
Listeners registered here intercept those events for InventoryTxn rows:

    session.flush()
         |
         v
    [before_update] --> _check_txn_update() --> ImmutabilityViolationError
         |
    [before_delete] --> _check_txn_delete() --> ImmutabilityViolationError
         |
    session.execute(update(InventoryTxn) / delete(InventoryTxn))
         |
         v
    [do_orm_execute] --> _check_bulk_txn_statement() --> ImmutabilityViolationError

If a check fails the flush is aborted and the enclosing transaction rolls
back.  Corrections to stock are always new rows (IN after OUT, UNRESERVE
after RESERVE), never edits.

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity          | When Immutable          | Notes
----------------|-------------------------|-------------------------------------
InventoryTxn    | ALWAYS (from creation)  | The stock audit trail
InventoryBatch  | never (mutable)         | available_qty/voided_at change via
                |                         | BatchLedger only
PartyLedgerEntry| never (mutable)         | Idempotent delete+create by key

===============================================================================
USAGE
===============================================================================

    from inventory_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # once at startup

Tests that must bypass the rule call unregister_immutability_listeners().
"""

from sqlalchemy import event
from sqlalchemy.orm import Session

from inventory_kernel.exceptions import ImmutabilityViolationError
from inventory_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _blocked(entity_id: str, operation: str) -> ImmutabilityViolationError:
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": "InventoryTxn",
            "entity_id": entity_id,
            "operation": operation,
        },
    )
    return ImmutabilityViolationError(
        entity_type="InventoryTxn",
        entity_id=entity_id,
        reason=f"inventory transactions are append-only ({operation} rejected)",
    )


def _check_txn_update(mapper, connection, target):
    """Prevent any UPDATE of an InventoryTxn row."""
    raise _blocked(str(target.id), "UPDATE")


def _check_txn_delete(mapper, connection, target):
    """Prevent any DELETE of an InventoryTxn row."""
    raise _blocked(str(target.id), "DELETE")


def _check_bulk_txn_statement(orm_execute_state):
    """Reject ORM-enabled bulk UPDATE/DELETE statements against the txn table."""
    if not (orm_execute_state.is_update or orm_execute_state.is_delete):
        return
    from inventory_kernel.models.inventory import InventoryTxn

    mapper = orm_execute_state.bind_mapper
    if mapper is not None and mapper.class_ is InventoryTxn:
        operation = "BULK UPDATE" if orm_execute_state.is_update else "BULK DELETE"
        raise _blocked("*", operation)


def register_immutability_listeners():
    """
    Register the append-only listeners.

    Call once after models are imported and before any stock operation.
    Repeated calls are harmless.
    """
    from inventory_kernel.models.inventory import InventoryTxn

    if not event.contains(InventoryTxn, "before_update", _check_txn_update):
        event.listen(InventoryTxn, "before_update", _check_txn_update)
    if not event.contains(InventoryTxn, "before_delete", _check_txn_delete):
        event.listen(InventoryTxn, "before_delete", _check_txn_delete)
    if not event.contains(Session, "do_orm_execute", _check_bulk_txn_statement):
        event.listen(Session, "do_orm_execute", _check_bulk_txn_statement)


def _safe_remove_listener(target, event_name, listener_fn):
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove the append-only listeners.

    WARNING: Only use this in tests that deliberately violate immutability.
    """
    from inventory_kernel.models.inventory import InventoryTxn

    _safe_remove_listener(InventoryTxn, "before_update", _check_txn_update)
    _safe_remove_listener(InventoryTxn, "before_delete", _check_txn_delete)
    _safe_remove_listener(Session, "do_orm_execute", _check_bulk_txn_statement)
