"""
ORM-Level Immutability Enforcement.

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity          | Rule                               | Why
----------------|------------------------------------|----------------------------
HistoryEntry    | ALWAYS immutable (no UPDATE/DELETE) | The audit trail is append-only
OperatorCost    | Never deleted (archive instead)     | History must keep its subject

SQLAlchemy fires ``before_update`` / ``before_delete`` before the SQL reaches
the database.  The listeners below raise ImmutabilityViolationError, which
aborts the flush; the caller's transaction then rolls back.

Bulk statements issued through ``session.execute(update(...))`` or
``session.execute(delete(...))`` bypass mapper events, so a ``do_orm_execute``
hook on Session rejects bulk UPDATE/DELETE of HistoryEntry and bulk DELETE of
OperatorCost.  Bulk UPDATE of OperatorCost stays allowed; the record store
relies on it for version-checked writes.

Statements executed on a Connection never reach the ORM.  The database
triggers in db/triggers.py are the second layer for those.

===============================================================================
USAGE
===============================================================================

    from operator_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # once at startup

To temporarily disable (TESTS ONLY):

    unregister_immutability_listeners()
"""

from sqlalchemy import event
from sqlalchemy.orm import Session

from operator_kernel.exceptions import ImmutabilityViolationError
from operator_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _check_history_entry_immutability(mapper, connection, target):
    """Prevent any updates to HistoryEntry records."""
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": "HistoryEntry",
            "entity_id": str(target.id),
            "operation": "UPDATE",
        },
    )
    raise ImmutabilityViolationError(
        entity_type="HistoryEntry",
        entity_id=str(target.id),
        reason="History entries are immutable and cannot be modified",
    )


def _check_history_entry_delete(mapper, connection, target):
    """Prevent deletion of HistoryEntry records."""
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": "HistoryEntry",
            "entity_id": str(target.id),
            "operation": "DELETE",
        },
    )
    raise ImmutabilityViolationError(
        entity_type="HistoryEntry",
        entity_id=str(target.id),
        reason="History entries are immutable and cannot be deleted",
    )


def _check_operator_cost_delete(mapper, connection, target):
    """Operator costs are archived, never deleted."""
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": "OperatorCost",
            "entity_id": str(target.id),
            "operation": "DELETE",
        },
    )
    raise ImmutabilityViolationError(
        entity_type="OperatorCost",
        entity_id=str(target.id),
        reason="Operator costs cannot be deleted; set is_archived instead",
    )


def _check_bulk_statement(orm_execute_state):
    """
    Reject ORM-enabled bulk UPDATE/DELETE against protected entities.

    ``session.execute(update(...))`` and ``session.execute(delete(...))``
    skip the per-object mapper events above; this session-level hook sees
    them before they are compiled.
    """
    from operator_kernel.models.history_entry import HistoryEntry
    from operator_kernel.models.operator_cost import OperatorCost

    if not (orm_execute_state.is_update or orm_execute_state.is_delete):
        return
    mapper = orm_execute_state.bind_mapper
    if mapper is None:
        return

    operation = "UPDATE" if orm_execute_state.is_update else "DELETE"
    if mapper.class_ is HistoryEntry:
        entity_type = "HistoryEntry"
        reason = "History entries are immutable; bulk statements are rejected"
    elif mapper.class_ is OperatorCost and orm_execute_state.is_delete:
        entity_type = "OperatorCost"
        reason = "Operator costs cannot be deleted; set is_archived instead"
    else:
        return

    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": "*",
            "operation": f"BULK_{operation}",
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id="*",
        reason=reason,
    )


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Safe to call more than once; already registered listeners are skipped.
    """
    from operator_kernel.models.history_entry import HistoryEntry
    from operator_kernel.models.operator_cost import OperatorCost

    _safe_add_listener(HistoryEntry, "before_update", _check_history_entry_immutability)
    _safe_add_listener(HistoryEntry, "before_delete", _check_history_entry_delete)
    _safe_add_listener(OperatorCost, "before_delete", _check_operator_cost_delete)
    _safe_add_listener(Session, "do_orm_execute", _check_bulk_statement)


def _safe_add_listener(target, event_name, listener_fn):
    if not event.contains(target, event_name, listener_fn):
        event.listen(target, event_name, listener_fn)


def _safe_remove_listener(target, event_name, listener_fn):
    """Remove an event listener, ignoring it if not registered."""
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests that need to tamper with rows on purpose
    to verify detection.
    """
    from operator_kernel.models.history_entry import HistoryEntry
    from operator_kernel.models.operator_cost import OperatorCost

    _safe_remove_listener(HistoryEntry, "before_update", _check_history_entry_immutability)
    _safe_remove_listener(HistoryEntry, "before_delete", _check_history_entry_delete)
    _safe_remove_listener(OperatorCost, "before_delete", _check_operator_cost_delete)
    _safe_remove_listener(Session, "do_orm_execute", _check_bulk_statement)
