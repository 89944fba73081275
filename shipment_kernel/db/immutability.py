"""
ORM-Level Immutability Enforcement.

===============================================================================
WHY THIS EXISTS
===============================================================================

The status history is the shipment's audit trail, and current_status is
only trustworthy if the coordinator is its sole writer.  These listeners
catch violations made through Python/SQLAlchemy code before any SQL is sent:

    session.flush()
         |
         v
    [before_update] --> _check_*() --> ImmutabilityViolationError
         |
    [before_delete] --> _check_*() --> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

The coordinator's compare-and-swap is a bulk UPDATE statement, which does
not go through the unit of work and therefore does not fire these mapper
events.  That is what lets an ORM assignment to current_status be rejected
while the coordinator's write goes through.

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity              | Rule
--------------------|----------------------------------------------------
StatusHistoryEntry  | No UPDATE, no DELETE, ever
Shipment            | No DELETE (soft delete only)
Shipment            | current_status never changes through the ORM
Shipment            | deleted_at, once set, is never cleared

===============================================================================
USAGE
===============================================================================

    init_engine_from_url() registers the listeners; calling
    register_immutability_listeners() again is a no-op.

To temporarily disable (TESTS ONLY):

    unregister_immutability_listeners()
"""

from sqlalchemy import event
from sqlalchemy.orm.attributes import get_history

from shipment_kernel.exceptions import ImmutabilityViolationError
from shipment_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _blocked(entity_type: str, entity_id: str, operation: str, reason: str):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": entity_id,
            "operation": operation,
        },
    )
    return ImmutabilityViolationError(entity_type, entity_id, reason)


def _check_history_update(mapper, connection, target):
    """History entries are immutable from creation."""
    raise _blocked(
        "StatusHistoryEntry",
        str(target.id),
        "UPDATE",
        "status history entries are append-only",
    )


def _check_history_delete(mapper, connection, target):
    raise _blocked(
        "StatusHistoryEntry",
        str(target.id),
        "DELETE",
        "status history entries cannot be deleted",
    )


def _check_shipment_status_update(mapper, connection, target):
    """current_status may only change through the coordinator."""
    history = get_history(target, "current_status")
    if history.has_changes():
        raise _blocked(
            "Shipment",
            str(target.id),
            "UPDATE",
            "current_status can only change through request_transition",
        )


def _check_shipment_tombstone(mapper, connection, target):
    history = get_history(target, "deleted_at")
    if history.has_changes() and any(v is not None for v in history.deleted):
        raise _blocked(
            "Shipment",
            str(target.id),
            "UPDATE",
            "a soft-deleted shipment cannot be restored",
        )


def _check_shipment_delete(mapper, connection, target):
    raise _blocked(
        "Shipment",
        str(target.id),
        "DELETE",
        "shipments are soft-deleted, never removed",
    )


_LISTENERS = (
    ("StatusHistoryEntry", "before_update", _check_history_update),
    ("StatusHistoryEntry", "before_delete", _check_history_delete),
    ("Shipment", "before_update", _check_shipment_status_update),
    ("Shipment", "before_update", _check_shipment_tombstone),
    ("Shipment", "before_delete", _check_shipment_delete),
)


def _models() -> dict:
    from shipment_kernel.models.shipment import Shipment
    from shipment_kernel.models.status_history import StatusHistoryEntry

    return {"Shipment": Shipment, "StatusHistoryEntry": StatusHistoryEntry}


def register_immutability_listeners() -> None:
    """
    Register all immutability enforcement event listeners (idempotent).

    Call after models are importable and before any database work.
    """
    models = _models()
    for model_name, event_name, fn in _LISTENERS:
        target = models[model_name]
        if not event.contains(target, event_name, fn):
            event.listen(target, event_name, fn)
    logger.debug("immutability_listeners_registered")


def unregister_immutability_listeners() -> None:
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests that must violate the rules on purpose.
    """
    models = _models()
    for model_name, event_name, fn in _LISTENERS:
        target = models[model_name]
        if event.contains(target, event_name, fn):
            event.remove(target, event_name, fn)
