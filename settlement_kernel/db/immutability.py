"""
ORM-Level Immutability Enforcement.

===============================================================================
WHAT THIS PROTECTS
===============================================================================

Settlement history must be tamper-proof: operators reconstruct what
happened to a salary payment from its timeline, and a batch file sent to
a bank must always match the batch row it was generated from.

SQLAlchemy fires events before UPDATE/DELETE operations reach the database.
We register listeners that intercept these events and check our invariants:

    session.flush()
         |
         v
    [before_update event] --> _check_*() --> ImmutabilityViolationError
         |
         v
    [before_delete event] --> _check_*_delete() --> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity                 | When Immutable           | Fields
-----------------------|--------------------------|-------------------------------
PaymentTimelineEvent   | ALWAYS (from creation)   | every field; no delete
PaymentBatchItem       | ALWAYS (from creation)   | every field; no delete
PaymentBatch           | ALWAYS (from creation)   | batch_number, bank_code,
                       |                          | total_amount, currency,
                       |                          | created_by_id; no delete

Batch status and its dispatch timestamps remain mutable; they are guarded
by the batch transition table instead.

Conditional UPDATE statements issued through Core (the orchestrator's
claim on ``payments``) do not pass through these listeners; ``payments``
is not an immutable table.

===============================================================================
USAGE
===============================================================================

    from settlement_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # Called once at startup

To temporarily disable (TESTS ONLY):

    from settlement_kernel.db.immutability import unregister_immutability_listeners
    unregister_immutability_listeners()
"""

from sqlalchemy import event, inspect

from settlement_kernel.exceptions import ImmutabilityViolationError
from settlement_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

BATCH_FROZEN_FIELDS = frozenset({
    "batch_number",
    "bank_code",
    "total_amount",
    "currency",
    "created_by_id",
})


def _block(entity_type: str, entity_id, operation: str, reason: str):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "operation": operation,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(entity_id),
        reason=reason,
    )


# =============================================================================
# Payment timeline (append-only)
# =============================================================================


def _check_timeline_event_immutability(mapper, connection, target):
    """Timeline entries are never modified."""
    _block(
        "PaymentTimelineEvent", target.id, "UPDATE",
        "Timeline events are append-only and cannot be modified",
    )


def _check_timeline_event_delete(mapper, connection, target):
    """Timeline entries are never deleted."""
    _block(
        "PaymentTimelineEvent", target.id, "DELETE",
        "Timeline events cannot be deleted",
    )


# =============================================================================
# Batch membership and totals
# =============================================================================


def _check_batch_item_immutability(mapper, connection, target):
    """Batch membership is fixed at creation."""
    _block(
        "PaymentBatchItem", target.id, "UPDATE",
        "Batch membership is fixed when the batch is created",
    )


def _check_batch_item_delete(mapper, connection, target):
    _block(
        "PaymentBatchItem", target.id, "DELETE",
        "Batch items cannot be deleted",
    )


def _check_batch_immutability(mapper, connection, target):
    """Only status and dispatch timestamps may change on a batch."""
    state = inspect(target)
    changed = sorted(
        name for name in BATCH_FROZEN_FIELDS
        if state.attrs[name].history.has_changes()
    )
    if changed:
        _block(
            "PaymentBatch", target.id, "UPDATE",
            f"Batch fields are frozen after creation: {', '.join(changed)}",
        )


def _check_batch_delete(mapper, connection, target):
    _block(
        "PaymentBatch", target.id, "DELETE",
        "Batches cannot be deleted",
    )


def _listeners():
    from settlement_kernel.models.payment import PaymentTimelineEventModel
    from settlement_batch.models.batch import PaymentBatchItemModel, PaymentBatchModel

    return (
        (PaymentTimelineEventModel, "before_update", _check_timeline_event_immutability),
        (PaymentTimelineEventModel, "before_delete", _check_timeline_event_delete),
        (PaymentBatchItemModel, "before_update", _check_batch_item_immutability),
        (PaymentBatchItemModel, "before_delete", _check_batch_item_delete),
        (PaymentBatchModel, "before_update", _check_batch_immutability),
        (PaymentBatchModel, "before_delete", _check_batch_delete),
    )


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Call this after all models are imported but before any database
    operations begin.  Registering twice is harmless.
    """
    for target, event_name, listener_fn in _listeners():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests where you need to intentionally
    violate immutability rules.
    """
    for target, event_name, listener_fn in _listeners():
        if event.contains(target, event_name, listener_fn):
            event.remove(target, event_name, listener_fn)
