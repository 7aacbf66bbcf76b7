"""
PaymentStateMachine -- the only writer of payment and batch statuses.

Responsibility:
    Validates every status change against the workflow tables in
    ``settlement_kernel.domain.workflow``, applies the per-status side
    effects, and appends the matching ``PaymentTimelineEvent``.

Architecture position:
    Kernel > Services -- imperative shell.
    Called by PaymentService (cancel), BatchOrchestrator (claim),
    BatchDispatchService (send / acknowledge) and ReconciliationEngine
    (settle / reject).

Invariants enforced:
    - Illegal transitions raise ``IllegalTransitionError`` /
      ``IllegalBatchTransitionError`` and mutate nothing.
    - Every accepted payment transition appends exactly one timeline
      event, with a per-payment monotonically increasing ``seq``.
    - ``batch_id`` set => status in BATCHED_PAYMENT_STATUSES: CANCELLED
      clears the back-reference.

Failure modes:
    - IllegalTransitionError: the (from, to) pair is not in the payment
      table, including any change out of a terminal status.
    - IllegalBatchTransitionError: the (from, to) pair is not in the batch
      table.

Audit relevance:
    Timeline events are append-only (db/immutability.py).  Every accepted
    transition is logged as ``payment_status_changed`` /
    ``batch_status_changed``; every rejected one as an error with the
    trace id carried by the exception.
"""

from __future__ import annotations

from typing import Any
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from settlement_kernel.domain.clock import Clock
from settlement_kernel.domain.types import (
    PaymentBatchStatus,
    PaymentStatus,
    PaymentTimelineEvent,
    TimelineEventType,
)
from settlement_kernel.domain.workflow import (
    BATCH_WORKFLOW,
    PAYMENT_WORKFLOW,
    can_transition,
)
from settlement_kernel.exceptions import (
    IllegalBatchTransitionError,
    IllegalTransitionError,
)
from settlement_kernel.logging_config import get_logger
from settlement_kernel.models.payment import PaymentModel, PaymentTimelineEventModel

logger = get_logger("services.state_machine")

# Batch timestamp column stamped when the batch enters the status.
_BATCH_TIMESTAMPS: dict[PaymentBatchStatus, str] = {
    PaymentBatchStatus.FILE_GENERATED: "file_generated_at",
    PaymentBatchStatus.SENT_TO_BANK: "sent_at",
    PaymentBatchStatus.COMPLETED: "completed_at",
    PaymentBatchStatus.FAILED: "completed_at",
}


def _json_safe(metadata: dict[str, Any] | None) -> dict[str, Any]:
    if not metadata:
        return {}
    return {
        key: str(value) if isinstance(value, UUID) else value
        for key, value in metadata.items()
    }


class PaymentStateMachine:
    """
    Enforces the payment and batch transition tables.

    Contract:
        Receives ORM rows already loaded in ``session`` and mutates them in
        place; flushes within the caller's transaction.

    Guarantees:
        - ``processed_at`` is set on SENT_TO_BANK, ``completed_at`` on
          COMPLETED, ``error_message`` on FAILED.
        - CANCELLED clears ``batch_id``.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
        - Does NOT decide eligibility or reconciliation outcomes.
    """

    def __init__(self, session: Session, clock: Clock):
        self._session = session
        self._clock = clock

    can_transition = staticmethod(can_transition)

    # -------------------------------------------------------------------------
    # Payments
    # -------------------------------------------------------------------------

    def transition(
        self,
        payment: PaymentModel,
        to_status: PaymentStatus,
        actor_id: UUID | None = None,
        *,
        description: str | None = None,
        metadata: dict[str, Any] | None = None,
        error_message: str | None = None,
        bank_reference: str | None = None,
    ) -> PaymentTimelineEvent:
        """
        Move ``payment`` to ``to_status`` and append its timeline event.

        Raises:
            IllegalTransitionError: the change is not in the table.  The
                payment row is left untouched.
        """
        from_status = payment.status_enum
        to_status = PaymentStatus(to_status)
        transition = PAYMENT_WORKFLOW.find(from_status.value, to_status.value)
        if transition is None:
            error = IllegalTransitionError(
                payment_id=str(payment.id),
                from_status=from_status.value,
                to_status=to_status.value,
            )
            logger.error(
                "illegal_transition_rejected",
                extra={
                    "payment_id": str(payment.id),
                    "from_status": from_status.value,
                    "to_status": to_status.value,
                    "trace_id": error.trace_id,
                },
            )
            raise error

        now = self._clock.now_utc()
        payment.status = to_status.value
        payment.updated_by_id = actor_id

        if to_status == PaymentStatus.SENT_TO_BANK:
            payment.processed_at = now
        elif to_status == PaymentStatus.COMPLETED:
            payment.completed_at = now
            if bank_reference:
                payment.bank_reference = bank_reference
        elif to_status == PaymentStatus.FAILED:
            payment.error_message = error_message or "Rejected by bank"
            if bank_reference:
                payment.bank_reference = bank_reference
        elif to_status == PaymentStatus.CANCELLED:
            payment.batch_id = None

        event = self._append_event(
            payment,
            event_type=transition.event_type,
            from_status=from_status,
            actor_id=actor_id,
            description=description or transition.action,
            metadata={"action": transition.action, **_json_safe(metadata)},
        )

        logger.info(
            "payment_status_changed",
            extra={
                "payment_id": str(payment.id),
                "from_status": from_status.value,
                "to_status": to_status.value,
                "action": transition.action,
            },
        )
        return event

    def record_event(
        self,
        payment: PaymentModel,
        event_type: TimelineEventType,
        actor_id: UUID | None = None,
        description: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> PaymentTimelineEvent:
        """Append a timeline entry that does not change the status."""
        return self._append_event(
            payment,
            event_type=event_type,
            from_status=None,
            actor_id=actor_id,
            description=description,
            metadata=_json_safe(metadata),
        )

    def _append_event(
        self,
        payment: PaymentModel,
        event_type: TimelineEventType,
        from_status: PaymentStatus | None,
        actor_id: UUID | None,
        description: str | None,
        metadata: dict[str, Any],
    ) -> PaymentTimelineEvent:
        last_seq = self._session.execute(
            select(func.max(PaymentTimelineEventModel.seq)).where(
                PaymentTimelineEventModel.payment_id == payment.id
            )
        ).scalar()
        row = PaymentTimelineEventModel(
            payment_id=payment.id,
            seq=(last_seq or 0) + 1,
            event_type=event_type.value,
            status=payment.status,
            from_status=from_status.value if from_status else None,
            actor_id=actor_id,
            occurred_at=self._clock.now_utc(),
            description=description,
            details=metadata or None,
        )
        self._session.add(row)
        self._session.flush()
        return row.to_dto()

    # -------------------------------------------------------------------------
    # Batches
    # -------------------------------------------------------------------------

    def transition_batch(
        self,
        batch: Any,
        to_status: PaymentBatchStatus,
        actor_id: UUID | None = None,
    ) -> PaymentBatchStatus:
        """
        Move a batch row to ``to_status``.

        ``batch`` is any mapped row exposing ``id``, ``status`` and the
        dispatch timestamp columns (PaymentBatchModel).

        Raises:
            IllegalBatchTransitionError: the change is not in the table.
        """
        from_status = batch.status_enum
        to_status = PaymentBatchStatus(to_status)
        if BATCH_WORKFLOW.find(from_status.value, to_status.value) is None:
            error = IllegalBatchTransitionError(
                batch_id=str(batch.id),
                from_status=from_status.value,
                to_status=to_status.value,
            )
            logger.error(
                "illegal_batch_transition_rejected",
                extra={
                    "batch_id": str(batch.id),
                    "from_status": from_status.value,
                    "to_status": to_status.value,
                    "trace_id": error.trace_id,
                },
            )
            raise error

        batch.status = to_status.value
        batch.updated_by_id = actor_id
        stamp = _BATCH_TIMESTAMPS.get(to_status)
        if stamp is not None:
            setattr(batch, stamp, self._clock.now_utc())
        self._session.flush()

        logger.info(
            "batch_status_changed",
            extra={
                "batch_id": str(batch.id),
                "from_status": from_status.value,
                "to_status": to_status.value,
            },
        )
        return from_status
