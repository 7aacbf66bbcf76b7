"""
ReconciliationEngine -- applies bank confirmation results to a batch.

Contract:
    ``apply_bank_result(batch_id, outcomes, actor_id)`` moves each named
    member BANK_PROCESSING -> COMPLETED / FAILED and settles the batch
    once every member is terminal.  Returns a ``ReconciliationSummary``.

Architecture: settlement_batch/services.  Status changes go through
    PaymentStateMachine; nothing here decides legality itself.

Invariants enforced:
    - Idempotent: re-delivering an outcome that already holds is counted
      as ``already_applied`` and changes nothing.
    - A re-delivery that contradicts the recorded terminal state is
      counted as ``conflicting`` and logged.  COMPLETED payments are never
      reversed.
    - Outcomes for payments outside the batch are ``unknown``; members not
      yet BANK_PROCESSING are ``not_ready``.  Neither raises.
    - The batch settles only when every member is terminal: FAILED when
      any member FAILED, otherwise COMPLETED.
    - One SAVEPOINT per call.

Failure modes:
    - BatchNotFoundError: unknown batch id.
    - IllegalBatchTransitionError: batch is not PROCESSING (or already
      settled, which is accepted for re-delivery).
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from settlement_batch.domain.types import OutcomeKind, PaymentOutcome, ReconciliationSummary
from settlement_batch.models.batch import PaymentBatchModel
from settlement_batch.services.batch_queries import load_batch, load_members
from settlement_kernel.domain.clock import Clock, SystemClock
from settlement_kernel.domain.types import PaymentBatchStatus, PaymentStatus
from settlement_kernel.exceptions import IllegalBatchTransitionError
from settlement_kernel.logging_config import LogContext, get_logger
from settlement_kernel.models.payment import PaymentModel
from settlement_kernel.services.state_machine import PaymentStateMachine

logger = get_logger("batch.reconciliation")

_TARGET = {
    OutcomeKind.SUCCESS: PaymentStatus.COMPLETED,
    OutcomeKind.FAILURE: PaymentStatus.FAILED,
}


class ReconciliationEngine:
    """
    Applies bank outcomes to batch members.

    Non-goals:
        - Does NOT parse bank files; callers supply PaymentOutcome values
          (``PaymentOutcome.from_mapping`` for dict payloads).
        - Does NOT re-queue failed payments (PaymentService does).
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
    """

    def __init__(self, session: Session, clock: Clock | None = None) -> None:
        self._session = session
        self._clock = clock or SystemClock()
        self._state_machine = PaymentStateMachine(session, self._clock)

    def apply_bank_result(
        self,
        batch_id: UUID,
        outcomes: Iterable[PaymentOutcome | Mapping[str, Any]],
        actor_id: UUID | None = None,
    ) -> ReconciliationSummary:
        parsed = [
            o if isinstance(o, PaymentOutcome) else PaymentOutcome.from_mapping(o)
            for o in outcomes
        ]
        batch = load_batch(self._session, batch_id)
        batch_status = batch.status_enum
        if batch_status != PaymentBatchStatus.PROCESSING and not batch_status.is_terminal:
            error = IllegalBatchTransitionError(
                batch_id=str(batch_id),
                from_status=batch_status.value,
                to_status=PaymentBatchStatus.COMPLETED.value,
            )
            logger.error(
                "reconciliation_rejected",
                extra={
                    "batch_id": str(batch_id),
                    "batch_status": batch_status.value,
                    "trace_id": error.trace_id,
                },
            )
            raise error

        counts = {
            "completed": 0,
            "failed": 0,
            "already_applied": 0,
        }
        conflicting: list[UUID] = []
        unknown: list[UUID] = []
        not_ready: list[UUID] = []

        with LogContext.bind(batch_id=str(batch_id)), self._session.begin_nested():
            members = load_members(self._session, batch_id)
            by_id = {p.id: p for p in members}

            for outcome in parsed:
                payment = by_id.get(outcome.payment_id)
                if payment is None:
                    unknown.append(outcome.payment_id)
                    logger.warning(
                        "reconciliation_unknown_payment",
                        extra={"payment_id": str(outcome.payment_id)},
                    )
                    continue

                target = _TARGET[outcome.outcome]
                status = payment.status_enum
                if status == target:
                    counts["already_applied"] += 1
                elif status.is_terminal:
                    conflicting.append(payment.id)
                    logger.warning(
                        "reconciliation_conflict",
                        extra={
                            "payment_id": str(payment.id),
                            "recorded_status": status.value,
                            "reported_outcome": outcome.outcome.value,
                        },
                    )
                elif status != PaymentStatus.BANK_PROCESSING:
                    not_ready.append(payment.id)
                    logger.warning(
                        "reconciliation_payment_not_ready",
                        extra={
                            "payment_id": str(payment.id),
                            "payment_status": status.value,
                        },
                    )
                else:
                    self._state_machine.transition(
                        payment,
                        target,
                        actor_id=actor_id,
                        metadata={"batch_id": batch.id},
                        error_message=outcome.error_message,
                        bank_reference=outcome.reference,
                    )
                    counts["completed" if target == PaymentStatus.COMPLETED else "failed"] += 1

            batch_status = self._settle(batch, members, actor_id)
            pending = sum(
                1 for p in members if p.status == PaymentStatus.BANK_PROCESSING.value
            )

        summary = ReconciliationSummary(
            batch_id=batch.id,
            batch_status=batch_status,
            completed=counts["completed"],
            failed=counts["failed"],
            already_applied=counts["already_applied"],
            conflicting=len(conflicting),
            unknown=len(unknown),
            not_ready=len(not_ready),
            pending=pending,
            conflicting_payment_ids=tuple(conflicting),
            unknown_payment_ids=tuple(unknown),
            not_ready_payment_ids=tuple(not_ready),
        )
        logger.info(
            "bank_result_applied",
            extra={
                "batch_id": str(batch.id),
                "batch_status": batch_status.value,
                "completed": summary.completed,
                "failed": summary.failed,
                "already_applied": summary.already_applied,
                "conflicting": summary.conflicting,
                "unknown": summary.unknown,
                "not_ready": summary.not_ready,
                "pending": summary.pending,
            },
        )
        return summary

    def _settle(
        self,
        batch: PaymentBatchModel,
        members: list[PaymentModel],
        actor_id: UUID | None,
    ) -> PaymentBatchStatus:
        """Settle a PROCESSING batch once every member is terminal."""
        current = batch.status_enum
        if current != PaymentBatchStatus.PROCESSING:
            return current
        statuses = [p.status_enum for p in members]
        if not all(s.is_terminal for s in statuses):
            return current
        target = (
            PaymentBatchStatus.FAILED
            if PaymentStatus.FAILED in statuses
            else PaymentBatchStatus.COMPLETED
        )
        self._state_machine.transition_batch(batch, target, actor_id)
        return target
