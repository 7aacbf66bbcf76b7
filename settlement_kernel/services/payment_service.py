"""
PaymentService -- payment records outside the batch pipeline.

Responsibility:
    Registers payments, records validated bank details, cancels payments,
    re-queues failed ones as fresh candidates, and answers history and
    statistics queries.

Architecture position:
    Kernel > Services -- imperative shell.
    Status changes are delegated to PaymentStateMachine.  IBAN validation
    is injected (any object with ``require_valid``), so the kernel does
    not import the engines layer.

Invariants enforced:
    - A failed payment is never reused: ``requeue_failed`` creates a new
      READY_FOR_PAYMENT record pointing back via ``retry_of_id`` and
      appends a REQUEUED event to the original.  A payment is re-queued
      at most once.
    - Bank details change only while READY_FOR_PAYMENT and unbatched.
    - Amounts are stored at two decimal places; floats are rejected.

Failure modes:
    - PaymentNotFoundError for unknown ids.
    - PaymentNotRequeueableError when the payment is not FAILED or was
      already re-queued.
    - PaymentLockedError when bank details change after batching.
    - StructuralError / ChecksumError from the injected IBAN verifier.
    - IllegalTransitionError when cancelling a terminal payment.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Protocol
from uuid import UUID, uuid4

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from settlement_kernel.domain.clock import Clock, SystemClock
from settlement_kernel.domain.types import (
    Payment,
    PaymentStatus,
    PaymentTimelineEvent,
    TimelineEventType,
    ValidationResult,
)
from settlement_kernel.domain.values import SETTLEMENT_CURRENCY, quantize_amount, to_decimal
from settlement_kernel.exceptions import (
    PaymentLockedError,
    PaymentNotFoundError,
    PaymentNotRequeueableError,
)
from settlement_kernel.logging_config import get_logger
from settlement_kernel.models.payment import PaymentModel, PaymentTimelineEventModel
from settlement_kernel.services.state_machine import PaymentStateMachine

logger = get_logger("services.payment")


class IbanVerifier(Protocol):
    def require_valid(self, iban: str | None) -> ValidationResult: ...


@dataclass(frozen=True)
class PaymentStatistics:
    """Counts and SAR totals across all payments."""

    total_count: int
    total_amount: Decimal
    count_by_status: dict[str, int] = field(default_factory=dict)
    amount_by_status: dict[str, Decimal] = field(default_factory=dict)
    count_by_bank: dict[str, int] = field(default_factory=dict)
    amount_by_bank: dict[str, Decimal] = field(default_factory=dict)

    @property
    def completed_count(self) -> int:
        return self.count_by_status.get(PaymentStatus.COMPLETED.value, 0)

    @property
    def failed_count(self) -> int:
        return self.count_by_status.get(PaymentStatus.FAILED.value, 0)


class PaymentService:
    """
    Payment record management.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
        - Does NOT assign payments to batches (BatchOrchestrator does).
    """

    def __init__(
        self,
        session: Session,
        iban_verifier: IbanVerifier,
        clock: Clock | None = None,
    ):
        self._session = session
        self._iban = iban_verifier
        self._clock = clock or SystemClock()
        self._state_machine = PaymentStateMachine(session, self._clock)

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def register_payment(
        self,
        employee_id: str,
        amount: Decimal | str | int,
        actor_id: UUID,
        *,
        employee_name: str | None = None,
        national_id: str | None = None,
        description: str | None = None,
        iban: str | None = None,
    ) -> Payment:
        """
        Create a READY_FOR_PAYMENT payment.

        When ``iban`` is given it is validated first and stored in
        canonical form together with the resolved bank and account.
        """
        if not employee_id:
            raise ValueError("employee_id is required")
        validated = self._iban.require_valid(iban) if iban else None

        payment = PaymentModel(
            id=uuid4(),
            employee_id=employee_id,
            employee_name=employee_name,
            national_id=national_id,
            description=description,
            amount=quantize_amount(to_decimal(amount)),
            currency=SETTLEMENT_CURRENCY,
            status=PaymentStatus.READY_FOR_PAYMENT.value,
            created_at=self._clock.now_utc(),
            created_by_id=actor_id,
        )
        if validated is not None:
            self._apply_bank_details(payment, validated)
        self._session.add(payment)
        self._session.flush()

        self._state_machine.record_event(
            payment,
            TimelineEventType.STATUS_CHANGE,
            actor_id=actor_id,
            description="payment_registered",
        )
        logger.info(
            "payment_registered",
            extra={
                "payment_id": str(payment.id),
                "employee_id": employee_id,
                "amount": str(payment.amount),
                "bank_code": payment.bank_code,
            },
        )
        return payment.to_dto()

    def update_bank_details(self, payment_id: UUID, iban: str, actor_id: UUID) -> Payment:
        """Validate ``iban`` and store it with the resolved bank and account."""
        payment = self._load(payment_id)
        if (
            payment.status != PaymentStatus.READY_FOR_PAYMENT.value
            or payment.batch_id is not None
        ):
            raise PaymentLockedError(str(payment_id), payment.status)

        validated = self._iban.require_valid(iban)
        previous_bank = payment.bank_code
        self._apply_bank_details(payment, validated)
        payment.updated_by_id = actor_id
        self._session.flush()

        logger.info(
            "payment_bank_details_updated",
            extra={
                "payment_id": str(payment_id),
                "previous_bank": previous_bank,
                "bank_code": payment.bank_code,
                "iban_warnings": list(validated.warnings),
            },
        )
        return payment.to_dto()

    def cancel_payment(
        self,
        payment_id: UUID,
        actor_id: UUID,
        reason: str | None = None,
    ) -> Payment:
        """Cancel a non-terminal payment; clears its batch back-reference."""
        payment = self._load(payment_id)
        self._state_machine.transition(
            payment,
            PaymentStatus.CANCELLED,
            actor_id=actor_id,
            description=reason or "cancelled",
            metadata={"reason": reason} if reason else None,
        )
        self._session.flush()
        return payment.to_dto()

    def requeue_failed(self, payment_id: UUID, actor_id: UUID) -> Payment:
        """
        Re-queue a FAILED payment as a fresh candidate.

        Returns:
            The new READY_FOR_PAYMENT payment.
        """
        original = self._load(payment_id)
        if original.status != PaymentStatus.FAILED.value:
            raise PaymentNotRequeueableError(str(payment_id), original.status)
        existing_retry = self._session.execute(
            select(PaymentModel.id).where(PaymentModel.retry_of_id == original.id)
        ).scalar()
        if existing_retry is not None:
            raise PaymentNotRequeueableError(str(payment_id), "ALREADY_REQUEUED")

        retry = PaymentModel(
            id=uuid4(),
            employee_id=original.employee_id,
            employee_name=original.employee_name,
            national_id=original.national_id,
            description=original.description,
            amount=original.amount,
            currency=original.currency,
            status=PaymentStatus.READY_FOR_PAYMENT.value,
            bank_code=original.bank_code,
            iban=original.iban,
            account_number=original.account_number,
            retry_of_id=original.id,
            created_at=self._clock.now_utc(),
            created_by_id=actor_id,
        )
        self._session.add(retry)
        self._session.flush()

        self._state_machine.record_event(
            original,
            TimelineEventType.REQUEUED,
            actor_id=actor_id,
            description="requeued_as_new_payment",
            metadata={"retry_payment_id": retry.id},
        )
        self._state_machine.record_event(
            retry,
            TimelineEventType.STATUS_CHANGE,
            actor_id=actor_id,
            description="payment_registered",
            metadata={"retry_of_id": original.id},
        )
        logger.info(
            "payment_requeued",
            extra={
                "payment_id": str(original.id),
                "retry_payment_id": str(retry.id),
            },
        )
        return retry.to_dto()

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def get_payment(self, payment_id: UUID) -> Payment:
        return self._load(payment_id).to_dto()

    def get_timeline(self, payment_id: UUID) -> list[PaymentTimelineEvent]:
        self._load(payment_id)
        rows = self._session.execute(
            select(PaymentTimelineEventModel)
            .where(PaymentTimelineEventModel.payment_id == payment_id)
            .order_by(PaymentTimelineEventModel.seq)
        ).scalars()
        return [row.to_dto() for row in rows]

    def statistics(self) -> PaymentStatistics:
        rows = self._session.execute(
            select(
                PaymentModel.status,
                PaymentModel.bank_code,
                func.count(PaymentModel.id),
                func.sum(PaymentModel.amount),
            ).group_by(PaymentModel.status, PaymentModel.bank_code)
        ).all()

        count_by_status: Counter[str] = Counter()
        count_by_bank: Counter[str] = Counter()
        amount_by_status: dict[str, Decimal] = {}
        amount_by_bank: dict[str, Decimal] = {}
        for status, bank_code, count, amount in rows:
            amount = Decimal(str(amount or 0))
            bank_key = bank_code or "UNASSIGNED"
            count_by_status[status] += count
            count_by_bank[bank_key] += count
            amount_by_status[status] = amount_by_status.get(status, Decimal("0")) + amount
            amount_by_bank[bank_key] = amount_by_bank.get(bank_key, Decimal("0")) + amount

        return PaymentStatistics(
            total_count=sum(count_by_status.values()),
            total_amount=quantize_amount(sum(amount_by_status.values(), Decimal("0"))),
            count_by_status=dict(count_by_status),
            amount_by_status={k: quantize_amount(v) for k, v in amount_by_status.items()},
            count_by_bank=dict(count_by_bank),
            amount_by_bank={k: quantize_amount(v) for k, v in amount_by_bank.items()},
        )

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _load(self, payment_id: UUID) -> PaymentModel:
        payment = self._session.get(PaymentModel, payment_id)
        if payment is None:
            raise PaymentNotFoundError(str(payment_id))
        return payment

    @staticmethod
    def _apply_bank_details(payment: PaymentModel, validated: ValidationResult) -> None:
        payment.iban = validated.normalized_iban
        payment.bank_code = validated.bank_code
        payment.account_number = validated.account_number
