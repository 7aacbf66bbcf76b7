"""
BatchOrchestrator -- groups eligible payments into a bank settlement batch.

Contract:
    ``create_batch(bank_code, candidate_payment_ids, actor_id)`` filters the
    candidates through IBAN and eligibility validation, takes the oldest
    payments up to the bank's capacity, and atomically claims them into a
    new batch.  ``describe()`` turns a batch into the external
    ``BatchDescriptor`` handed to the bank file stage.

Architecture: settlement_batch (top-level).  Imports kernel services,
    settlement_engines and settlement_config; nothing below imports
    settlement_batch (except the kernel's lazy model registration).

Invariants enforced:
    - Atomicity: the batch row, its items, every claim and every
      READY_FOR_PAYMENT -> BANK_FILE_GENERATED transition happen inside
      one SAVEPOINT.  Any fault rolls all of them back.
    - Exclusive membership: each payment is claimed with a conditional
      UPDATE (``batch_id IS NULL AND status = READY_FOR_PAYMENT``).  A lost
      claim never blocks; the UNIQUE ``payment_batch_items.payment_id``
      column is the persistence backstop.
    - Capacity: at most ``BankDefinition.batch_capacity`` payments, oldest
      ``created_at`` first (payment id breaks ties).  The rest are
      returned as deferred and stay READY_FOR_PAYMENT.
    - Batch numbers come from SequenceService and are monotonic.
    - All timestamps come from the injected Clock.

Failure modes:
    - BankNotFoundError: unknown bank code.
    - EmptyBatchError: no candidate survived validation, or every claim
      was lost to another batch.  Nothing is mutated.
    - PartialAssignmentError: a claimed payment changed status under us
      or its transition was illegal.  The SAVEPOINT is rolled back.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import timedelta
from types import MappingProxyType
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from settlement_batch.domain.types import BatchCreationResult, BatchDescriptor
from settlement_batch.models.batch import PaymentBatchItemModel, PaymentBatchModel
from settlement_engines.bank_registry import BankRegistry
from settlement_engines.calendar import DispatchCalendar
from settlement_engines.eligibility import (
    DuplicateKey,
    EligibilityContext,
    EligibilityValidator,
)
from settlement_engines.iban import IBANValidator
from settlement_kernel.domain.bank import BankDefinition
from settlement_kernel.domain.clock import Clock, SystemClock
from settlement_kernel.domain.types import (
    PaymentBatch,
    PaymentBatchStatus,
    PaymentStatus,
    ValidationResult,
)
from settlement_kernel.domain.values import Money, quantize_amount
from settlement_kernel.exceptions import (
    BatchNotFoundError,
    EmptyBatchError,
    IllegalTransitionError,
    PartialAssignmentError,
)
from settlement_kernel.logging_config import LogContext, get_logger
from settlement_kernel.models.payment import PaymentModel
from settlement_kernel.services.sequence_service import SequenceService
from settlement_kernel.services.state_machine import PaymentStateMachine

if TYPE_CHECKING:
    from settlement_config.schema import SettlementConfig

logger = get_logger("batch.orchestrator")

PAYMENT_NOT_FOUND = "PAYMENT_NOT_FOUND"

_OPEN_BATCH_STATUSES = tuple(
    s.value for s in PaymentBatchStatus if not s.is_terminal
)
_LIVE_MEMBER_STATUSES = (
    PaymentStatus.BANK_FILE_GENERATED.value,
    PaymentStatus.SENT_TO_BANK.value,
    PaymentStatus.BANK_PROCESSING.value,
    PaymentStatus.COMPLETED.value,
)


class BatchOrchestrator:
    """Creates settlement batches.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
        - Does NOT re-invoke itself for deferred payments; the caller does.
        - Does NOT generate file bytes (BatchDispatchService does).
    """

    def __init__(
        self,
        session: Session,
        registry: BankRegistry,
        iban_validator: IBANValidator,
        eligibility: EligibilityValidator,
        calendar: DispatchCalendar,
        file_expiry_hours: int = 24,
        clock: Clock | None = None,
        sequence_service: SequenceService | None = None,
    ) -> None:
        self._session = session
        self._registry = registry
        self._iban = iban_validator
        self._eligibility = eligibility
        self._calendar = calendar
        self._file_expiry = timedelta(hours=file_expiry_hours)
        self._clock = clock or SystemClock()
        self._sequence = sequence_service or SequenceService(session)
        self._state_machine = PaymentStateMachine(session, self._clock)

    # -------------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------------

    @classmethod
    def from_session(
        cls,
        session: Session,
        config: SettlementConfig | None = None,
        clock: Clock | None = None,
    ) -> BatchOrchestrator:
        """Create a fully wired orchestrator from a session and config.

        Args:
            session: SQLAlchemy session for persistence.
            config: Settlement configuration.  Defaults to
                ``get_active_config()``.
            clock: Optional clock for deterministic testing.
        """
        from settlement_config import get_active_config
        from settlement_config.bridges import (
            build_bank_registry,
            build_dispatch_calendar,
            build_eligibility_validator,
        )

        config = config or get_active_config()
        registry = build_bank_registry(config)
        return cls(
            session=session,
            registry=registry,
            iban_validator=IBANValidator(registry),
            eligibility=build_eligibility_validator(config),
            calendar=build_dispatch_calendar(config),
            file_expiry_hours=config.settings.file_expiry_hours,
            clock=clock,
        )

    # -------------------------------------------------------------------------
    # Create
    # -------------------------------------------------------------------------

    def create_batch(
        self,
        bank_code: str,
        candidate_payment_ids: Iterable[UUID],
        actor_id: UUID,
    ) -> BatchCreationResult:
        """Create one batch for ``bank_code`` from the candidates.

        Raises:
            BankNotFoundError: unknown bank.
            EmptyBatchError: nothing eligible, or every claim lost.
            PartialAssignmentError: claim/transition fault; rolled back.
        """
        bank = self._registry.lookup(bank_code)
        candidate_ids = list(dict.fromkeys(candidate_payment_ids))
        excluded: dict[UUID, ValidationResult] = {}

        payments = self._load_candidates(candidate_ids, excluded)
        planned_size = min(len(payments), bank.batch_capacity)
        context = EligibilityContext(open_duplicate_keys=self._open_duplicate_keys())

        eligible: list[PaymentModel] = []
        for payment in payments:
            dto = payment.to_dto()
            iban_result = self._iban.validate(dto.iban)
            result = self._eligibility.evaluate(
                dto, iban_result, bank, planned_size, context,
            )
            if not result.is_valid:
                excluded[payment.id] = result
                logger.info(
                    "payment_excluded",
                    extra={
                        "payment_id": str(payment.id),
                        "bank_code": bank.code.value,
                        "errors": list(result.errors),
                    },
                )
                continue
            eligible.append(payment)
            # Only payments inside this batch block their twins; a twin of a
            # deferred payment is deferred with it.
            if len(eligible) <= bank.batch_capacity:
                context = context.with_keys([dto.duplicate_key])

        if not eligible:
            logger.warning(
                "batch_empty",
                extra={
                    "bank_code": bank.code.value,
                    "candidate_count": len(candidate_ids),
                    "excluded_count": len(excluded),
                },
            )
            raise EmptyBatchError(bank.code.value, len(candidate_ids))

        selected = eligible[:bank.batch_capacity]
        deferred = tuple(p.id for p in eligible[bank.batch_capacity:])
        if deferred:
            logger.info(
                "batch_capacity_reached",
                extra={
                    "bank_code": bank.code.value,
                    "capacity": bank.batch_capacity,
                    "deferred_count": len(deferred),
                    "deferred_payment_ids": [str(pid) for pid in deferred],
                },
            )

        batch_model, contended = self._assign(bank, selected, actor_id)
        batch = batch_model.to_dto()

        logger.info(
            "batch_created",
            extra={
                "batch_id": str(batch.batch_id),
                "batch_number": batch.batch_number,
                "bank_code": batch.bank_code,
                "payment_count": batch.payment_count,
                "total_amount": str(batch.total_amount),
                "after_cutoff": batch.after_cutoff,
                "dispatch_date": batch.dispatch_date.isoformat(),
                "deferred_count": len(deferred),
                "excluded_count": len(excluded),
                "contended_count": len(contended),
            },
        )
        return BatchCreationResult(
            batch=batch,
            deferred_payment_ids=deferred,
            excluded=MappingProxyType(excluded),
            contended_payment_ids=tuple(contended),
        )

    def _assign(
        self,
        bank: BankDefinition,
        selected: Sequence[PaymentModel],
        actor_id: UUID,
    ) -> tuple[PaymentBatchModel, list[UUID]]:
        """Claim ``selected`` into a new batch inside one SAVEPOINT."""
        now = self._clock.now_utc()
        window = self._calendar.dispatch_window(now, bank.cutoff_time)
        batch_id = uuid4()

        claimed: list[PaymentModel] = []
        contended: list[UUID] = []

        savepoint = self._session.begin_nested()
        with LogContext.bind(batch_id=str(batch_id)):
            try:
                batch_number = self._sequence.next_batch_number()
                for payment in selected:
                    if not self._claim_payment(batch_id, payment.id):
                        self._session.refresh(payment)
                        if payment.batch_id is not None:
                            contended.append(payment.id)
                            logger.info(
                                "payment_claim_lost",
                                extra={
                                    "payment_id": str(payment.id),
                                    "owner_batch_id": str(payment.batch_id),
                                },
                            )
                            continue
                        raise PartialAssignmentError(
                            bank.code.value,
                            str(payment.id),
                            f"status changed to {payment.status}",
                        )

                    self._session.refresh(payment)
                    try:
                        self._state_machine.transition(
                            payment,
                            PaymentStatus.BANK_FILE_GENERATED,
                            actor_id=actor_id,
                            metadata={"batch_id": batch_id, "batch_number": batch_number},
                        )
                    except IllegalTransitionError as e:
                        raise PartialAssignmentError(
                            bank.code.value, str(payment.id), str(e), trace_id=e.trace_id,
                        ) from e
                    claimed.append(payment)

                if not claimed:
                    savepoint.rollback()
                    logger.warning(
                        "batch_empty",
                        extra={
                            "bank_code": bank.code.value,
                            "candidate_count": len(selected),
                            "contended_count": len(contended),
                        },
                    )
                    raise EmptyBatchError(bank.code.value, len(selected))

                total = Money.total(p.amount for p in claimed).round()
                batch_model = PaymentBatchModel(
                    id=batch_id,
                    batch_number=batch_number,
                    bank_code=bank.code.value,
                    status=PaymentBatchStatus.CREATED.value,
                    total_amount=total.amount,
                    currency=total.currency,
                    file_reference=self._file_reference(bank, window.local_time, batch_number),
                    expires_at=now + self._file_expiry,
                    dispatch_date=window.dispatch_date,
                    after_cutoff=window.after_cutoff,
                    created_at=now,
                    created_by_id=actor_id,
                )
                self._session.add(batch_model)
                for position, payment in enumerate(claimed):
                    self._session.add(PaymentBatchItemModel(
                        batch=batch_model,
                        payment_id=payment.id,
                        position=position,
                        amount=quantize_amount(payment.amount),
                    ))
                self._session.flush()
                savepoint.commit()
            except PartialAssignmentError as e:
                if savepoint.is_active:
                    savepoint.rollback()
                logger.error(
                    "batch_assignment_aborted",
                    extra={
                        "bank_code": bank.code.value,
                        "aborted_payment_id": e.payment_id,
                        "reason": e.reason,
                        "trace_id": e.trace_id,
                    },
                )
                raise
            except EmptyBatchError:
                raise
            except Exception:
                if savepoint.is_active:
                    savepoint.rollback()
                raise

        return batch_model, contended

    def _claim_payment(self, batch_id: UUID, payment_id: UUID) -> bool:
        """Compare-and-set claim; True when this batch won the payment."""
        result = self._session.execute(
            update(PaymentModel)
            .where(
                PaymentModel.id == payment_id,
                PaymentModel.batch_id.is_(None),
                PaymentModel.status == PaymentStatus.READY_FOR_PAYMENT.value,
            )
            .values(batch_id=batch_id)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get_batch(self, batch_id: UUID) -> PaymentBatch:
        model = self._session.get(PaymentBatchModel, batch_id)
        if model is None:
            raise BatchNotFoundError(str(batch_id))
        return model.to_dto()

    def describe(self, batch: PaymentBatch | UUID) -> BatchDescriptor:
        """External descriptor for a batch (or batch id)."""
        if not isinstance(batch, PaymentBatch):
            batch = self.get_batch(batch)
        return BatchDescriptor(
            batch_id=batch.batch_id,
            batch_number=batch.batch_number,
            bank_code=batch.bank_code,
            payment_count=batch.payment_count,
            total_amount=batch.total_amount,
            file_reference=batch.file_reference,
            expires_at=batch.expires_at,
            dispatch_date=batch.dispatch_date,
            after_cutoff=batch.after_cutoff,
        )

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _load_candidates(
        self,
        candidate_ids: list[UUID],
        excluded: dict[UUID, ValidationResult],
    ) -> list[PaymentModel]:
        if not candidate_ids:
            return []
        rows = self._session.execute(
            select(PaymentModel)
            .where(PaymentModel.id.in_(candidate_ids))
            .execution_options(populate_existing=True)
        ).scalars().all()
        found = {row.id: row for row in rows}
        for payment_id in candidate_ids:
            if payment_id not in found:
                excluded[payment_id] = ValidationResult.failure(PAYMENT_NOT_FOUND)
        return sorted(found.values(), key=lambda p: (p.created_at, str(p.id)))

    def _open_duplicate_keys(self) -> frozenset[DuplicateKey]:
        """(employee, amount, creation day) of live members of open batches."""
        rows = self._session.execute(
            select(PaymentModel.employee_id, PaymentModel.amount, PaymentModel.created_at)
            .join(PaymentBatchItemModel, PaymentBatchItemModel.payment_id == PaymentModel.id)
            .join(PaymentBatchModel, PaymentBatchModel.id == PaymentBatchItemModel.batch_id)
            .where(
                PaymentBatchModel.status.in_(_OPEN_BATCH_STATUSES),
                PaymentModel.status.in_(_LIVE_MEMBER_STATUSES),
            )
        ).all()
        return frozenset(
            (employee_id, quantize_amount(amount), created_at.date())
            for employee_id, amount, created_at in rows
        )

    @staticmethod
    def _file_reference(bank: BankDefinition, local_time, batch_number: str) -> str:
        stem = bank.file_name_template.format(
            bank=bank.code.value,
            date=local_time.strftime("%Y%m%d"),
            batch_number=batch_number,
        )
        return f"{stem}{bank.file_extension}"
