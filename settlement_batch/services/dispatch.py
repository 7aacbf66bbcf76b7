"""
BatchDispatchService -- moves a created batch through file generation,
hand-off to the bank and bank acknowledgement.

Contract:
    ``generate_file()``      CREATED -> FILE_GENERATED, returns the BankFile.
    ``mark_sent_to_bank()``  FILE_GENERATED -> SENT_TO_BANK; members
                             BANK_FILE_GENERATED -> SENT_TO_BANK.
    ``acknowledge_receipt()`` SENT_TO_BANK -> PROCESSING; members
                             SENT_TO_BANK -> BANK_PROCESSING.

Architecture: settlement_batch/services.  Status changes go through
    PaymentStateMachine; file bytes come from the bank file formatters.

Invariants enforced:
    - Each call is one SAVEPOINT: the batch and all of its live members
      move together or not at all.
    - Members already terminal (cancelled after batching) are skipped.

Failure modes:
    - BatchNotFoundError: unknown batch id.
    - IllegalBatchTransitionError: step called out of order.
    - UnsupportedFileFormatError: no formatter for the bank's format.
"""

from __future__ import annotations

from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy.orm import Session

from settlement_batch.domain.types import BankFile
from settlement_batch.models.batch import PaymentBatchModel
from settlement_batch.services.bank_file import get_formatter
from settlement_batch.services.batch_queries import load_batch, load_members
from settlement_engines.bank_registry import BankRegistry
from settlement_kernel.domain.clock import Clock, SystemClock
from settlement_kernel.domain.types import (
    PaymentBatch,
    PaymentBatchStatus,
    PaymentStatus,
    TimelineEventType,
)
from settlement_kernel.logging_config import LogContext, get_logger
from settlement_kernel.models.payment import PaymentModel
from settlement_kernel.services.state_machine import PaymentStateMachine

if TYPE_CHECKING:
    from settlement_config.schema import SettlementConfig

logger = get_logger("batch.dispatch")


class BatchDispatchService:
    """
    Batch dispatch steps between creation and reconciliation.

    Non-goals:
        - Does NOT talk to any bank network; callers ship the bytes.
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
    """

    def __init__(
        self,
        session: Session,
        registry: BankRegistry,
        clock: Clock | None = None,
    ) -> None:
        self._session = session
        self._registry = registry
        self._clock = clock or SystemClock()
        self._state_machine = PaymentStateMachine(session, self._clock)

    @classmethod
    def from_session(
        cls,
        session: Session,
        config: SettlementConfig | None = None,
        clock: Clock | None = None,
    ) -> BatchDispatchService:
        from settlement_config import get_active_config
        from settlement_config.bridges import build_bank_registry

        config = config or get_active_config()
        return cls(session, build_bank_registry(config), clock=clock)

    # -------------------------------------------------------------------------
    # Steps
    # -------------------------------------------------------------------------

    def render_file(self, batch_id: UUID) -> BankFile:
        """Render the batch file without changing any status (re-download)."""
        batch = load_batch(self._session, batch_id)
        return self._render(batch, load_members(self._session, batch_id))

    def generate_file(self, batch_id: UUID, actor_id: UUID | None = None) -> BankFile:
        """Render the bank file and mark the batch FILE_GENERATED."""
        batch = load_batch(self._session, batch_id)
        members = load_members(self._session, batch_id)
        bank_file = self._render(batch, members)

        with LogContext.bind(batch_id=str(batch_id)), self._session.begin_nested():
            self._state_machine.transition_batch(
                batch, PaymentBatchStatus.FILE_GENERATED, actor_id,
            )
            for payment in members:
                if payment.status_enum.is_terminal:
                    continue
                self._state_machine.record_event(
                    payment,
                    TimelineEventType.FILE_GENERATED,
                    actor_id=actor_id,
                    description="bank_file_generated",
                    metadata={
                        "batch_id": batch.id,
                        "file_name": bank_file.file_name,
                    },
                )

            logger.info(
                "bank_file_generated",
                extra={
                    "bank_code": batch.bank_code,
                    "file_name": bank_file.file_name,
                    "file_format": bank_file.file_format.value,
                    "record_count": bank_file.record_count,
                    "total_amount": str(bank_file.total_amount),
                    "size_bytes": len(bank_file.content),
                },
            )
        return bank_file

    def mark_sent_to_bank(self, batch_id: UUID, actor_id: UUID | None = None) -> PaymentBatch:
        return self._advance(
            batch_id,
            PaymentBatchStatus.SENT_TO_BANK,
            PaymentStatus.BANK_FILE_GENERATED,
            PaymentStatus.SENT_TO_BANK,
            actor_id,
        )

    def acknowledge_receipt(self, batch_id: UUID, actor_id: UUID | None = None) -> PaymentBatch:
        return self._advance(
            batch_id,
            PaymentBatchStatus.PROCESSING,
            PaymentStatus.SENT_TO_BANK,
            PaymentStatus.BANK_PROCESSING,
            actor_id,
        )

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _advance(
        self,
        batch_id: UUID,
        batch_status: PaymentBatchStatus,
        member_from: PaymentStatus,
        member_to: PaymentStatus,
        actor_id: UUID | None,
    ) -> PaymentBatch:
        batch = load_batch(self._session, batch_id)
        moved = 0
        with LogContext.bind(batch_id=str(batch_id)), self._session.begin_nested():
            self._state_machine.transition_batch(batch, batch_status, actor_id)
            for payment in load_members(self._session, batch_id):
                if payment.status != member_from.value:
                    continue
                self._state_machine.transition(
                    payment,
                    member_to,
                    actor_id=actor_id,
                    metadata={"batch_id": batch.id},
                )
                moved += 1

            logger.info(
                "batch_members_advanced",
                extra={
                    "to_status": member_to.value,
                    "moved_count": moved,
                },
            )
        return batch.to_dto()

    def _render(self, batch: PaymentBatchModel, members: list[PaymentModel]) -> BankFile:
        bank = self._registry.lookup(batch.bank_code)
        live = [p.to_dto() for p in members if p.status != PaymentStatus.CANCELLED.value]
        return get_formatter(bank.file_format).render(bank, batch.to_dto(), live)
