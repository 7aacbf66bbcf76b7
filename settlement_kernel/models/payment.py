"""
Module: settlement_kernel.models.payment
Responsibility: ORM persistence for payments and their append-only timeline.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/types.py only.

Invariants enforced:
    - ``batch_id`` is a weak back-reference (no foreign key); the batch's
      item rows are the source of membership truth.
    - ``batch_id`` set => status in BATCHED_PAYMENT_STATUSES (enforced by
      PaymentStateMachine and the batch orchestrator's claim).
    - PaymentTimelineEventModel rows are append-only (ORM listeners in
      db/immutability.py reject UPDATE and DELETE).
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import JSON, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from settlement_kernel.db.base import Base, TrackedBase, UUIDString
from settlement_kernel.domain.values import quantize_amount
from settlement_kernel.domain.types import (
    Payment,
    PaymentStatus,
    PaymentTimelineEvent,
    TimelineEventType,
)


class PaymentModel(TrackedBase):
    """Persistent payment record."""

    __tablename__ = "payments"

    __table_args__ = (
        Index("ix_payments_status", "status"),
        Index("ix_payments_batch_id", "batch_id"),
        Index("ix_payments_bank_status", "bank_code", "status"),
        Index("ix_payments_employee", "employee_id"),
    )

    employee_id: Mapped[str] = mapped_column(String(100), nullable=False)
    employee_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    national_id: Mapped[str | None] = mapped_column(String(20), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="SAR")
    status: Mapped[str] = mapped_column(String(50), nullable=False)
    bank_code: Mapped[str | None] = mapped_column(String(20), nullable=True)
    iban: Mapped[str | None] = mapped_column(String(34), nullable=True)
    account_number: Mapped[str | None] = mapped_column(String(34), nullable=True)
    batch_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    processed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    bank_reference: Mapped[str | None] = mapped_column(String(100), nullable=True)
    retry_of_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    timeline: Mapped[list["PaymentTimelineEventModel"]] = relationship(
        "PaymentTimelineEventModel",
        back_populates="payment",
        order_by="PaymentTimelineEventModel.seq",
    )

    @property
    def status_enum(self) -> PaymentStatus:
        return PaymentStatus(self.status)

    def to_dto(self) -> Payment:
        return Payment(
            payment_id=self.id,
            employee_id=self.employee_id,
            amount=quantize_amount(Decimal(self.amount)),
            status=PaymentStatus(self.status),
            created_at=self.created_at,
            currency=self.currency,
            employee_name=self.employee_name,
            national_id=self.national_id,
            description=self.description,
            bank_code=self.bank_code,
            iban=self.iban,
            account_number=self.account_number,
            batch_id=self.batch_id,
            processed_at=self.processed_at,
            completed_at=self.completed_at,
            error_message=self.error_message,
            bank_reference=self.bank_reference,
            retry_of_id=self.retry_of_id,
        )


class PaymentTimelineEventModel(Base):
    """Append-only history entry for a payment."""

    __tablename__ = "payment_timeline_events"

    __table_args__ = (
        UniqueConstraint("payment_id", "seq", name="uq_timeline_payment_seq"),
        Index("ix_timeline_payment", "payment_id"),
        Index("ix_timeline_occurred", "occurred_at"),
    )

    payment_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("payments.id", ondelete="RESTRICT"),
        nullable=False,
    )
    seq: Mapped[int] = mapped_column(Integer, nullable=False)
    event_type: Mapped[str] = mapped_column(String(50), nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False)
    from_status: Mapped[str | None] = mapped_column(String(50), nullable=True)
    actor_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    occurred_at: Mapped[datetime] = mapped_column(nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    details: Mapped[dict | None] = mapped_column("metadata", JSON, nullable=True)

    payment: Mapped["PaymentModel"] = relationship(
        "PaymentModel",
        back_populates="timeline",
        foreign_keys=[payment_id],
    )

    def to_dto(self) -> PaymentTimelineEvent:
        return PaymentTimelineEvent(
            event_id=self.id,
            payment_id=self.payment_id,
            event_type=TimelineEventType(self.event_type),
            status=PaymentStatus(self.status),
            occurred_at=self.occurred_at,
            actor_id=self.actor_id,
            from_status=PaymentStatus(self.from_status) if self.from_status else None,
            description=self.description,
            metadata=dict(self.details or {}),
        )
