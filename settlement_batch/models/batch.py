"""
ORM models for settlement batch persistence.

Contract:
    PaymentBatchModel persists the batch header; PaymentBatchItemModel
    persists ordered membership.  ``to_dto()`` assembles the immutable
    ``PaymentBatch`` snapshot with ``payment_ids`` in processing order.

Architecture: settlement_batch/models. Imports from settlement_kernel.db.base
    and settlement_kernel.domain only.

Invariants enforced:
    - ``payment_batch_items.payment_id`` is UNIQUE: a payment id can never
      appear in two batches, whatever the application code does.
    - ``batch_number`` is UNIQUE.
    - Items and ``total_amount`` are immutable after creation (ORM
      listeners in settlement_kernel.db.immutability).
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, Date, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from settlement_kernel.db.base import Base, TrackedBase, UUIDString
from settlement_kernel.domain.types import PaymentBatch, PaymentBatchStatus
from settlement_kernel.domain.values import quantize_amount


class PaymentBatchModel(TrackedBase):
    """Persistent settlement batch header."""

    __tablename__ = "payment_batches"

    __table_args__ = (
        Index("ix_payment_batches_status", "status"),
        Index("ix_payment_batches_bank", "bank_code"),
        Index("ix_payment_batches_created_at", "created_at"),
    )

    batch_number: Mapped[str] = mapped_column(String(40), nullable=False, unique=True)
    bank_code: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="SAR")
    file_reference: Mapped[str] = mapped_column(String(200), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(nullable=False)
    dispatch_date: Mapped[date] = mapped_column(Date, nullable=False)
    after_cutoff: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    file_generated_at: Mapped[datetime | None] = mapped_column(nullable=True)
    sent_at: Mapped[datetime | None] = mapped_column(nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    items: Mapped[list["PaymentBatchItemModel"]] = relationship(
        "PaymentBatchItemModel",
        back_populates="batch",
        order_by="PaymentBatchItemModel.position",
        foreign_keys="PaymentBatchItemModel.batch_id",
    )

    @property
    def status_enum(self) -> PaymentBatchStatus:
        return PaymentBatchStatus(self.status)

    @property
    def payment_ids(self) -> tuple[UUID, ...]:
        return tuple(item.payment_id for item in self.items)

    def to_dto(self) -> PaymentBatch:
        return PaymentBatch(
            batch_id=self.id,
            batch_number=self.batch_number,
            bank_code=self.bank_code,
            payment_ids=self.payment_ids,
            status=PaymentBatchStatus(self.status),
            total_amount=quantize_amount(Decimal(self.total_amount)),
            created_at=self.created_at,
            file_reference=self.file_reference,
            expires_at=self.expires_at,
            dispatch_date=self.dispatch_date,
            after_cutoff=self.after_cutoff,
            created_by=self.created_by_id,
            currency=self.currency,
            file_generated_at=self.file_generated_at,
            sent_at=self.sent_at,
            completed_at=self.completed_at,
        )


class PaymentBatchItemModel(Base):
    """Ordered membership row: one payment in one batch, forever."""

    __tablename__ = "payment_batch_items"

    __table_args__ = (
        UniqueConstraint("payment_id", name="uq_batch_items_payment"),
        UniqueConstraint("batch_id", "position", name="uq_batch_items_position"),
    )

    batch_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("payment_batches.id", ondelete="RESTRICT"),
        nullable=False,
    )
    payment_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("payments.id", ondelete="RESTRICT"),
        nullable=False,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)

    batch: Mapped["PaymentBatchModel"] = relationship(
        "PaymentBatchModel",
        back_populates="items",
        foreign_keys=[batch_id],
    )
