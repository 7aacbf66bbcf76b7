"""Shared batch lookups for the dispatch and reconciliation services."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from settlement_batch.models.batch import PaymentBatchItemModel, PaymentBatchModel
from settlement_kernel.exceptions import BatchNotFoundError
from settlement_kernel.models.payment import PaymentModel


def load_batch(session: Session, batch_id: UUID) -> PaymentBatchModel:
    batch = session.get(PaymentBatchModel, batch_id, populate_existing=True)
    if batch is None:
        raise BatchNotFoundError(str(batch_id))
    return batch


def load_members(session: Session, batch_id: UUID) -> list[PaymentModel]:
    """Member payments in processing order, refreshed from the database."""
    return list(
        session.execute(
            select(PaymentModel)
            .join(PaymentBatchItemModel, PaymentBatchItemModel.payment_id == PaymentModel.id)
            .where(PaymentBatchItemModel.batch_id == batch_id)
            .order_by(PaymentBatchItemModel.position)
            .execution_options(populate_existing=True)
        ).scalars()
    )
