"""
settlement_batch.models -- ORM models for settlement batch persistence.

Architecture: settlement_batch/models. Imports from settlement_kernel.db.base only.
"""

from settlement_batch.models.batch import (
    PaymentBatchItemModel,
    PaymentBatchModel,
)

__all__ = [
    "PaymentBatchItemModel",
    "PaymentBatchModel",
]
