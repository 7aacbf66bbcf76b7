"""
settlement_kernel.models -- ORM models for payments, the payment timeline
and sequence counters.
"""

from settlement_kernel.models.payment import (
    PaymentModel,
    PaymentTimelineEventModel,
)
from settlement_kernel.models.sequence import SequenceCounter

__all__ = [
    "PaymentModel",
    "PaymentTimelineEventModel",
    "SequenceCounter",
]
