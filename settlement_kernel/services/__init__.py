"""
settlement_kernel.services -- imperative shell of the kernel.

Services receive a SQLAlchemy ``Session`` from the caller and only flush;
the caller owns commit and rollback.
"""

from settlement_kernel.services.payment_service import (
    IbanVerifier,
    PaymentService,
    PaymentStatistics,
)
from settlement_kernel.services.sequence_service import SequenceService
from settlement_kernel.services.state_machine import PaymentStateMachine

__all__ = [
    "IbanVerifier",
    "PaymentService",
    "PaymentStateMachine",
    "PaymentStatistics",
    "SequenceService",
]
