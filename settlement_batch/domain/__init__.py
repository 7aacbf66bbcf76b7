"""
settlement_batch.domain -- Pure types for batch creation, bank files and
reconciliation.

ZERO I/O.  All types are frozen dataclasses.
"""

from settlement_batch.domain.types import (
    BankFile,
    BatchCreationResult,
    BatchDescriptor,
    OutcomeKind,
    PaymentOutcome,
    ReconciliationSummary,
)

__all__ = [
    "BankFile",
    "BatchCreationResult",
    "BatchDescriptor",
    "OutcomeKind",
    "PaymentOutcome",
    "ReconciliationSummary",
]
