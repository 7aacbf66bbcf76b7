"""
settlement_batch.domain.types -- Pure frozen dataclasses for batch
creation, bank file handoff and reconciliation.

ZERO I/O.  Frozen dataclasses with enum fields and tuples for immutable
collections.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Any
from uuid import UUID

from settlement_kernel.domain.bank import FileFormat
from settlement_kernel.domain.types import PaymentBatch, PaymentBatchStatus, ValidationResult


# =============================================================================
# Batch creation
# =============================================================================


@dataclass(frozen=True)
class BatchCreationResult:
    """Outcome of ``BatchOrchestrator.create_batch()``.

    ``deferred_payment_ids`` are eligible payments left READY_FOR_PAYMENT
    because the bank's batch capacity was reached; the caller re-invokes
    ``create_batch`` for them.  ``excluded`` maps each rejected candidate
    to the validation result explaining why.  ``contended_payment_ids``
    lost their claim to a concurrently created batch.
    """

    batch: PaymentBatch
    deferred_payment_ids: tuple[UUID, ...] = ()
    excluded: Mapping[UUID, ValidationResult] = field(
        default_factory=lambda: MappingProxyType({}),
    )
    contended_payment_ids: tuple[UUID, ...] = ()


@dataclass(frozen=True)
class BatchDescriptor:
    """External view of a created batch, handed to the bank file stage."""

    batch_id: UUID
    batch_number: str
    bank_code: str
    payment_count: int
    total_amount: Decimal
    file_reference: str
    expires_at: datetime
    dispatch_date: date
    after_cutoff: bool


# =============================================================================
# Bank file
# =============================================================================


@dataclass(frozen=True)
class BankFile:
    """Bytes of a generated bank file plus what the operator needs to ship it."""

    file_name: str
    content: bytes
    mime_type: str
    file_format: FileFormat
    record_count: int
    total_amount: Decimal


# =============================================================================
# Reconciliation
# =============================================================================


class OutcomeKind(str, Enum):
    """Per-payment result reported by the bank."""

    SUCCESS = "SUCCESS"
    FAILURE = "FAILURE"

    @classmethod
    def parse(cls, value: OutcomeKind | str) -> OutcomeKind:
        if isinstance(value, OutcomeKind):
            return value
        normalized = str(value).strip().upper()
        aliases = {
            "SUCCESS": cls.SUCCESS,
            "COMPLETED": cls.SUCCESS,
            "SETTLED": cls.SUCCESS,
            "FAILURE": cls.FAILURE,
            "FAILED": cls.FAILURE,
            "REJECTED": cls.FAILURE,
        }
        if normalized not in aliases:
            raise ValueError(f"Unknown bank outcome {value!r}")
        return aliases[normalized]


@dataclass(frozen=True)
class PaymentOutcome:
    """One line of a bank confirmation file."""

    payment_id: UUID
    outcome: OutcomeKind
    reference: str | None = None
    error_message: str | None = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> PaymentOutcome:
        """Build from a banking-channel payload (snake or camel case keys)."""

        def pick(*keys: str) -> Any:
            for key in keys:
                if data.get(key) not in (None, ""):
                    return data[key]
            return None

        raw_id = pick("payment_id", "paymentId")
        raw_outcome = pick("outcome", "status")
        if raw_id is None or raw_outcome is None:
            raise ValueError("Bank outcome requires payment_id and outcome")
        payment_id = raw_id if isinstance(raw_id, UUID) else UUID(str(raw_id))
        return cls(
            payment_id=payment_id,
            outcome=OutcomeKind.parse(raw_outcome),
            reference=pick("reference", "bank_reference", "bankReference"),
            error_message=pick("error_message", "errorMessage", "error"),
        )


@dataclass(frozen=True)
class ReconciliationSummary:
    """What ``apply_bank_result`` did, per category.

    ``completed`` / ``failed`` count transitions applied by this call.
    ``pending`` counts batch members still BANK_PROCESSING afterwards.
    """

    batch_id: UUID
    batch_status: PaymentBatchStatus
    completed: int = 0
    failed: int = 0
    already_applied: int = 0
    conflicting: int = 0
    unknown: int = 0
    not_ready: int = 0
    pending: int = 0
    conflicting_payment_ids: tuple[UUID, ...] = ()
    unknown_payment_ids: tuple[UUID, ...] = ()
    not_ready_payment_ids: tuple[UUID, ...] = ()

    @property
    def settled(self) -> bool:
        return self.batch_status.is_terminal

    @property
    def applied(self) -> int:
        return self.completed + self.failed
