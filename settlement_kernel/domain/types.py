"""
settlement_kernel.domain.types -- Pure frozen dataclasses for payments,
batches, the payment timeline and validation results.

ZERO I/O.  Follows the project DTO conventions: frozen dataclasses,
``str`` enums for statuses, tuples for immutable collections.

Invariants documented here and enforced by the services:
    - ``Payment.batch_id`` set => status in ``BATCHED_PAYMENT_STATUSES``.
    - ``PaymentBatch.payment_ids`` is ordered (processing order) and owned
      exclusively by the batch.
    - ``ValidationResult`` is transient and never persisted.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from settlement_kernel.domain.values import SETTLEMENT_CURRENCY


# =============================================================================
# Status enums
# =============================================================================


class PaymentStatus(str, Enum):
    """Payment settlement lifecycle."""

    READY_FOR_PAYMENT = "READY_FOR_PAYMENT"
    BANK_FILE_GENERATED = "BANK_FILE_GENERATED"
    SENT_TO_BANK = "SENT_TO_BANK"
    BANK_PROCESSING = "BANK_PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_PAYMENT_STATUSES


TERMINAL_PAYMENT_STATUSES: frozenset[PaymentStatus] = frozenset({
    PaymentStatus.COMPLETED,
    PaymentStatus.FAILED,
    PaymentStatus.CANCELLED,
})

# Statuses a payment may hold while its batch_id is set.
BATCHED_PAYMENT_STATUSES: frozenset[PaymentStatus] = frozenset({
    PaymentStatus.BANK_FILE_GENERATED,
    PaymentStatus.SENT_TO_BANK,
    PaymentStatus.BANK_PROCESSING,
    PaymentStatus.COMPLETED,
    PaymentStatus.FAILED,
})


class PaymentBatchStatus(str, Enum):
    """Batch lifecycle."""

    CREATED = "CREATED"
    FILE_GENERATED = "FILE_GENERATED"
    SENT_TO_BANK = "SENT_TO_BANK"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (PaymentBatchStatus.COMPLETED, PaymentBatchStatus.FAILED)


class TimelineEventType(str, Enum):
    """Kinds of entries on a payment's append-only timeline."""

    STATUS_CHANGE = "STATUS_CHANGE"
    BATCH_CREATED = "BATCH_CREATED"
    FILE_GENERATED = "FILE_GENERATED"
    BANK_CONFIRMED = "BANK_CONFIRMED"
    COMPLETED = "COMPLETED"
    ERROR = "ERROR"
    CANCELLED = "CANCELLED"
    REQUEUED = "REQUEUED"


# =============================================================================
# Payment DTOs
# =============================================================================


@dataclass(frozen=True)
class Payment:
    """Immutable snapshot of a payment record."""

    payment_id: UUID
    employee_id: str
    amount: Decimal
    status: PaymentStatus
    created_at: datetime
    currency: str = SETTLEMENT_CURRENCY
    employee_name: str | None = None
    national_id: str | None = None
    description: str | None = None
    bank_code: str | None = None
    iban: str | None = None
    account_number: str | None = None
    batch_id: UUID | None = None
    processed_at: datetime | None = None
    completed_at: datetime | None = None
    error_message: str | None = None
    bank_reference: str | None = None
    retry_of_id: UUID | None = None

    @property
    def duplicate_key(self) -> tuple[str, Decimal, date]:
        """(employee, amount, creation day) used for double-submission checks."""
        return (self.employee_id, self.amount, self.created_at.date())


@dataclass(frozen=True)
class PaymentTimelineEvent:
    """One append-only entry on a payment's history."""

    event_id: UUID
    payment_id: UUID
    event_type: TimelineEventType
    status: PaymentStatus
    occurred_at: datetime
    actor_id: UUID | None = None
    from_status: PaymentStatus | None = None
    description: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


# =============================================================================
# Batch DTOs
# =============================================================================


@dataclass(frozen=True)
class PaymentBatch:
    """Immutable snapshot of a settlement batch.

    ``payment_ids`` is the sole source of membership truth; payments only
    carry a lookup back-reference.
    """

    batch_id: UUID
    batch_number: str
    bank_code: str
    payment_ids: tuple[UUID, ...]
    status: PaymentBatchStatus
    total_amount: Decimal
    created_at: datetime
    file_reference: str
    expires_at: datetime
    dispatch_date: date
    after_cutoff: bool = False
    created_by: UUID | None = None
    currency: str = SETTLEMENT_CURRENCY
    file_generated_at: datetime | None = None
    sent_at: datetime | None = None
    completed_at: datetime | None = None

    @property
    def payment_count(self) -> int:
        return len(self.payment_ids)


# =============================================================================
# Validation
# =============================================================================


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of an IBAN or eligibility validation.

    ``errors`` and ``warnings`` are ordered machine codes; ``suggestions``
    are human-readable hints.  ``is_valid`` is False iff errors exist.
    """

    is_valid: bool
    errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()
    suggestions: tuple[str, ...] = ()
    bank_code: str | None = None
    account_number: str | None = None
    check_digits: str | None = None
    normalized_iban: str | None = None

    @classmethod
    def success(cls, **kwargs: Any) -> ValidationResult:
        return cls(is_valid=True, **kwargs)

    @classmethod
    def failure(cls, *errors: str, **kwargs: Any) -> ValidationResult:
        if not errors:
            raise ValueError("failure() requires at least one error code")
        return cls(is_valid=False, errors=tuple(errors), **kwargs)
