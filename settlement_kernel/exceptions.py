"""
Typed Exception Hierarchy for the Settlement Service.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Settlement errors are consumed by operators, by API layers and by tests.
Every error therefore has:
  1. a TYPED exception class (catch by type, not message)
  2. a CODE class attribute (machine-readable, API-safe)
  3. structured DATA attributes (payment ids, statuses, trace ids)

Validation problems (bad IBAN, ineligible payment) are normally returned
as data in a ``ValidationResult``.  The IBAN and eligibility exceptions
below exist for callers that explicitly ask for a fault
(``require_valid()`` / ``require_eligible()``).

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    SettlementError (base)
    |
    +-- IBANError
    |   +-- StructuralError
    |   +-- ChecksumError
    |
    +-- EligibilityError
    |   +-- DuplicateCandidateError
    |   +-- IneligiblePaymentError
    |
    +-- TransitionError
    |   +-- IllegalTransitionError
    |   +-- IllegalBatchTransitionError
    |
    +-- BatchError
    |   +-- EmptyBatchError
    |   +-- PartialAssignmentError
    |   +-- BatchNotFoundError
    |   +-- UnsupportedFileFormatError
    |
    +-- PaymentError
    |   +-- PaymentNotFoundError
    |   +-- PaymentNotRequeueableError
    |   +-- PaymentLockedError
    |
    +-- BankNotFoundError
    +-- ImmutabilityViolationError
    +-- ConfigurationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                         | When Raised
-------------|------------------------------|--------------------------------------
IBAN         | IBAN_STRUCTURAL_ERROR        | Wrong country, length or characters
             | IBAN_CHECKSUM_ERROR          | MOD-97 remainder is not 1
-------------|------------------------------|--------------------------------------
Eligibility  | DUPLICATE_CANDIDATE          | Same employee/amount/day already batched
             | PAYMENT_INELIGIBLE           | Any other failed eligibility check
-------------|------------------------------|--------------------------------------
Transition   | ILLEGAL_TRANSITION           | Payment status change not in table
             | ILLEGAL_BATCH_TRANSITION     | Batch status change not in table
-------------|------------------------------|--------------------------------------
Batch        | EMPTY_BATCH                  | No eligible candidate survived filtering
             | PARTIAL_ASSIGNMENT           | Claim/transition failed mid-creation
             | BATCH_NOT_FOUND              | Batch id does not exist
             | UNSUPPORTED_FILE_FORMAT      | No formatter for the bank's format
-------------|------------------------------|--------------------------------------
Payment      | PAYMENT_NOT_FOUND            | Payment id does not exist
             | PAYMENT_NOT_REQUEUEABLE      | Only FAILED payments can be re-queued
             | PAYMENT_LOCKED               | Bank details changed after batching
-------------|------------------------------|--------------------------------------
Reference    | BANK_NOT_FOUND               | Bank code not in the registry
             | IMMUTABILITY_VIOLATION       | Timeline / batch item modified
             | CONFIGURATION_ERROR          | Invalid configuration set

===============================================================================
ORCHESTRATION FAULTS
===============================================================================

``IllegalTransitionError``, ``IllegalBatchTransitionError`` and
``PartialAssignmentError`` indicate a caller bug or a lost race.  They
carry a ``trace_id`` so the single user-visible message can be matched
to the structured log line an operator follows up on.
"""

from __future__ import annotations

from uuid import uuid4


def _resolve_trace_id(trace_id: str | None) -> str:
    if trace_id:
        return trace_id
    from settlement_kernel.logging_config import LogContext

    return LogContext.get("trace_id") or uuid4().hex


class SettlementError(Exception):
    """
    Base exception for all settlement service errors.

    All subclasses must have a ``code`` class attribute for
    machine-readable error identification.
    """

    code: str = "SETTLEMENT_ERROR"


# IBAN exceptions


class IBANError(SettlementError):
    """Base exception for IBAN validation faults."""

    code: str = "IBAN_ERROR"

    def __init__(self, iban: str, errors: tuple[str, ...], message: str):
        self.iban = iban
        self.errors = tuple(errors)
        super().__init__(message)


class StructuralError(IBANError):
    """IBAN has the wrong shape. Always recoverable by correcting input."""

    code: str = "IBAN_STRUCTURAL_ERROR"

    def __init__(self, iban: str, errors: tuple[str, ...]):
        super().__init__(
            iban, errors, f"Malformed IBAN {iban!r}: {', '.join(errors)}"
        )


class ChecksumError(IBANError):
    """IBAN failed the ISO 7064 MOD-97-10 check."""

    code: str = "IBAN_CHECKSUM_ERROR"

    def __init__(self, iban: str, errors: tuple[str, ...] = ("IBAN_CHECKSUM_MISMATCH",)):
        super().__init__(iban, errors, f"IBAN checksum failed for {iban!r}")


# Eligibility exceptions


class EligibilityError(SettlementError):
    """Base exception for eligibility faults."""

    code: str = "ELIGIBILITY_ERROR"


class DuplicateCandidateError(EligibilityError):
    """Same employee, amount and creation day already sit in an open batch."""

    code: str = "DUPLICATE_CANDIDATE"

    def __init__(self, payment_id: str, employee_id: str):
        self.payment_id = payment_id
        self.employee_id = employee_id
        super().__init__(
            f"Payment {payment_id} duplicates an open batched payment "
            f"for employee {employee_id}"
        )


class IneligiblePaymentError(EligibilityError):
    """Payment failed one or more eligibility checks."""

    code: str = "PAYMENT_INELIGIBLE"

    def __init__(self, payment_id: str, errors: tuple[str, ...]):
        self.payment_id = payment_id
        self.errors = tuple(errors)
        super().__init__(
            f"Payment {payment_id} is not eligible: {', '.join(errors)}"
        )


# Transition exceptions


class TransitionError(SettlementError):
    """Base exception for state machine contract violations."""

    code: str = "TRANSITION_ERROR"


class IllegalTransitionError(TransitionError):
    """Payment status change is not in the transition table."""

    code: str = "ILLEGAL_TRANSITION"

    def __init__(
        self,
        payment_id: str,
        from_status: str,
        to_status: str,
        trace_id: str | None = None,
    ):
        self.payment_id = payment_id
        self.from_status = from_status
        self.to_status = to_status
        self.trace_id = _resolve_trace_id(trace_id)
        super().__init__(
            f"Illegal transition for payment {payment_id}: "
            f"{from_status} -> {to_status} (trace {self.trace_id})"
        )


class IllegalBatchTransitionError(TransitionError):
    """Batch status change is not in the batch transition table."""

    code: str = "ILLEGAL_BATCH_TRANSITION"

    def __init__(
        self,
        batch_id: str,
        from_status: str,
        to_status: str,
        trace_id: str | None = None,
    ):
        self.batch_id = batch_id
        self.from_status = from_status
        self.to_status = to_status
        self.trace_id = _resolve_trace_id(trace_id)
        super().__init__(
            f"Illegal transition for batch {batch_id}: "
            f"{from_status} -> {to_status} (trace {self.trace_id})"
        )


# Batch exceptions


class BatchError(SettlementError):
    """Base exception for batch orchestration errors."""

    code: str = "BATCH_ERROR"


class EmptyBatchError(BatchError):
    """No candidate payment is eligible for the requested bank."""

    code: str = "EMPTY_BATCH"

    def __init__(self, bank_code: str, candidate_count: int):
        self.bank_code = bank_code
        self.candidate_count = candidate_count
        super().__init__(
            f"No eligible payments for bank {bank_code} "
            f"({candidate_count} candidate(s) submitted)"
        )


class PartialAssignmentError(BatchError):
    """Batch creation aborted part-way; every assignment was rolled back."""

    code: str = "PARTIAL_ASSIGNMENT"

    def __init__(
        self,
        bank_code: str,
        payment_id: str,
        reason: str,
        trace_id: str | None = None,
    ):
        self.bank_code = bank_code
        self.payment_id = payment_id
        self.reason = reason
        self.trace_id = _resolve_trace_id(trace_id)
        super().__init__(
            f"Batch creation for bank {bank_code} aborted at payment "
            f"{payment_id}: {reason} (trace {self.trace_id})"
        )


class BatchNotFoundError(BatchError):
    """Batch with given ID was not found."""

    code: str = "BATCH_NOT_FOUND"

    def __init__(self, batch_id: str):
        self.batch_id = batch_id
        super().__init__(f"Payment batch not found: {batch_id}")


class UnsupportedFileFormatError(BatchError):
    """No bank file formatter is registered for the format."""

    code: str = "UNSUPPORTED_FILE_FORMAT"

    def __init__(self, file_format: str, available: list[str]):
        self.file_format = file_format
        self.available = available
        super().__init__(
            f"No bank file formatter for {file_format}. "
            f"Available: {', '.join(sorted(available))}"
        )


# Payment exceptions


class PaymentError(SettlementError):
    """Base exception for payment record errors."""

    code: str = "PAYMENT_ERROR"


class PaymentNotFoundError(PaymentError):
    """Payment with given ID was not found."""

    code: str = "PAYMENT_NOT_FOUND"

    def __init__(self, payment_id: str):
        self.payment_id = payment_id
        super().__init__(f"Payment not found: {payment_id}")


class PaymentNotRequeueableError(PaymentError):
    """Only FAILED payments may be re-queued as fresh candidates."""

    code: str = "PAYMENT_NOT_REQUEUEABLE"

    def __init__(self, payment_id: str, status: str):
        self.payment_id = payment_id
        self.status = status
        super().__init__(
            f"Payment {payment_id} cannot be re-queued from status {status}"
        )


class PaymentLockedError(PaymentError):
    """Bank details can only change while the payment is READY_FOR_PAYMENT."""

    code: str = "PAYMENT_LOCKED"

    def __init__(self, payment_id: str, status: str):
        self.payment_id = payment_id
        self.status = status
        super().__init__(
            f"Payment {payment_id} is locked for editing in status {status}"
        )


# Reference data / persistence exceptions


class BankNotFoundError(SettlementError):
    """Bank code is not present in the registry."""

    code: str = "BANK_NOT_FOUND"

    def __init__(self, bank_code: str):
        self.bank_code = bank_code
        super().__init__(f"Bank not found: {bank_code}")


class ImmutabilityViolationError(SettlementError):
    """Attempted to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


class ConfigurationError(SettlementError):
    """Configuration set is structurally invalid."""

    code: str = "CONFIGURATION_ERROR"

    def __init__(self, message: str, source: str | None = None):
        self.source = source
        super().__init__(message if source is None else f"{source}: {message}")
