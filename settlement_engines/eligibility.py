"""
Module: settlement_engines.eligibility
Responsibility:
    Decide whether a payment may be placed in a settlement batch for a
    given bank.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  The duplicate check
    reads an ``EligibilityContext`` that the service layer populates from
    the database before calling in.

Invariants enforced:
    - IBAN structural/checksum failures short-circuit: no further checks
      run and the IBAN error codes are returned as-is.
    - Every other check runs, so one result lists every problem.
    - The validator never mutates the payment; ineligible payments stay
      READY_FOR_PAYMENT.

Failure modes:
    - ``require_eligible()`` raises DuplicateCandidateError or
      IneligiblePaymentError.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from settlement_engines.tracer import traced_engine
from settlement_kernel.domain.bank import BankDefinition
from settlement_kernel.domain.types import Payment, PaymentStatus, ValidationResult
from settlement_kernel.exceptions import DuplicateCandidateError, IneligiblePaymentError

PAYMENT_NOT_READY = "PAYMENT_NOT_READY"
PAYMENT_ALREADY_BATCHED = "PAYMENT_ALREADY_BATCHED"
AMOUNT_NOT_POSITIVE = "AMOUNT_NOT_POSITIVE"
AMOUNT_BELOW_MINIMUM = "AMOUNT_BELOW_MINIMUM"
AMOUNT_ABOVE_MAXIMUM = "AMOUNT_ABOVE_MAXIMUM"
HIGH_VALUE_PAYMENT = "HIGH_VALUE_PAYMENT"
BANK_MISMATCH = "BANK_MISMATCH"
BANK_UNRESOLVED = "BANK_UNRESOLVED"
MISSING_FIELD = "MISSING_FIELD"
NATIONAL_ID_INVALID = "NATIONAL_ID_INVALID"
BULK_NOT_SUPPORTED = "BULK_NOT_SUPPORTED"
DUPLICATE_CANDIDATE = "DUPLICATE_CANDIDATE"

DuplicateKey = tuple[str, Decimal, date]


def is_valid_national_id(value: str) -> bool:
    """
    Saudi national ID / Iqama check.

    Ten digits, first digit 1 (citizen) or 2 (resident), Luhn checksum
    with every even-indexed digit (from the left) doubled.
    """
    if len(value) != 10 or not all(ch in "0123456789" for ch in value):
        return False
    if value[0] not in "12":
        return False
    total = 0
    for index, ch in enumerate(value):
        digit = int(ch)
        if index % 2 == 0:
            doubled = digit * 2
            total += doubled // 10 + doubled % 10
        else:
            total += digit
    return total % 10 == 0


@dataclass(frozen=True)
class EligibilityLimits:
    """Amount policy for eligible payments (SAR)."""

    minimum_amount: Decimal = Decimal("0.01")
    maximum_amount: Decimal | None = None
    high_value_threshold: Decimal | None = None


@dataclass(frozen=True)
class EligibilityContext:
    """
    Facts the validator cannot see on the payment itself.

    ``open_duplicate_keys`` holds the (employee, amount, creation day) key
    of every payment currently in a non-terminal batch.
    """

    open_duplicate_keys: frozenset[DuplicateKey] = field(default_factory=frozenset)

    def is_duplicate(self, payment: Payment) -> bool:
        return payment.duplicate_key in self.open_duplicate_keys

    def with_keys(self, keys: Iterable[DuplicateKey]) -> EligibilityContext:
        return EligibilityContext(open_duplicate_keys=self.open_duplicate_keys | frozenset(keys))


class EligibilityValidator:
    """
    Rule set for batch eligibility.

    Contract:
        ``evaluate()`` returns a ``ValidationResult`` whose ``errors`` are
        ordered by check (IBAN, status, amount, bank, fields, bulk,
        duplicate) and whose ``bank_code`` echoes the IBAN resolution.
    """

    def __init__(self, limits: EligibilityLimits | None = None):
        self._limits = limits or EligibilityLimits()

    @property
    def limits(self) -> EligibilityLimits:
        return self._limits

    @traced_engine("eligibility", "1.0")
    def evaluate(
        self,
        payment: Payment,
        iban_result: ValidationResult,
        bank: BankDefinition,
        planned_batch_size: int = 1,
        context: EligibilityContext | None = None,
    ) -> ValidationResult:
        if not iban_result.is_valid:
            return ValidationResult.failure(
                *iban_result.errors,
                normalized_iban=iban_result.normalized_iban,
            )

        context = context or EligibilityContext()
        limits = self._limits
        errors: list[str] = []
        warnings: list[str] = list(iban_result.warnings)

        if payment.status != PaymentStatus.READY_FOR_PAYMENT:
            errors.append(PAYMENT_NOT_READY)
        if payment.batch_id is not None:
            errors.append(PAYMENT_ALREADY_BATCHED)

        if payment.amount <= 0:
            errors.append(AMOUNT_NOT_POSITIVE)
        else:
            if payment.amount < limits.minimum_amount:
                errors.append(AMOUNT_BELOW_MINIMUM)
            if limits.maximum_amount is not None and payment.amount > limits.maximum_amount:
                errors.append(AMOUNT_ABOVE_MAXIMUM)
            elif (
                limits.high_value_threshold is not None
                and payment.amount > limits.high_value_threshold
            ):
                warnings.append(HIGH_VALUE_PAYMENT)

        if iban_result.bank_code is None:
            errors.append(BANK_UNRESOLVED)
        elif iban_result.bank_code != bank.code.value:
            errors.append(BANK_MISMATCH)

        for name in bank.required_fields:
            if not getattr(payment, name, None):
                errors.append(f"{MISSING_FIELD}:{name}")
        if payment.national_id and not is_valid_national_id(payment.national_id):
            errors.append(NATIONAL_ID_INVALID)

        if planned_batch_size > 1 and not bank.supports_bulk_payments:
            errors.append(BULK_NOT_SUPPORTED)

        if context.is_duplicate(payment):
            errors.append(DUPLICATE_CANDIDATE)

        common = dict(
            warnings=tuple(warnings),
            bank_code=iban_result.bank_code,
            account_number=iban_result.account_number,
            check_digits=iban_result.check_digits,
            normalized_iban=iban_result.normalized_iban,
        )
        if errors:
            return ValidationResult.failure(*errors, **common)
        return ValidationResult.success(**common)

    def require_eligible(
        self,
        payment: Payment,
        iban_result: ValidationResult,
        bank: BankDefinition,
        planned_batch_size: int = 1,
        context: EligibilityContext | None = None,
    ) -> ValidationResult:
        """
        Evaluate and raise on failure.

        Raises:
            DuplicateCandidateError: the only reason is a duplicate.
            IneligiblePaymentError: any other failed check.
        """
        result = self.evaluate(payment, iban_result, bank, planned_batch_size, context)
        if result.is_valid:
            return result
        if result.errors == (DUPLICATE_CANDIDATE,):
            raise DuplicateCandidateError(str(payment.payment_id), payment.employee_id)
        raise IneligiblePaymentError(str(payment.payment_id), result.errors)
