"""
Module: settlement_engines
Responsibility:
    Package entrypoint that re-exports the pure settlement engines: bank
    catalog, IBAN validation, eligibility rules and the dispatch calendar.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import settlement_kernel/domain, settlement_kernel.exceptions
    and settlement_kernel.logging_config.
    MUST NOT import settlement_config or settlement_batch.

Invariants enforced:
    - Purity: engines NEVER call ``datetime.now()``; instants are passed in.
    - Decimal-only arithmetic for amounts.
    - Determinism: identical inputs always produce identical outputs.
"""

from settlement_engines.bank_registry import BankRegistry
from settlement_engines.calendar import (
    SAUDI_WORKING_DAYS,
    DispatchCalendar,
    DispatchWindow,
)
from settlement_engines.eligibility import (
    EligibilityContext,
    EligibilityLimits,
    EligibilityValidator,
    is_valid_national_id,
)
from settlement_engines.iban import (
    IBANValidator,
    check_digits_for,
    compute_mod97,
    normalize_iban,
)

__all__ = [
    "BankRegistry",
    "DispatchCalendar",
    "DispatchWindow",
    "EligibilityContext",
    "EligibilityLimits",
    "EligibilityValidator",
    "IBANValidator",
    "SAUDI_WORKING_DAYS",
    "check_digits_for",
    "compute_mod97",
    "is_valid_national_id",
    "normalize_iban",
]
