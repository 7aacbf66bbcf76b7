"""
Module: settlement_engines.iban
Responsibility:
    Validate Saudi IBANs (structure, ISO 7064 MOD-97-10 checksum) and
    resolve the issuing bank through the BankRegistry.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Malformed input never raises from ``validate()``; problems are
      reported as error codes in the ``ValidationResult``.
    - The checksum is computed with a running remainder over fixed-size
      digit chunks, never by converting the whole IBAN to one integer.
    - ``is_valid`` implies ``compute_mod97(normalized_iban) == 1``.

Failure modes:
    - ``require_valid()`` raises StructuralError / ChecksumError.
    - ``compute_mod97()`` raises ValueError for characters outside [0-9A-Z].

Usage:
    validator = IBANValidator(registry)
    result = validator.validate("SA03 8000 0000 6080 1016 7519")
    result.is_valid       # True
    result.bank_code      # "ALRAJHI"
"""

from __future__ import annotations

from settlement_engines.bank_registry import BankRegistry
from settlement_engines.tracer import traced_engine
from settlement_kernel.domain.types import ValidationResult
from settlement_kernel.exceptions import ChecksumError, StructuralError
from settlement_kernel.logging_config import get_logger

logger = get_logger("engines.iban")

COUNTRY_CODE = "SA"
IBAN_LENGTH = 24

# Error codes (structural class)
IBAN_EMPTY = "IBAN_EMPTY"
IBAN_INVALID_COUNTRY = "IBAN_INVALID_COUNTRY"
IBAN_INVALID_LENGTH = "IBAN_INVALID_LENGTH"
IBAN_INVALID_CHARACTERS = "IBAN_INVALID_CHARACTERS"
# Error codes (checksum class)
IBAN_CHECKSUM_MISMATCH = "IBAN_CHECKSUM_MISMATCH"
# Warning codes
BANK_PREFIX_UNRECOGNIZED = "BANK_PREFIX_UNRECOGNIZED"
ACCOUNT_NUMBER_LENGTH_UNUSUAL = "ACCOUNT_NUMBER_LENGTH_UNUSUAL"

STRUCTURAL_ERRORS = frozenset({
    IBAN_EMPTY,
    IBAN_INVALID_COUNTRY,
    IBAN_INVALID_LENGTH,
    IBAN_INVALID_CHARACTERS,
})

_DIGITS = frozenset("0123456789")
_ALPHANUMERIC = _DIGITS | frozenset("ABCDEFGHIJKLMNOPQRSTUVWXYZ")
_CHUNK = 9


def normalize_iban(raw: str | None) -> str:
    """Strip every whitespace character and uppercase."""
    if not raw:
        return ""
    return "".join(raw.split()).upper()


def _to_digits(text: str) -> str:
    digits = []
    for ch in text:
        if ch not in _ALPHANUMERIC:
            raise ValueError(f"Invalid IBAN character {ch!r}")
        digits.append(ch if ch in _DIGITS else str(ord(ch) - ord("A") + 10))
    return "".join(digits)


def _mod97(digits: str) -> int:
    remainder = 0
    for start in range(0, len(digits), _CHUNK):
        remainder = int(f"{remainder}{digits[start:start + _CHUNK]}") % 97
    return remainder


def compute_mod97(iban: str) -> int:
    """
    ISO 7064 MOD-97-10 remainder of an IBAN.

    The first four characters are moved to the end, letters become two
    digits (A=10 .. Z=35) and the remainder is folded chunk by chunk.
    A valid IBAN yields exactly 1.
    """
    iban = normalize_iban(iban)
    return _mod97(_to_digits(iban[4:] + iban[:4]))


def check_digits_for(bban: str, country_code: str = COUNTRY_CODE) -> str:
    """Two check digits that make ``country_code + digits + bban`` valid."""
    bban = normalize_iban(bban)
    country_code = country_code.upper()
    remainder = _mod97(_to_digits(bban + country_code + "00"))
    return f"{98 - remainder:02d}"


def _edit_distance(a: str, b: str) -> int:
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            current.append(min(
                previous[j] + 1,
                current[j - 1] + 1,
                previous[j - 1] + (ca != cb),
            ))
        previous = current
    return previous[-1]


class IBANValidator:
    """
    Saudi IBAN validator bound to a bank catalog.

    Contract:
        ``validate()`` accepts any string (or None) and returns a
        ``ValidationResult``.  On success ``normalized_iban`` is the
        canonical unspaced uppercase form, ``check_digits`` positions 3-4,
        ``account_number`` the trailing 18 digits, and ``bank_code`` the
        resolved bank (None when the prefix is unknown).
    """

    def __init__(self, registry: BankRegistry):
        self._registry = registry

    @traced_engine("iban", "1.0", fingerprint_fields=("iban",))
    def validate(self, iban: str | None) -> ValidationResult:
        normalized = normalize_iban(iban)
        if not normalized:
            return ValidationResult.failure(IBAN_EMPTY)

        errors: list[str] = []
        if not normalized.startswith(COUNTRY_CODE):
            errors.append(IBAN_INVALID_COUNTRY)
        if len(normalized) != IBAN_LENGTH:
            errors.append(IBAN_INVALID_LENGTH)
        if not all(ch in _DIGITS for ch in normalized[2:]):
            errors.append(IBAN_INVALID_CHARACTERS)
        if errors:
            return ValidationResult.failure(*errors, normalized_iban=normalized)

        check_digits = normalized[2:4]
        if compute_mod97(normalized) != 1:
            return ValidationResult.failure(
                IBAN_CHECKSUM_MISMATCH,
                normalized_iban=normalized,
                check_digits=check_digits,
            )

        prefix = normalized[4:6]
        account_number = normalized[6:]
        warnings: list[str] = []
        suggestions: list[str] = []

        bank = self._registry.by_iban_prefix(prefix)
        if bank is None:
            warnings.append(BANK_PREFIX_UNRECOGNIZED)
            for known in self._registry.known_prefixes():
                if _edit_distance(prefix, known) == 1:
                    candidate = self._registry.by_iban_prefix(known)
                    suggestions.append(
                        f"Did you mean bank prefix {known} ({candidate.short_name})?"
                    )
        else:
            significant = account_number.lstrip("0")
            if bank.account_number_lengths and len(significant) not in bank.account_number_lengths:
                warnings.append(ACCOUNT_NUMBER_LENGTH_UNUSUAL)

        return ValidationResult.success(
            warnings=tuple(warnings),
            suggestions=tuple(suggestions),
            bank_code=bank.code.value if bank else None,
            account_number=account_number,
            check_digits=check_digits,
            normalized_iban=normalized,
        )

    def require_valid(self, iban: str | None) -> ValidationResult:
        """
        Validate and raise on failure.

        Raises:
            StructuralError: wrong country, length, characters or empty.
            ChecksumError: the MOD-97 remainder is not 1.
        """
        result = self.validate(iban)
        if result.is_valid:
            return result
        shown = result.normalized_iban or (iban or "")
        if any(code in STRUCTURAL_ERRORS for code in result.errors):
            logger.info(
                "iban_rejected",
                extra={"iban_errors": list(result.errors), "error_class": "structural"},
            )
            raise StructuralError(shown, result.errors)
        logger.info(
            "iban_rejected",
            extra={"iban_errors": list(result.errors), "error_class": "checksum"},
        )
        raise ChecksumError(shown, result.errors)
