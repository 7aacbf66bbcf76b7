"""
Bank reference types -- closed catalog of supported Saudi banks.

Supported banks are a closed ``BankCode`` enum; the concrete routing
data (IBAN prefix, bulk limits, cutoff, file format) is configuration,
parsed into immutable ``BankDefinition`` instances at service start.
Nothing dispatches on free-form bank strings.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import time
from enum import Enum


class BankCode(str, Enum):
    """Banks the settlement service can build files for."""

    ALRAJHI = "ALRAJHI"
    NCB = "NCB"
    SABB = "SABB"
    RIYAD = "RIYAD"
    ANB = "ANB"

    @classmethod
    def parse(cls, value: "BankCode | str") -> "BankCode":
        """Accept an enum member or a case-insensitive code string."""
        if isinstance(value, BankCode):
            return value
        return cls(str(value).strip().upper())


class FileFormat(str, Enum):
    """Bank-consumable file formats."""

    CSV = "CSV"
    EXCEL = "EXCEL"
    XML = "XML"


@dataclass(frozen=True)
class BankDefinition:
    """Immutable routing and dispatch rules for one bank.

    ``iban_prefix`` is the two-digit bank identifier at IBAN positions
    5-6.  ``account_number_lengths`` lists the significant-digit lengths
    the bank issues.  ``cutoff_time`` is bank local time.
    """

    code: BankCode
    name: str
    short_name: str
    iban_prefix: str
    account_number_lengths: tuple[int, ...]
    supports_bulk_payments: bool
    max_bulk_payments: int
    cutoff_time: time
    file_format: FileFormat
    swift_code: str | None = None
    required_fields: tuple[str, ...] = ()
    file_name_template: str = "{bank}_Payments_{date}_{batch_number}"
    processing_time: str | None = None

    def __post_init__(self) -> None:
        if len(self.iban_prefix) != 2 or not self.iban_prefix.isdigit():
            raise ValueError(
                f"Bank {self.code.value}: iban_prefix must be two digits, "
                f"got {self.iban_prefix!r}"
            )
        if self.max_bulk_payments < 1:
            raise ValueError(
                f"Bank {self.code.value}: max_bulk_payments must be >= 1"
            )

    @property
    def batch_capacity(self) -> int:
        """Largest batch this bank accepts (1 when bulk files are unsupported)."""
        return self.max_bulk_payments if self.supports_bulk_payments else 1

    @property
    def file_extension(self) -> str:
        return {
            FileFormat.CSV: ".csv",
            FileFormat.EXCEL: ".xlsx",
            FileFormat.XML: ".xml",
        }[self.file_format]
