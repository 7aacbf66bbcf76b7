"""
Bank file formatters -- render a batch into the bytes a bank accepts.

Contract:
    ``BankFileFormatter.render(bank, batch, payments)`` returns a
    ``BankFile``.  One formatter per ``FileFormat``; ``get_formatter()``
    selects it.  Every format carries the same six columns in batch
    order: bank name, IBAN, amount (2 dp), description, beneficiary name,
    national id.

Architecture: settlement_batch/services.  Pure rendering: no DB access,
    no file system writes.  The caller persists or ships the bytes.
"""

from __future__ import annotations

import csv
import io
import xml.etree.ElementTree as ET
from collections.abc import Sequence
from decimal import Decimal
from typing import Protocol, runtime_checkable

from settlement_batch.domain.types import BankFile
from settlement_kernel.domain.bank import BankDefinition, FileFormat
from settlement_kernel.domain.types import Payment, PaymentBatch
from settlement_kernel.domain.values import quantize_amount
from settlement_kernel.exceptions import UnsupportedFileFormatError

COLUMNS: tuple[str, ...] = (
    "Bank Name",
    "IBAN",
    "Amount",
    "Description",
    "Beneficiary Name",
    "National ID",
)


@runtime_checkable
class BankFileFormatter(Protocol):
    """Protocol for rendering a batch into a bank-consumable file."""

    file_format: FileFormat
    mime_type: str

    def render(
        self,
        bank: BankDefinition,
        batch: PaymentBatch,
        payments: Sequence[Payment],
    ) -> BankFile:
        """Render ``payments`` (in batch order) into file bytes."""
        ...


def format_amount(amount: Decimal) -> str:
    return f"{quantize_amount(amount):.2f}"


# Leading characters a spreadsheet reads as the start of a formula.
_FORMULA_TRIGGERS = ("=", "+", "-", "@", "\t", "\r")


def spreadsheet_text(value: str) -> str:
    """Prefix a text cell with an apostrophe when it would open as a formula."""
    if value.startswith(_FORMULA_TRIGGERS):
        return "'" + value
    return value


def build_rows(
    bank: BankDefinition,
    payments: Sequence[Payment],
    *,
    for_spreadsheet: bool = False,
) -> list[tuple[str, ...]]:
    """One row of column values per payment; missing optional fields are blank.

    With ``for_spreadsheet`` the free-text columns (description and
    beneficiary name) are passed through ``spreadsheet_text``.
    """
    text = spreadsheet_text if for_spreadsheet else str
    return [
        (
            bank.name,
            p.iban or "",
            format_amount(p.amount),
            text(p.description or ""),
            text(p.employee_name or ""),
            p.national_id or "",
        )
        for p in payments
    ]


def _total(payments: Sequence[Payment]) -> Decimal:
    return quantize_amount(sum((p.amount for p in payments), Decimal("0")))


class CsvBankFileFormatter:
    """Comma separated, header row first.  Encoded utf-8 with BOM so
    spreadsheet tools open Arabic names correctly."""

    file_format = FileFormat.CSV
    mime_type = "text/csv"

    def render(self, bank, batch, payments) -> BankFile:
        buffer = io.StringIO(newline="")
        writer = csv.writer(buffer, quoting=csv.QUOTE_MINIMAL)
        writer.writerow(COLUMNS)
        writer.writerows(build_rows(bank, payments, for_spreadsheet=True))
        return BankFile(
            file_name=batch.file_reference,
            content=buffer.getvalue().encode("utf-8-sig"),
            mime_type=self.mime_type,
            file_format=self.file_format,
            record_count=len(payments),
            total_amount=_total(payments),
        )


class ExcelBankFileFormatter:
    """Single ``Payments`` worksheet; amounts are numeric cells."""

    file_format = FileFormat.EXCEL
    mime_type = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

    def render(self, bank, batch, payments) -> BankFile:
        try:
            from openpyxl import Workbook
            from openpyxl.styles import Font
        except ImportError as e:
            raise ImportError(
                "EXCEL bank files require openpyxl. Install with: pip install openpyxl"
            ) from e

        wb = Workbook()
        sheet = wb.active
        sheet.title = "Payments"
        sheet.append(list(COLUMNS))
        for cell in sheet[1]:
            cell.font = Font(bold=True)

        amount_col = COLUMNS.index("Amount")
        for row in build_rows(bank, payments, for_spreadsheet=True):
            values: list[object] = list(row)
            values[amount_col] = Decimal(row[amount_col])
            sheet.append(values)
        for (cell,) in sheet.iter_rows(min_row=2, min_col=amount_col + 1, max_col=amount_col + 1):
            cell.number_format = "#,##0.00"

        # Auto-width, capped at 50 characters
        for column in sheet.columns:
            width = max(len(str(c.value)) if c.value is not None else 0 for c in column)
            sheet.column_dimensions[column[0].column_letter].width = min(max(width, 10) + 2, 50)

        buffer = io.BytesIO()
        wb.save(buffer)
        return BankFile(
            file_name=batch.file_reference,
            content=buffer.getvalue(),
            mime_type=self.mime_type,
            file_format=self.file_format,
            record_count=len(payments),
            total_amount=_total(payments),
        )


class XmlBankFileFormatter:
    """``<PaymentFile>`` header attributes plus one ``<Payment>`` per row."""

    file_format = FileFormat.XML
    mime_type = "application/xml"

    _TAGS = ("BankName", "IBAN", "Amount", "Description", "BeneficiaryName", "NationalId")

    def render(self, bank, batch, payments) -> BankFile:
        total = _total(payments)
        root = ET.Element(
            "PaymentFile",
            {
                "bank": bank.code.value,
                "batchNumber": batch.batch_number,
                "currency": batch.currency,
                "count": str(len(payments)),
                "total": format_amount(total),
            },
        )
        if bank.swift_code:
            root.set("swift", bank.swift_code)
        for row in build_rows(bank, payments):
            node = ET.SubElement(root, "Payment")
            for tag, value in zip(self._TAGS, row):
                ET.SubElement(node, tag).text = value
        return BankFile(
            file_name=batch.file_reference,
            content=ET.tostring(root, encoding="utf-8", xml_declaration=True),
            mime_type=self.mime_type,
            file_format=self.file_format,
            record_count=len(payments),
            total_amount=total,
        )


_FORMATTERS: dict[FileFormat, BankFileFormatter] = {
    FileFormat.CSV: CsvBankFileFormatter(),
    FileFormat.EXCEL: ExcelBankFileFormatter(),
    FileFormat.XML: XmlBankFileFormatter(),
}


def get_formatter(file_format: FileFormat | str) -> BankFileFormatter:
    """Formatter registered for ``file_format``.

    Raises:
        UnsupportedFileFormatError: nothing is registered for the format.
    """
    try:
        return _FORMATTERS[FileFormat(file_format)]
    except (KeyError, ValueError):
        raise UnsupportedFileFormatError(
            str(getattr(file_format, "value", file_format)),
            [f.value for f in _FORMATTERS],
        ) from None
