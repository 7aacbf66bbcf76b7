"""
settlement_batch.services -- batch dispatch, bank files and reconciliation.
"""

from settlement_batch.services.bank_file import (
    BankFileFormatter,
    CsvBankFileFormatter,
    ExcelBankFileFormatter,
    XmlBankFileFormatter,
    get_formatter,
)
from settlement_batch.services.dispatch import BatchDispatchService
from settlement_batch.services.reconciliation import ReconciliationEngine

__all__ = [
    "BankFileFormatter",
    "BatchDispatchService",
    "CsvBankFileFormatter",
    "ExcelBankFileFormatter",
    "ReconciliationEngine",
    "XmlBankFileFormatter",
    "get_formatter",
]
