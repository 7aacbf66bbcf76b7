"""
Settlement configuration schema.

Defines the human-authored, reviewable configuration set.  YAML fragments
are parsed into these types by the loader; runtime code receives a frozen
``SettlementConfig`` from ``settlement_config.get_active_config()``.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from settlement_kernel.domain.bank import BankCode, BankDefinition

# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SettlementSettings:
    """Service-wide settlement limits and calendar."""

    currency: str
    minimum_amount: Decimal
    maximum_amount: Decimal
    high_value_threshold: Decimal
    file_expiry_hours: int
    bank_utc_offset_hours: int
    working_days: tuple[int, ...]  # datetime.weekday() numbers, Monday=0


# ---------------------------------------------------------------------------
# Configuration set
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SettlementConfig:
    """Complete, validated configuration set."""

    config_id: str
    version: int
    settings: SettlementSettings
    banks: tuple[BankDefinition, ...]
    description: str = ""
    checksum: str = ""

    def bank(self, code: BankCode | str) -> BankDefinition | None:
        wanted = BankCode.parse(code)
        for bank in self.banks:
            if bank.code == wanted:
                return bank
        return None
