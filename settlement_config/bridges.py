"""
Config -> Engine Bridges.

Functions that convert a ``SettlementConfig`` into engine inputs.  These
live in settlement_config (the producer) because the kernel and the
engines must NEVER import settlement_config.

Usage:
    from settlement_config.bridges import build_bank_registry

    config = get_active_config()
    registry = build_bank_registry(config)
"""

from __future__ import annotations

from settlement_config.schema import SettlementConfig
from settlement_engines.bank_registry import BankRegistry
from settlement_engines.calendar import DispatchCalendar
from settlement_engines.eligibility import EligibilityLimits, EligibilityValidator
from settlement_engines.iban import IBANValidator


def build_bank_registry(config: SettlementConfig) -> BankRegistry:
    return BankRegistry(config.banks)


def build_iban_validator(config: SettlementConfig) -> IBANValidator:
    return IBANValidator(build_bank_registry(config))


def build_eligibility_limits(config: SettlementConfig) -> EligibilityLimits:
    settings = config.settings
    return EligibilityLimits(
        minimum_amount=settings.minimum_amount,
        maximum_amount=settings.maximum_amount,
        high_value_threshold=settings.high_value_threshold,
    )


def build_eligibility_validator(config: SettlementConfig) -> EligibilityValidator:
    return EligibilityValidator(build_eligibility_limits(config))


def build_dispatch_calendar(config: SettlementConfig) -> DispatchCalendar:
    return DispatchCalendar(
        utc_offset_hours=config.settings.bank_utc_offset_hours,
        working_days=config.settings.working_days,
    )
