"""
Configuration Loader (``settlement_config.loader``).

Responsibility
--------------
Loads a configuration set directory (``root.yaml`` plus the fragments it
lists) and parses it into typed ``settlement_config.schema`` dataclasses.
The single public entry point for runtime config is
``settlement_config.get_active_config()``.

Invariants enforced
-------------------
* Every parsed object is a frozen dataclass.
* Bank codes must be members of the closed ``BankCode`` enum.
* IBAN prefixes and bank codes are unique across the catalog.
* ``minimum_amount <= high_value_threshold <= maximum_amount``.
* ``compute_checksum`` produces a deterministic SHA-256 hash for
  configuration identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Structurally invalid content  -> ``ConfigurationError``.
"""

from __future__ import annotations

import hashlib
import json
from datetime import time
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from settlement_config.schema import SettlementConfig, SettlementSettings
from settlement_kernel.domain.bank import BankCode, BankDefinition, FileFormat
from settlement_kernel.exceptions import ConfigurationError

_WEEKDAYS = {
    "MONDAY": 0,
    "TUESDAY": 1,
    "WEDNESDAY": 2,
    "THURSDAY": 3,
    "FRIDAY": 4,
    "SATURDAY": 5,
    "SUNDAY": 6,
}


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_decimal(value: Any, field_name: str) -> Decimal:
    if isinstance(value, float):
        # YAML floats are binary; require quoted amounts.
        raise ConfigurationError(f"{field_name} must be a quoted decimal, got {value!r}")
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise ConfigurationError(f"{field_name} is not a decimal: {value!r}") from e


def parse_time(value: Any, field_name: str) -> time:
    if isinstance(value, time):
        return value
    if isinstance(value, int):
        # YAML 1.1 reads unquoted 14:00 as sexagesimal minutes.
        return time(value // 60, value % 60)
    try:
        return time.fromisoformat(str(value))
    except ValueError as e:
        raise ConfigurationError(f"{field_name} is not a time: {value!r}") from e


def parse_working_days(values: list[Any]) -> tuple[int, ...]:
    days = []
    for value in values:
        name = str(value).strip().upper()
        if name not in _WEEKDAYS:
            raise ConfigurationError(f"Unknown working day {value!r}")
        days.append(_WEEKDAYS[name])
    if not days:
        raise ConfigurationError("working_days must not be empty")
    return tuple(sorted(set(days)))


def parse_settings(data: dict[str, Any]) -> SettlementSettings:
    """Parse the ``settings`` block."""
    settings = SettlementSettings(
        currency=str(data.get("currency", "SAR")).upper(),
        minimum_amount=parse_decimal(data["minimum_amount"], "minimum_amount"),
        maximum_amount=parse_decimal(data["maximum_amount"], "maximum_amount"),
        high_value_threshold=parse_decimal(
            data["high_value_threshold"], "high_value_threshold",
        ),
        file_expiry_hours=int(data.get("file_expiry_hours", 24)),
        bank_utc_offset_hours=int(data.get("bank_utc_offset_hours", 3)),
        working_days=parse_working_days(
            data.get("working_days", ["SUNDAY", "MONDAY", "TUESDAY", "WEDNESDAY", "THURSDAY"])
        ),
    )
    if settings.currency != "SAR":
        raise ConfigurationError(f"Unsupported settlement currency {settings.currency}")
    if not (
        settings.minimum_amount
        <= settings.high_value_threshold
        <= settings.maximum_amount
    ):
        raise ConfigurationError(
            "Expected minimum_amount <= high_value_threshold <= maximum_amount"
        )
    if settings.file_expiry_hours <= 0:
        raise ConfigurationError("file_expiry_hours must be positive")
    return settings


def parse_bank(data: dict[str, Any]) -> BankDefinition:
    """
    Parse a ``BankDefinition`` from a dict.

    Raises:
        ConfigurationError: unknown bank code or file format, or invalid
            field values.
    """
    raw_code = data.get("code")
    try:
        code = BankCode.parse(raw_code)
    except ValueError as e:
        raise ConfigurationError(f"Unknown bank code {raw_code!r}") from e
    try:
        file_format = FileFormat(str(data["file_format"]).upper())
    except ValueError as e:
        raise ConfigurationError(
            f"Bank {code.value}: unknown file format {data['file_format']!r}"
        ) from e

    try:
        return BankDefinition(
            code=code,
            name=data["name"],
            short_name=data.get("short_name", data["name"]),
            iban_prefix=str(data["iban_prefix"]).zfill(2),
            account_number_lengths=tuple(int(n) for n in data.get("account_number_lengths", ())),
            supports_bulk_payments=bool(data.get("supports_bulk_payments", False)),
            max_bulk_payments=int(data.get("max_bulk_payments", 1)),
            cutoff_time=parse_time(data["cutoff_time"], f"{code.value}.cutoff_time"),
            file_format=file_format,
            swift_code=data.get("swift_code"),
            required_fields=tuple(data.get("required_fields", ())),
            file_name_template=data.get(
                "file_name_template", "{bank}_Payments_{date}_{batch_number}",
            ),
            processing_time=data.get("processing_time"),
        )
    except KeyError as e:
        raise ConfigurationError(f"Bank {code.value}: missing field {e.args[0]}") from e
    except ValueError as e:
        raise ConfigurationError(str(e)) from e


def parse_banks(items: list[dict[str, Any]]) -> tuple[BankDefinition, ...]:
    """Parse the bank catalog, rejecting duplicate codes and IBAN prefixes."""
    banks = tuple(parse_bank(item) for item in items)
    seen_codes: set[BankCode] = set()
    seen_prefixes: dict[str, BankCode] = {}
    for bank in banks:
        if bank.code in seen_codes:
            raise ConfigurationError(f"Duplicate bank code {bank.code.value}")
        seen_codes.add(bank.code)
        if bank.iban_prefix in seen_prefixes:
            raise ConfigurationError(
                f"IBAN prefix {bank.iban_prefix} is shared by "
                f"{seen_prefixes[bank.iban_prefix].value} and {bank.code.value}"
            )
        seen_prefixes[bank.iban_prefix] = bank.code
    return banks


def compute_checksum(data: dict[str, Any]) -> str:
    """
    Compute SHA-256 checksum of canonical JSON serialization.

    Identical ``data`` always produces identical checksums.
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def load_config_set(directory: Path) -> SettlementConfig:
    """
    Assemble a configuration set from ``directory/root.yaml`` and the
    fragments it lists.

    Raises:
        FileNotFoundError: root.yaml or a listed fragment is missing.
        ConfigurationError: the assembled set is invalid.
    """
    root = load_yaml_file(directory / "root.yaml")
    assembled: dict[str, Any] = {k: v for k, v in root.items() if k != "fragments"}
    for fragment in root.get("fragments", ()):
        for key, value in load_yaml_file(directory / fragment).items():
            if key in assembled and isinstance(assembled[key], list):
                assembled[key] = assembled[key] + list(value)
            else:
                assembled[key] = value

    source = str(directory)
    try:
        config_id = assembled["config_id"]
        settings = parse_settings(assembled["settings"])
    except KeyError as e:
        raise ConfigurationError(f"missing key {e.args[0]}", source=source) from e
    except ConfigurationError as e:
        raise ConfigurationError(str(e), source=source) from e

    try:
        banks = parse_banks(assembled.get("banks", []))
    except ConfigurationError as e:
        raise ConfigurationError(str(e), source=source) from e
    if not banks:
        raise ConfigurationError("bank catalog is empty", source=source)

    return SettlementConfig(
        config_id=config_id,
        version=int(assembled.get("version", 1)),
        settings=settings,
        banks=banks,
        description=assembled.get("description", ""),
        checksum=compute_checksum(assembled),
    )
