"""
Tests for the settlement configuration set: the shipped default set,
loader validation and the config -> engine bridges.
"""

import shutil
from datetime import time
from decimal import Decimal
from pathlib import Path

import pytest
import yaml

import settlement_config
from settlement_config import DEFAULT_CONFIG_SET, get_active_config
from settlement_config.bridges import (
    build_bank_registry,
    build_dispatch_calendar,
    build_eligibility_limits,
    build_iban_validator,
)
from settlement_config.loader import (
    compute_checksum,
    parse_decimal,
    parse_time,
    parse_working_days,
)
from settlement_kernel.domain.bank import BankCode, FileFormat
from settlement_kernel.exceptions import ConfigurationError

DEFAULT_SET_DIR = Path(settlement_config.__file__).parent / "sets" / DEFAULT_CONFIG_SET


@pytest.fixture
def config_dir(tmp_path):
    """Copy of the default set under ``tmp_path/sets/custom`` for editing."""
    target = tmp_path / "sets" / "custom"
    shutil.copytree(DEFAULT_SET_DIR, target)
    return target


def _edit(path: Path, mutate) -> None:
    data = yaml.safe_load(path.read_text())
    mutate(data)
    path.write_text(yaml.safe_dump(data, sort_keys=False))


def _load(config_dir: Path):
    return get_active_config("custom", config_dir=config_dir.parent)


class TestDefaultSet:

    def test_identity(self, config):
        assert config.config_id == "SA-SALARY-SETTLEMENT"
        assert config.version == 1
        assert len(config.checksum) == 64

    def test_settings(self, config):
        settings = config.settings
        assert settings.currency == "SAR"
        assert settings.minimum_amount == Decimal("1.00")
        assert settings.maximum_amount == Decimal("500000.00")
        assert settings.high_value_threshold == Decimal("50000.00")
        assert settings.file_expiry_hours == 24
        assert settings.bank_utc_offset_hours == 3
        assert settings.working_days == (0, 1, 2, 3, 6)

    def test_bank_catalog(self, config):
        assert {b.code for b in config.banks} == set(BankCode)
        alrajhi = config.bank("ALRAJHI")
        assert alrajhi.iban_prefix == "80"
        assert alrajhi.max_bulk_payments == 1000
        assert alrajhi.cutoff_time == time(14, 0)
        assert alrajhi.file_format == FileFormat.EXCEL
        assert alrajhi.required_fields == ("employee_name", "national_id")
        assert config.bank("SABB").cutoff_time == time(13, 30)

    def test_unknown_bank_lookup(self, config):
        assert config.bank("NCB") is not None
        with pytest.raises(ValueError):
            config.bank("BOGUS")

    def test_checksum_is_stable(self):
        assert get_active_config().checksum == get_active_config().checksum

    def test_trace_logged(self, captured_logs):
        get_active_config()
        traces = [r for r in captured_logs() if r["message"] == "SETTLEMENT_CONFIG_TRACE"]
        assert traces
        assert traces[-1]["config_set_id"] == "SA-SALARY-SETTLEMENT"
        assert traces[-1]["bank_count"] == 5

    def test_missing_set(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_config("nope", config_dir=tmp_path)


class TestLoaderValidation:

    def test_custom_set_loads(self, config_dir):
        assert _load(config_dir).config_id == "SA-SALARY-SETTLEMENT"

    def test_checksum_changes_with_content(self, config_dir, config):
        _edit(config_dir / "root.yaml", lambda d: d["settings"].update(file_expiry_hours=48))
        assert _load(config_dir).checksum != config.checksum

    def test_unknown_bank_code(self, config_dir):
        _edit(config_dir / "banks.yaml", lambda d: d["banks"][0].update(code="BOGUS"))
        with pytest.raises(ConfigurationError, match="Unknown bank code"):
            _load(config_dir)

    def test_unknown_file_format(self, config_dir):
        _edit(config_dir / "banks.yaml", lambda d: d["banks"][0].update(file_format="PDF"))
        with pytest.raises(ConfigurationError, match="file format"):
            _load(config_dir)

    def test_duplicate_prefix(self, config_dir):
        _edit(config_dir / "banks.yaml", lambda d: d["banks"][1].update(iban_prefix="80"))
        with pytest.raises(ConfigurationError, match="shared"):
            _load(config_dir)

    def test_duplicate_code(self, config_dir):
        _edit(config_dir / "banks.yaml", lambda d: d["banks"][1].update(code="ALRAJHI"))
        with pytest.raises(ConfigurationError, match="Duplicate"):
            _load(config_dir)

    def test_missing_bank_field(self, config_dir):
        _edit(config_dir / "banks.yaml", lambda d: d["banks"][0].pop("cutoff_time"))
        with pytest.raises(ConfigurationError, match="cutoff_time"):
            _load(config_dir)

    def test_limits_out_of_order(self, config_dir):
        _edit(
            config_dir / "root.yaml",
            lambda d: d["settings"].update(high_value_threshold="900000.00"),
        )
        with pytest.raises(ConfigurationError):
            _load(config_dir)

    def test_non_sar_currency(self, config_dir):
        _edit(config_dir / "root.yaml", lambda d: d["settings"].update(currency="USD"))
        with pytest.raises(ConfigurationError, match="USD"):
            _load(config_dir)

    def test_empty_catalog(self, config_dir):
        _edit(config_dir / "banks.yaml", lambda d: d.update(banks=[]))
        with pytest.raises(ConfigurationError, match="empty"):
            _load(config_dir)

    def test_errors_name_their_source(self, config_dir):
        _edit(config_dir / "root.yaml", lambda d: d["settings"].update(currency="USD"))
        with pytest.raises(ConfigurationError) as exc_info:
            _load(config_dir)
        assert exc_info.value.source == str(config_dir)


class TestParsers:

    def test_float_amount_rejected(self):
        with pytest.raises(ConfigurationError, match="quoted"):
            parse_decimal(1.5, "minimum_amount")

    def test_bad_decimal_rejected(self):
        with pytest.raises(ConfigurationError):
            parse_decimal("abc", "minimum_amount")

    def test_time_from_string(self):
        assert parse_time("13:30", "cutoff") == time(13, 30)

    def test_time_from_yaml_sexagesimal(self):
        # unquoted 14:00 in YAML 1.1 is 840
        assert parse_time(840, "cutoff") == time(14, 0)

    def test_bad_time(self):
        with pytest.raises(ConfigurationError):
            parse_time("2pm", "cutoff")

    def test_working_days(self):
        assert parse_working_days(["sunday", "Monday", "MONDAY"]) == (0, 6)

    def test_unknown_working_day(self):
        with pytest.raises(ConfigurationError):
            parse_working_days(["FUNDAY"])

    def test_checksum_ignores_key_order(self):
        assert compute_checksum({"a": 1, "b": 2}) == compute_checksum({"b": 2, "a": 1})


class TestBridges:

    def test_registry(self, config):
        assert len(build_bank_registry(config)) == 5

    def test_iban_validator(self, config):
        assert build_iban_validator(config).validate("SA0380000000608010167519").is_valid

    def test_eligibility_limits(self, config):
        limits = build_eligibility_limits(config)
        assert limits.minimum_amount == Decimal("1.00")
        assert limits.high_value_threshold == Decimal("50000.00")

    def test_calendar(self, config):
        calendar = build_dispatch_calendar(config)
        assert calendar.utc_offset_hours == 3
        assert calendar.working_days == (0, 1, 2, 3, 6)
