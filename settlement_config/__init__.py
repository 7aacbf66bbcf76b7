"""
settlement_config -- single public entrypoint for settlement configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  No other component reads configuration
    files directly.  Returns a frozen ``SettlementConfig``.

Architecture position:
    Configuration.  Sits above ``settlement_kernel`` and below
    ``settlement_batch``.  The kernel and the engines MUST NEVER import
    from ``settlement_config``; ``bridges`` translates the config into
    engine inputs.

Failure modes:
    - ``FileNotFoundError`` -- the requested configuration set does not exist.
    - ``ConfigurationError`` -- schema or catalog validation failures.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``SETTLEMENT_CONFIG_TRACE`` log entry containing the config_id,
    version, checksum and bank count.
"""

from __future__ import annotations

from pathlib import Path

from settlement_config.loader import load_config_set
from settlement_config.schema import SettlementConfig, SettlementSettings
from settlement_kernel.logging_config import get_logger

_logger = get_logger("config")

# Default configuration sets directory
_DEFAULT_CONFIG_DIR = Path(__file__).parent / "sets"

DEFAULT_CONFIG_SET = "default"


def get_active_config(
    config_set: str = DEFAULT_CONFIG_SET,
    config_dir: Path | None = None,
) -> SettlementConfig:
    """The ONLY public configuration entrypoint.

    Args:
        config_set: Name of the configuration set subdirectory.
        config_dir: Override path to configuration sets directory.
            Defaults to settlement_config/sets/.

    Raises:
        FileNotFoundError: If the configuration set is not found.
        ConfigurationError: If configuration validation fails.
    """
    sets_dir = Path(config_dir) if config_dir else _DEFAULT_CONFIG_DIR
    set_dir = sets_dir / config_set
    if not (set_dir / "root.yaml").is_file():
        raise FileNotFoundError(f"Configuration set not found: {set_dir}")

    config = load_config_set(set_dir)

    _logger.info(
        "SETTLEMENT_CONFIG_TRACE",
        extra={
            "config_set_id": config.config_id,
            "config_set_version": config.version,
            "checksum": config.checksum,
            "bank_count": len(config.banks),
        },
    )
    return config


__all__ = [
    "DEFAULT_CONFIG_SET",
    "SettlementConfig",
    "SettlementSettings",
    "get_active_config",
]
