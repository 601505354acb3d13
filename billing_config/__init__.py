"""
billing_config -- single public entrypoint for engine settings.

Responsibility:
    ``get_active_config()`` is the only way runtime code obtains settings.
    No other component reads settings files or environment variables.

Architecture position:
    Configuration -- sits above ``billing_kernel``.  The kernel MUST NEVER
    import from ``billing_config``; ``billing_config.bridges`` turns an
    ``EngineConfig`` into kernel objects.

Failure modes:
    - ``FileNotFoundError`` -- the requested settings file does not exist.
    - ``ConfigurationError`` -- the document is malformed or invalid.

Every successful call emits a ``BILLING_CONFIG_TRACE`` log entry with the
source path and the SHA-256 checksum of the document.
"""

from __future__ import annotations

import os
from pathlib import Path

import yaml

from billing_config.loader import load_yaml_file, parse_config
from billing_config.schema import (
    DatabaseSettings,
    EngineConfig,
    LoggingSettings,
    ReconciliationSettings,
)
from billing_kernel.exceptions import ConfigurationError
from billing_kernel.logging_config import get_logger

_logger = get_logger("config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"
CONFIG_ENV_VAR = "BILLING_CONFIG"
DATABASE_URL_ENV_VAR = "DATABASE_URL"


def get_active_config(config_path: Path | str | None = None) -> EngineConfig:
    """The ONLY public settings entrypoint.

    Resolution order for the document: ``config_path``, then the
    ``BILLING_CONFIG`` environment variable, then the packaged
    ``defaults.yaml``.  ``DATABASE_URL`` overrides ``database.url``.

    Raises:
        FileNotFoundError: If the resolved path does not exist.
        ConfigurationError: If the document fails validation.
    """
    path = Path(config_path or os.environ.get(CONFIG_ENV_VAR) or DEFAULT_CONFIG_PATH)
    try:
        data = load_yaml_file(path)
    except yaml.YAMLError as exc:
        raise ConfigurationError(str(path), [f"invalid YAML: {exc}"]) from exc

    config = parse_config(
        data,
        source=str(path),
        database_url=os.environ.get(DATABASE_URL_ENV_VAR),
    )

    _logger.info(
        "BILLING_CONFIG_TRACE",
        extra={
            "trace_type": "BILLING_CONFIG_TRACE",
            "source": config.source,
            "checksum": config.checksum,
            "dialect": config.database.url.split(":", 1)[0],
            "default_currency": config.reconciliation.default_currency,
        },
    )
    return config


__all__ = [
    "DatabaseSettings",
    "EngineConfig",
    "LoggingSettings",
    "ReconciliationSettings",
    "get_active_config",
]
