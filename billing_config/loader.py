"""
Settings loader (``billing_config.loader``).

Responsibility
--------------
Reads the YAML settings document and parses it into the frozen
``billing_config.schema`` dataclasses, collecting every validation error
instead of stopping at the first.  Runtime callers go through
``billing_config.get_active_config()``, not this module.

Invariants enforced
-------------------
* Unknown sections and keys are errors, never silently ignored.
* Each value must have the type of the schema default (``bool`` is not
  accepted where an ``int`` is expected).
* ``compute_checksum`` is a deterministic SHA-256 over canonical JSON.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Invalid values  -> ``ConfigurationError`` listing every problem.
"""

from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import fields, replace
from pathlib import Path
from typing import Any

import yaml

from billing_config.schema import (
    DatabaseSettings,
    EngineConfig,
    LoggingSettings,
    ReconciliationSettings,
)
from billing_kernel.domain.amounts import ISO_4217_CURRENCIES
from billing_kernel.exceptions import ConfigurationError

_SECTIONS: dict[str, type] = {
    "database": DatabaseSettings,
    "reconciliation": ReconciliationSettings,
    "logging": LoggingSettings,
}

_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a YAML file and return its top-level mapping.

    Postconditions:
        - Returns a ``dict`` (empty when the file is empty).
    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON form of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def _parse_section(name: str, data: Any, errors: list[str]) -> Any:
    schema = _SECTIONS[name]
    if data is None:
        return schema()
    if not isinstance(data, dict):
        errors.append(f"{name}: expected a mapping, got {type(data).__name__}")
        return schema()

    defaults = schema()
    known = {f.name for f in fields(schema)}
    values: dict[str, Any] = {}
    for key, value in data.items():
        if key not in known:
            errors.append(f"{name}.{key}: unknown setting")
            continue
        expected = type(getattr(defaults, key))
        if isinstance(value, bool) and expected is not bool:
            errors.append(f"{name}.{key}: expected {expected.__name__}, got bool")
        elif not isinstance(value, expected):
            errors.append(
                f"{name}.{key}: expected {expected.__name__}, got {type(value).__name__}"
            )
        else:
            values[key] = value
    return schema(**values)


def _validate(config: EngineConfig, errors: list[str]) -> None:
    recon = config.reconciliation
    if recon.default_currency.upper() not in ISO_4217_CURRENCIES:
        errors.append(
            f"reconciliation.default_currency: unknown ISO 4217 code {recon.default_currency!r}"
        )
    if not recon.workspace_bucket.strip():
        errors.append("reconciliation.workspace_bucket: must not be blank")
    for prefix in ("revenue_list", "invoice_list"):
        default = getattr(recon, f"{prefix}_default_limit")
        maximum = getattr(recon, f"{prefix}_max_limit")
        if maximum < 1:
            errors.append(f"reconciliation.{prefix}_max_limit: must be at least 1")
        if not 1 <= default <= maximum:
            errors.append(
                f"reconciliation.{prefix}_default_limit: must be between 1 and {prefix}_max_limit"
            )
    if recon.ledger_drain_batch_size < 1:
        errors.append("reconciliation.ledger_drain_batch_size: must be at least 1")
    if not config.database.url:
        errors.append("database.url: must not be empty")
    if config.logging.level.upper() not in _LOG_LEVELS:
        errors.append(f"logging.level: unknown level {config.logging.level!r}")


def parse_config(
    data: dict[str, Any],
    source: str = "<memory>",
    database_url: str | None = None,
) -> EngineConfig:
    """
    Parse and validate a settings document.

    Args:
        data: Parsed YAML mapping.
        source: Where the document came from, for error messages.
        database_url: Overrides ``database.url`` when given.

    Raises:
        ConfigurationError: listing every invalid or unknown setting.
    """
    errors: list[str] = []
    if not isinstance(data, dict):
        raise ConfigurationError(source, [f"expected a mapping, got {type(data).__name__}"])

    for key in data:
        if key not in _SECTIONS:
            errors.append(f"{key}: unknown section")

    sections = {name: _parse_section(name, data.get(name), errors) for name in _SECTIONS}
    database = sections["database"]
    if database_url:
        database = replace(database, url=database_url)
    recon = sections["reconciliation"]
    recon = replace(recon, default_currency=recon.default_currency.upper())

    config = EngineConfig(
        database=database,
        reconciliation=recon,
        logging=sections["logging"],
        source=source,
        checksum=compute_checksum(data),
    )
    _validate(config, errors)
    if errors:
        raise ConfigurationError(source, errors)
    return config


def log_level(config: EngineConfig) -> int:
    return logging.getLevelName(config.logging.level.upper())
