"""
Billing engine settings schema.

Frozen dataclasses the loader parses the YAML settings document into.
Defaults here match ``defaults.yaml`` so a partial document is valid.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class DatabaseSettings:
    """Connection and pool settings for ``init_engine_from_url``."""

    url: str = "sqlite:///billing.db"
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10
    pool_timeout: int = 30
    pool_recycle: int = 1800
    sqlite_busy_timeout: int = 30

    def engine_kwargs(self) -> dict[str, int]:
        return {
            "pool_size": self.pool_size,
            "max_overflow": self.max_overflow,
            "pool_timeout": self.pool_timeout,
            "pool_recycle": self.pool_recycle,
            "sqlite_busy_timeout": self.sqlite_busy_timeout,
        }


@dataclass(frozen=True)
class ReconciliationSettings:
    default_currency: str = "USD"
    workspace_bucket: str = "workspace"
    revenue_list_default_limit: int = 36
    revenue_list_max_limit: int = 100
    invoice_list_default_limit: int = 200
    invoice_list_max_limit: int = 200
    ledger_drain_batch_size: int = 100


@dataclass(frozen=True)
class LoggingSettings:
    level: str = "INFO"


@dataclass(frozen=True)
class EngineConfig:
    """The runtime configuration artifact returned by ``get_active_config``."""

    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    reconciliation: ReconciliationSettings = field(default_factory=ReconciliationSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    source: str = "<defaults>"
    checksum: str = ""
