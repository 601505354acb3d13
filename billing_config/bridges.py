"""
Config -> Kernel bridges.

Functions that turn an ``EngineConfig`` into kernel objects.  They live
here because the kernel must never import ``billing_config``.

Usage:
    from billing_config import get_active_config
    from billing_config.bridges import build_orchestrator, init_engine_from_config

    config = get_active_config()
    init_engine_from_config(config)
    orchestrator = build_orchestrator(config)
"""

from __future__ import annotations

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from billing_config.loader import log_level
from billing_config.schema import EngineConfig
from billing_kernel.db.engine import get_session_factory, init_engine_from_url
from billing_kernel.domain.clock import Clock
from billing_kernel.logging_config import configure_logging
from billing_kernel.selectors.invoice_selector import InvoiceSelector
from billing_kernel.selectors.revenue_selector import RevenueLedgerSelector
from billing_kernel.services.reconciliation_orchestrator import ReconciliationOrchestrator


def init_engine_from_config(config: EngineConfig) -> Engine:
    """Configure logging at the configured level, then initialize the engine."""
    configure_logging(level=log_level(config))
    db = config.database
    return init_engine_from_url(db.url, echo=db.echo, **db.engine_kwargs())


def build_orchestrator(
    config: EngineConfig,
    session_factory: sessionmaker[Session] | None = None,
    clock: Clock | None = None,
) -> ReconciliationOrchestrator:
    recon = config.reconciliation
    return ReconciliationOrchestrator(
        session_factory or get_session_factory(),
        clock,
        default_currency=recon.default_currency,
        workspace_bucket=recon.workspace_bucket,
        drain_batch_size=recon.ledger_drain_batch_size,
    )


def build_revenue_selector(config: EngineConfig, session: Session) -> RevenueLedgerSelector:
    recon = config.reconciliation
    return RevenueLedgerSelector(
        session,
        default_limit=recon.revenue_list_default_limit,
        max_limit=recon.revenue_list_max_limit,
    )


def build_invoice_selector(config: EngineConfig, session: Session) -> InvoiceSelector:
    recon = config.reconciliation
    return InvoiceSelector(
        session,
        default_limit=recon.invoice_list_default_limit,
        max_limit=recon.invoice_list_max_limit,
    )
