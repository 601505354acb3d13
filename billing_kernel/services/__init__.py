"""Reconciliation services -- writers for the billing projections."""

from billing_kernel.services.client_summary_projector import ClientSummaryProjector
from billing_kernel.services.invoice_projector import InvoiceProjector
from billing_kernel.services.reconciliation_orchestrator import ReconciliationOrchestrator
from billing_kernel.services.revenue_ledger_service import RevenueLedgerService, bucket_for
from billing_kernel.services.webhook_event_registry import WebhookEventRegistry

__all__ = [
    "ClientSummaryProjector",
    "InvoiceProjector",
    "ReconciliationOrchestrator",
    "RevenueLedgerService",
    "WebhookEventRegistry",
    "bucket_for",
]
