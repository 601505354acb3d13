"""ORM models for the billing projections."""

from billing_kernel.models.client import ClientRecord
from billing_kernel.models.invoice import InvoiceRecord
from billing_kernel.models.revenue_ledger import (
    LedgerApplication,
    LedgerApplicationStatus,
    RevenueLedgerEntry,
)
from billing_kernel.models.webhook_event import ProcessedWebhookEvent

__all__ = [
    "ClientRecord",
    "InvoiceRecord",
    "LedgerApplication",
    "LedgerApplicationStatus",
    "ProcessedWebhookEvent",
    "RevenueLedgerEntry",
]
