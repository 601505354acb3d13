"""
DTOs -- immutable data passed between the reconciliation services.

Responsibility:
    Outcome enums, the projector input/output records, read-model views
    returned by selectors, and the per-event ``ReconciliationResult``.

Architecture position:
    Kernel > Domain -- pure, zero I/O.  ``from_model()`` class methods are
    boundary converters called only from services and selectors.

Invariants enforced:
    - Every DTO is a frozen dataclass.
    - Views never hold a live ORM instance.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID

from billing_kernel.domain.amounts import normalize_amount
from billing_kernel.domain.deltas import DeltaResult, MonetaryRegression
from billing_kernel.domain.invoice_status import FinanceStatus

if TYPE_CHECKING:
    from billing_kernel.domain.events import InvoiceEvent, InvoiceFacts
    from billing_kernel.models.client import ClientRecord
    from billing_kernel.models.invoice import InvoiceRecord
    from billing_kernel.models.revenue_ledger import RevenueLedgerEntry


class ReconcileStatus(str, Enum):
    """Top-level disposition of one inbound event."""

    APPLIED = "applied"
    DUPLICATE = "duplicate"
    DISCARDED = "discarded"
    SKIPPED = "skipped"


class ClientSummaryOutcome(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    REVISED = "revised"
    STALE = "stale"


class LedgerOutcome(str, Enum):
    """What happened to the revenue ledger for one event."""

    APPLIED = "applied"
    NOT_REQUIRED = "not_required"
    ALREADY_APPLIED = "already_applied"


# ---------------------------------------------------------------------------
# Projector inputs
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class InvoiceFields:
    """
    Values the invoice projector writes for one event.

    ``amount_remaining`` and ``amount_refunded`` are None when the event
    did not report them; the projector derives or keeps the stored value.
    """

    client_id: str
    amount: Decimal
    amount_paid: Decimal
    currency: str
    status: FinanceStatus
    issued_at: datetime
    amount_remaining: Decimal | None = None
    amount_refunded: Decimal | None = None
    provider_status: str | None = None
    due_at: datetime | None = None
    paid_at: datetime | None = None
    client_name: str | None = None
    description: str | None = None
    hosted_invoice_url: str | None = None
    number: str | None = None
    payment_reference: str | None = None
    collection_method: str | None = None

    @classmethod
    def from_event(cls, event: InvoiceEvent, facts: InvoiceFacts) -> InvoiceFields:
        return cls(
            client_id=event.client_id,
            amount=facts.amount_total,
            amount_paid=facts.amount_paid,
            currency=facts.currency,
            status=facts.finance_status,
            issued_at=facts.issued_at,
            amount_remaining=normalize_amount(event.remaining_minor_units),
            amount_refunded=facts.amount_refunded,
            provider_status=event.raw_status,
            due_at=facts.due_at,
            paid_at=facts.paid_at,
            client_name=event.client_name,
            description=event.description,
            hosted_invoice_url=event.hosted_url,
            number=event.invoice_number,
            payment_reference=event.payment_reference,
            collection_method=event.collection_method,
        )


@dataclass(frozen=True)
class ClientSummary:
    """Last-invoice pointer values offered to the client summary projector."""

    status: FinanceStatus
    amount: Decimal
    currency: str
    issued_at: datetime
    number: str | None = None
    url: str | None = None
    paid_at: datetime | None = None
    client_name: str | None = None

    @classmethod
    def from_event(cls, event: InvoiceEvent, facts: InvoiceFacts) -> ClientSummary:
        return cls(
            status=facts.finance_status,
            amount=facts.amount_total,
            currency=facts.currency,
            issued_at=facts.issued_at,
            number=event.invoice_number,
            url=event.hosted_url,
            paid_at=facts.paid_at,
            client_name=event.client_name,
        )


@dataclass(frozen=True)
class LedgerBucket:
    """Revenue ledger bucket for one (client?, calendar month)."""

    period: str
    label: str
    bucket_key: str
    client_id: str | None = None


# ---------------------------------------------------------------------------
# Views
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class InvoiceView:
    id: UUID
    tenant_id: str
    external_invoice_id: str
    client_id: str
    client_name: str | None
    amount: Decimal
    status: FinanceStatus
    provider_status: str | None
    issued_at: datetime
    due_at: datetime | None
    paid_at: datetime | None
    amount_paid: Decimal
    amount_remaining: Decimal
    amount_refunded: Decimal
    currency: str
    description: str | None
    hosted_invoice_url: str | None
    number: str | None
    payment_reference: str | None
    collection_method: str | None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_model(cls, model: InvoiceRecord) -> InvoiceView:
        """Create an InvoiceView from an InvoiceRecord ORM model."""
        return cls(
            id=model.id,
            tenant_id=model.tenant_id,
            external_invoice_id=model.external_invoice_id,
            client_id=model.client_id,
            client_name=model.client_name,
            amount=model.amount,
            status=FinanceStatus(model.status),
            provider_status=model.provider_status,
            issued_at=model.issued_at,
            due_at=model.due_at,
            paid_at=model.paid_at,
            amount_paid=model.amount_paid,
            amount_remaining=model.amount_remaining,
            amount_refunded=model.amount_refunded,
            currency=model.currency,
            description=model.description,
            hosted_invoice_url=model.hosted_invoice_url,
            number=model.number,
            payment_reference=model.payment_reference,
            collection_method=model.collection_method,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )


@dataclass(frozen=True)
class ClientView:
    tenant_id: str
    client_id: str
    name: str | None
    last_invoice_status: FinanceStatus | None
    last_invoice_amount: Decimal | None
    last_invoice_currency: str | None
    last_invoice_issued_at: datetime | None
    last_invoice_number: str | None
    last_invoice_url: str | None
    last_invoice_paid_at: datetime | None

    @classmethod
    def from_model(cls, model: ClientRecord) -> ClientView:
        """Create a ClientView from a ClientRecord ORM model."""
        status = model.last_invoice_status
        return cls(
            tenant_id=model.tenant_id,
            client_id=model.client_id,
            name=model.name,
            last_invoice_status=FinanceStatus(status) if status else None,
            last_invoice_amount=model.last_invoice_amount,
            last_invoice_currency=model.last_invoice_currency,
            last_invoice_issued_at=model.last_invoice_issued_at,
            last_invoice_number=model.last_invoice_number,
            last_invoice_url=model.last_invoice_url,
            last_invoice_paid_at=model.last_invoice_paid_at,
        )


@dataclass(frozen=True)
class RevenueLedgerEntryView:
    tenant_id: str
    bucket_key: str
    client_id: str | None
    period: str
    label: str | None
    revenue: Decimal
    operating_expenses: Decimal
    currency: str | None

    @property
    def net(self) -> Decimal:
        return self.revenue - self.operating_expenses

    @classmethod
    def from_model(cls, model: RevenueLedgerEntry) -> RevenueLedgerEntryView:
        """Create a RevenueLedgerEntryView from a RevenueLedgerEntry ORM model."""
        return cls(
            tenant_id=model.tenant_id,
            bucket_key=model.bucket_key,
            client_id=model.client_id,
            period=model.period,
            label=model.label,
            revenue=model.revenue,
            operating_expenses=model.operating_expenses,
            currency=model.currency,
        )


# ---------------------------------------------------------------------------
# Service outputs
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class InvoiceProjection:
    """Result of one invoice projector write."""

    invoice: InvoiceView
    created: bool
    previous_paid: Decimal
    previous_refunded: Decimal
    deltas: DeltaResult


@dataclass(frozen=True)
class ReconciliationResult:
    """
    Change summary for one reconciled event.

    ``reason`` is set for DISCARDED and SKIPPED results.
    """

    status: ReconcileStatus
    tenant_id: str | None = None
    external_invoice_id: str | None = None
    client_id: str | None = None
    provider_event_id: str | None = None
    finance_status: FinanceStatus | None = None
    invoice_created: bool = False
    delta_paid: Decimal | None = None
    delta_refunded: Decimal | None = None
    net_delta: Decimal | None = None
    ledger_period: str | None = None
    client_summary: ClientSummaryOutcome | None = None
    ledger: LedgerOutcome = LedgerOutcome.NOT_REQUIRED
    anomalies: tuple[MonetaryRegression, ...] = ()
    reason: str | None = None

    @property
    def is_applied(self) -> bool:
        return self.status == ReconcileStatus.APPLIED


@dataclass(frozen=True)
class DrainReport:
    """Totals from one pass over pending ledger applications."""

    applied: int = 0
    already_applied: int = 0
    failed: int = 0

    @property
    def processed(self) -> int:
        return self.applied + self.already_applied + self.failed
