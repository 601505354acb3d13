"""
Module: billing_engines.payment_summary
Responsibility:
    Aggregate a tenant's invoices into per-currency payment totals plus
    open/overdue/paid counts and the next due and last payment dates, for
    the finance dashboard.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import billing_kernel/domain.

Invariants enforced:
    - Purity: no clock access; every date comes from the inputs.
    - Decimal-only arithmetic.
    - Net paid per currency is never negative: max(paid - refunds, 0).
    - Outstanding per invoice: remaining if known, else max(amount - paid, 0)
      if paid is known, else 0 for paid invoices, else the full amount.

Usage:
    from billing_engines.payment_summary import SummaryInvoice, compute_payment_summary

    summary = compute_payment_summary(
        invoices=[SummaryInvoice.from_view(view) for view in views],
    )
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from billing_engines.tracer import traced_engine
from billing_kernel.domain.amounts import ZERO
from billing_kernel.domain.dtos import InvoiceView
from billing_kernel.domain.invoice_status import FinanceStatus

DEFAULT_CURRENCY = "USD"


@dataclass(frozen=True)
class SummaryInvoice:
    """
    One invoice as seen by the summary engine.

    Optional amounts are None when the provider never reported them.
    """

    amount: Decimal
    status: FinanceStatus
    currency: str | None = None
    amount_paid: Decimal | None = None
    amount_remaining: Decimal | None = None
    amount_refunded: Decimal | None = None
    due_at: datetime | None = None
    paid_at: datetime | None = None

    @classmethod
    def from_view(cls, view: InvoiceView) -> SummaryInvoice:
        return cls(
            amount=view.amount,
            status=view.status,
            currency=view.currency,
            amount_paid=view.amount_paid,
            amount_remaining=view.amount_remaining,
            amount_refunded=view.amount_refunded,
            due_at=view.due_at,
            paid_at=view.paid_at,
        )

    @property
    def outstanding(self) -> Decimal:
        if self.amount_remaining is not None:
            return self.amount_remaining
        if self.amount_paid is not None:
            return max(self.amount - self.amount_paid, ZERO)
        if self.status == FinanceStatus.PAID:
            return ZERO
        return self.amount


@dataclass(frozen=True)
class CurrencyTotals:
    currency: str
    total_invoiced: Decimal
    total_outstanding: Decimal
    refund_total: Decimal
    total_paid: Decimal


@dataclass(frozen=True)
class PaymentSummary:
    totals: tuple[CurrencyTotals, ...]
    overdue_count: int
    paid_count: int
    open_count: int
    next_due_at: datetime | None
    last_payment_at: datetime | None

    def for_currency(self, currency: str) -> CurrencyTotals | None:
        for entry in self.totals:
            if entry.currency == currency.upper():
                return entry
        return None


@dataclass
class _Accumulator:
    currency: str
    invoiced: Decimal = ZERO
    paid_gross: Decimal = ZERO
    refunds: Decimal = ZERO
    outstanding: Decimal = ZERO

    def freeze(self) -> CurrencyTotals:
        return CurrencyTotals(
            currency=self.currency,
            total_invoiced=self.invoiced,
            total_outstanding=self.outstanding,
            refund_total=self.refunds,
            total_paid=max(self.paid_gross - self.refunds, ZERO),
        )


@traced_engine("payment_summary", "1.0", fingerprint_fields=("invoices",))
def compute_payment_summary(invoices: Iterable[SummaryInvoice]) -> PaymentSummary:
    """
    Summarize invoices per currency.

    Totals appear in the order each currency is first seen.  An invoice
    with no currency counts as USD.  Overdue invoices count as open too.
    """
    by_currency: dict[str, _Accumulator] = {}
    overdue_count = paid_count = open_count = 0
    next_due_at: datetime | None = None
    last_payment_at: datetime | None = None

    for invoice in invoices:
        currency = (invoice.currency or DEFAULT_CURRENCY).upper()
        acc = by_currency.setdefault(currency, _Accumulator(currency))
        acc.invoiced += invoice.amount

        if invoice.status == FinanceStatus.PAID:
            paid_count += 1
        elif invoice.status == FinanceStatus.OVERDUE:
            overdue_count += 1
            open_count += 1
        elif invoice.status == FinanceStatus.SENT:
            open_count += 1

        if invoice.amount_paid is not None:
            acc.paid_gross += invoice.amount_paid
        if invoice.amount_refunded is not None:
            acc.refunds += invoice.amount_refunded

        outstanding = invoice.outstanding
        if outstanding > ZERO:
            acc.outstanding += outstanding
            if invoice.due_at is not None and (next_due_at is None or invoice.due_at < next_due_at):
                next_due_at = invoice.due_at

        if invoice.paid_at is not None and (
            last_payment_at is None or invoice.paid_at > last_payment_at
        ):
            last_payment_at = invoice.paid_at

    return PaymentSummary(
        totals=tuple(acc.freeze() for acc in by_currency.values()),
        overdue_count=overdue_count,
        paid_count=paid_count,
        open_count=open_count,
        next_due_at=next_due_at,
        last_payment_at=last_payment_at,
    )
