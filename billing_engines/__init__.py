"""
Module: billing_engines
Responsibility:
    Pure calculators over billing read models.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  May import
    billing_kernel.domain; MUST NOT import services or selectors.
"""

from billing_engines.payment_summary import (
    CurrencyTotals,
    PaymentSummary,
    SummaryInvoice,
    compute_payment_summary,
)

__all__ = [
    "CurrencyTotals",
    "PaymentSummary",
    "SummaryInvoice",
    "compute_payment_summary",
]
