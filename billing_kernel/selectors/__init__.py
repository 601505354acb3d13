"""Read-only selectors over the billing projections."""

from billing_kernel.selectors.client_selector import ClientSelector
from billing_kernel.selectors.invoice_selector import InvoiceSelector
from billing_kernel.selectors.revenue_selector import RevenueLedgerSelector

__all__ = ["ClientSelector", "InvoiceSelector", "RevenueLedgerSelector"]
