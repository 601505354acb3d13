"""
Module: billing_kernel.selectors.invoice_selector
Responsibility: Read-only access to the canonical invoice records.
Architecture position: Kernel > Selectors.
"""

from sqlalchemy import select
from sqlalchemy.orm import Session

from billing_kernel.domain.dtos import InvoiceView
from billing_kernel.models.invoice import InvoiceRecord
from billing_kernel.selectors.base import BaseSelector, clamp_limit

DEFAULT_LIMIT = 200
MAX_LIMIT = 200


class InvoiceSelector(BaseSelector):
    """
    Selector for ``invoices`` rows.

    Guarantees:
        - ``list_invoices`` returns newest issued first, page size clamped
          to [1, max_limit].
    """

    def __init__(
        self,
        session: Session,
        default_limit: int = DEFAULT_LIMIT,
        max_limit: int = MAX_LIMIT,
    ):
        super().__init__(session)
        self._default_limit = default_limit
        self._max_limit = max_limit

    def get(self, tenant_id: str, external_invoice_id: str) -> InvoiceView | None:
        row = self.session.execute(
            select(InvoiceRecord).where(
                InvoiceRecord.tenant_id == tenant_id,
                InvoiceRecord.external_invoice_id == external_invoice_id,
            )
        ).scalar_one_or_none()
        return InvoiceView.from_model(row) if row is not None else None

    def list_invoices(
        self,
        tenant_id: str,
        client_id: str | None = None,
        limit: int | None = None,
    ) -> list[InvoiceView]:
        query = select(InvoiceRecord).where(InvoiceRecord.tenant_id == tenant_id)
        if client_id is not None:
            query = query.where(InvoiceRecord.client_id == client_id)
        query = query.order_by(
            InvoiceRecord.issued_at.desc(), InvoiceRecord.external_invoice_id
        ).limit(clamp_limit(limit, self._default_limit, self._max_limit))
        rows = self.session.execute(query).scalars().all()
        return [InvoiceView.from_model(row) for row in rows]
