"""
Module: billing_kernel.models.invoice
Responsibility: ORM persistence for the canonical invoice projection, one row
    per provider invoice per tenant.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - (tenant_id, external_invoice_id) is unique (uq_invoice_tenant_external).
    - amount_paid and amount_refunded never decrease; enforced by
      InvoiceProjector, which writes the max of stored and incoming totals.
    - amount_remaining == max(amount - amount_paid, 0) unless the provider
      reported it explicitly.

Failure modes:
    - IntegrityError on a concurrent first insert for the same invoice;
      InvoiceProjector retries under lock.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import Index, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from billing_kernel.db.base import TimestampedBase


class InvoiceRecord(TimestampedBase):
    """
    Canonical invoice projection.

    Contract:
        Created on the first event for an external invoice id, mutated in
        place on every later event, never deleted.  Only the reconciliation
        engine writes this table.
    """

    __tablename__ = "invoices"

    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "external_invoice_id", name="uq_invoice_tenant_external"
        ),
        Index("idx_invoice_tenant_client", "tenant_id", "client_id"),
        Index("idx_invoice_tenant_issued", "tenant_id", "issued_at"),
    )

    tenant_id: Mapped[str] = mapped_column(String(255), nullable=False)

    # Provider-issued identifier, primary key for reconciliation
    external_invoice_id: Mapped[str] = mapped_column(String(255), nullable=False)

    client_id: Mapped[str] = mapped_column(String(255), nullable=False)
    client_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Invoice total
    amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    # Resolved finance status (draft/sent/paid/overdue)
    status: Mapped[str] = mapped_column(String(20), nullable=False)

    # Raw provider status string as last observed
    provider_status: Mapped[str | None] = mapped_column(String(50), nullable=True)

    issued_at: Mapped[datetime] = mapped_column(nullable=False)
    due_at: Mapped[datetime | None] = mapped_column(nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(nullable=True)

    amount_paid: Mapped[Decimal] = mapped_column(
        Numeric(38, 9), nullable=False, default=Decimal("0")
    )
    amount_remaining: Mapped[Decimal] = mapped_column(
        Numeric(38, 9), nullable=False, default=Decimal("0")
    )
    amount_refunded: Mapped[Decimal] = mapped_column(
        Numeric(38, 9), nullable=False, default=Decimal("0")
    )

    currency: Mapped[str] = mapped_column(String(3), nullable=False)

    description: Mapped[str | None] = mapped_column(String(4000), nullable=True)
    hosted_invoice_url: Mapped[str | None] = mapped_column(String(2000), nullable=True)
    number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    payment_reference: Mapped[str | None] = mapped_column(String(255), nullable=True)
    collection_method: Mapped[str | None] = mapped_column(String(50), nullable=True)

    def __repr__(self) -> str:
        return f"<InvoiceRecord {self.tenant_id}:{self.external_invoice_id} {self.status}>"
