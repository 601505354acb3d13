"""
Module: billing_kernel.models.client
Responsibility: ORM persistence for the per-client "last invoice" summary used
    by list views.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - (tenant_id, client_id) is unique (uq_client_tenant_client).
    - last_invoice_issued_at only moves forward, except when a revision of
      the invoice already summarized (same number) arrives late; enforced
      by ClientSummaryProjector.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from billing_kernel.db.base import TimestampedBase


class ClientRecord(TimestampedBase):
    """
    Client row carrying denormalized last-invoice pointer fields.

    Contract:
        Lazily created by the first qualifying invoice event.  Only the
        last_invoice_* fields are written by the reconciliation engine;
        ``name`` is filled only when empty.
    """

    __tablename__ = "clients"

    __table_args__ = (
        UniqueConstraint("tenant_id", "client_id", name="uq_client_tenant_client"),
    )

    tenant_id: Mapped[str] = mapped_column(String(255), nullable=False)
    client_id: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    last_invoice_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    last_invoice_amount: Mapped[Decimal | None] = mapped_column(
        Numeric(38, 9), nullable=True
    )
    last_invoice_currency: Mapped[str | None] = mapped_column(String(3), nullable=True)
    last_invoice_issued_at: Mapped[datetime | None] = mapped_column(nullable=True)
    last_invoice_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    last_invoice_url: Mapped[str | None] = mapped_column(String(2000), nullable=True)
    last_invoice_paid_at: Mapped[datetime | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return f"<ClientRecord {self.tenant_id}:{self.client_id}>"
