"""
Module: billing_kernel.models.revenue_ledger
Responsibility: ORM persistence for the period-bucketed revenue ledger and
    its outbox of pending revenue adjustments.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - One ledger row per (tenant_id, bucket_key), bucket_key being
      "{YYYY-MM}_{client_id}" or "{YYYY-MM}_workspace".
    - revenue equals the sum of applied LedgerApplication.net_delta values
      for the bucket; each application is applied exactly once.
    - One LedgerApplication per (tenant_id, external_invoice_id,
      paid_total_after, refunded_total_after).  Stored totals are monotonic,
      so the cumulative totals after a write identify its delta uniquely.

Failure modes:
    - IntegrityError on concurrent first insert of a bucket; the ledger
      service re-runs the atomic increment.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import Index, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from billing_kernel.db.base import TimestampedBase


class RevenueLedgerEntry(TimestampedBase):
    """
    Accumulated revenue for one tenant, optional client and calendar month.

    Contract:
        Created lazily on the first delta for its bucket, amended by atomic
        increments, never deleted.  operating_expenses is owned elsewhere and
        never touched by the reconciliation engine.
    """

    __tablename__ = "revenue_ledger"

    __table_args__ = (
        UniqueConstraint("tenant_id", "bucket_key", name="uq_revenue_tenant_bucket"),
        Index("idx_revenue_tenant_period", "tenant_id", "period"),
    )

    tenant_id: Mapped[str] = mapped_column(String(255), nullable=False)
    bucket_key: Mapped[str] = mapped_column(String(300), nullable=False)
    client_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # "YYYY-MM"
    period: Mapped[str] = mapped_column(String(7), nullable=False)

    # "October 2026"
    label: Mapped[str | None] = mapped_column(String(50), nullable=True)

    revenue: Mapped[Decimal] = mapped_column(
        Numeric(38, 9), nullable=False, default=Decimal("0")
    )
    operating_expenses: Mapped[Decimal] = mapped_column(
        Numeric(38, 9), nullable=False, default=Decimal("0")
    )
    currency: Mapped[str | None] = mapped_column(String(3), nullable=True)

    def __repr__(self) -> str:
        return f"<RevenueLedgerEntry {self.tenant_id}:{self.bucket_key} {self.revenue}>"


class LedgerApplicationStatus(str, Enum):
    """Outbox row lifecycle: PENDING -> APPLIED (terminal)."""

    PENDING = "pending"
    APPLIED = "applied"


class LedgerApplication(TimestampedBase):
    """
    Outbox row for one computed revenue adjustment.

    Contract:
        Inserted in the same transaction as the invoice write that produced
        the delta.  Applied to the ledger in a later transaction that also
        flips status to APPLIED, so a retried application can see it already
        ran.  The stored delta is reused on retry, never recomputed.
    """

    __tablename__ = "ledger_applications"

    __table_args__ = (
        UniqueConstraint(
            "tenant_id",
            "external_invoice_id",
            "paid_total_after",
            "refunded_total_after",
            name="uq_ledger_application_totals",
        ),
        Index("idx_ledger_application_status", "status", "created_at"),
        Index("idx_ledger_application_invoice", "tenant_id", "external_invoice_id"),
    )

    tenant_id: Mapped[str] = mapped_column(String(255), nullable=False)
    external_invoice_id: Mapped[str] = mapped_column(String(255), nullable=False)
    client_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    period: Mapped[str] = mapped_column(String(7), nullable=False)
    label: Mapped[str] = mapped_column(String(50), nullable=False)
    bucket_key: Mapped[str] = mapped_column(String(300), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)

    delta_paid: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    delta_refunded: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    net_delta: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    paid_total_after: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    refunded_total_after: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=LedgerApplicationStatus.PENDING.value
    )
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_error: Mapped[str | None] = mapped_column(String(4000), nullable=True)
    applied_at: Mapped[datetime | None] = mapped_column(nullable=True)

    @property
    def status_enum(self) -> LedgerApplicationStatus:
        return LedgerApplicationStatus(self.status)

    def __repr__(self) -> str:
        return (
            f"<LedgerApplication {self.external_invoice_id} "
            f"{self.bucket_key} {self.net_delta} {self.status}>"
        )
