"""
Module: billing_kernel.selectors.revenue_selector
Responsibility: Read-only listing of revenue ledger buckets for dashboards.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Page size is clamped to [1, max_limit]; default 36 (three years of
      monthly buckets).
    - Ordering is deterministic: period, then bucket key.
"""

from sqlalchemy import select
from sqlalchemy.orm import Session

from billing_kernel.domain.dtos import RevenueLedgerEntryView
from billing_kernel.models.revenue_ledger import RevenueLedgerEntry
from billing_kernel.selectors.base import BaseSelector, clamp_limit

DEFAULT_LIMIT = 36
MAX_LIMIT = 100


class RevenueLedgerSelector(BaseSelector):
    """Selector for ``revenue_ledger`` rows."""

    def __init__(
        self,
        session: Session,
        default_limit: int = DEFAULT_LIMIT,
        max_limit: int = MAX_LIMIT,
    ):
        super().__init__(session)
        self._default_limit = default_limit
        self._max_limit = max_limit

    def list_entries(
        self,
        tenant_id: str,
        client_id: str | None = None,
        limit: int | None = None,
    ) -> list[RevenueLedgerEntryView]:
        """
        List ledger buckets for a tenant, optionally for one client.

        Args:
            tenant_id: Tenant to list.
            client_id: Restrict to one client's buckets.
            limit: Page size, clamped to [1, max_limit].

        Returns:
            Views sorted by period, then bucket key.
        """
        query = select(RevenueLedgerEntry).where(RevenueLedgerEntry.tenant_id == tenant_id)
        if client_id is not None:
            query = query.where(RevenueLedgerEntry.client_id == client_id)
        query = query.order_by(RevenueLedgerEntry.period, RevenueLedgerEntry.bucket_key).limit(
            clamp_limit(limit, self._default_limit, self._max_limit)
        )
        rows = self.session.execute(query).scalars().all()
        return [RevenueLedgerEntryView.from_model(row) for row in rows]

    def get_bucket(self, tenant_id: str, bucket_key: str) -> RevenueLedgerEntryView | None:
        row = self.session.execute(
            select(RevenueLedgerEntry).where(
                RevenueLedgerEntry.tenant_id == tenant_id,
                RevenueLedgerEntry.bucket_key == bucket_key,
            )
        ).scalar_one_or_none()
        return RevenueLedgerEntryView.from_model(row) if row is not None else None
