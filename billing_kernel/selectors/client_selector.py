"""
Module: billing_kernel.selectors.client_selector
Responsibility: Read-only access to client last-invoice summaries.
Architecture position: Kernel > Selectors.
"""

from sqlalchemy import select

from billing_kernel.domain.dtos import ClientView
from billing_kernel.models.client import ClientRecord
from billing_kernel.selectors.base import BaseSelector


class ClientSelector(BaseSelector):

    def get(self, tenant_id: str, client_id: str) -> ClientView | None:
        row = self.session.execute(
            select(ClientRecord).where(
                ClientRecord.tenant_id == tenant_id,
                ClientRecord.client_id == client_id,
            )
        ).scalar_one_or_none()
        return ClientView.from_model(row) if row is not None else None

    def list_clients(self, tenant_id: str) -> list[ClientView]:
        rows = self.session.execute(
            select(ClientRecord)
            .where(ClientRecord.tenant_id == tenant_id)
            .order_by(ClientRecord.client_id)
        ).scalars().all()
        return [ClientView.from_model(row) for row in rows]
