"""
Module: billing_kernel.models.webhook_event
Responsibility: Registry of provider webhook event ids already reconciled.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - provider_event_id is unique (uq_webhook_provider_event).
    - A row is written in the same transaction as the invoice projection it
      guards, so a recorded id always means the projection committed.
"""

from datetime import datetime

from sqlalchemy import Boolean, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from billing_kernel.db.base import Base


class ProcessedWebhookEvent(Base):
    """One reconciled provider event delivery."""

    __tablename__ = "webhook_events"

    __table_args__ = (
        UniqueConstraint("provider_event_id", name="uq_webhook_provider_event"),
    )

    provider_event_id: Mapped[str] = mapped_column(String(255), nullable=False)
    event_type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    tenant_id: Mapped[str] = mapped_column(String(255), nullable=False)
    livemode: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # When the provider created the event (not when we received it)
    provider_created_at: Mapped[datetime | None] = mapped_column(nullable=True)
    processed_at: Mapped[datetime] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return f"<ProcessedWebhookEvent {self.provider_event_id}>"
