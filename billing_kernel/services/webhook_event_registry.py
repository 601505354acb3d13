"""
WebhookEventRegistry -- record of provider event ids already reconciled.

Responsibility:
    Short-circuits redelivery of an event the provider already delivered
    and we already committed.  Events without a provider id are never
    deduplicated here; the delta calculator makes their replay harmless.

Architecture position:
    Kernel > Services.  Runs in the reconciliation transaction, so a
    rolled-back reconciliation also rolls back its registry row.

Failure modes:
    - IntegrityError when a concurrent delivery of the same id commits
      first; ``record`` returns False after rolling back its savepoint.
"""

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from billing_kernel.logging_config import get_logger
from billing_kernel.models.webhook_event import ProcessedWebhookEvent
from billing_kernel.services.base import BaseService

logger = get_logger("services.webhook_events")


class WebhookEventRegistry(BaseService):

    def is_processed(self, provider_event_id: str) -> bool:
        return (
            self.session.execute(
                select(ProcessedWebhookEvent.id).where(
                    ProcessedWebhookEvent.provider_event_id == provider_event_id
                )
            ).first()
            is not None
        )

    def record(
        self,
        provider_event_id: str,
        tenant_id: str,
        event_type: str | None = None,
        livemode: bool = False,
        provider_created_at: datetime | None = None,
    ) -> bool:
        """
        Record the event id.

        Returns:
            True if recorded, False if another transaction already has it.
        """
        savepoint = self.session.begin_nested()
        try:
            self.session.add(
                ProcessedWebhookEvent(
                    provider_event_id=provider_event_id,
                    tenant_id=tenant_id,
                    event_type=event_type,
                    livemode=livemode,
                    provider_created_at=provider_created_at,
                    processed_at=self._now(),
                )
            )
            self.session.flush()
            savepoint.commit()
        except IntegrityError:
            savepoint.rollback()
            logger.info(
                "webhook_event_already_recorded",
                extra={"provider_event_id": provider_event_id},
            )
            return False
        return True
