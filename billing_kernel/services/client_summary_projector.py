"""
ClientSummaryProjector -- conditional "last invoice" pointer on the client row.

Responsibility:
    Keeps each client's last-invoice fields pointing at the most recently
    issued invoice, tolerating out-of-order delivery.

Architecture position:
    Kernel > Services.  Runs in the same transaction as the invoice write.

Invariants enforced:
    - Overwrite when the event's issued-at is at or after the stored one.
    - An older event overwrites only when its invoice number equals the
      stored (non-null) number: a late revision of the same invoice.
    - Any other older event is a no-op.
    - ``name`` is filled only when the stored name is empty.

Failure modes:
    - IntegrityError on a concurrent first insert is retried under lock.
"""

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from billing_kernel.domain.dtos import ClientSummary, ClientSummaryOutcome
from billing_kernel.logging_config import get_logger
from billing_kernel.models.client import ClientRecord
from billing_kernel.services.base import BaseService

logger = get_logger("services.client_summary")


def decide_summary_outcome(
    record: ClientRecord | None, summary: ClientSummary
) -> ClientSummaryOutcome:
    """Pure overwrite decision for a stored client row and an incoming summary."""
    if record is None:
        return ClientSummaryOutcome.CREATED
    stored_issued = record.last_invoice_issued_at
    if stored_issued is None or summary.issued_at >= stored_issued:
        return ClientSummaryOutcome.UPDATED
    if record.last_invoice_number is not None and summary.number == record.last_invoice_number:
        return ClientSummaryOutcome.REVISED
    return ClientSummaryOutcome.STALE


class ClientSummaryProjector(BaseService):
    """Writer for the last-invoice fields of the ``clients`` table."""

    def _lock(self, tenant_id: str, client_id: str) -> ClientRecord | None:
        return self.session.execute(
            select(ClientRecord)
            .where(
                ClientRecord.tenant_id == tenant_id,
                ClientRecord.client_id == client_id,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def apply(
        self, tenant_id: str, client_id: str, summary: ClientSummary
    ) -> ClientSummaryOutcome:
        record = self._lock(tenant_id, client_id)

        if record is None:
            savepoint = self.session.begin_nested()
            try:
                record = ClientRecord(
                    tenant_id=tenant_id,
                    client_id=client_id,
                    created_at=self._now(),
                )
                self._write(record, summary)
                self.session.add(record)
                self.session.flush()
                savepoint.commit()
                self._log(ClientSummaryOutcome.CREATED, summary)
                return ClientSummaryOutcome.CREATED
            except IntegrityError:
                savepoint.rollback()
                record = self._lock(tenant_id, client_id)
                if record is None:
                    raise

        outcome = decide_summary_outcome(record, summary)
        if outcome != ClientSummaryOutcome.STALE:
            self._write(record, summary)
            self.session.flush()
        self._log(outcome, summary)
        return outcome

    def _write(self, record: ClientRecord, summary: ClientSummary) -> None:
        record.last_invoice_status = summary.status.value
        record.last_invoice_amount = summary.amount
        record.last_invoice_currency = summary.currency
        record.last_invoice_issued_at = summary.issued_at
        record.last_invoice_number = summary.number
        record.last_invoice_url = summary.url
        record.last_invoice_paid_at = summary.paid_at
        if not record.name and summary.client_name:
            record.name = summary.client_name
        record.updated_at = self._now()

    def _log(self, outcome: ClientSummaryOutcome, summary: ClientSummary) -> None:
        level = logger.debug if outcome == ClientSummaryOutcome.STALE else logger.info
        level(
            "client_summary_applied",
            extra={
                "outcome": outcome.value,
                "issued_at": summary.issued_at.isoformat(),
                "invoice_number": summary.number,
            },
        )
