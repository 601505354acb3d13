"""
InvoiceProjector -- transactional upsert of the canonical invoice record.

Responsibility:
    Reads the stored invoice under a row lock, computes the paid/refunded
    deltas against the incoming cumulative totals, and writes the new
    snapshot.  The previous amounts are captured inside the same
    transaction, so two concurrent deliveries for one invoice can never
    both observe the same "previous" value.

Architecture position:
    Kernel > Services.  Flushes only; the orchestrator commits.

Invariants enforced:
    - Exactly one row per (tenant_id, external_invoice_id).
    - Stored paid/refunded totals never decrease (written from
      ``DeltaResult.paid_total`` / ``refunded_total``).
    - amount_remaining is max(amount - amount_paid, 0) unless reported.

Failure modes:
    - IntegrityError on a concurrent first insert: the savepoint is rolled
      back and the winner's row is re-read under lock, then updated.
    - Any other SQLAlchemyError propagates; the caller rolls back.
"""

from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from billing_kernel.domain.amounts import ZERO
from billing_kernel.domain.clock import Clock
from billing_kernel.domain.deltas import DeltaResult, compute_deltas
from billing_kernel.domain.dtos import InvoiceFields, InvoiceProjection, InvoiceView
from billing_kernel.logging_config import get_logger
from billing_kernel.models.invoice import InvoiceRecord
from billing_kernel.services.base import BaseService

logger = get_logger("services.invoice_projector")


class InvoiceProjector(BaseService):
    """
    Writer for the ``invoices`` table.

    Guarantees:
        - ``project`` returns the previous paid/refunded totals read under
          the same lock that protects the write.
        - Regressions are logged and reported, never written.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session, clock)

    def _lock(self, tenant_id: str, external_invoice_id: str) -> InvoiceRecord | None:
        return self.session.execute(
            select(InvoiceRecord)
            .where(
                InvoiceRecord.tenant_id == tenant_id,
                InvoiceRecord.external_invoice_id == external_invoice_id,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def get_for_update(
        self, tenant_id: str, external_invoice_id: str
    ) -> InvoiceRecord | None:
        """Return the stored invoice locked for the rest of the transaction."""
        return self._lock(tenant_id, external_invoice_id)

    def project(
        self,
        tenant_id: str,
        external_invoice_id: str,
        fields: InvoiceFields,
    ) -> InvoiceProjection:
        """
        Upsert the invoice and return the previous amounts and deltas.

        Postconditions:
            - The row exists and reflects ``fields`` with monotonic totals.
            - The returned ``deltas`` are non-negative.
        """
        record = self._lock(tenant_id, external_invoice_id)
        created = False

        if record is None:
            deltas = compute_deltas(None, None, fields.amount_paid, fields.amount_refunded)
            savepoint = self.session.begin_nested()
            try:
                record = InvoiceRecord(
                    tenant_id=tenant_id,
                    external_invoice_id=external_invoice_id,
                    created_at=self._now(),
                )
                self._apply_fields(record, fields, deltas)
                self.session.add(record)
                self.session.flush()
                savepoint.commit()
                created = True
            except IntegrityError:
                logger.debug(
                    "invoice_insert_race_retry",
                    extra={
                        "tenant_id": tenant_id,
                        "external_invoice_id": external_invoice_id,
                    },
                )
                savepoint.rollback()
                record = self._lock(tenant_id, external_invoice_id)
                if record is None:
                    raise

        if created:
            previous_paid = ZERO
            previous_refunded = ZERO
        else:
            previous_paid = record.amount_paid
            previous_refunded = record.amount_refunded
            deltas = compute_deltas(
                previous_paid,
                previous_refunded,
                fields.amount_paid,
                fields.amount_refunded,
            )
            self._apply_fields(record, fields, deltas)
            self.session.flush()

        self._log_anomalies(tenant_id, external_invoice_id, deltas)
        logger.info(
            "invoice_projected",
            extra={
                "invoice_created": created,
                "status": fields.status.value,
                "previous_paid": str(previous_paid),
                "previous_refunded": str(previous_refunded),
                "delta_paid": str(deltas.delta_paid),
                "delta_refunded": str(deltas.delta_refunded),
            },
        )
        return InvoiceProjection(
            invoice=InvoiceView.from_model(record),
            created=created,
            previous_paid=previous_paid,
            previous_refunded=previous_refunded,
            deltas=deltas,
        )

    def advance_refund(
        self,
        record: InvoiceRecord,
        refunded_total: Decimal,
    ) -> InvoiceProjection:
        """
        Move a locked invoice's refunded total forward; paid is unchanged.

        Preconditions:
            - ``record`` was obtained with ``get_for_update`` in this
              transaction.
        """
        previous_paid = record.amount_paid
        previous_refunded = record.amount_refunded
        deltas = compute_deltas(previous_paid, previous_refunded, previous_paid, refunded_total)

        record.amount_refunded = deltas.refunded_total
        record.updated_at = self._now()
        self.session.flush()

        self._log_anomalies(record.tenant_id, record.external_invoice_id, deltas)
        logger.info(
            "invoice_refund_advanced",
            extra={
                "previous_refunded": str(previous_refunded),
                "delta_refunded": str(deltas.delta_refunded),
            },
        )
        return InvoiceProjection(
            invoice=InvoiceView.from_model(record),
            created=False,
            previous_paid=previous_paid,
            previous_refunded=previous_refunded,
            deltas=deltas,
        )

    def _apply_fields(
        self, record: InvoiceRecord, fields: InvoiceFields, deltas: DeltaResult
    ) -> None:
        record.client_id = fields.client_id
        record.amount = fields.amount
        record.status = fields.status.value
        record.issued_at = fields.issued_at
        record.currency = fields.currency
        record.amount_paid = deltas.paid_total
        record.amount_refunded = deltas.refunded_total
        if fields.amount_remaining is not None:
            record.amount_remaining = fields.amount_remaining
        else:
            record.amount_remaining = max(fields.amount - deltas.paid_total, ZERO)

        # Optional descriptive fields keep their stored value when not reported
        for attr, value in (
            ("provider_status", fields.provider_status),
            ("due_at", fields.due_at),
            ("paid_at", fields.paid_at),
            ("client_name", fields.client_name),
            ("description", fields.description),
            ("hosted_invoice_url", fields.hosted_invoice_url),
            ("number", fields.number),
            ("payment_reference", fields.payment_reference),
            ("collection_method", fields.collection_method),
        ):
            if value is not None:
                setattr(record, attr, value)

        record.updated_at = self._now()

    def _log_anomalies(
        self, tenant_id: str, external_invoice_id: str, deltas: DeltaResult
    ) -> None:
        for anomaly in deltas.anomalies:
            logger.warning(
                "monetary_regression_detected",
                extra={
                    "tenant_id": tenant_id,
                    "external_invoice_id": external_invoice_id,
                    "field": anomaly.field.value,
                    "previous": str(anomaly.previous),
                    "incoming": str(anomaly.incoming),
                    "shortfall": str(anomaly.shortfall),
                },
            )
