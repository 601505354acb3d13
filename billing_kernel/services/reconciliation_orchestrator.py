"""
ReconciliationOrchestrator -- per-event entry point of the billing engine.

Responsibility:
    Sequences parsing, normalization, the invoice projector, the client
    summary projector and the revenue ledger for one webhook delivery,
    and owns the transaction boundaries of that sequence.

Architecture position:
    Kernel > Services -- the only kernel service that commits.  Takes a
    session factory and opens one ``session_scope`` per unit of work.

Data flow:
    payload -> parse_invoice_event -> resolve_invoice_facts (pure, no
    transaction) -> [txn: registry claim -> invoice projector -> client
    summary projector -> outbox enqueue] -> commit -> [txn per outbox
    row: ledger increment + mark applied].

Invariants enforced:
    - Invoice, client summary, processed-event row and outbox row commit
      together or not at all.
    - The ledger is only ever moved by committed outbox rows, each applied
      once, so redelivery and retries cannot double-count revenue.
    - Events missing tenant or client metadata cause zero writes.

Failure modes:
    - SQLAlchemyError inside the reconciliation transaction: rolled back
      and propagated so the webhook acknowledgement fails.
    - SQLAlchemyError while applying the ledger after commit: the outbox
      row stays pending with the error recorded, and
      LedgerApplicationError is raised.  A redelivery or
      ``drain_pending_ledger`` applies it later from the stored delta.
"""

from collections.abc import Mapping
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from billing_kernel.db.engine import session_scope
from billing_kernel.domain.amounts import normalize_amount
from billing_kernel.domain.clock import Clock, SystemClock
from billing_kernel.domain.dtos import (
    ClientSummary,
    DrainReport,
    InvoiceFields,
    LedgerOutcome,
    ReconcileStatus,
    ReconciliationResult,
)
from billing_kernel.domain.events import (
    ChargeRefundEvent,
    InvoiceEvent,
    from_epoch_seconds,
    parse_charge_refund_event,
    parse_invoice_event,
    resolve_invoice_facts,
)
from billing_kernel.exceptions import LedgerApplicationError, MalformedEventError
from billing_kernel.logging_config import LogContext, get_logger
from billing_kernel.services.client_summary_projector import ClientSummaryProjector
from billing_kernel.services.invoice_projector import InvoiceProjector
from billing_kernel.services.revenue_ledger_service import (
    DEFAULT_WORKSPACE_BUCKET,
    RevenueLedgerService,
)
from billing_kernel.services.webhook_event_registry import WebhookEventRegistry

logger = get_logger("services.reconciliation")


class ReconciliationOrchestrator:
    """
    Folds provider invoice events into the three billing projections.

    Contract:
        ``process`` and ``reconcile`` return a ``ReconciliationResult`` for
        every event that can be acknowledged (applied, duplicate,
        discarded, skipped) and raise for anything the provider should
        redeliver.

    Guarantees:
        - Safe under at-least-once, out-of-order and concurrent delivery.
        - ``now`` is read once per event from the injected clock.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        clock: Clock | None = None,
        *,
        default_currency: str = "USD",
        workspace_bucket: str = DEFAULT_WORKSPACE_BUCKET,
        drain_batch_size: int = 100,
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._default_currency = default_currency
        self._workspace_bucket = workspace_bucket
        self._drain_batch_size = drain_batch_size

    @property
    def clock(self) -> Clock:
        return self._clock

    # ------------------------------------------------------------------
    # Boundary entry points
    # ------------------------------------------------------------------

    def process(self, payload: Mapping[str, Any]) -> ReconciliationResult:
        """Parse a verified invoice webhook payload and reconcile it."""
        try:
            event = parse_invoice_event(payload, self._default_currency)
        except MalformedEventError as exc:
            return self._discard(exc)
        return self.reconcile(event)

    def process_charge_refund(self, payload: Mapping[str, Any]) -> ReconciliationResult:
        """Parse a verified charge-refunded payload and reconcile it."""
        try:
            event = parse_charge_refund_event(payload)
        except MalformedEventError as exc:
            return self._discard(exc)
        return self.reconcile_charge_refund(event)

    def _discard(self, exc: MalformedEventError) -> ReconciliationResult:
        logger.warning(
            "event_discarded",
            extra={
                "reason": exc.reason,
                "missing_fields": list(exc.missing_fields),
                "external_invoice_id": exc.external_invoice_id,
            },
        )
        return ReconciliationResult(
            status=ReconcileStatus.DISCARDED,
            external_invoice_id=exc.external_invoice_id,
            reason=exc.reason,
        )

    # ------------------------------------------------------------------
    # Invoice events
    # ------------------------------------------------------------------

    def reconcile(self, event: InvoiceEvent) -> ReconciliationResult:
        """
        Reconcile one invoice snapshot.

        Raises:
            SQLAlchemyError: the reconciliation transaction failed.
            LedgerApplicationError: committed, but the ledger could not be
                updated yet.
        """
        with LogContext.bind(
            correlation_id=event.provider_event_id or str(uuid4()),
            tenant_id=event.tenant_id,
            client_id=event.client_id,
            external_invoice_id=event.external_invoice_id,
            provider_event_id=event.provider_event_id,
        ):
            if not event.tenant_id or not event.client_id:
                missing = [
                    name
                    for name, value in (("tenantId", event.tenant_id), ("clientId", event.client_id))
                    if not value
                ]
                return self._discard(
                    MalformedEventError(
                        "missing required metadata: " + ", ".join(missing),
                        missing_fields=missing,
                        external_invoice_id=event.external_invoice_id,
                    )
                )

            now = self._clock.now()
            facts = resolve_invoice_facts(event, now)

            with session_scope(self._session_factory) as session:
                if not self._claim_event(session, event.provider_event_id, event.tenant_id,
                                         event.event_type, event.livemode,
                                         event.provider_created_epoch_seconds):
                    duplicate = True
                else:
                    duplicate = False
                    projection = InvoiceProjector(session, self._clock).project(
                        event.tenant_id,
                        event.external_invoice_id,
                        InvoiceFields.from_event(event, facts),
                    )
                    summary_outcome = ClientSummaryProjector(session, self._clock).apply(
                        event.tenant_id,
                        event.client_id,
                        ClientSummary.from_event(event, facts),
                    )
                    ledger = self._ledger(session)
                    bucket = ledger.bucket_for(event.client_id, facts.effective_ledger_date(now))
                    ledger.enqueue(
                        event.tenant_id,
                        event.external_invoice_id,
                        bucket,
                        facts.currency,
                        projection.deltas,
                    )

            ledger_outcome = self._apply_pending(event.tenant_id, event.external_invoice_id)

            if duplicate:
                return ReconciliationResult(
                    status=ReconcileStatus.DUPLICATE,
                    tenant_id=event.tenant_id,
                    external_invoice_id=event.external_invoice_id,
                    client_id=event.client_id,
                    provider_event_id=event.provider_event_id,
                    ledger=ledger_outcome,
                )

            deltas = projection.deltas
            result = ReconciliationResult(
                status=ReconcileStatus.APPLIED,
                tenant_id=event.tenant_id,
                external_invoice_id=event.external_invoice_id,
                client_id=event.client_id,
                provider_event_id=event.provider_event_id,
                finance_status=facts.finance_status,
                invoice_created=projection.created,
                delta_paid=deltas.delta_paid,
                delta_refunded=deltas.delta_refunded,
                net_delta=deltas.net_delta,
                ledger_period=bucket.period,
                client_summary=summary_outcome,
                ledger=ledger_outcome,
                anomalies=deltas.anomalies,
            )
            self._log_result(result)
            return result

    # ------------------------------------------------------------------
    # Charge refunds
    # ------------------------------------------------------------------

    def reconcile_charge_refund(self, event: ChargeRefundEvent) -> ReconciliationResult:
        """
        Advance an invoice's refunded total from a charge refund notification.

        Refunds for charges not tied to a known invoice are acknowledged as
        SKIPPED.
        """
        with LogContext.bind(
            correlation_id=event.provider_event_id or str(uuid4()),
            tenant_id=event.tenant_id,
            external_invoice_id=event.external_invoice_id,
            provider_event_id=event.provider_event_id,
        ):
            if not event.external_invoice_id:
                return self._skip(event, "charge_without_invoice")

            now = self._clock.now()
            refunded_total = normalize_amount(event.refunded_minor_units)

            with session_scope(self._session_factory) as session:
                if not self._claim_event(session, event.provider_event_id, event.tenant_id,
                                         event.event_type, event.livemode,
                                         event.provider_created_epoch_seconds):
                    duplicate = True
                else:
                    duplicate = False
                    projector = InvoiceProjector(session, self._clock)
                    record = projector.get_for_update(event.tenant_id, event.external_invoice_id)
                    if record is None:
                        return self._skip(event, "unknown_invoice")
                    projection = projector.advance_refund(record, refunded_total)
                    ledger = self._ledger(session)
                    bucket = ledger.bucket_for(record.client_id, record.paid_at or now)
                    ledger.enqueue(
                        event.tenant_id,
                        event.external_invoice_id,
                        bucket,
                        record.currency,
                        projection.deltas,
                    )
                    client_id = record.client_id
                    finance_status = projection.invoice.status

            ledger_outcome = self._apply_pending(event.tenant_id, event.external_invoice_id)

            if duplicate:
                return ReconciliationResult(
                    status=ReconcileStatus.DUPLICATE,
                    tenant_id=event.tenant_id,
                    external_invoice_id=event.external_invoice_id,
                    provider_event_id=event.provider_event_id,
                    ledger=ledger_outcome,
                )

            deltas = projection.deltas
            result = ReconciliationResult(
                status=ReconcileStatus.APPLIED,
                tenant_id=event.tenant_id,
                external_invoice_id=event.external_invoice_id,
                client_id=client_id,
                provider_event_id=event.provider_event_id,
                finance_status=finance_status,
                delta_paid=deltas.delta_paid,
                delta_refunded=deltas.delta_refunded,
                net_delta=deltas.net_delta,
                ledger_period=bucket.period,
                ledger=ledger_outcome,
                anomalies=deltas.anomalies,
            )
            self._log_result(result)
            return result

    def _skip(self, event: ChargeRefundEvent, reason: str) -> ReconciliationResult:
        logger.info(
            "charge_refund_skipped",
            extra={"reason": reason, "charge_id": event.charge_id},
        )
        return ReconciliationResult(
            status=ReconcileStatus.SKIPPED,
            tenant_id=event.tenant_id,
            external_invoice_id=event.external_invoice_id,
            provider_event_id=event.provider_event_id,
            reason=reason,
        )

    # ------------------------------------------------------------------
    # Ledger outbox
    # ------------------------------------------------------------------

    def drain_pending_ledger(self, limit: int | None = None) -> DrainReport:
        """
        Apply pending outbox rows, oldest first, one transaction per row.

        Failures are logged and counted; the rows stay pending.
        """
        with session_scope(self._session_factory) as session:
            ids = [a.id for a in self._ledger(session).pending(limit or self._drain_batch_size)]

        applied = already_applied = failed = 0
        for application_id in ids:
            try:
                outcome = self._apply_one(application_id)
            except SQLAlchemyError as exc:
                failed += 1
                self._record_failure(application_id, exc)
                continue
            if outcome == LedgerOutcome.APPLIED:
                applied += 1
            else:
                already_applied += 1

        report = DrainReport(applied=applied, already_applied=already_applied, failed=failed)
        logger.info(
            "ledger_drained",
            extra={
                "applied": report.applied,
                "already_applied": report.already_applied,
                "failed": report.failed,
            },
        )
        return report

    def _apply_pending(self, tenant_id: str, external_invoice_id: str) -> LedgerOutcome:
        with session_scope(self._session_factory) as session:
            ids = [
                a.id for a in self._ledger(session).pending_for_invoice(tenant_id, external_invoice_id)
            ]
        if not ids:
            return LedgerOutcome.NOT_REQUIRED

        outcome = LedgerOutcome.ALREADY_APPLIED
        for position, application_id in enumerate(ids):
            try:
                if self._apply_one(application_id) == LedgerOutcome.APPLIED:
                    outcome = LedgerOutcome.APPLIED
            except SQLAlchemyError as exc:
                self._record_failure(application_id, exc)
                raise LedgerApplicationError(
                    external_invoice_id, ids[position:], str(exc)
                ) from exc
        return outcome

    def _apply_one(self, application_id: UUID) -> LedgerOutcome:
        with session_scope(self._session_factory) as session:
            return self._ledger(session).apply_application(application_id)

    def _record_failure(self, application_id: UUID, exc: Exception) -> None:
        logger.error(
            "ledger_application_failed",
            extra={"application_id": str(application_id)},
            exc_info=exc,
        )
        try:
            with session_scope(self._session_factory) as session:
                self._ledger(session).record_failure(application_id, exc)
        except SQLAlchemyError:
            logger.exception(
                "ledger_failure_not_recorded",
                extra={"application_id": str(application_id)},
            )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _ledger(self, session: Session) -> RevenueLedgerService:
        return RevenueLedgerService(session, self._clock, self._workspace_bucket)

    def _claim_event(
        self,
        session: Session,
        provider_event_id: str | None,
        tenant_id: str,
        event_type: str | None,
        livemode: bool,
        provider_created_epoch_seconds: int | None,
    ) -> bool:
        """Record the provider event id; False when it was already processed."""
        if provider_event_id is None:
            return True
        registry = WebhookEventRegistry(session, self._clock)
        if registry.is_processed(provider_event_id) or not registry.record(
            provider_event_id,
            tenant_id,
            event_type=event_type,
            livemode=livemode,
            provider_created_at=from_epoch_seconds(provider_created_epoch_seconds),
        ):
            logger.info("duplicate_event_ignored")
            return False
        return True

    def _log_result(self, result: ReconciliationResult) -> None:
        logger.info(
            "event_reconciled",
            extra={
                "status": result.status.value,
                "finance_status": result.finance_status.value if result.finance_status else None,
                "invoice_created": result.invoice_created,
                "delta_paid": str(result.delta_paid),
                "delta_refunded": str(result.delta_refunded),
                "net_delta": str(result.net_delta),
                "ledger_period": result.ledger_period,
                "client_summary": result.client_summary.value if result.client_summary else None,
                "ledger": result.ledger.value,
                "anomaly_count": len(result.anomalies),
            },
        )
