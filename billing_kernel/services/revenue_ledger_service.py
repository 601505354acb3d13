"""
RevenueLedgerService -- period-bucketed revenue ledger and its outbox.

Responsibility:
    Maps a (client?, effective date) to a monthly bucket, queues computed
    revenue adjustments as ``LedgerApplication`` outbox rows, and applies
    each queued adjustment to its bucket with an atomic increment.

Architecture position:
    Kernel > Services.  ``enqueue`` runs inside the invoice transaction;
    ``apply_application`` runs in its own transaction after that commit.

Invariants enforced:
    - The increment is a single ``UPDATE ... SET revenue = revenue + :amount``
      so concurrent writers to one bucket commute.
    - An outbox row is applied at most once: its row is locked, and the
      increment and the APPLIED flip commit together.
    - Deltas that round to zero never touch the ledger.
    - operating_expenses is never written.

Failure modes:
    - IntegrityError when two writers create one bucket concurrently: the
      loser's savepoint is rolled back and the atomic update re-run.
    - LedgerApplicationNotFoundError for an unknown outbox id.
"""

from collections.abc import Sequence
from datetime import datetime, timezone
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from billing_kernel.domain.amounts import is_zero_money, round_money
from billing_kernel.domain.clock import Clock
from billing_kernel.domain.deltas import DeltaResult
from billing_kernel.domain.dtos import LedgerBucket, LedgerOutcome
from billing_kernel.exceptions import LedgerApplicationNotFoundError
from billing_kernel.logging_config import get_logger
from billing_kernel.models.revenue_ledger import (
    LedgerApplication,
    LedgerApplicationStatus,
    RevenueLedgerEntry,
)
from billing_kernel.services.base import BaseService

logger = get_logger("services.revenue_ledger")

DEFAULT_WORKSPACE_BUCKET = "workspace"
MAX_ERROR_LENGTH = 4000


def bucket_for(
    client_id: str | None,
    effective_at: datetime,
    workspace_bucket: str = DEFAULT_WORKSPACE_BUCKET,
) -> LedgerBucket:
    """
    Resolve the monthly bucket for an effective date.

    >>> bucket_for("c1", datetime(2026, 10, 3, tzinfo=timezone.utc)).bucket_key
    '2026-10_c1'
    """
    moment = effective_at.astimezone(timezone.utc)
    period = moment.strftime("%Y-%m")
    return LedgerBucket(
        period=period,
        label=moment.strftime("%B %Y"),
        bucket_key=f"{period}_{client_id or workspace_bucket}",
        client_id=client_id,
    )


class RevenueLedgerService(BaseService):
    """
    Writer for ``revenue_ledger`` and ``ledger_applications``.

    Contract:
        Flushes only.  The caller commits the transaction that contains
        ``enqueue`` and, separately, the one that contains
        ``apply_application``.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        workspace_bucket: str = DEFAULT_WORKSPACE_BUCKET,
    ):
        super().__init__(session, clock)
        self._workspace_bucket = workspace_bucket

    def bucket_for(self, client_id: str | None, effective_at: datetime) -> LedgerBucket:
        return bucket_for(client_id, effective_at, self._workspace_bucket)

    # ------------------------------------------------------------------
    # Increment
    # ------------------------------------------------------------------

    def increment(
        self,
        tenant_id: str,
        bucket: LedgerBucket,
        currency: str,
        amount: Decimal,
    ) -> bool:
        """
        Atomically add ``amount`` to the bucket, creating it on first use.

        Returns:
            False when the rounded amount is zero and nothing was written.
        """
        amount = round_money(amount)
        if is_zero_money(amount):
            return False

        stored_currency = self.session.execute(
            select(RevenueLedgerEntry.currency).where(
                RevenueLedgerEntry.tenant_id == tenant_id,
                RevenueLedgerEntry.bucket_key == bucket.bucket_key,
            )
        ).scalar_one_or_none()
        if stored_currency is not None and stored_currency != currency:
            logger.warning(
                "ledger_currency_mismatch",
                extra={
                    "bucket_key": bucket.bucket_key,
                    "bucket_currency": stored_currency,
                    "delta_currency": currency,
                },
            )

        if self._atomic_add(tenant_id, bucket, amount):
            self._log_increment(bucket, amount, created=False)
            return True

        savepoint = self.session.begin_nested()
        try:
            now = self._now()
            self.session.add(
                RevenueLedgerEntry(
                    tenant_id=tenant_id,
                    bucket_key=bucket.bucket_key,
                    client_id=bucket.client_id,
                    period=bucket.period,
                    label=bucket.label,
                    revenue=amount,
                    currency=currency,
                    created_at=now,
                    updated_at=now,
                )
            )
            self.session.flush()
            savepoint.commit()
            self._log_increment(bucket, amount, created=True)
        except IntegrityError:
            logger.debug(
                "ledger_bucket_race_retry",
                extra={"bucket_key": bucket.bucket_key},
            )
            savepoint.rollback()
            if not self._atomic_add(tenant_id, bucket, amount):
                raise
            self._log_increment(bucket, amount, created=False)
        return True

    def _atomic_add(self, tenant_id: str, bucket: LedgerBucket, amount: Decimal) -> bool:
        result = self.session.execute(
            update(RevenueLedgerEntry)
            .where(
                RevenueLedgerEntry.tenant_id == tenant_id,
                RevenueLedgerEntry.bucket_key == bucket.bucket_key,
            )
            .values(
                revenue=RevenueLedgerEntry.revenue + amount,
                updated_at=self._now(),
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0

    def _log_increment(self, bucket: LedgerBucket, amount: Decimal, created: bool) -> None:
        logger.info(
            "ledger_incremented",
            extra={
                "bucket_key": bucket.bucket_key,
                "period": bucket.period,
                "amount": str(amount),
                "bucket_created": created,
            },
        )

    # ------------------------------------------------------------------
    # Outbox
    # ------------------------------------------------------------------

    def enqueue(
        self,
        tenant_id: str,
        external_invoice_id: str,
        bucket: LedgerBucket,
        currency: str,
        deltas: DeltaResult,
    ) -> LedgerApplication | None:
        """
        Queue the event's net revenue adjustment.

        Returns:
            The pending outbox row, or None when the net delta rounds to zero.
        """
        net = deltas.net_delta
        if is_zero_money(net):
            return None

        now = self._now()
        application = LedgerApplication(
            tenant_id=tenant_id,
            external_invoice_id=external_invoice_id,
            client_id=bucket.client_id,
            period=bucket.period,
            label=bucket.label,
            bucket_key=bucket.bucket_key,
            currency=currency,
            delta_paid=deltas.delta_paid,
            delta_refunded=deltas.delta_refunded,
            net_delta=net,
            paid_total_after=deltas.paid_total,
            refunded_total_after=deltas.refunded_total,
            status=LedgerApplicationStatus.PENDING.value,
            attempts=0,
            created_at=now,
            updated_at=now,
        )
        self.session.add(application)
        self.session.flush()
        logger.info(
            "ledger_application_enqueued",
            extra={
                "application_id": str(application.id),
                "bucket_key": bucket.bucket_key,
                "net_delta": str(net),
            },
        )
        return application

    def apply_application(self, application_id: UUID) -> LedgerOutcome:
        """
        Apply one outbox row to its bucket exactly once.

        Raises:
            LedgerApplicationNotFoundError: no row with ``application_id``.
        """
        application = self.session.execute(
            select(LedgerApplication)
            .where(LedgerApplication.id == application_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if application is None:
            raise LedgerApplicationNotFoundError(application_id)

        if application.status_enum is LedgerApplicationStatus.APPLIED:
            return LedgerOutcome.ALREADY_APPLIED

        bucket = LedgerBucket(
            period=application.period,
            label=application.label,
            bucket_key=application.bucket_key,
            client_id=application.client_id,
        )
        self.increment(
            application.tenant_id, bucket, application.currency, application.net_delta
        )

        now = self._now()
        application.status = LedgerApplicationStatus.APPLIED.value
        application.attempts += 1
        application.applied_at = now
        application.last_error = None
        application.updated_at = now
        self.session.flush()
        return LedgerOutcome.APPLIED

    def record_failure(self, application_id: UUID, error: BaseException) -> None:
        """Note a failed attempt on a still-pending outbox row."""
        application = self.session.get(LedgerApplication, application_id)
        if application is None:
            raise LedgerApplicationNotFoundError(application_id)
        application.attempts += 1
        application.last_error = f"{type(error).__name__}: {error}"[:MAX_ERROR_LENGTH]
        application.updated_at = self._now()
        self.session.flush()

    def pending_for_invoice(
        self, tenant_id: str, external_invoice_id: str
    ) -> Sequence[LedgerApplication]:
        return self.session.execute(
            select(LedgerApplication)
            .where(
                LedgerApplication.tenant_id == tenant_id,
                LedgerApplication.external_invoice_id == external_invoice_id,
                LedgerApplication.status == LedgerApplicationStatus.PENDING.value,
            )
            .order_by(LedgerApplication.created_at, LedgerApplication.id)
        ).scalars().all()

    def pending(self, limit: int = 100) -> Sequence[LedgerApplication]:
        return self.session.execute(
            select(LedgerApplication)
            .where(LedgerApplication.status == LedgerApplicationStatus.PENDING.value)
            .order_by(LedgerApplication.created_at, LedgerApplication.id)
            .limit(max(limit, 1))
        ).scalars().all()
