"""
Tests for RevenueLedgerService (``billing_kernel.services.revenue_ledger_service``).

Covers bucket resolution, the atomic increment, and the outbox
(enqueue / apply exactly once / failure bookkeeping).
"""

from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from billing_kernel.db.engine import session_scope
from billing_kernel.domain.deltas import DeltaResult
from billing_kernel.domain.dtos import LedgerOutcome
from billing_kernel.exceptions import LedgerApplicationNotFoundError
from billing_kernel.models.revenue_ledger import (
    LedgerApplication,
    LedgerApplicationStatus,
    RevenueLedgerEntry,
)
from billing_kernel.selectors.revenue_selector import RevenueLedgerSelector
from billing_kernel.services.revenue_ledger_service import RevenueLedgerService, bucket_for

OCT_3 = datetime(2026, 10, 3, 15, 30, tzinfo=timezone.utc)


def _deltas(paid="30.00", refunded="0", paid_total="30.00", refunded_total="0"):
    return DeltaResult(
        delta_paid=Decimal(paid),
        delta_refunded=Decimal(refunded),
        paid_total=Decimal(paid_total),
        refunded_total=Decimal(refunded_total),
    )


@pytest.fixture
def ledger_scope(session_factory, deterministic_clock):
    """Run ``fn(service)`` in its own committed transaction."""

    def _run(fn):
        with session_scope(session_factory) as session:
            return fn(RevenueLedgerService(session, deterministic_clock))

    return _run


def _bucket_revenue(session_factory, bucket_key, tenant_id="t1"):
    with session_scope(session_factory) as session:
        view = RevenueLedgerSelector(session).get_bucket(tenant_id, bucket_key)
        return view.revenue if view is not None else None


class TestBucketFor:

    def test_client_bucket(self):
        bucket = bucket_for("c1", OCT_3)
        assert bucket.period == "2026-10"
        assert bucket.label == "October 2026"
        assert bucket.bucket_key == "2026-10_c1"
        assert bucket.client_id == "c1"

    def test_workspace_bucket_without_client(self):
        bucket = bucket_for(None, OCT_3)
        assert bucket.bucket_key == "2026-10_workspace"
        assert bucket.client_id is None

    def test_custom_workspace_name(self):
        assert bucket_for(None, OCT_3, "firm").bucket_key == "2026-10_firm"

    def test_period_uses_utc(self):
        late_evening = datetime(2026, 10, 31, 23, 30, tzinfo=timezone.utc)
        assert bucket_for("c1", late_evening).period == "2026-10"


class TestIncrement:

    def test_creates_then_adds(self, ledger_scope, session_factory):
        bucket = bucket_for("c1", OCT_3)
        assert ledger_scope(lambda s: s.increment("t1", bucket, "USD", Decimal("30.00")))
        assert ledger_scope(lambda s: s.increment("t1", bucket, "USD", Decimal("20.00")))
        assert _bucket_revenue(session_factory, bucket.bucket_key) == Decimal("50.00")

    def test_negative_amount_reduces_revenue(self, ledger_scope, session_factory):
        bucket = bucket_for("c1", OCT_3)
        ledger_scope(lambda s: s.increment("t1", bucket, "USD", Decimal("50.00")))
        ledger_scope(lambda s: s.increment("t1", bucket, "USD", Decimal("-10.00")))
        assert _bucket_revenue(session_factory, bucket.bucket_key) == Decimal("40.00")

    def test_zero_amount_writes_nothing(self, ledger_scope, session_factory):
        bucket = bucket_for("c1", OCT_3)
        assert not ledger_scope(lambda s: s.increment("t1", bucket, "USD", Decimal("0.004")))
        assert _bucket_revenue(session_factory, bucket.bucket_key) is None

    def test_buckets_are_per_tenant(self, ledger_scope, session_factory):
        bucket = bucket_for("c1", OCT_3)
        ledger_scope(lambda s: s.increment("t1", bucket, "USD", Decimal("30.00")))
        ledger_scope(lambda s: s.increment("t2", bucket, "USD", Decimal("5.00")))
        assert _bucket_revenue(session_factory, bucket.bucket_key, "t1") == Decimal("30.00")
        assert _bucket_revenue(session_factory, bucket.bucket_key, "t2") == Decimal("5.00")

    def test_new_bucket_records_metadata(self, ledger_scope, session_factory):
        bucket = bucket_for("c1", OCT_3)
        ledger_scope(lambda s: s.increment("t1", bucket, "EUR", Decimal("12.50")))
        with session_scope(session_factory) as session:
            entry = RevenueLedgerSelector(session).get_bucket("t1", bucket.bucket_key)
        assert entry.period == "2026-10"
        assert entry.label == "October 2026"
        assert entry.currency == "EUR"
        assert entry.operating_expenses == Decimal("0")

    def test_currency_mismatch_is_logged(self, ledger_scope, captured_logs):
        bucket = bucket_for("c1", OCT_3)
        ledger_scope(lambda s: s.increment("t1", bucket, "USD", Decimal("30.00")))
        ledger_scope(lambda s: s.increment("t1", bucket, "EUR", Decimal("5.00")))
        warnings = [r for r in captured_logs() if r["message"] == "ledger_currency_mismatch"]
        assert len(warnings) == 1
        assert warnings[0]["bucket_currency"] == "USD"
        assert warnings[0]["delta_currency"] == "EUR"


class TestOutbox:

    def test_enqueue_creates_pending_row(self, ledger_scope, session_factory):
        bucket = bucket_for("c1", OCT_3)
        app_id = ledger_scope(
            lambda s: s.enqueue("t1", "in_1", bucket, "USD", _deltas()).id
        )
        with session_scope(session_factory) as session:
            row = session.get(LedgerApplication, app_id)
            assert row.status_enum == LedgerApplicationStatus.PENDING
            assert row.net_delta == Decimal("30.00")
            assert row.paid_total_after == Decimal("30.00")
            assert row.attempts == 0
        assert _bucket_revenue(session_factory, bucket.bucket_key) is None

    def test_enqueue_skips_zero_net(self, ledger_scope):
        bucket = bucket_for("c1", OCT_3)
        zero = _deltas(paid="10.00", refunded="10.00", paid_total="10.00", refunded_total="10.00")
        assert ledger_scope(lambda s: s.enqueue("t1", "in_1", bucket, "USD", zero)) is None

    def test_apply_exactly_once(self, ledger_scope, session_factory):
        bucket = bucket_for("c1", OCT_3)
        app_id = ledger_scope(lambda s: s.enqueue("t1", "in_1", bucket, "USD", _deltas()).id)

        assert ledger_scope(lambda s: s.apply_application(app_id)) == LedgerOutcome.APPLIED
        assert ledger_scope(lambda s: s.apply_application(app_id)) == LedgerOutcome.ALREADY_APPLIED

        assert _bucket_revenue(session_factory, bucket.bucket_key) == Decimal("30.00")
        with session_scope(session_factory) as session:
            row = session.get(LedgerApplication, app_id)
            assert row.status_enum == LedgerApplicationStatus.APPLIED
            assert row.attempts == 1
            assert row.applied_at is not None

    def test_apply_unknown_id_raises(self, ledger_scope):
        missing = uuid4()
        with pytest.raises(LedgerApplicationNotFoundError):
            ledger_scope(lambda s: s.apply_application(missing))

    def test_record_failure_keeps_row_pending(self, ledger_scope, session_factory):
        bucket = bucket_for("c1", OCT_3)
        app_id = ledger_scope(lambda s: s.enqueue("t1", "in_1", bucket, "USD", _deltas()).id)

        ledger_scope(lambda s: s.record_failure(app_id, RuntimeError("database went away")))

        with session_scope(session_factory) as session:
            row = session.get(LedgerApplication, app_id)
            assert row.status_enum == LedgerApplicationStatus.PENDING
            assert row.attempts == 1
            assert row.last_error == "RuntimeError: database went away"

    def test_pending_lists_oldest_first(self, ledger_scope, deterministic_clock):
        bucket = bucket_for("c1", OCT_3)
        first = ledger_scope(lambda s: s.enqueue("t1", "in_1", bucket, "USD", _deltas()).id)
        deterministic_clock.advance(60)
        second = ledger_scope(
            lambda s: s.enqueue(
                "t1", "in_2", bucket, "USD", _deltas(paid="5.00", paid_total="5.00")
            ).id
        )
        ledger_scope(lambda s: s.apply_application(first))

        pending = ledger_scope(lambda s: [a.id for a in s.pending(10)])
        assert pending == [second]
        for_invoice = ledger_scope(lambda s: [a.id for a in s.pending_for_invoice("t1", "in_1")])
        assert for_invoice == []

    def test_operating_expenses_untouched(self, ledger_scope, session_factory):
        bucket = bucket_for("c1", OCT_3)
        ledger_scope(lambda s: s.increment("t1", bucket, "USD", Decimal("30.00")))
        with session_scope(session_factory) as session:
            entry = session.query(RevenueLedgerEntry).one()
            entry.operating_expenses = Decimal("7.00")
        ledger_scope(lambda s: s.increment("t1", bucket, "USD", Decimal("1.00")))
        with session_scope(session_factory) as session:
            entry = session.query(RevenueLedgerEntry).one()
            assert entry.operating_expenses == Decimal("7.00")
            assert entry.revenue == Decimal("31.00")
