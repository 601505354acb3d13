"""
Tests for the delta calculator (``billing_kernel.domain.deltas``).

Invariants tested:
- Deltas are never negative; identical redelivery yields (0, 0).
- Stored totals never regress; a lower incoming total is an anomaly.
- A refund total that was not reported reuses the previous value.
- Replaying any sequence of cumulative snapshots credits exactly the
  highest paid total seen, whatever the order.
"""

from decimal import Decimal

from hypothesis import given
from hypothesis import strategies as st

from billing_kernel.domain.deltas import AmountField, MonetaryRegression, compute_deltas

D = Decimal


class TestComputeDeltas:

    def test_first_event_credits_full_paid_amount(self):
        result = compute_deltas(None, None, D("30.00"), None)
        assert result.delta_paid == D("30.00")
        assert result.delta_refunded == D("0")
        assert result.paid_total == D("30.00")
        assert result.refunded_total == D("0")
        assert result.anomalies == ()

    def test_partial_payment_progression(self):
        """0 -> 30 -> 30 -> 50 credits 30, 0, 20."""
        stored_paid = None
        credited = []
        for incoming in (D("0"), D("30.00"), D("30.00"), D("50.00")):
            result = compute_deltas(stored_paid, D("0"), incoming, None)
            credited.append(result.delta_paid)
            stored_paid = result.paid_total
        assert credited == [D("0"), D("30.00"), D("0"), D("20.00")]
        assert sum(credited) == D("50.00")

    def test_identical_redelivery_is_zero(self):
        result = compute_deltas(D("50.00"), D("10.00"), D("50.00"), D("10.00"))
        assert result.delta_paid == D("0")
        assert result.delta_refunded == D("0")
        assert result.net_delta == D("0")

    def test_refund_regression_clamped(self):
        """Stored refund 10.00, incoming 5.00: zero delta, stored kept."""
        result = compute_deltas(D("50.00"), D("10.00"), D("50.00"), D("5.00"))
        assert result.delta_refunded == D("0")
        assert result.refunded_total == D("10.00")
        assert result.anomalies == (
            MonetaryRegression(AmountField.AMOUNT_REFUNDED, D("10.00"), D("5.00")),
        )

    def test_paid_regression_clamped_and_reported(self):
        result = compute_deltas(D("50.00"), D("0"), D("30.00"), None)
        assert result.delta_paid == D("0")
        assert result.paid_total == D("50.00")
        (anomaly,) = result.anomalies
        assert anomaly.field == AmountField.AMOUNT_PAID
        assert anomaly.shortfall == D("20.00")

    def test_unreported_refund_reuses_previous(self):
        result = compute_deltas(D("50.00"), D("10.00"), D("50.00"), None)
        assert result.delta_refunded == D("0")
        assert result.refunded_total == D("10.00")
        assert result.anomalies == ()

    def test_refund_growth_gives_negative_net(self):
        result = compute_deltas(D("50.00"), D("0"), D("50.00"), D("15.00"))
        assert result.delta_refunded == D("15.00")
        assert result.net_delta == D("-15.00")

    def test_stored_scale_does_not_leak_into_deltas(self):
        """Totals read back from a wide numeric column report at money precision."""
        result = compute_deltas(D("50.000000000"), D("5.000000000"), D("50"), D("15"))
        assert str(result.delta_paid) == "0.00"
        assert str(result.delta_refunded) == "10.00"
        assert str(result.net_delta) == "-10.00"
        assert str(result.paid_total) == "50.00"
        assert str(result.refunded_total) == "15.00"

    def test_first_event_net_delta_has_two_places(self):
        assert str(compute_deltas(None, None, D("30"), None).net_delta) == "30.00"


cents = st.integers(min_value=0, max_value=10_000_000).map(lambda c: D(c) / 100)


class TestDeltaProperties:

    @given(previous_paid=cents, previous_refunded=cents, incoming_paid=cents,
           incoming_refund=st.one_of(st.none(), cents))
    def test_deltas_never_negative_and_totals_never_regress(
        self, previous_paid, previous_refunded, incoming_paid, incoming_refund
    ):
        result = compute_deltas(previous_paid, previous_refunded, incoming_paid, incoming_refund)
        assert result.delta_paid >= 0
        assert result.delta_refunded >= 0
        assert result.paid_total >= previous_paid
        assert result.refunded_total >= previous_refunded
        assert result.paid_total == previous_paid + result.delta_paid
        assert result.refunded_total == previous_refunded + result.delta_refunded

    @given(snapshots=st.lists(cents, min_size=1, max_size=12))
    def test_any_delivery_order_credits_max_paid(self, snapshots):
        stored = None
        credited = D("0")
        for incoming in snapshots:
            result = compute_deltas(stored, None, incoming, None)
            credited += result.delta_paid
            stored = result.paid_total
        assert credited == max(snapshots)

    @given(snapshots=st.lists(cents, min_size=1, max_size=12))
    def test_replaying_history_adds_nothing(self, snapshots):
        stored = None
        for incoming in snapshots:
            stored = compute_deltas(stored, None, incoming, None).paid_total
        for incoming in snapshots:
            assert compute_deltas(stored, None, incoming, None).delta_paid == 0
