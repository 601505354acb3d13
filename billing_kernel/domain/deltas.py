"""
Delta calculation -- the idempotency core of reconciliation.

Responsibility:
    Provider amounts are cumulative-to-date.  Given the previously stored
    paid/refunded totals for an invoice and the totals reported by the
    incoming event, compute how much money this event adds.

Architecture position:
    Kernel > Domain -- pure functions, no I/O.

Invariants enforced:
    - Deltas are never negative.  Redelivery of an identical snapshot
      yields (0, 0).
    - Stored totals never regress: ``paid_total``/``refunded_total`` are
      the max of previous and incoming.
    - A lower incoming total is reported as a ``MonetaryRegression``
      anomaly instead of producing a negative adjustment.
    - Deltas and totals are rounded to money precision.
    - A refund total that was not reported (None) reuses the previous
      total; it is never guessed.
"""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from billing_kernel.domain.amounts import ZERO, round_money


class AmountField(str, Enum):
    """Monotonic invoice amount fields."""

    AMOUNT_PAID = "amount_paid"
    AMOUNT_REFUNDED = "amount_refunded"


@dataclass(frozen=True)
class MonetaryRegression:
    """Incoming cumulative amount lower than the stored one."""

    field: AmountField
    previous: Decimal
    incoming: Decimal

    @property
    def shortfall(self) -> Decimal:
        return self.previous - self.incoming


@dataclass(frozen=True)
class DeltaResult:
    """Money attributable to one event."""

    delta_paid: Decimal
    delta_refunded: Decimal
    paid_total: Decimal
    refunded_total: Decimal
    anomalies: tuple[MonetaryRegression, ...] = ()

    @property
    def net_delta(self) -> Decimal:
        """Revenue adjustment: paid delta net of refund delta (may be negative)."""
        return self.delta_paid - self.delta_refunded


def compute_deltas(
    previous_paid: Decimal | None,
    previous_refunded: Decimal | None,
    incoming_paid: Decimal,
    incoming_refund_total: Decimal | None,
) -> DeltaResult:
    """Compute monotonic paid/refunded deltas.

    Args:
        previous_paid: Stored paid total, None when no record exists.
        previous_refunded: Stored refunded total, None when no record exists.
        incoming_paid: Cumulative paid total reported by the event.
        incoming_refund_total: Cumulative refunded total reported by the
            event, or None when the event does not carry one.

    Returns:
        DeltaResult with non-negative deltas, the totals to store and any
        regression anomalies.
    """
    prev_paid = previous_paid if previous_paid is not None else ZERO
    prev_refunded = previous_refunded if previous_refunded is not None else ZERO
    refund_total = (
        incoming_refund_total if incoming_refund_total is not None else prev_refunded
    )

    anomalies: list[MonetaryRegression] = []
    if incoming_paid < prev_paid:
        anomalies.append(
            MonetaryRegression(AmountField.AMOUNT_PAID, prev_paid, incoming_paid)
        )
    if refund_total < prev_refunded:
        anomalies.append(
            MonetaryRegression(AmountField.AMOUNT_REFUNDED, prev_refunded, refund_total)
        )

    delta_paid = round_money(max(incoming_paid - prev_paid, ZERO))
    delta_refunded = round_money(max(refund_total - prev_refunded, ZERO))

    return DeltaResult(
        delta_paid=delta_paid,
        delta_refunded=delta_refunded,
        paid_total=round_money(max(prev_paid, incoming_paid)),
        refunded_total=round_money(max(prev_refunded, refund_total)),
        anomalies=tuple(anomalies),
    )
