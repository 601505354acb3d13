"""
Invoice status resolution.

Maps a raw provider invoice status to one of four finance states.  Status
is re-resolved on every event and may move in any direction
(``sent`` <-> ``overdue``); only monetary fields are monotonic.

    unseen -> draft -> sent <-> overdue -> paid
    (void is an absorbing alias of draft)
"""

from datetime import datetime
from enum import Enum


class FinanceStatus(str, Enum):
    """Finance-facing invoice state."""

    DRAFT = "draft"
    SENT = "sent"
    PAID = "paid"
    OVERDUE = "overdue"


def resolve_finance_status(
    raw_status: str | None,
    due_at: datetime | None,
    now: datetime,
) -> FinanceStatus:
    """Resolve the finance status for a provider invoice snapshot.

    Rules, first match wins:
        draft -> draft, paid -> paid, void -> draft,
        uncollectible -> overdue,
        open and due strictly before ``now`` -> overdue, open -> sent,
        anything else -> sent.
        A missing status is treated as draft.

    Pure: ``now`` is the only time input.
    """
    if raw_status is None:
        return FinanceStatus.DRAFT
    status = raw_status.strip().lower()
    if status == "draft":
        return FinanceStatus.DRAFT
    if status == "paid":
        return FinanceStatus.PAID
    if status == "void":
        return FinanceStatus.DRAFT
    if status == "uncollectible":
        return FinanceStatus.OVERDUE
    if status == "open":
        if due_at is not None and due_at < now:
            return FinanceStatus.OVERDUE
        return FinanceStatus.SENT
    return FinanceStatus.SENT
