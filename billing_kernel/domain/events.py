"""
Inbound events -- closed, validated event types and boundary parsing.

Responsibility:
    Turns a verified webhook payload (an open mapping) into a frozen
    ``InvoiceEvent`` or ``ChargeRefundEvent``.  Anything that cannot be
    reconciled is rejected here with ``MalformedEventError`` so the
    projectors never see a partially valid event.  Also derives the
    normalized ``InvoiceFacts`` (amounts, finance status, timestamps)
    that every projector consumes.

Architecture position:
    Kernel > Domain -- pure functions, no I/O.  ``now`` is passed in.

Invariants enforced:
    - tenant_id, client_id and external_invoice_id are non-blank strings.
    - Minor-unit amounts are integers (``bool`` rejected).
    - The currency is a known ISO 4217 code.
    - Epoch-second timestamps convert to a UTC datetime.
    - Payload keys are accepted in camelCase or snake_case.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from billing_kernel.domain.amounts import ZERO, normalize_amount, normalize_currency
from billing_kernel.domain.invoice_status import FinanceStatus, resolve_finance_status
from billing_kernel.exceptions import InvalidCurrencyError, MalformedEventError


@dataclass(frozen=True)
class InvoiceEvent:
    """Provider invoice snapshot carried by one webhook delivery."""

    external_invoice_id: str
    tenant_id: str
    client_id: str
    currency_code: str
    total_minor_units: int
    paid_minor_units: int
    raw_status: str | None
    remaining_minor_units: int | None = None
    refunded_minor_units: int | None = None
    due_epoch_seconds: int | None = None
    finalized_epoch_seconds: int | None = None
    created_epoch_seconds: int | None = None
    paid_epoch_seconds: int | None = None
    hosted_url: str | None = None
    invoice_number: str | None = None
    payment_reference: str | None = None
    collection_method: str | None = None
    description: str | None = None
    client_name: str | None = None
    event_type: str | None = None
    provider_event_id: str | None = None
    livemode: bool = False
    provider_created_epoch_seconds: int | None = None


@dataclass(frozen=True)
class ChargeRefundEvent:
    """Refund notification for a charge, with the charge's cumulative refunded total."""

    tenant_id: str
    charge_id: str
    refunded_minor_units: int
    external_invoice_id: str | None = None
    provider_event_id: str | None = None
    event_type: str | None = None
    livemode: bool = False
    provider_created_epoch_seconds: int | None = None


@dataclass(frozen=True)
class InvoiceFacts:
    """Normalized amounts, resolved status and timestamps for one event."""

    amount_total: Decimal
    amount_paid: Decimal
    amount_remaining: Decimal
    amount_refunded: Decimal | None
    currency: str
    finance_status: FinanceStatus
    issued_at: datetime
    due_at: datetime | None
    paid_at: datetime | None

    def effective_ledger_date(self, now: datetime) -> datetime:
        """Date the revenue is booked against: paid date, else ``now``."""
        return self.paid_at or now


# ---------------------------------------------------------------------------
# Field access
# ---------------------------------------------------------------------------


def _snake(name: str) -> str:
    out = []
    for ch in name:
        if ch.isupper():
            out.append("_")
            out.append(ch.lower())
        else:
            out.append(ch)
    return "".join(out)


def _get(payload: Mapping[str, Any], name: str) -> Any:
    if name in payload:
        return payload[name]
    return payload.get(_snake(name))


def _optional_str(payload: Mapping[str, Any], name: str) -> str | None:
    value = _get(payload, name)
    if value is None:
        return None
    if not isinstance(value, str):
        raise MalformedEventError(f"{name} must be a string, got {type(value).__name__}")
    value = value.strip()
    return value or None


def _optional_int(payload: Mapping[str, Any], name: str) -> int | None:
    value = _get(payload, name)
    if value is None:
        return None
    if isinstance(value, bool):
        raise MalformedEventError(f"{name} must be an integer, got bool")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    raise MalformedEventError(f"{name} must be an integer, got {value!r}")


def _optional_epoch(
    payload: Mapping[str, Any],
    name: str,
    external_invoice_id: str | None = None,
) -> int | None:
    value = _optional_int(payload, name)
    try:
        from_epoch_seconds(value)
    except (ValueError, OverflowError, OSError) as exc:
        raise MalformedEventError(
            f"{name} is not a representable timestamp: {value!r}",
            external_invoice_id=external_invoice_id,
        ) from exc
    return value


def _optional_bool(payload: Mapping[str, Any], name: str) -> bool:
    value = _get(payload, name)
    if value is None:
        return False
    if not isinstance(value, bool):
        raise MalformedEventError(f"{name} must be a boolean, got {value!r}")
    return value


def _require_ids(payload: Mapping[str, Any], names: tuple[str, ...]) -> dict[str, str]:
    found: dict[str, str] = {}
    missing: list[str] = []
    for name in names:
        value = _get(payload, name)
        if isinstance(value, str) and value.strip():
            found[name] = value.strip()
        else:
            missing.append(name)
    if missing:
        raise MalformedEventError(
            "missing required metadata: " + ", ".join(missing),
            missing_fields=missing,
            external_invoice_id=found.get("externalInvoiceId"),
        )
    return found


def _require_int(payload: Mapping[str, Any], name: str) -> int:
    value = _optional_int(payload, name)
    if value is None:
        raise MalformedEventError(f"missing required amount: {name}", missing_fields=(name,))
    return value


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def parse_invoice_event(
    payload: Mapping[str, Any],
    default_currency: str = "USD",
) -> InvoiceEvent:
    """Validate a webhook payload into an ``InvoiceEvent``.

    Raises:
        MalformedEventError: identifiers missing, or a field has the wrong type.
    """
    if not isinstance(payload, Mapping):
        raise MalformedEventError(f"payload must be a mapping, got {type(payload).__name__}")

    ids = _require_ids(payload, ("tenantId", "clientId", "externalInvoiceId"))
    invoice_id = ids["externalInvoiceId"]

    try:
        currency = normalize_currency(_get(payload, "currencyCode"), default_currency)
    except InvalidCurrencyError as exc:
        raise MalformedEventError(str(exc), external_invoice_id=invoice_id) from exc

    return InvoiceEvent(
        external_invoice_id=invoice_id,
        tenant_id=ids["tenantId"],
        client_id=ids["clientId"],
        currency_code=currency,
        total_minor_units=_require_int(payload, "totalMinorUnits"),
        paid_minor_units=_require_int(payload, "paidMinorUnits"),
        raw_status=_optional_str(payload, "rawStatus"),
        remaining_minor_units=_optional_int(payload, "remainingMinorUnits"),
        refunded_minor_units=_optional_int(payload, "refundedMinorUnits"),
        due_epoch_seconds=_optional_epoch(payload, "dueEpochSeconds", invoice_id),
        finalized_epoch_seconds=_optional_epoch(payload, "finalizedEpochSeconds", invoice_id),
        created_epoch_seconds=_optional_epoch(payload, "createdEpochSeconds", invoice_id),
        paid_epoch_seconds=_optional_epoch(payload, "paidEpochSeconds", invoice_id),
        hosted_url=_optional_str(payload, "hostedUrl"),
        invoice_number=_optional_str(payload, "invoiceNumber"),
        payment_reference=_optional_str(payload, "paymentReference"),
        collection_method=_optional_str(payload, "collectionMethod"),
        description=_optional_str(payload, "description"),
        client_name=_optional_str(payload, "clientName"),
        event_type=_optional_str(payload, "eventType"),
        provider_event_id=_optional_str(payload, "providerEventId"),
        livemode=_optional_bool(payload, "livemode"),
        provider_created_epoch_seconds=_optional_epoch(payload, "providerCreatedEpochSeconds"),
    )


def parse_charge_refund_event(payload: Mapping[str, Any]) -> ChargeRefundEvent:
    """Validate a charge-refunded payload into a ``ChargeRefundEvent``.

    The invoice id is optional: refunds of charges not tied to an invoice
    are acknowledged and skipped by the orchestrator.
    """
    if not isinstance(payload, Mapping):
        raise MalformedEventError(f"payload must be a mapping, got {type(payload).__name__}")

    ids = _require_ids(payload, ("tenantId", "chargeId"))
    refunded = _require_int(payload, "refundedMinorUnits")
    if refunded < 0:
        raise MalformedEventError("refundedMinorUnits must not be negative")

    return ChargeRefundEvent(
        tenant_id=ids["tenantId"],
        charge_id=ids["chargeId"],
        refunded_minor_units=refunded,
        external_invoice_id=_optional_str(payload, "externalInvoiceId"),
        provider_event_id=_optional_str(payload, "providerEventId"),
        event_type=_optional_str(payload, "eventType"),
        livemode=_optional_bool(payload, "livemode"),
        provider_created_epoch_seconds=_optional_epoch(payload, "providerCreatedEpochSeconds"),
    )


# ---------------------------------------------------------------------------
# Derived facts
# ---------------------------------------------------------------------------


def from_epoch_seconds(seconds: int | None) -> datetime | None:
    if seconds is None:
        return None
    return datetime.fromtimestamp(seconds, tz=timezone.utc)


def resolve_invoice_facts(event: InvoiceEvent, now: datetime) -> InvoiceFacts:
    """Normalize amounts, resolve the finance status and timestamps.

    Issued-at falls back finalized -> created -> ``now``.  Remaining falls
    back to ``max(total - paid, 0)`` when the event does not report it.
    """
    amount_total = normalize_amount(event.total_minor_units) or ZERO
    amount_paid = normalize_amount(event.paid_minor_units) or ZERO
    remaining = normalize_amount(event.remaining_minor_units)
    if remaining is None:
        remaining = max(amount_total - amount_paid, ZERO)

    due_at = from_epoch_seconds(event.due_epoch_seconds)
    issued_at = (
        from_epoch_seconds(event.finalized_epoch_seconds)
        or from_epoch_seconds(event.created_epoch_seconds)
        or now
    )

    return InvoiceFacts(
        amount_total=amount_total,
        amount_paid=amount_paid,
        amount_remaining=remaining,
        amount_refunded=normalize_amount(event.refunded_minor_units),
        currency=event.currency_code,
        finance_status=resolve_finance_status(event.raw_status, due_at, now),
        issued_at=issued_at,
        due_at=due_at,
        paid_at=from_epoch_seconds(event.paid_epoch_seconds),
    )
