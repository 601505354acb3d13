"""
Tests for inbound event parsing and derived facts
(``billing_kernel.domain.events``).
"""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from billing_kernel.domain.events import (
    ChargeRefundEvent,
    InvoiceEvent,
    parse_charge_refund_event,
    parse_invoice_event,
    resolve_invoice_facts,
)
from billing_kernel.domain.invoice_status import FinanceStatus
from billing_kernel.exceptions import MalformedEventError

NOW = datetime(2026, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


def _payload(**overrides):
    payload = {
        "externalInvoiceId": "in_1",
        "tenantId": "t1",
        "clientId": "c1",
        "currencyCode": "usd",
        "totalMinorUnits": 5000,
        "paidMinorUnits": 3000,
        "rawStatus": "open",
    }
    payload.update(overrides)
    return payload


class TestParseInvoiceEvent:

    def test_camel_case_payload(self):
        event = parse_invoice_event(_payload(invoiceNumber="INV-7", livemode=True))
        assert isinstance(event, InvoiceEvent)
        assert event.external_invoice_id == "in_1"
        assert event.currency_code == "USD"
        assert event.paid_minor_units == 3000
        assert event.invoice_number == "INV-7"
        assert event.livemode is True

    def test_snake_case_aliases(self):
        event = parse_invoice_event(
            {
                "external_invoice_id": "in_2",
                "tenant_id": "t1",
                "client_id": "c1",
                "total_minor_units": 100,
                "paid_minor_units": 0,
                "raw_status": "draft",
                "hosted_url": "https://example.com/i/2",
            }
        )
        assert event.external_invoice_id == "in_2"
        assert event.hosted_url == "https://example.com/i/2"

    def test_missing_currency_uses_default(self):
        event = parse_invoice_event(_payload(currencyCode=None), default_currency="EUR")
        assert event.currency_code == "EUR"

    @pytest.mark.parametrize("field", ["tenantId", "clientId", "externalInvoiceId"])
    def test_missing_metadata_rejected(self, field):
        with pytest.raises(MalformedEventError) as exc_info:
            parse_invoice_event(_payload(**{field: None}))
        assert exc_info.value.missing_fields == (field,)

    def test_blank_client_rejected(self):
        with pytest.raises(MalformedEventError):
            parse_invoice_event(_payload(clientId="   "))

    def test_missing_amount_rejected(self):
        payload = _payload()
        del payload["paidMinorUnits"]
        with pytest.raises(MalformedEventError) as exc_info:
            parse_invoice_event(payload)
        assert exc_info.value.missing_fields == ("paidMinorUnits",)

    def test_bool_amount_rejected(self):
        with pytest.raises(MalformedEventError):
            parse_invoice_event(_payload(totalMinorUnits=True))

    def test_unknown_currency_is_malformed(self):
        with pytest.raises(MalformedEventError) as exc_info:
            parse_invoice_event(_payload(currencyCode="ZZZ"))
        assert exc_info.value.external_invoice_id == "in_1"

    @pytest.mark.parametrize(
        "field",
        ["dueEpochSeconds", "finalizedEpochSeconds", "createdEpochSeconds",
         "paidEpochSeconds", "providerCreatedEpochSeconds"],
    )
    @pytest.mark.parametrize("seconds", [10**12, -(10**12), 10**30])
    def test_out_of_range_timestamp_is_malformed(self, field, seconds):
        with pytest.raises(MalformedEventError) as exc_info:
            parse_invoice_event(_payload(**{field: seconds}))
        assert field in exc_info.value.reason

    def test_out_of_range_due_date_keeps_invoice_id(self):
        with pytest.raises(MalformedEventError) as exc_info:
            parse_invoice_event(_payload(dueEpochSeconds=10**12))
        assert exc_info.value.external_invoice_id == "in_1"

    def test_non_mapping_rejected(self):
        with pytest.raises(MalformedEventError):
            parse_invoice_event(["not", "a", "mapping"])

    def test_event_is_frozen(self):
        event = parse_invoice_event(_payload())
        with pytest.raises(AttributeError):
            event.paid_minor_units = 1


class TestParseChargeRefundEvent:

    def test_parses(self):
        event = parse_charge_refund_event(
            {"tenantId": "t1", "chargeId": "ch_1", "refundedMinorUnits": 500,
             "externalInvoiceId": "in_1"}
        )
        assert event == ChargeRefundEvent(
            tenant_id="t1", charge_id="ch_1", refunded_minor_units=500,
            external_invoice_id="in_1",
        )

    def test_invoice_id_optional(self):
        event = parse_charge_refund_event(
            {"tenantId": "t1", "chargeId": "ch_1", "refundedMinorUnits": 500}
        )
        assert event.external_invoice_id is None

    def test_negative_refund_rejected(self):
        with pytest.raises(MalformedEventError):
            parse_charge_refund_event(
                {"tenantId": "t1", "chargeId": "ch_1", "refundedMinorUnits": -1}
            )


class TestResolveInvoiceFacts:

    def test_amounts_normalized_and_remaining_derived(self):
        facts = resolve_invoice_facts(parse_invoice_event(_payload()), NOW)
        assert facts.amount_total == Decimal("50.00")
        assert facts.amount_paid == Decimal("30.00")
        assert facts.amount_remaining == Decimal("20.00")
        assert facts.amount_refunded is None
        assert facts.finance_status == FinanceStatus.SENT

    def test_reported_remaining_wins(self):
        facts = resolve_invoice_facts(
            parse_invoice_event(_payload(remainingMinorUnits=1500)), NOW
        )
        assert facts.amount_remaining == Decimal("15.00")

    def test_issued_at_prefers_finalized_then_created_then_now(self):
        finalized = int(datetime(2026, 1, 5, tzinfo=timezone.utc).timestamp())
        created = int(datetime(2026, 1, 3, tzinfo=timezone.utc).timestamp())

        both = parse_invoice_event(
            _payload(finalizedEpochSeconds=finalized, createdEpochSeconds=created)
        )
        only_created = parse_invoice_event(_payload(createdEpochSeconds=created))
        neither = parse_invoice_event(_payload())

        assert resolve_invoice_facts(both, NOW).issued_at.day == 5
        assert resolve_invoice_facts(only_created, NOW).issued_at.day == 3
        assert resolve_invoice_facts(neither, NOW).issued_at == NOW

    def test_effective_ledger_date(self):
        paid = int(datetime(2025, 12, 31, 23, 0, tzinfo=timezone.utc).timestamp())
        with_paid = resolve_invoice_facts(parse_invoice_event(_payload(paidEpochSeconds=paid)), NOW)
        without = resolve_invoice_facts(parse_invoice_event(_payload()), NOW)
        assert with_paid.effective_ledger_date(NOW).month == 12
        assert without.effective_ledger_date(NOW) == NOW

    def test_past_due_open_is_overdue(self):
        due = int(datetime(2026, 1, 15, 11, 59, 59, tzinfo=timezone.utc).timestamp())
        facts = resolve_invoice_facts(parse_invoice_event(_payload(dueEpochSeconds=due)), NOW)
        assert facts.finance_status == FinanceStatus.OVERDUE
