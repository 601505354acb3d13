"""
Typed Exception Hierarchy for the Billing Kernel.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from BillingKernelError:

    BillingKernelError (base)
    |
    +-- EventError
    |   +-- MalformedEventError
    |   +-- InvalidCurrencyError
    |
    +-- LedgerError
    |   +-- LedgerApplicationError
    |   +-- LedgerApplicationNotFoundError
    |
    +-- ConfigurationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                          | When Raised
----------------|-------------------------------|---------------------------------------
Event           | MALFORMED_EVENT               | Missing tenant/client/invoice id, or a
                |                               | field of the wrong type (acknowledged,
                |                               | never retried)
                | INVALID_CURRENCY              | Not a valid ISO 4217 code
----------------|-------------------------------|---------------------------------------
Ledger          | LEDGER_APPLICATION_FAILED     | Revenue increment failed after the
                |                               | invoice write committed (retry)
                | LEDGER_APPLICATION_NOT_FOUND  | Outbox row id does not exist
----------------|-------------------------------|---------------------------------------
Config          | CONFIGURATION_INVALID         | Settings document failed validation

===============================================================================
HANDLING PATTERNS
===============================================================================

1. MALFORMED EVENTS ARE ACKNOWLEDGED, NOT RETRIED:

    try:
        event = parse_invoice_event(payload)
    except MalformedEventError as e:
        log.warning("event_discarded", extra={"missing": e.missing_fields})
        return ack()

2. LEDGER FAILURES FAIL THE ACKNOWLEDGEMENT:

    try:
        result = orchestrator.process(payload)
    except LedgerApplicationError as e:
        # Invoice write is durable; the outbox rows in e.application_ids
        # stay pending and are drained by the redelivery or the sweeper.
        return nack()

Store failures (sqlalchemy.exc.SQLAlchemyError) are not wrapped; they
propagate unchanged so the provider redelivers the whole event.
"""

from collections.abc import Sequence
from uuid import UUID


class BillingKernelError(Exception):
    """
    Base exception for all billing kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "BILLING_KERNEL_ERROR"


# Event-related exceptions


class EventError(BillingKernelError):
    """Base exception for inbound event errors."""

    code: str = "EVENT_ERROR"


class MalformedEventError(EventError):
    """
    Inbound event cannot be reconciled.

    Raised at the boundary so nothing downstream ever sees a partially
    valid event.  Not retryable: redelivering the same payload cannot fix it.
    """

    code: str = "MALFORMED_EVENT"

    def __init__(
        self,
        reason: str,
        missing_fields: Sequence[str] = (),
        external_invoice_id: str | None = None,
    ):
        self.reason = reason
        self.missing_fields = tuple(missing_fields)
        self.external_invoice_id = external_invoice_id
        super().__init__(f"Malformed invoice event: {reason}")


class InvalidCurrencyError(EventError):
    """Currency code is not a valid ISO 4217 code."""

    code: str = "INVALID_CURRENCY"

    def __init__(self, currency: str):
        self.currency = currency
        super().__init__(f"Invalid currency code: {currency!r}")


# Ledger-related exceptions


class LedgerError(BillingKernelError):
    """Base exception for revenue ledger errors."""

    code: str = "LEDGER_ERROR"


class LedgerApplicationError(LedgerError):
    """
    Revenue ledger increment failed after the invoice write committed.

    The outbox rows stay pending.  Retrying reuses their stored deltas.
    """

    code: str = "LEDGER_APPLICATION_FAILED"

    def __init__(
        self,
        external_invoice_id: str,
        application_ids: Sequence[UUID],
        cause: str,
    ):
        self.external_invoice_id = external_invoice_id
        self.application_ids = tuple(application_ids)
        self.cause = cause
        super().__init__(
            f"Ledger application failed for invoice {external_invoice_id} "
            f"({len(self.application_ids)} pending): {cause}"
        )


class LedgerApplicationNotFoundError(LedgerError):
    """Outbox row with given ID was not found."""

    code: str = "LEDGER_APPLICATION_NOT_FOUND"

    def __init__(self, application_id: UUID):
        self.application_id = application_id
        super().__init__(f"Ledger application not found: {application_id}")


# Configuration


class ConfigurationError(BillingKernelError):
    """Settings document failed validation."""

    code: str = "CONFIGURATION_INVALID"

    def __init__(self, source: str, errors: Sequence[str]):
        self.source = source
        self.errors = tuple(errors)
        super().__init__(
            f"Invalid configuration in {source}:\n"
            + "\n".join(f"  - {e}" for e in self.errors)
        )
