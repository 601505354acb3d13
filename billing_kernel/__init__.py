"""
Billing Kernel - invoice reconciliation engine

Folds asynchronous payment-provider invoice events into three projections:
- Canonical invoice records
- Per-client "last invoice" summaries
- Period-bucketed revenue ledger

Guarantees:
- Idempotent under at-least-once, out-of-order delivery
- Monotonic paid/refunded tracking
- Exactly-once ledger application via a transactional outbox
"""

__version__ = "0.1.0"
