#!/usr/bin/env python3
"""
Operational CLI for the billing reconciliation engine.

Usage:
    python scripts/billing_cli.py [--config PATH] init-db
    python scripts/billing_cli.py reconcile events/*.json
    python scripts/billing_cli.py drain-ledger [--limit N]
    python scripts/billing_cli.py revenue TENANT [--client CLIENT] [--limit N]

Settings come from billing_config.get_active_config() (BILLING_CONFIG and
DATABASE_URL are honored).  ``reconcile`` accepts files holding one JSON
payload or a list of payloads; payloads carrying a chargeId are treated as
charge refunds.  Exit status is 1 if any event could not be acknowledged.
"""

import argparse
import json
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

from billing_config import get_active_config
from billing_config.bridges import (
    build_orchestrator,
    build_revenue_selector,
    init_engine_from_config,
)
from billing_kernel.db.engine import create_tables, session_scope
from billing_kernel.exceptions import LedgerApplicationError


def _load_payloads(path: Path) -> list[dict]:
    data = json.loads(path.read_text())
    return data if isinstance(data, list) else [data]


def cmd_init_db(config, args) -> int:
    create_tables()
    print(f"Schema created ({config.database.url.split(':', 1)[0]})")
    return 0


def cmd_reconcile(config, args) -> int:
    orchestrator = build_orchestrator(config)
    failures = 0
    for name in args.files:
        for payload in _load_payloads(Path(name)):
            try:
                if "chargeId" in payload or "charge_id" in payload:
                    result = orchestrator.process_charge_refund(payload)
                else:
                    result = orchestrator.process(payload)
            except LedgerApplicationError as exc:
                failures += 1
                print(f"{name}: LEDGER PENDING {exc.external_invoice_id}: {exc.cause}")
                continue
            line = f"{name}: {result.status.value.upper()} {result.external_invoice_id or '-'}"
            if result.is_applied:
                line += f" net={result.net_delta} period={result.ledger_period}"
            if result.reason:
                line += f" ({result.reason})"
            print(line)
    return 1 if failures else 0


def cmd_drain_ledger(config, args) -> int:
    report = build_orchestrator(config).drain_pending_ledger(args.limit)
    if not report.processed:
        print("No pending ledger adjustments.")
        return 0
    print(
        f"applied={report.applied} already_applied={report.already_applied} "
        f"failed={report.failed}"
    )
    return 1 if report.failed else 0


def cmd_revenue(config, args) -> int:
    with session_scope() as session:
        entries = build_revenue_selector(config, session).list_entries(
            args.tenant, client_id=args.client, limit=args.limit
        )
    if not entries:
        print("No revenue recorded.")
        return 0
    print(f"{'PERIOD':<8} {'BUCKET':<40} {'REVENUE':>14} CUR")
    for entry in entries:
        print(
            f"{entry.period:<8} {entry.bucket_key:<40} {entry.revenue:>14.2f} "
            f"{entry.currency or ''}"
        )
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Billing reconciliation engine CLI")
    parser.add_argument("--config", help="Settings YAML (default: BILLING_CONFIG or packaged defaults)")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("init-db", help="Create the billing tables")
    p.set_defaults(func=cmd_init_db)

    p = sub.add_parser("reconcile", help="Reconcile webhook payloads from JSON files")
    p.add_argument("files", nargs="+", help="JSON files with one payload or a list of payloads")
    p.set_defaults(func=cmd_reconcile)

    p = sub.add_parser("drain-ledger", help="Apply pending revenue ledger adjustments")
    p.add_argument("--limit", type=int, default=None, help="Maximum rows to apply")
    p.set_defaults(func=cmd_drain_ledger)

    p = sub.add_parser("revenue", help="List revenue ledger buckets for a tenant")
    p.add_argument("tenant")
    p.add_argument("--client", default=None)
    p.add_argument("--limit", type=int, default=None)
    p.set_defaults(func=cmd_revenue)

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    config = get_active_config(args.config)
    init_engine_from_config(config)
    return args.func(config, args)


if __name__ == "__main__":
    sys.exit(main())
