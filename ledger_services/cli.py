"""
sales-ledger command line.

Commands:
    init-db          Create tables, currency settings and sales accounts.
    refresh-rates    Refresh every supported currency now.
    run-scheduler    Run the rate refresh scheduler until interrupted.
    show-rate CODE   Print the stored (or ``--live``) rate for a currency.
"""

from __future__ import annotations

import argparse
import json
import sys
import threading

from ledger_batch.domain.types import UpdateStatus
from ledger_config import get_active_config
from ledger_kernel.exceptions import CompositeResolutionFailure
from ledger_services.orchestrator import LedgerOrchestrator

_FAILED_STATUSES = (UpdateStatus.FAILED, UpdateStatus.NOT_CONFIGURED)


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(
        prog="sales-ledger",
        description="Currency-aware double-entry sales ledger",
    )
    p.add_argument(
        "--config",
        default=None,
        help="YAML configuration file (default: SALES_LEDGER_CONFIG or packaged defaults)",
    )
    sub = p.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create schema, currency settings and accounts")
    sub.add_parser("refresh-rates", help="Refresh all supported currency rates now")

    run = sub.add_parser("run-scheduler", help="Run the rate refresh scheduler")
    run.add_argument(
        "--once",
        action="store_true",
        help="Perform a single due check and exit",
    )

    show = sub.add_parser("show-rate", help="Show the rate for one currency")
    show.add_argument("code", help="ISO 4217 currency code")
    show.add_argument(
        "--live",
        action="store_true",
        help="Ask the rate providers instead of reading stored settings",
    )
    return p.parse_args(argv)


def _print_summary(summary) -> None:
    print(json.dumps(summary.to_dict(), indent=2))


def _cmd_init_db(ledger: LedgerOrchestrator) -> int:
    snapshot = ledger.bootstrap()
    print(f"  Base currency: {snapshot.base_currency}")
    for c in snapshot.currencies:
        state = "active" if c.is_active else "inactive"
        print(f"  {c.code:<4} {c.exchange_rate} ({state})")
    print("  Done.")
    return 0


def _cmd_refresh_rates(ledger: LedgerOrchestrator) -> int:
    summary = ledger.refresh_rates()
    _print_summary(summary)
    return 1 if summary.status in _FAILED_STATUSES else 0


def _cmd_run_scheduler(ledger: LedgerOrchestrator, once: bool) -> int:
    ledger.bootstrap()
    if once:
        summary = ledger.scheduler.tick()
        _print_summary(summary)
        return 1 if summary.status is UpdateStatus.FAILED else 0

    if not ledger.start():
        print("  Scheduler disabled by configuration.", file=sys.stderr)
        return 1
    print("  Scheduler running; press Ctrl+C to stop.")
    try:
        threading.Event().wait()
    except KeyboardInterrupt:
        print()
    finally:
        ledger.stop()
    return 0


def _cmd_show_rate(ledger: LedgerOrchestrator, code: str, live: bool) -> int:
    code = code.upper()
    snapshot = ledger.settings_snapshot()
    if snapshot is None:
        print("  ERROR: currency settings not initialised; run init-db", file=sys.stderr)
        return 1

    if live:
        try:
            rate = ledger.resolver.resolve(
                snapshot.base_currency, code, snapshot.api_provider
            )
        except CompositeResolutionFailure as exc:
            print(f"  ERROR: {exc}", file=sys.stderr)
            for failure in exc.failures:
                print(f"    {failure.provider_name}: {failure.reason}", file=sys.stderr)
            return 1
        print(
            f"  1 {rate.base_currency} = {rate.rate} {rate.target_currency} "
            f"({rate.provider_name}, {rate.observed_at.isoformat()})"
        )
        return 0

    rate = snapshot.rate_for(code)
    if rate is None:
        print(f"  ERROR: {code} is not an active supported currency", file=sys.stderr)
        return 1
    print(f"  1 {snapshot.base_currency} = {rate} {code}")
    return 0


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    try:
        config = get_active_config(args.config)
    except (FileNotFoundError, ValueError) as exc:
        print(f"  ERROR: {exc}", file=sys.stderr)
        return 2

    ledger = LedgerOrchestrator.from_config(config)
    if args.command == "init-db":
        return _cmd_init_db(ledger)
    if args.command == "refresh-rates":
        return _cmd_refresh_rates(ledger)
    if args.command == "run-scheduler":
        return _cmd_run_scheduler(ledger, args.once)
    return _cmd_show_rate(ledger, args.code, args.live)


if __name__ == "__main__":
    sys.exit(main())
