# src/scripts/process_renewals.py
"""
Scheduled renewal pass (run once per day from cron / a scheduler).

- active -> due when the renewal date is reached
- due -> expired once the grace period has passed
- renewal reminders before and during the grace period

Outputs:
- the ledger file, updated in place
- reports/renewals_<date>.json

Usage:
  python -m src.scripts.process_renewals
  python -m src.scripts.process_renewals --ledger data/renewals/purchased_policies.csv --grace_days 7
  python -m src.scripts.process_renewals --date 2026-10-19
"""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import replace
from datetime import date
from pathlib import Path

from src.renewals.lifecycle import RenewalAlreadyRunningError, RenewalLifecycleManager
from src.renewals.notify import NotificationService
from src.renewals.store import LedgerPersistenceError, RenewalLedger
from src.services.quote_service import get_config
from src.services.renewal_service import run_scheduled_renewals
from src.utils.config import get_log_level, get_paths, get_renewal_config
from src.utils.io import write_json

logger = logging.getLogger(__name__)


def parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Mark due / expired renewals and notify users.")
    p.add_argument(
        "--ledger",
        type=str,
        default=None,
        help="Purchased-policy ledger (.csv or .parquet). Default: RENEWAL_LEDGER_PATH.",
    )
    p.add_argument(
        "--date",
        type=date.fromisoformat,
        default=None,
        help="Run as of this date (YYYY-MM-DD). Default: today in APP_TIMEZONE.",
    )
    p.add_argument(
        "--grace_days",
        type=int,
        default=None,
        help="Grace period in days. Default: RENEWAL_GRACE_DAYS (7).",
    )
    p.add_argument(
        "--report_path",
        type=str,
        default=None,
        help="Output path for the run summary JSON. Default: reports/renewals_<date>.json",
    )
    return p.parse_args()


def main() -> int:
    logging.basicConfig(level=get_log_level(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    args = parse_args()
    paths = get_paths()

    cfg = get_renewal_config()
    if args.ledger:
        cfg = replace(cfg, ledger_path=Path(args.ledger))

    notifier = NotificationService(max_history=cfg.notify_history)
    manager = RenewalLifecycleManager(
        store=RenewalLedger.load(cfg.ledger_path),
        notifier=notifier,
        config=cfg,
        currency=get_config().currency,
    )

    try:
        summary = run_scheduled_renewals(now=args.date, grace_days=args.grace_days, manager=manager)
    except RenewalAlreadyRunningError as e:
        logger.error("%s", e)
        return 2
    except LedgerPersistenceError as e:
        logger.error("Renewal pass aborted: %s", e)
        return 1

    report_path = (
        Path(args.report_path) if args.report_path else paths.reports_dir / f"renewals_{summary.run_date.isoformat()}.json"
    )
    report = summary.to_dict()
    report["notifications"] = notifier.summary()
    write_json(report, report_path)

    print(f"[OK] Ledger  : {cfg.ledger_path}")
    print(f"[OK] Report  : {report_path}")
    print(f"Renewals processed: due={summary.due_count}, expired={summary.expired_count}")
    if summary.notification_failures:
        print(f"Notification failures: {summary.notification_failures}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
