# src/services/renewal_service.py
"""
Wiring for the scheduled renewal pass.

- ledger path, grace period, timezone: RenewalConfig (env)
- optional S3 sync of the ledger file: AwsConfig (env)

The manager is cached in-process (FastAPI app lifetime / Lambda warm
container). Its single-flight guard covers every trigger in the process, and
the `<ledger>.lock` file extends it to other processes on the same ledger.
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Optional, Union

from src.renewals.lifecycle import RenewalLifecycleManager
from src.renewals.models import RenewalSummary
from src.renewals.notify import NotificationService
from src.renewals.store import RenewalLedger
from src.services.quote_service import get_config
from src.utils.config import get_aws_config, get_renewal_config
from src.utils.io import s3_pull, s3_push

logger = logging.getLogger(__name__)

_CACHED_MANAGER: Optional[RenewalLifecycleManager] = None


def build_renewal_manager() -> RenewalLifecycleManager:
    cfg = get_renewal_config()
    if cfg.ledger_path is None:
        raise ValueError("RENEWAL_LEDGER_PATH could not be resolved")

    ledger = RenewalLedger.load(cfg.ledger_path)
    return RenewalLifecycleManager(
        store=ledger,
        notifier=NotificationService(max_history=cfg.notify_history),
        config=cfg,
        currency=get_config().currency,
    )


def get_renewal_manager(force_reload: bool = False) -> RenewalLifecycleManager:
    global _CACHED_MANAGER
    if force_reload or _CACHED_MANAGER is None:
        _CACHED_MANAGER = build_renewal_manager()
    return _CACHED_MANAGER


def run_scheduled_renewals(
    now: Optional[Union[date, datetime]] = None,
    grace_days: Optional[int] = None,
    manager: Optional[RenewalLifecycleManager] = None,
) -> RenewalSummary:
    """
    One scheduled pass. With S3 configured the ledger file is pulled before
    the pass and pushed back after it, all under the manager's single-flight
    guard: an overlapping trigger is rejected before it touches the ledger.
    """
    manager = manager or get_renewal_manager()
    aws = get_aws_config()
    ledger = manager.store if isinstance(manager.store, RenewalLedger) else None
    sync = aws.enabled and ledger is not None and ledger.path is not None

    with manager.exclusive():
        if sync:
            key = aws.key_for(ledger.path.name)
            if s3_pull(aws.s3_bucket, key, ledger.path, region=aws.region):
                logger.info("Pulled ledger s3://%s/%s", aws.s3_bucket, key)
        if ledger is not None:
            # Another process may have committed since this ledger was loaded.
            ledger.reload()

        summary = manager.process_renewals(now=now, grace_days=grace_days)

        if sync and ledger.path.exists():
            logger.info("Pushing ledger s3://%s/%s", aws.s3_bucket, key)
            s3_push(ledger.path, aws.s3_bucket, key, region=aws.region)

    return summary
