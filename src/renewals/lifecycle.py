# src/renewals/lifecycle.py
"""
Renewal lifecycle manager.

State machine over purchased policies:

  active --(next_renewal_date <= today)--------------> due
  due    --(next_renewal_date <  today - grace_days)--> expired

One pass, in order:
1) upcoming reminder  : active, renewing within reminder_days, never reminded
2) active -> due      : "Renewal due" notification
3) grace reminder     : due before this pass, exactly grace_reminder_day days late
4) due -> expired     : only records that were already due before this pass

Records moved to due in step 2 are excluded from steps 3 and 4, so a record
advances at most one state per pass regardless of how stale its date is.

Each phase is committed by the store as one set-based update before its
notifications go out. Notification failures are logged and counted, never
retried and never raised. A persistence failure aborts the pass and propagates.

Only one pass runs at a time per ledger: exclusive() pairs an in-process lock
with a `<ledger>.lock` file lock and fails fast instead of queueing.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterator, List, Optional, Protocol, Sequence, Union
from zoneinfo import ZoneInfo

from filelock import Timeout

from src.renewals.models import PurchasedPolicy, RenewalSummary
from src.renewals.notify import Notifier
from src.utils.config import RenewalConfig
from src.utils.io import file_lock

logger = logging.getLogger(__name__)

TITLE_REMINDER = "Renewal reminder"
TITLE_DUE = "Renewal due"
TITLE_EXPIRED = "Policy expired"


class RenewalAlreadyRunningError(RuntimeError):
    """Another renewal pass holds this manager or its ledger file."""


class PolicyStore(Protocol):
    def mark_due(self, today: date) -> List[PurchasedPolicy]:
        ...

    def mark_expired(self, cutoff: date, exclude_ids: Sequence[int] = ()) -> List[PurchasedPolicy]:
        ...

    def claim_upcoming_reminders(self, today: date, window_end: date, sent_at: datetime) -> List[PurchasedPolicy]:
        ...

    def claim_grace_reminders(
        self, today: date, day: int, grace_days: int, exclude_ids: Sequence[int] = ()
    ) -> List[PurchasedPolicy]:
        ...


@dataclass(frozen=True)
class _Message:
    record: PurchasedPolicy
    title: str
    body: str
    type: str


def _format_date(d: Optional[date]) -> str:
    return d.strftime("%b %d, %Y") if d else "its renewal date"


class RenewalLifecycleManager:
    def __init__(
        self,
        store: PolicyStore,
        notifier: Notifier,
        config: Optional[RenewalConfig] = None,
        currency: str = "NPR",
    ):
        self.store = store
        self.notifier = notifier
        self.config = config or RenewalConfig()
        self.currency = currency
        self._tz = ZoneInfo(self.config.timezone)
        # Reentrant so a caller holding exclusive() can still call process_renewals.
        self._running = threading.RLock()
        path = getattr(store, "path", None)
        self._file_lock = file_lock(path) if path is not None else None

    # ---------------------------
    # Time
    # ---------------------------
    def _now(self, now: Optional[Union[date, datetime]]) -> datetime:
        if now is None:
            return datetime.now(self._tz)
        if isinstance(now, datetime):
            return now.astimezone(self._tz) if now.tzinfo else now.replace(tzinfo=self._tz)
        return datetime(now.year, now.month, now.day, tzinfo=self._tz)

    # ---------------------------
    # Messages
    # ---------------------------
    def _amount_text(self, record: PurchasedPolicy) -> str:
        if record.cycle_amount is None:
            return ""
        return f" Renewal amount: {self.currency} {record.cycle_amount:,.2f}."

    def _reminder(self, record: PurchasedPolicy) -> _Message:
        body = (
            f"Your policy {record.policy_name or 'policy'} renews on {_format_date(record.next_renewal_date)}. "
            f"Please renew to keep your coverage active.{self._amount_text(record)}"
        )
        return _Message(record, TITLE_REMINDER, body, "renewal_reminder")

    def _due(self, record: PurchasedPolicy, grace_days: int) -> _Message:
        body = (
            f"Your policy {record.policy_name or 'policy'} was due for renewal on "
            f"{_format_date(record.next_renewal_date)}. Renew within {grace_days} days "
            f"to keep your coverage active.{self._amount_text(record)}"
        )
        return _Message(record, TITLE_DUE, body, "renewal_due")

    def _expired(self, record: PurchasedPolicy, grace_days: int) -> _Message:
        body = (
            f"Your policy ({record.policy_name or 'policy'}) has expired because it was not "
            f"renewed within {grace_days} days."
        )
        return _Message(record, TITLE_EXPIRED, body, "policy_expired")

    # ---------------------------
    # Dispatch
    # ---------------------------
    def _send_one(self, msg: _Message) -> None:
        context: Dict[str, Any] = {
            "buy_request_id": msg.record.id,
            "policy_id": msg.record.policy_id,
            "email": msg.record.email,
            "type": msg.type,
        }
        self.notifier.send(msg.record.user_id, msg.title, msg.body, context)

    def _dispatch(self, messages: List[_Message]) -> int:
        """Fan out, wait for all, return the number of failures."""
        if not messages:
            return 0

        failures = 0
        workers = max(1, min(self.config.notify_max_workers, len(messages)))
        pool = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="renewal-notify")
        try:
            futures = [(msg, pool.submit(self._send_one, msg)) for msg in messages]
            for msg, fut in futures:
                try:
                    fut.result(timeout=self.config.notify_timeout_seconds)
                except FutureTimeout:
                    failures += 1
                    logger.warning(
                        "Notification timed out title=%r user_id=%s buy_request_id=%s after %.1fs",
                        msg.title,
                        msg.record.user_id,
                        msg.record.id,
                        self.config.notify_timeout_seconds,
                    )
                except Exception as e:
                    failures += 1
                    logger.warning(
                        "Notification failed title=%r user_id=%s buy_request_id=%s error=%r",
                        msg.title,
                        msg.record.user_id,
                        msg.record.id,
                        e,
                    )
        finally:
            # Don't hold the pass open for a hung sender.
            pool.shutdown(wait=False)
        return failures

    # ---------------------------
    # Entry point
    # ---------------------------
    @contextmanager
    def exclusive(self) -> Iterator[None]:
        """
        Single-flight guard. Held by one thread of this process and, when the
        store is file-backed, by one process per ledger file. Never waits:
        raises RenewalAlreadyRunningError if someone else holds it.
        """
        if not self._running.acquire(blocking=False):
            raise RenewalAlreadyRunningError("A renewal pass is already running")
        try:
            if self._file_lock is None:
                yield
                return
            try:
                self._file_lock.acquire(timeout=0)
            except Timeout as e:
                raise RenewalAlreadyRunningError(
                    f"Another process holds the ledger lock {self._file_lock.lock_file}"
                ) from e
            try:
                yield
            finally:
                self._file_lock.release()
        finally:
            self._running.release()

    def process_renewals(
        self,
        now: Optional[Union[date, datetime]] = None,
        grace_days: Optional[int] = None,
    ) -> RenewalSummary:
        """
        Run one lifecycle pass as of `now` (default: current time in the
        configured timezone). grace_days overrides the configured grace period.
        """
        with self.exclusive():
            return self._process(self._now(now), self.config.grace_days if grace_days is None else grace_days)

    def _process(self, now: datetime, grace_days: int) -> RenewalSummary:
        grace_days = max(0, int(grace_days))
        today = now.date()
        failures = 0

        reminders: List[PurchasedPolicy] = []
        if self.config.reminder_days > 0:
            reminders = self.store.claim_upcoming_reminders(
                today, today + timedelta(days=self.config.reminder_days), now
            )
            failures += self._dispatch([self._reminder(r) for r in reminders])

        due = self.store.mark_due(today)
        failures += self._dispatch([self._due(r, grace_days) for r in due])
        just_due = [r.id for r in due]

        grace = self.store.claim_grace_reminders(
            today, self.config.grace_reminder_day, grace_days, exclude_ids=just_due
        )
        failures += self._dispatch([self._reminder(r) for r in grace])

        expired = self.store.mark_expired(today - timedelta(days=grace_days), exclude_ids=just_due)
        failures += self._dispatch([self._expired(r, grace_days) for r in expired])

        summary = RenewalSummary(
            run_date=today,
            grace_days=grace_days,
            due_count=len(due),
            expired_count=len(expired),
            reminders_sent=len(reminders),
            grace_reminders_sent=len(grace),
            notification_failures=failures,
        )
        logger.info(
            "Renewals processed: date=%s due=%d expired=%d reminders=%d grace_reminders=%d notify_failures=%d",
            today,
            summary.due_count,
            summary.expired_count,
            summary.reminders_sent,
            summary.grace_reminders_sent,
            summary.notification_failures,
        )
        return summary
