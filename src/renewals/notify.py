# src/renewals/notify.py
"""
Notification sender used by the renewal lifecycle.

NotificationService.send():
1) records an in-app notification for the user
2) tries to email it, if the context carries an address

Email is best effort: a transport failure is logged and the in-app
notification still stands. Delivery itself (SMTP, SES, ...) lives behind the
EmailTransport protocol.
"""

from __future__ import annotations

import logging
import threading
from collections import Counter, deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Deque, Dict, List, Mapping, Optional, Protocol

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    def send(self, user_id: int, title: str, message: str, context: Mapping[str, Any]) -> None:
        ...


class EmailTransport(Protocol):
    def send(self, to: str, subject: str, body: str) -> None:
        ...


class LoggingEmailTransport:
    """Writes outgoing mail to the log instead of delivering it."""

    def send(self, to: str, subject: str, body: str) -> None:
        logger.info("Email to=%s subject=%r body=%r", to, subject, body)


@dataclass(frozen=True)
class Notification:
    user_id: int
    title: str
    message: str
    type: str = "system"
    buy_request_id: Optional[int] = None
    policy_id: Optional[int] = None
    is_read: bool = False
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class NotificationService:
    """
    Keeps the most recent `max_history` notifications in memory (the in-app
    feed of a long-lived process) plus running per-title counts.
    """

    def __init__(self, email_transport: Optional[EmailTransport] = None, max_history: int = 1000):
        self.email_transport = email_transport or LoggingEmailTransport()
        self._lock = threading.Lock()
        self._notifications: Deque[Notification] = deque(maxlen=max(1, max_history))
        self._counts: Counter = Counter()

    @property
    def notifications(self) -> List[Notification]:
        with self._lock:
            return list(self._notifications)

    def for_user(self, user_id: int) -> List[Notification]:
        return [n for n in self.notifications if n.user_id == user_id]

    def send(self, user_id: int, title: str, message: str, context: Mapping[str, Any]) -> None:
        notification = Notification(
            user_id=user_id,
            title=title,
            message=message,
            type=str(context.get("type", "system")),
            buy_request_id=context.get("buy_request_id"),
            policy_id=context.get("policy_id"),
        )
        with self._lock:
            self._notifications.append(notification)
            self._counts[title] += 1

        self._send_email_if_possible(user_id, context.get("email"), title, message)

    def _send_email_if_possible(self, user_id: int, email: Optional[str], subject: str, body: str) -> None:
        if not email:
            logger.info("Notification (no email) user_id=%s subject=%r", user_id, subject)
            return

        try:
            self.email_transport.send(email, subject, body)
        except Exception as e:
            logger.warning("Failed sending email notification user_id=%s error=%s", user_id, e)

    def summary(self) -> Dict[str, int]:
        """Notifications sent per title since start, including ones rotated out of history."""
        with self._lock:
            return dict(self._counts)
