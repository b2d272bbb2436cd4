from __future__ import annotations

from datetime import date, timedelta
from typing import Any, Dict, List, Optional, Tuple

TODAY = date(2026, 10, 19)


def days(n: int) -> date:
    return TODAY + timedelta(days=n)


def policy_row(
    record_id: int,
    status: str,
    next_renewal_date: Optional[date],
    user_id: Optional[int] = None,
    **extra: Any,
) -> Dict[str, Any]:
    row = {
        "id": record_id,
        "user_id": user_id if user_id is not None else 100 + record_id,
        "policy_id": 7,
        "policy_name": "Family Health Shield",
        "email": f"user{record_id}@example.com",
        "renewal_status": status,
        "next_renewal_date": next_renewal_date,
        "billing_cycle": "yearly",
        "cycle_amount": 12500.0,
    }
    row.update(extra)
    return row


class RecordingNotifier:
    """Collects sends; raises for user ids listed in fail_for."""

    def __init__(self, fail_for=()):
        self.fail_for = set(fail_for)
        self.sent: List[Tuple[int, str, str, Dict[str, Any]]] = []

    def send(self, user_id, title, message, context):
        if user_id in self.fail_for:
            raise ConnectionError("smtp down")
        self.sent.append((user_id, title, message, dict(context)))

    def titles_for(self, user_id):
        return [t for (u, t, _, _) in self.sent if u == user_id]
