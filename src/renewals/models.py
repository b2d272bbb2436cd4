# src/renewals/models.py
from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Optional


class RenewalStatus(str, Enum):
    ACTIVE = "active"
    DUE = "due"
    EXPIRED = "expired"

    def can_advance_to(self, other: "RenewalStatus") -> bool:
        """Forward-only, one step at a time: active -> due -> expired."""
        order = [RenewalStatus.ACTIVE, RenewalStatus.DUE, RenewalStatus.EXPIRED]
        return order.index(other) == order.index(self) + 1


@dataclass(frozen=True)
class PurchasedPolicy:
    id: int
    user_id: int
    policy_id: Optional[int]
    renewal_status: RenewalStatus
    next_renewal_date: Optional[date]
    policy_name: Optional[str] = None
    email: Optional[str] = None
    billing_cycle: Optional[str] = None
    cycle_amount: Optional[float] = None
    renewal_reminder_sent_at: Optional[datetime] = None
    renewal_grace_reminders_sent: int = 0

    def to_dict(self) -> Dict[str, Any]:
        out = asdict(self)
        out["renewal_status"] = self.renewal_status.value
        out["next_renewal_date"] = self.next_renewal_date.isoformat() if self.next_renewal_date else None
        out["renewal_reminder_sent_at"] = (
            self.renewal_reminder_sent_at.isoformat() if self.renewal_reminder_sent_at else None
        )
        return out


@dataclass(frozen=True)
class RenewalSummary:
    run_date: date
    grace_days: int
    due_count: int
    expired_count: int
    reminders_sent: int = 0
    grace_reminders_sent: int = 0
    notification_failures: int = 0

    def to_dict(self) -> Dict[str, Any]:
        out = asdict(self)
        out["run_date"] = self.run_date.isoformat()
        return out
