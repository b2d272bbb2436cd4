# src/pricing/billing.py
"""
Billing schedule for a purchased policy.

The quoted total is an annual premium. A buy request splits it per billing
cycle and sets the first renewal date one cycle after the start date.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Optional

import pandas as pd

# cycle -> (installments per year, months per cycle)
BILLING_CYCLES: Dict[str, tuple] = {
    "monthly": (12, 1),
    "quarterly": (4, 3),
    "half_yearly": (2, 6),
    "yearly": (1, 12),
}
DEFAULT_CYCLE = "yearly"


@dataclass(frozen=True)
class BillingSchedule:
    billing_cycle: str
    cycle_amount: Decimal
    next_renewal_date: date

    def to_dict(self) -> Dict[str, Any]:
        return {
            "billing_cycle": self.billing_cycle,
            "cycle_amount": float(self.cycle_amount),
            "next_renewal_date": self.next_renewal_date.isoformat(),
        }


def normalize_cycle(cycle: Optional[str]) -> str:
    if not isinstance(cycle, str):
        return DEFAULT_CYCLE
    key = cycle.strip().lower().replace("-", "_").replace(" ", "_")
    return key if key in BILLING_CYCLES else DEFAULT_CYCLE


def add_months(start: date, months: int) -> date:
    """Calendar month arithmetic, clamped to month end (Jan 31 + 1 month -> Feb 28/29)."""
    return (pd.Timestamp(start) + pd.DateOffset(months=months)).date()


def billing_schedule(total: Any, cycle: Optional[str], start: date) -> BillingSchedule:
    cycle_key = normalize_cycle(cycle)
    installments, months = BILLING_CYCLES[cycle_key]

    amount = (Decimal(str(total)) / installments).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    return BillingSchedule(
        billing_cycle=cycle_key,
        cycle_amount=amount,
        next_renewal_date=add_months(start, months),
    )
