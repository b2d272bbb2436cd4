from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from src.pricing.billing import add_months, billing_schedule, normalize_cycle


@pytest.mark.parametrize(
    "cycle, amount, next_date",
    [
        ("monthly", "1000.00", date(2026, 11, 19)),
        ("quarterly", "3000.00", date(2027, 1, 19)),
        ("half_yearly", "6000.00", date(2027, 4, 19)),
        ("yearly", "12000.00", date(2027, 10, 19)),
    ],
)
def test_schedule_per_cycle(cycle, amount, next_date):
    s = billing_schedule(Decimal("12000"), cycle, date(2026, 10, 19))
    assert s.billing_cycle == cycle
    assert s.cycle_amount == Decimal(amount)
    assert s.next_renewal_date == next_date


def test_unknown_cycle_is_yearly():
    assert normalize_cycle("fortnightly") == "yearly"
    assert normalize_cycle(None) == "yearly"
    assert normalize_cycle("Half-Yearly") == "half_yearly"


def test_cycle_amount_rounds_half_up():
    assert billing_schedule("200.01", "half_yearly", date(2026, 1, 1)).cycle_amount == Decimal("100.01")
    assert billing_schedule("1000", "monthly", date(2026, 1, 1)).cycle_amount == Decimal("83.33")


def test_month_end_is_clamped():
    assert add_months(date(2026, 1, 31), 1) == date(2026, 2, 28)
    assert add_months(date(2027, 8, 31), 6) == date(2028, 2, 29)


def test_to_dict():
    out = billing_schedule("1200", "monthly", date(2026, 10, 19)).to_dict()
    assert out == {"billing_cycle": "monthly", "cycle_amount": 100.0, "next_renewal_date": "2026-11-19"}
