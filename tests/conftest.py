from __future__ import annotations

import pytest

from src.renewals.lifecycle import RenewalLifecycleManager
from src.renewals.notify import NotificationService
from src.renewals.store import RenewalLedger
from src.utils.config import RenewalConfig


@pytest.fixture
def renewal_config() -> RenewalConfig:
    return RenewalConfig(grace_days=7, notify_max_workers=2, notify_timeout_seconds=5.0)


@pytest.fixture
def make_manager(renewal_config):
    def _make(rows, notifier=None, path=None):
        ledger = RenewalLedger.from_records(rows, path=path)
        return RenewalLifecycleManager(ledger, notifier or NotificationService(), config=renewal_config)

    return _make


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for key in ["S3_BUCKET", "PRICING_REGIONS_PATH", "PRICING_CURRENCY", "RENEWAL_GRACE_DAYS", "RENEWAL_LEDGER_PATH"]:
        monkeypatch.delenv(key, raising=False)
