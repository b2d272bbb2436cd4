from __future__ import annotations

from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from src.api.app import app, get_manager
from src.renewals.lifecycle import RenewalLifecycleManager
from src.renewals.notify import NotificationService
from src.renewals.store import RenewalLedger
from src.utils.config import RenewalConfig
from tests.factories import TODAY, days, policy_row

client = TestClient(app)


@pytest.fixture
def manager():
    ledger = RenewalLedger.from_records(
        [
            policy_row(1, "active", TODAY),
            policy_row(2, "due", days(-8)),
            policy_row(3, "due", days(-6)),
            policy_row(4, "active", days(60)),
        ]
    )
    mgr = RenewalLifecycleManager(ledger, NotificationService(), config=RenewalConfig(grace_days=7))
    app.dependency_overrides[get_manager] = lambda: mgr
    yield mgr
    app.dependency_overrides.clear()


class TestQuoteEndpoint:
    def test_health(self):
        r = client.get("/health")
        assert r.status_code == 200
        assert r.json()["status"] == "ok"

    def test_quote_returns_full_breakdown(self):
        payload = {
            "base_premium": 1000,
            "policy_id": 7,
            "applicant": {"age": 30, "is_smoker": False, "health_score": 80, "city": "default"},
        }
        r = client.post("/quote", json=payload)

        assert r.status_code == 200
        body = r.json()
        q = body["quote"]
        assert q["calculated_total"] == 1068.75
        assert q["age_factor"] == 1.125
        assert q["health_factor"] == 0.95
        assert body["policy_id"] == 7
        assert body["warnings"] == []

    def test_quote_smoker_in_kathmandu_with_billing(self):
        payload = {
            "base_premium": 1000,
            "applicant": {"age": 30, "is_smoker": "yes", "health_score": 80, "city": "Kathmandu"},
            "billing_cycle": "quarterly",
        }
        body = client.post("/quote", json=payload).json()

        assert body["quote"]["calculated_total"] == 1587.09
        assert body["billing"]["billing_cycle"] == "quarterly"
        assert body["billing"]["cycle_amount"] == 396.77

    def test_out_of_range_age_still_quotes(self):
        body = client.post("/quote", json={"base_premium": 1000, "applicant": {"age": 500}}).json()
        assert body["quote"]["age"] == 30

    def test_family_eldest_member(self):
        payload = {
            "base_premium": 1000,
            "applicant": {"age": 25, "coverage_type": "family", "family_members": 3, "family_ages": [25, 60]},
        }
        q = client.post("/quote", json=payload).json()["quote"]
        assert q["age"] == 60
        assert q["coverage_factor"] == 1.28

    def test_missing_base_premium_is_rejected(self):
        assert client.post("/quote", json={"applicant": {}}).status_code == 422


class TestRenewalEndpoints:
    def test_process_renewals(self, manager):
        r = client.post("/renewals/process", json={"now": TODAY.isoformat(), "grace_days": 7})

        assert r.status_code == 200
        body = r.json()
        assert body["due_count"] == 1
        assert body["expired_count"] == 1
        assert body["run_date"] == TODAY.isoformat()

        statuses = {row["id"]: row["renewal_status"] for row in client.get("/renewals").json()}
        assert statuses == {1: "due", 2: "expired", 3: "due", 4: "active"}

    def test_list_filtered_by_status(self, manager):
        rows = client.get("/renewals", params={"status": "due"}).json()
        assert sorted(row["id"] for row in rows) == [2, 3]

    def test_negative_grace_days_rejected(self, manager):
        assert client.post("/renewals/process", json={"grace_days": -1}).status_code == 422


class TestLambdaHandler:
    def test_scheduled_event_runs_renewal_pass(self, monkeypatch):
        from src.api import lambda_handler
        from src.renewals.models import RenewalSummary

        calls = []

        def fake_run(now=None, grace_days=None):
            calls.append((now, grace_days))
            return RenewalSummary(run_date=TODAY, grace_days=grace_days, due_count=2, expired_count=1)

        monkeypatch.setattr(lambda_handler, "run_scheduled_renewals", fake_run)

        event = {"source": "aws.events", "detail-type": "Scheduled Event", "detail": {"now": "2026-10-19", "grace_days": 5}}
        out = lambda_handler.handler(event, None)

        assert calls == [(TODAY, 5)]
        assert out["due_count"] == 2
        assert out["run_date"] == "2026-10-19"

    def test_scheduled_event_accepts_iso_datetime(self, monkeypatch):
        from src.api import lambda_handler
        from src.renewals.models import RenewalSummary

        calls = []

        def fake_run(now=None, grace_days=None):
            calls.append(now)
            return RenewalSummary(run_date=TODAY, grace_days=7, due_count=0, expired_count=0)

        monkeypatch.setattr(lambda_handler, "run_scheduled_renewals", fake_run)

        lambda_handler.handler({"source": "aws.events", "detail": {"now": "2026-10-18T20:00:00Z"}}, None)
        lambda_handler.handler({"source": "aws.events", "detail": {}}, None)

        assert calls == [datetime(2026, 10, 18, 20, 0, tzinfo=timezone.utc), None]
