# src/api/app.py
"""
FastAPI service for the premium & renewal engine (thin API wrapper).

Endpoints:
- GET  /health
- POST /quote              -> full premium breakdown (+ warnings)
- GET  /renewals           -> purchased policies, latest renewal date first
- POST /renewals/process   -> run one renewal lifecycle pass

The API layer stays thin:
- validates input shape
- calls src.services.*
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Dict, List, Literal, Optional, Union

from fastapi import Depends, FastAPI, HTTPException
from pydantic import BaseModel, Field

from src.renewals.lifecycle import RenewalAlreadyRunningError, RenewalLifecycleManager
from src.renewals.store import LedgerPersistenceError
from src.services.quote_service import get_config, quote_from_request
from src.services.renewal_service import get_renewal_manager, run_scheduled_renewals


app = FastAPI(title="Premium & Renewal Engine", version="0.1.0")


@app.on_event("startup")
def _startup() -> None:
    get_config()  # caches pricing config (env overrides, regional table)


# -----------------------------
# Schemas
# -----------------------------
class FamilyMember(BaseModel):
    name: Optional[str] = None
    relation: Optional[str] = None
    dob: Optional[str] = None


class ApplicantInput(BaseModel):
    # Age: explicit age wins over dob
    age: Optional[int] = None
    dob: Optional[str] = None

    # Yes/No flags (accept bool or strings)
    is_smoker: Optional[Union[bool, str]] = None
    is_existing_customer: Optional[Union[bool, str]] = None

    health_score: Optional[int] = None

    # Family
    coverage_type: Optional[str] = None
    family_members: Optional[int] = None
    family_ages: Optional[List[int]] = None
    family_member_details: Optional[List[FamilyMember]] = None

    conditions: Optional[List[str]] = None
    city: Optional[str] = None

    # Biometrics
    weight: Optional[float] = None
    height: Optional[float] = None

    occupation_class: Optional[str] = None


class QuoteRequest(BaseModel):
    base_premium: float
    policy_id: Optional[int] = None
    applicant: ApplicantInput = Field(default_factory=ApplicantInput)
    billing_cycle: Optional[Literal["monthly", "quarterly", "half_yearly", "yearly"]] = None


class QuoteResponse(BaseModel):
    policy_id: Optional[int] = None
    quote: Dict[str, Any]
    profile: Dict[str, Any]
    billing: Optional[Dict[str, Any]] = None
    warnings: list[str] = Field(default_factory=list)


class RenewalRunRequest(BaseModel):
    now: Optional[Union[date, datetime]] = None
    grace_days: Optional[int] = Field(default=None, ge=0)


class RenewalRunResponse(BaseModel):
    run_date: date
    grace_days: int
    due_count: int
    expired_count: int
    reminders_sent: int
    grace_reminders_sent: int
    notification_failures: int


# -----------------------------
# Routes
# -----------------------------
def get_manager() -> RenewalLifecycleManager:
    return get_renewal_manager()


@app.get("/health")
def health() -> Dict[str, str]:
    cfg = get_config()
    return {"status": "ok", "currency": cfg.currency}


@app.post("/quote", response_model=QuoteResponse)
def quote(req: QuoteRequest) -> QuoteResponse:
    resp = quote_from_request(
        req.base_premium,
        req.applicant.model_dump(exclude_none=True),
        billing_cycle=req.billing_cycle,
        policy_id=req.policy_id,
    )
    return QuoteResponse(**resp.to_dict())


@app.get("/renewals")
def list_renewals(
    status: Optional[Literal["active", "due", "expired"]] = None,
    manager: RenewalLifecycleManager = Depends(get_manager),
) -> List[Dict[str, Any]]:
    return [r.to_dict() for r in manager.store.records(status=status)]


@app.post("/renewals/process", response_model=RenewalRunResponse)
def process_renewals(
    req: Optional[RenewalRunRequest] = None,
    manager: RenewalLifecycleManager = Depends(get_manager),
) -> RenewalRunResponse:
    req = req or RenewalRunRequest()
    try:
        summary = run_scheduled_renewals(now=req.now, grace_days=req.grace_days, manager=manager)
    except RenewalAlreadyRunningError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    except LedgerPersistenceError as e:
        raise HTTPException(status_code=503, detail=str(e)) from e
    return RenewalRunResponse(**summary.to_dict())


if __name__ == "__main__":
    import os

    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
