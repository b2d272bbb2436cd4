# src/services/quote_service.py
"""
Request-time quoting.

Single source of truth:
- raw applicant fields (+ stored user / KYC) -> RiskProfile
- base premium + RiskProfile -> PremiumQuote
- optional billing cycle -> per-cycle amount + first renewal date
"""

from __future__ import annotations

from datetime import date
from typing import Any, Mapping, Optional

from src.features.profile import profile_to_dict, resolve_risk_profile
from src.pricing.billing import billing_schedule
from src.pricing.config import PricingConfig, get_pricing_config
from src.pricing.quote import quote
from src.services.schemas import QuoteResponse

_CACHED_CONFIG: Optional[PricingConfig] = None


def get_config(force_reload: bool = False) -> PricingConfig:
    """
    Load and cache the pricing configuration (env overrides applied once).
    """
    global _CACHED_CONFIG
    if force_reload or _CACHED_CONFIG is None:
        _CACHED_CONFIG = get_pricing_config()
    return _CACHED_CONFIG


def quote_from_request(
    base_premium: Any,
    request: Mapping[str, Any],
    *,
    user: Optional[Mapping[str, Any]] = None,
    kyc: Optional[Mapping[str, Any]] = None,
    billing_cycle: Optional[str] = None,
    policy_id: Optional[int] = None,
    cfg: Optional[PricingConfig] = None,
    today: Optional[date] = None,
) -> QuoteResponse:
    today = today or date.today()
    built = resolve_risk_profile(request, user=user, kyc=kyc, today=today)
    q = quote(base_premium, built.profile, cfg=cfg or get_config())

    billing = None
    if billing_cycle is not None:
        billing = billing_schedule(q.calculated_total, billing_cycle, today).to_dict()

    return QuoteResponse(
        policy_id=policy_id,
        quote=q.to_dict(),
        profile=profile_to_dict(built.profile),
        billing=billing,
        warnings=built.warnings,
    )
