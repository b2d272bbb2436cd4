# src/pricing/quote.py
"""
Premium quote engine.

quote(base_premium, profile) -> PremiumQuote

The premium is a chain of independent factors applied to the policy base price:

  total = base * age * smoker * health * coverage * disease
               * region * loyalty * bmi * occupation

Notes:
- Pure and deterministic: no I/O, no shared state.
- Never raises on bad input. Out-of-range or missing values are normalised to
  safe defaults (see resolve_effective_age and the individual factor functions).
- Arithmetic is done in Decimal and rounded once (half-up, 2 places) at the end.
- Every factor is returned, not only the total.
"""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Dict, FrozenSet, Optional, Sequence, Tuple

from src.pricing.config import PricingConfig

CENTS = Decimal("0.01")
ONE = Decimal("1")


@dataclass(frozen=True)
class RiskProfile:
    age: Optional[int] = None
    is_smoker: bool = False
    health_score: Optional[int] = None
    coverage_type: Optional[str] = "individual"
    family_member_count: Optional[int] = None
    family_ages: Sequence[int] = ()
    chronic_conditions: FrozenSet[str] = frozenset()
    city: Optional[str] = None
    is_existing_customer: bool = False
    weight_kg: Optional[float] = None
    height_cm: Optional[float] = None
    occupation_class: Optional[str] = "class_1"


@dataclass(frozen=True)
class PremiumQuote:
    currency: str
    base_premium: Decimal
    age: int
    age_factor: Decimal
    smoker_factor: Decimal
    health_factor: Decimal
    coverage_factor: Decimal
    family_members: Optional[int]
    disease_loading: Decimal
    condition_count: int
    regional_loading: Decimal
    loyalty_discount: Decimal
    bmi: Optional[float]
    bmi_factor: Decimal
    occupation_factor: Decimal
    calculated_total: Decimal
    notes: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        out = asdict(self)
        for k, v in out.items():
            if isinstance(v, Decimal):
                out[k] = float(v)
        return out


def _dec(value: Any) -> Decimal:
    return Decimal(str(value))


def _as_number(value: Any) -> Optional[float]:
    """Finite float or None. Booleans are not numbers here."""
    if value is None or isinstance(value, bool):
        return None
    try:
        num = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(num) or math.isinf(num):
        return None
    return num


def _normalize_base_premium(base_premium: Any) -> Decimal:
    try:
        base = base_premium if isinstance(base_premium, Decimal) else _dec(base_premium)
    except (InvalidOperation, ValueError, TypeError):
        return Decimal("0")
    if not base.is_finite() or base < 0:
        return Decimal("0")
    return base


def resolve_effective_age(profile: RiskProfile, cfg: PricingConfig) -> int:
    """
    Price to the eldest covered member when family ages are known, otherwise
    the applicant's age. Missing or out-of-range ages fall back to default_age.
    """
    ages = [a for a in (_as_number(x) for x in profile.family_ages or ()) if a is not None]
    candidate = max(ages) if ages else _as_number(profile.age)

    if candidate is None or candidate < cfg.min_age or candidate > cfg.max_age:
        return cfg.default_age
    return int(candidate)


def age_factor(age: int, cfg: PricingConfig) -> Decimal:
    if age <= cfg.infant_max_age:
        return _dec(cfg.infant_factor)
    if age <= cfg.child_max_age:
        return _dec(cfg.child_factor)
    if age <= cfg.young_adult_max_age:
        return _dec(cfg.young_adult_factor)
    factor = ONE + (age - cfg.adult_base_age) * _dec(cfg.adult_step)
    return min(factor, _dec(cfg.age_factor_cap))


def health_factor(score: Any, cfg: PricingConfig) -> Decimal:
    num = _as_number(score)
    if num is None:
        return _dec(cfg.health_unknown_factor)

    num = max(1.0, min(100.0, num))
    for threshold, factor in cfg.health_bands:
        if num >= threshold:
            return _dec(factor)
    return _dec(cfg.health_floor_factor)


def family_member_count(profile: RiskProfile, cfg: PricingConfig) -> Optional[int]:
    if not _is_family(profile.coverage_type):
        return None
    num = _as_number(profile.family_member_count)
    if num is None:
        return cfg.family_min_members
    return int(max(cfg.family_min_members, min(cfg.family_max_members, num)))


def _is_family(coverage_type: Optional[str]) -> bool:
    return isinstance(coverage_type, str) and coverage_type.strip().lower() == "family"


def coverage_factor(profile: RiskProfile, cfg: PricingConfig) -> Decimal:
    members = family_member_count(profile, cfg)
    if members is None:
        return ONE
    return _dec(cfg.family_base) + (members - cfg.family_min_members) * _dec(cfg.family_step)


def normalize_conditions(conditions: Any) -> FrozenSet[str]:
    if conditions is None:
        return frozenset()
    if isinstance(conditions, str):
        conditions = [conditions]
    try:
        items = list(conditions)
    except TypeError:
        return frozenset()
    cleaned = set()
    for c in items:
        if c is None:
            continue
        key = str(c).strip().lower()
        if key and key != "none":
            cleaned.add(key)
    return frozenset(cleaned)


def disease_loading(condition_count: int, cfg: PricingConfig) -> Decimal:
    # Additive per condition, uncapped.
    return ONE + _dec(cfg.disease_loading_step) * condition_count


def regional_loading(city: Optional[str], cfg: PricingConfig) -> Decimal:
    """
    Exact (case-insensitive) city match first, then a city name contained in a
    longer address string ("Kathmandu-10, Bagmati"). Unknown cities are neutral.
    """
    if not isinstance(city, str) or not city.strip():
        return ONE

    key = city.strip().lower()
    table = cfg.regional_loadings
    if key in table:
        return _dec(table[key])

    for name in sorted(table, key=len, reverse=True):
        if name and name in key:
            return _dec(table[name])
    return ONE


def compute_bmi(weight_kg: Any, height_cm: Any) -> Optional[float]:
    weight = _as_number(weight_kg)
    height = _as_number(height_cm)
    if weight is None or height is None or weight <= 0 or height <= 0:
        return None
    height_m = height / 100.0
    return weight / (height_m * height_m)


def bmi_factor(bmi: Optional[float], cfg: PricingConfig) -> Decimal:
    # Missing biometrics are neutral, unlike a missing health score.
    if bmi is None:
        return ONE
    for threshold, factor in cfg.bmi_bands:
        if bmi >= threshold:
            return _dec(factor)
    return ONE


def occupation_factor(occupation_class: Optional[str], cfg: PricingConfig) -> Decimal:
    if not isinstance(occupation_class, str):
        return ONE
    key = occupation_class.strip().lower().replace("-", "_").replace(" ", "_")
    return _dec(cfg.occupation_factors.get(key, 1.0))


def quote(
    base_premium: Any,
    profile: RiskProfile,
    cfg: Optional[PricingConfig] = None,
) -> PremiumQuote:
    """
    Price a policy for one applicant and return the full factor breakdown.
    """
    cfg = cfg or PricingConfig()
    base = _normalize_base_premium(base_premium)

    age = resolve_effective_age(profile, cfg)
    f_age = age_factor(age, cfg)
    f_smoker = _dec(cfg.smoker_factor) if profile.is_smoker else ONE
    f_health = health_factor(profile.health_score, cfg)
    members = family_member_count(profile, cfg)
    f_coverage = coverage_factor(profile, cfg)
    conditions = normalize_conditions(profile.chronic_conditions)
    f_disease = disease_loading(len(conditions), cfg)
    f_region = regional_loading(profile.city, cfg)
    f_loyalty = _dec(cfg.loyalty_discount) if profile.is_existing_customer else ONE
    bmi = compute_bmi(profile.weight_kg, profile.height_cm)
    f_bmi = bmi_factor(bmi, cfg)
    f_occupation = occupation_factor(profile.occupation_class, cfg)

    raw = (
        base
        * f_age
        * f_smoker
        * f_health
        * f_coverage
        * f_disease
        * f_region
        * f_loyalty
        * f_bmi
        * f_occupation
    )
    total = raw.quantize(CENTS, rounding=ROUND_HALF_UP)

    notes = []
    if profile.family_ages:
        notes.append(f"Priced to eldest covered member (age {age}).")
    if profile.health_score is None:
        notes.append("Health score unknown; precautionary health factor applied.")

    return PremiumQuote(
        currency=cfg.currency,
        base_premium=base,
        age=age,
        age_factor=f_age,
        smoker_factor=f_smoker,
        health_factor=f_health,
        coverage_factor=f_coverage,
        family_members=members,
        disease_loading=f_disease,
        condition_count=len(conditions),
        regional_loading=f_region,
        loyalty_discount=f_loyalty,
        bmi=round(bmi, 2) if bmi is not None else None,
        bmi_factor=f_bmi,
        occupation_factor=f_occupation,
        calculated_total=total,
        notes=tuple(notes),
    )
