# src/features/profile.py
"""
Risk profile resolution for quote requests.

Goal:
- Convert raw applicant fields (request body, stored user record, approved KYC)
  into the RiskProfile consumed by src.pricing.quote.

Precedence:
- explicit request fields > user record fields
- age: explicit age > approved KYC DOB > user DOB
- family ages: explicit family_ages > family_member_details[*].dob, always
  including the applicant

Like the quote engine itself this never raises on bad data: values that cannot
be interpreted are dropped and reported in warnings.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional

import numpy as np
import pandas as pd

from src.pricing.quote import RiskProfile, normalize_conditions


@dataclass(frozen=True)
class ProfileBuildResult:
    profile: RiskProfile
    warnings: List[str]


_YN_MAP = {
    "yes": True,
    "no": False,
    "y": True,
    "n": False,
    "true": True,
    "false": False,
    "1": True,
    "0": False,
    True: True,
    False: False,
    1: True,
    0: False,
}


def _is_missing(val: Any) -> bool:
    if val is None:
        return True
    if isinstance(val, float) and np.isnan(val):
        return True
    return isinstance(val, str) and val.strip() in {"", "string"}  # swagger placeholder


def _to_bool(val: Any) -> Optional[bool]:
    if _is_missing(val):
        return None
    if isinstance(val, str):
        return _YN_MAP.get(val.strip().lower())
    if isinstance(val, (bool, int, float)):
        return _YN_MAP.get(val)
    return None


def _to_float(val: Any) -> Optional[float]:
    if _is_missing(val) or isinstance(val, bool):
        return None
    if not isinstance(val, (str, int, float, Decimal)):
        return None
    num = pd.to_numeric(val, errors="coerce")
    if pd.isna(num):
        return None
    return float(num)


def _to_int(val: Any) -> Optional[int]:
    num = _to_float(val)
    return int(num) if num is not None else None


def age_from_dob(dob: Any, today: date) -> Optional[int]:
    """Completed years between dob and today; None when dob does not parse."""
    if _is_missing(dob):
        return None
    ts = pd.to_datetime(dob, errors="coerce")
    if pd.isna(ts):
        return None
    born = ts.date()
    years = today.year - born.year - ((today.month, today.day) < (born.month, born.day))
    return int(years)


def _parse_conditions(val: Any, warnings: List[str]) -> frozenset:
    if _is_missing(val):
        return frozenset()
    if isinstance(val, str):
        text = val.strip()
        if text.startswith("["):
            try:
                val = json.loads(text)
            except json.JSONDecodeError:
                warnings.append(f"Could not parse conditions='{text}'; ignored.")
                return frozenset()
        else:
            val = text.split(",")
    if not isinstance(val, (list, tuple, set, frozenset)):
        warnings.append(f"Unsupported conditions value {val!r}; ignored.")
        return frozenset()
    return normalize_conditions(val)


def _pick(key: str, *sources: Optional[Mapping[str, Any]]) -> Any:
    for src in sources:
        if src is None:
            continue
        val = src.get(key)
        if not _is_missing(val):
            return val
    return None


def _resolve_age(
    request: Mapping[str, Any],
    user: Optional[Mapping[str, Any]],
    kyc: Optional[Mapping[str, Any]],
    today: date,
    warnings: List[str],
) -> Optional[int]:
    raw_age = _pick("age", request)
    if raw_age is not None:
        age = _to_int(raw_age)
        if age is None:
            warnings.append(f"Could not parse age='{raw_age}'; ignored.")
        else:
            return age

    for label, src in (("request", request), ("kyc", kyc), ("user", user)):
        dob = _pick("dob", src)
        if dob is None:
            continue
        age = age_from_dob(dob, today)
        if age is not None:
            return age
        warnings.append(f"Could not parse {label} dob='{dob}'; ignored.")

    age = _to_int(_pick("age", user))
    return age


def _resolve_family_ages(
    request: Mapping[str, Any],
    user: Optional[Mapping[str, Any]],
    self_age: Optional[int],
    today: date,
    warnings: List[str],
) -> List[int]:
    explicit = _pick("family_ages", request, user)
    ages: List[int] = []

    if explicit is not None:
        items = explicit if isinstance(explicit, (list, tuple)) else [explicit]
        for a in items:
            num = _to_int(a)
            if num is None:
                warnings.append(f"Could not parse family age '{a}'; ignored.")
            else:
                ages.append(num)
    else:
        details = _pick("family_member_details", request, user)
        if isinstance(details, str):
            try:
                details = json.loads(details)
            except json.JSONDecodeError:
                warnings.append("Could not parse family_member_details; ignored.")
                details = None
        for member in details or []:
            if not isinstance(member, Mapping) or _is_missing(member.get("dob")):
                continue
            age = age_from_dob(member.get("dob"), today)
            if age is None:
                warnings.append(f"Could not parse family member dob='{member.get('dob')}'; ignored.")
            else:
                ages.append(age)

    if ages and self_age is not None:
        ages.append(self_age)
    return ages


def resolve_risk_profile(
    request: Optional[Mapping[str, Any]] = None,
    user: Optional[Mapping[str, Any]] = None,
    kyc: Optional[Mapping[str, Any]] = None,
    today: Optional[date] = None,
) -> ProfileBuildResult:
    """
    Build a RiskProfile from raw dicts.

    request: fields supplied with the quote request (take precedence)
    user:    stored user record (weight_kg, height_cm, pre_existing_conditions, ...)
    kyc:     latest approved KYC document, if any (only dob is used)
    """
    request = request or {}
    today = today or date.today()
    warnings: List[str] = []

    # KYC only counts once approved
    if kyc is not None and str(kyc.get("status", "approved")).lower() != "approved":
        kyc = None

    age = _resolve_age(request, user, kyc, today, warnings)
    family_ages = _resolve_family_ages(request, user, age, today, warnings)

    smoker = _to_bool(_pick("is_smoker", request, user))
    existing = _to_bool(_pick("is_existing_customer", request, user))
    if existing is None:
        prior = _to_int(_pick("purchased_policy_count", request, user))
        existing = bool(prior and prior > 0)

    health = _pick("health_score", request, user)
    health_score = _to_int(health)
    if health is not None and health_score is None:
        warnings.append(f"Could not parse health_score='{health}'; treated as unknown.")

    members_raw = _pick("family_members", request, user)
    if members_raw is None:
        members_raw = _pick("family_member_count", request, user)

    conditions_raw = _pick("conditions", request)
    if conditions_raw is None:
        conditions_raw = _pick("pre_existing_conditions", user)

    city = _pick("city", request)
    if city is None:
        city = _pick("municipality_name", user) or _pick("address", user)

    weight = _pick("weight", request) or _pick("weight_kg", request, user)
    height = _pick("height", request) or _pick("height_cm", request, user)

    profile = RiskProfile(
        age=age,
        is_smoker=bool(smoker),
        health_score=health_score,
        coverage_type=str(_pick("coverage_type", request, user) or "individual").strip().lower(),
        family_member_count=_to_int(members_raw),
        family_ages=tuple(family_ages),
        chronic_conditions=_parse_conditions(conditions_raw, warnings),
        city=str(city).strip() if city is not None else None,
        is_existing_customer=bool(existing),
        weight_kg=_to_float(weight),
        height_cm=_to_float(height),
        occupation_class=str(_pick("occupation_class", request, user) or "class_1").strip().lower(),
    )
    return ProfileBuildResult(profile=profile, warnings=warnings)


def profile_to_dict(profile: RiskProfile) -> Dict[str, Any]:
    return {
        "age": profile.age,
        "is_smoker": profile.is_smoker,
        "health_score": profile.health_score,
        "coverage_type": profile.coverage_type,
        "family_member_count": profile.family_member_count,
        "family_ages": list(profile.family_ages),
        "chronic_conditions": sorted(profile.chronic_conditions),
        "city": profile.city,
        "is_existing_customer": profile.is_existing_customer,
        "weight_kg": profile.weight_kg,
        "height_cm": profile.height_cm,
        "occupation_class": profile.occupation_class,
    }
