# src/pricing/config.py
"""
Pricing configuration.

Every constant of the premium formula lives here so the quote engine stays a
plain chain of factors:
- age curve (infant / child / young adult bands, then a linear adult slope with a cap)
- smoker, health, family, disease, loyalty, BMI and occupation factors
- regional loading table (city -> multiplier)

The regional table is data, not logic: it can be swapped via a JSON file
pointed to by PRICING_REGIONS_PATH without touching the algorithm.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Dict, Mapping, Optional, Union


# Capital-region cities carry higher treatment costs.
DEFAULT_REGIONAL_LOADINGS: Dict[str, float] = {
    "kathmandu": 1.10,
    "lalitpur": 1.08,
    "bhaktapur": 1.05,
    "kirtipur": 1.05,
    "pokhara": 1.03,
}


@dataclass(frozen=True)
class PricingConfig:
    currency: str = "NPR"

    # Age normalization
    default_age: int = 30
    min_age: int = 1
    max_age: int = 120

    # Age curve
    infant_max_age: int = 2
    infant_factor: float = 1.10
    child_max_age: int = 17
    child_factor: float = 0.80
    young_adult_max_age: int = 24
    young_adult_factor: float = 1.00
    adult_base_age: int = 25
    adult_step: float = 0.025
    age_factor_cap: float = 2.50

    smoker_factor: float = 1.35

    # Health score bands, checked top-down: (min score, factor)
    health_bands: tuple = ((90, 0.85), (75, 0.95), (50, 1.10))
    health_floor_factor: float = 1.40
    health_unknown_factor: float = 1.05

    # Family coverage = family_base + (members - 2) * family_step
    family_base: float = 1.20
    family_step: float = 0.08
    family_min_members: int = 2
    family_max_members: int = 10

    disease_loading_step: float = 0.15
    loyalty_discount: float = 0.95

    # BMI bands, checked top-down: (min bmi, factor)
    bmi_bands: tuple = ((30.0, 1.25), (25.0, 1.10))

    occupation_factors: Mapping[str, float] = field(
        default_factory=lambda: {"class_1": 1.00, "class_2": 1.15, "class_3": 1.30}
    )

    regional_loadings: Mapping[str, float] = field(
        default_factory=lambda: dict(DEFAULT_REGIONAL_LOADINGS)
    )


def load_regional_loadings(path: Union[str, Path]) -> Dict[str, float]:
    """
    Read a {city: multiplier} JSON object. Keys are normalised to lower case.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Regional loading table not found: {path}")

    with path.open("r", encoding="utf-8") as f:
        raw = json.load(f)

    if not isinstance(raw, dict):
        raise ValueError(f"Regional loading table must be a JSON object, got {type(raw).__name__}")

    return {str(k).strip().lower(): float(v) for k, v in raw.items()}


def get_pricing_config(base: Optional[PricingConfig] = None) -> PricingConfig:
    """
    Env:
      PRICING_CURRENCY      (default: NPR)
      PRICING_REGIONS_PATH  (optional JSON city table, replaces the default one)
    """
    cfg = base or PricingConfig()

    currency = os.getenv("PRICING_CURRENCY")
    if currency:
        cfg = replace(cfg, currency=currency)

    regions_path = os.getenv("PRICING_REGIONS_PATH")
    if regions_path:
        cfg = replace(cfg, regional_loadings=load_regional_loadings(regions_path))

    return cfg
