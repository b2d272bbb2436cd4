from __future__ import annotations

import json
from dataclasses import FrozenInstanceError
from decimal import Decimal

import pytest

from src.pricing.config import PricingConfig, get_pricing_config, load_regional_loadings
from src.pricing.quote import (
    RiskProfile,
    age_factor,
    bmi_factor,
    compute_bmi,
    health_factor,
    quote,
    regional_loading,
    resolve_effective_age,
)

CFG = PricingConfig()


def scenario_a(**overrides) -> RiskProfile:
    fields = dict(
        age=30,
        is_smoker=False,
        health_score=80,
        coverage_type="individual",
        chronic_conditions=frozenset(),
        city="default",
        is_existing_customer=False,
        occupation_class="class_1",
    )
    fields.update(overrides)
    return RiskProfile(**fields)


class TestScenarios:
    def test_scenario_a_baseline_adult(self):
        q = quote(1000, scenario_a())

        assert q.age_factor == Decimal("1.125")
        assert q.smoker_factor == Decimal("1")
        assert q.health_factor == Decimal("0.95")
        assert q.coverage_factor == Decimal("1")
        assert q.disease_loading == Decimal("1")
        assert q.regional_loading == Decimal("1")
        assert q.loyalty_discount == Decimal("1")
        assert q.bmi_factor == Decimal("1")
        assert q.occupation_factor == Decimal("1")
        assert q.calculated_total == Decimal("1068.75")

    def test_scenario_b_smoker_in_kathmandu(self):
        q = quote(1000, scenario_a(is_smoker=True, city="Kathmandu"))

        assert q.smoker_factor == Decimal("1.35")
        assert q.regional_loading == Decimal("1.10")
        # 1000 x 1.125 x 1.35 x 0.95 x 1.10 = 1587.09375
        assert q.calculated_total == Decimal("1587.09")

    def test_every_factor_is_returned(self):
        out = quote(1000, scenario_a()).to_dict()
        for key in [
            "base_premium",
            "age_factor",
            "smoker_factor",
            "health_factor",
            "coverage_factor",
            "disease_loading",
            "regional_loading",
            "loyalty_discount",
            "bmi_factor",
            "occupation_factor",
            "calculated_total",
        ]:
            assert isinstance(out[key], float), key
        assert out["calculated_total"] == 1068.75


class TestAgeFactor:
    @pytest.mark.parametrize(
        "age, expected",
        [(1, "1.10"), (2, "1.10"), (3, "0.80"), (17, "0.80"), (18, "1.00"), (24, "1.00"), (25, "1"), (45, "1.500")],
    )
    def test_bands(self, age, expected):
        assert age_factor(age, CFG) == Decimal(expected)

    def test_monotonic_and_capped_for_adults(self):
        for a in range(25, 121):
            assert age_factor(a + 1, CFG) >= age_factor(a, CFG)
        for a in range(1, 122):
            assert age_factor(a, CFG) <= Decimal("2.50")
        assert age_factor(85, CFG) == Decimal("2.50")
        assert age_factor(120, CFG) == Decimal("2.50")

    @pytest.mark.parametrize("bad_age", [500, 0, -4, None, "abc", 121])
    def test_out_of_range_age_prices_like_thirty(self, bad_age):
        assert quote(1000, scenario_a(age=bad_age)) == quote(1000, scenario_a(age=30))

    def test_eldest_family_member_sets_age(self):
        profile = scenario_a(age=25, family_ages=(25, 60))
        assert resolve_effective_age(profile, CFG) == 60
        assert quote(1000, profile).age_factor == Decimal("1.875")

    def test_invalid_family_ages_fall_back_to_applicant(self):
        assert resolve_effective_age(scenario_a(age=40, family_ages=("x", None)), CFG) == 40

    def test_out_of_range_eldest_member_uses_default_age(self):
        # the max is taken first, so one impossible age outranks the valid ones
        profile = scenario_a(age=40, family_ages=(40, 500))
        assert resolve_effective_age(profile, CFG) == 30
        assert quote(1000, profile).age_factor == Decimal("1.125")


class TestRiskFactors:
    @pytest.mark.parametrize(
        "score, expected",
        [(95, "0.85"), (90, "0.85"), (89, "0.95"), (75, "0.95"), (74, "1.10"), (50, "1.10"), (49, "1.40"), (1, "1.40")],
    )
    def test_health_bands(self, score, expected):
        assert health_factor(score, CFG) == Decimal(expected)

    def test_unknown_health_is_precautionary(self):
        assert health_factor(None, CFG) == Decimal("1.05")
        assert health_factor(150, CFG) == Decimal("0.85")

    @pytest.mark.parametrize("members, expected", [(None, "1.20"), (1, "1.20"), (2, "1.20"), (4, "1.36"), (10, "1.84"), (25, "1.84")])
    def test_family_coverage(self, members, expected):
        q = quote(1000, scenario_a(coverage_type="family", family_member_count=members))
        assert q.coverage_factor == Decimal(expected)

    def test_family_members_ignored_for_individual(self):
        q = quote(1000, scenario_a(coverage_type="individual", family_member_count=6))
        assert q.coverage_factor == Decimal("1")
        assert q.family_members is None

    def test_disease_loading_is_additive_and_uncapped(self):
        conditions = frozenset({"diabetes", "hypertension", "asthma", "ckd", "copd", "thyroid", "arthritis"})
        q = quote(1000, scenario_a(chronic_conditions=conditions))
        assert q.condition_count == 7
        assert q.disease_loading == Decimal("2.05")

    def test_loyalty_discount(self):
        assert quote(1000, scenario_a(is_existing_customer=True)).loyalty_discount == Decimal("0.95")

    def test_bmi(self):
        assert compute_bmi(70, 175) == pytest.approx(22.857, rel=1e-3)
        assert bmi_factor(compute_bmi(70, 175), CFG) == Decimal("1")
        assert bmi_factor(27.0, CFG) == Decimal("1.10")
        assert bmi_factor(30.0, CFG) == Decimal("1.25")
        assert bmi_factor(17.0, CFG) == Decimal("1")

    def test_missing_biometrics_are_neutral(self):
        q = quote(1000, scenario_a(weight_kg=90, height_cm=None))
        assert q.bmi is None
        assert q.bmi_factor == Decimal("1")

    @pytest.mark.parametrize("occ, expected", [("class_1", "1"), ("class_2", "1.15"), ("Class 3", "1.30"), (None, "1"), ("pilot", "1")])
    def test_occupation(self, occ, expected):
        assert quote(1000, scenario_a(occupation_class=occ)).occupation_factor == Decimal(expected)

    def test_regional_lookup(self):
        assert regional_loading("kathmandu", CFG) == Decimal("1.10")
        assert regional_loading("  Lalitpur ", CFG) == Decimal("1.08")
        assert regional_loading("Kathmandu-10, Bagmati", CFG) == Decimal("1.10")
        assert regional_loading("Biratnagar", CFG) == Decimal("1")
        assert regional_loading(None, CFG) == Decimal("1")


class TestTotals:
    def test_deterministic(self):
        profile = scenario_a(is_smoker=True, family_ages=(30, 55), chronic_conditions=frozenset({"asthma"}))
        assert quote(Decimal("4321.10"), profile) == quote(Decimal("4321.10"), profile)

    def test_quote_is_immutable(self):
        q = quote(1000, scenario_a(family_ages=(30, 55), health_score=None))
        assert q.notes == (
            "Priced to eldest covered member (age 55).",
            "Health score unknown; precautionary health factor applied.",
        )
        with pytest.raises(FrozenInstanceError):
            q.notes = ()
        assert hash(q) == hash(quote(1000, scenario_a(family_ages=(30, 55), health_score=None)))

    @pytest.mark.parametrize("base", [-500, "not-a-number", None, float("nan")])
    def test_invalid_base_premium_is_zero(self, base):
        q = quote(base, scenario_a())
        assert q.base_premium == Decimal("0")
        assert q.calculated_total == Decimal("0.00")

    def test_non_negative_for_valid_inputs(self):
        for base in [0, 1, 99.99, 25000]:
            for age in [1, 10, 20, 40, 90]:
                assert quote(base, scenario_a(age=age, is_smoker=True)).calculated_total >= 0

    def test_rounds_half_up_once(self):
        # 0.5 x 1.125 x 0.95 = 0.534375 -> 0.53 ; 1.01 x 1.125 x 0.95 = 1.0794375 -> 1.08
        assert quote("0.5", scenario_a()).calculated_total == Decimal("0.53")
        assert quote("1.01", scenario_a()).calculated_total == Decimal("1.08")
        # 0.5 x 1.00 x 0.85 = 0.425, an exact half: half-up gives 0.43, not 0.42
        assert quote("0.5", scenario_a(age=18, health_score=90)).calculated_total == Decimal("0.43")


class TestRegionalTable:
    def test_load_from_json(self, tmp_path):
        path = tmp_path / "regions.json"
        path.write_text(json.dumps({"Biratnagar": 1.04}), encoding="utf-8")
        assert load_regional_loadings(path) == {"biratnagar": 1.04}

    def test_env_overrides_table(self, tmp_path, monkeypatch):
        path = tmp_path / "regions.json"
        path.write_text(json.dumps({"Biratnagar": 1.04}), encoding="utf-8")
        monkeypatch.setenv("PRICING_REGIONS_PATH", str(path))

        cfg = get_pricing_config()
        assert regional_loading("Biratnagar", cfg) == Decimal("1.04")
        assert regional_loading("Kathmandu", cfg) == Decimal("1")

    def test_rejects_non_object(self, tmp_path):
        path = tmp_path / "regions.json"
        path.write_text("[1, 2]", encoding="utf-8")
        with pytest.raises(ValueError):
            load_regional_loadings(path)
