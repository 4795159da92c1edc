import pytest

from verifyflow.v1.handlers.risk import (
    calculate_risk_score,
    get_risk_level,
    get_risk_recommendations,
)


class TestRiskScore:
    def test_single_factor(self):
        assert calculate_risk_score({"transactionVolume": 1.0}) == 0.3

    def test_no_factors(self):
        assert calculate_risk_score({}) == 0.0

    def test_all_factors_at_maximum(self):
        factors = {
            "transactionVolume": 1,
            "transactionFrequency": 1,
            "geographicRisk": 1,
            "industryRisk": 1,
            "customerType": 1,
        }
        assert calculate_risk_score(factors) == 1.0

    def test_non_numeric_values_count_as_low(self):
        assert calculate_risk_score({"geographicRisk": "high"}) == 0.025
        assert calculate_risk_score({"industryRisk": None}) == 0.015

    def test_booleans_are_not_numeric(self):
        assert calculate_risk_score({"customerType": True}) == 0.01

    def test_unknown_factors_ignored(self):
        assert calculate_risk_score({"shoeSize": 44, "transactionVolume": 0.5}) == 0.15

    def test_score_is_clamped(self):
        assert calculate_risk_score({"transactionVolume": 10}) == 1.0
        assert calculate_risk_score({"transactionVolume": -2}) == 0.0

    def test_sums_land_on_boundaries(self):
        score = calculate_risk_score({"geographicRisk": 1.0, "customerType": 0.5})
        assert score == 0.3
        assert get_risk_level(score) == "MEDIUM"


class TestRiskLevel:
    @pytest.mark.parametrize(
        "score,level",
        [
            (0.0, "LOW"),
            (0.2999, "LOW"),
            (0.3, "MEDIUM"),
            (0.5999, "MEDIUM"),
            (0.6, "HIGH"),
            (0.7999, "HIGH"),
            (0.8, "CRITICAL"),
            (1.0, "CRITICAL"),
        ],
    )
    def test_level_boundaries(self, score, level):
        assert get_risk_level(score) == level

    def test_recommendations(self):
        assert get_risk_recommendations("LOW") == [
            "Continue standard monitoring",
            "Periodic review recommended",
        ]
        assert "Escalate to compliance team" in get_risk_recommendations("CRITICAL")
        assert len(get_risk_recommendations("MEDIUM")) == 3

    def test_recommendations_are_copies(self):
        get_risk_recommendations("HIGH").append("mutated")
        assert "mutated" not in get_risk_recommendations("HIGH")
