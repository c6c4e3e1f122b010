"""Tests for feature attribution and narrative explanations."""

from __future__ import annotations

import pytest

from project_risk_engine.scoring.ensemble import EnsembleModel
from project_risk_engine.scoring.explain import (
    BASELINE_FEATURES,
    FACTOR_META,
    MAX_INSIGHTS,
    Explainer,
)
from project_risk_engine.scoring.models import FeatureVector, RiskCategory, RiskScore


@pytest.fixture
def explainer() -> Explainer:
    return Explainer()


@pytest.fixture
def whale_project() -> FeatureVector:
    return FeatureVector.filled(0.5, contributor_concentration_risk=0.9)


def _score(overall: int = 50, funding: int = 50, team: int = 50, technical: int = 50) -> RiskScore:
    return RiskScore(
        overall=overall,
        funding_risk=funding,
        team_risk=team,
        technical_risk=technical,
        community_risk=50,
        market_risk=50,
        legal_risk=50,
    )


class TestShapValues:
    """Tests for linear attribution."""

    def test_baseline_project_has_zero_attribution(self, explainer: Explainer) -> None:
        features = FeatureVector(**BASELINE_FEATURES)
        assert all(v == pytest.approx(0.0) for v in explainer.shap_values(features).values())

    def test_sign_follows_polarity(self, explainer: Explainer, whale_project: FeatureVector) -> None:
        shap = explainer.shap_values(whale_project)
        # Concentration has a negative weight; above baseline it hurts.
        assert shap["contributor_concentration_risk"] == pytest.approx(-0.065)
        assert shap["funding_completion_rate"] > 0


class TestRankedFactors:
    """Tests for top risks and strengths."""

    def test_concentration_is_top_risk(
        self, explainer: Explainer, whale_project: FeatureVector
    ) -> None:
        """A dominant whale surfaces as the leading risk factor."""
        risks = explainer.top_risk_factors(whale_project)

        assert risks[0].name == "contributor_concentration_risk"
        assert risks[0].impact < 0
        assert risks[0].category is RiskCategory.FUNDING
        assert risks[0].display_name == "Whale Concentration Risk"
        assert risks[0].description == "90% of funds from single largest contributor."
        assert EnsembleModel().compute_risk_score(whale_project).funding_risk < 50

    def test_ordering(self, explainer: Explainer, whale_project: FeatureVector) -> None:
        risks = explainer.top_risk_factors(whale_project)
        strengths = explainer.top_strengths(whale_project)

        assert [r.impact for r in risks] == sorted(r.impact for r in risks)
        assert [s.impact for s in strengths] == sorted(
            (s.impact for s in strengths), reverse=True
        )

    @pytest.mark.parametrize("value", [0.0, 0.3, 0.5, 0.8, 1.0])
    def test_risks_and_strengths_never_overlap(self, explainer: Explainer, value: float) -> None:
        features = FeatureVector.filled(value, sentiment_normalized=1.0 - value)

        risk_names = {f.name for f in explainer.top_risk_factors(features, n=13)}
        strength_names = {f.name for f in explainer.top_strengths(features, n=13)}

        assert not risk_names & strength_names

    def test_limit(self, explainer: Explainer) -> None:
        features = FeatureVector.filled(1.0)
        assert len(explainer.top_strengths(features, n=2)) == 2

    def test_factors_only_for_described_features(
        self, explainer: Explainer, whale_project: FeatureVector
    ) -> None:
        names = {f.name for f in explainer.top_strengths(whale_project, n=50)}
        assert names <= set(FACTOR_META)
        assert len(FACTOR_META) == 13


class TestExplanationSummary:
    """Tests for the narrative summary."""

    def test_summary_mentions_score_and_factors(
        self, explainer: Explainer, whale_project: FeatureVector
    ) -> None:
        score = _score(overall=58, funding=42, team=50, technical=55)
        summary = explainer.explanation_summary(
            score,
            explainer.top_risk_factors(whale_project),
            explainer.top_strengths(whale_project),
        )

        assert "moderate risk (score: 58/100)" in summary
        assert "primary concern is whale concentration risk" in summary
        assert "weakest domain is funding momentum" in summary

    def test_summary_without_factors(self, explainer: Explainer) -> None:
        summary = explainer.explanation_summary(_score(overall=85, technical=40), [], [])

        assert "very low risk (score: 85/100)" in summary
        assert "unknown factor" in summary
        assert "technical robustness" in summary


class TestInvestorInsights:
    """Tests for investor insights."""

    def test_fixed_order_and_cap(self, explainer: Explainer) -> None:
        features = FeatureVector.filled(
            0.5,
            contributor_concentration_risk=0.9,
            audit_safety_score=0.1,
            sentiment_normalized=0.2,
            legal_risk_score=0.8,
        )
        top_risks = explainer.top_risk_factors(features)

        insights = explainer.investor_insights(features, _score(overall=40, funding=40), top_risks)

        assert len(insights) == MAX_INSIGHTS
        assert insights[0].startswith("Funding velocity is below target")
        assert insights[1].startswith("Whale risk: the top contributor holds 90%")
        assert insights[2].startswith("Smart contracts have not been independently audited")
        assert insights[3].startswith("Community sentiment is trending negative")
        assert insights[4].startswith("Elevated regulatory/legal risk")
        assert insights[5].startswith("High concentration risk")

    def test_favourable_profile(self, explainer: Explainer) -> None:
        features = FeatureVector.filled(
            0.8,
            contributor_concentration_risk=0.1,
            legal_risk_score=0.1,
            liquidity_risk_score=0.1,
            category_risk_factor=0.2,
        )

        insights = explainer.investor_insights(
            features, _score(overall=82, funding=80, team=80, technical=80), []
        )

        assert insights == [
            "Strong team and solid project fundamentals, a positive signal for long-term viability.",
            "Overall risk profile is favourable. This project meets baseline quality thresholds.",
        ]
