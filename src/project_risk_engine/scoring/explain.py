"""Feature attribution and human-readable explanations.

Attribution is first-order and linear: each feature contributes
``weight * (value - baseline)`` where the baseline is an average project.
This is not a coalition-sampled Shapley value; it is a cheap marginal
estimate that is exact for the logistic member and indicative for the rest.

A positive contribution means the feature is helping the project, negative
means it is hurting. Features are ranked into risk factors and strengths,
which in turn feed a narrative summary and a short list of investor insights.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass

from project_risk_engine.scoring.config import DEFAULT_MODEL_CONFIG, RiskThresholds
from project_risk_engine.scoring.features import round_half_up
from project_risk_engine.scoring.models import FeatureVector, RiskCategory, RiskFactor, RiskScore

MAX_INSIGHTS = 6
MAX_RECOMMENDATION_INSIGHTS = 3

# Feature values of an average project.
BASELINE_FEATURES: dict[str, float] = {
    "funding_completion_rate": 0.40,
    "funding_velocity_normalized": 0.35,
    "days_remaining_ratio": 0.50,
    "contributor_concentration_risk": 0.25,
    "team_strength_score": 0.50,
    "team_experience_normalized": 0.40,
    "previous_success_boost": 0.40,
    "community_engagement_score": 0.40,
    "sentiment_normalized": 0.55,
    "github_activity_score": 0.35,
    "social_reach_score": 0.35,
    "technical_robustness_score": 0.45,
    "audit_safety_score": 0.30,
    "contract_security_score": 0.40,
    "project_quality_score": 0.45,
    "roadmap_score": 0.50,
    "legal_risk_score": 0.30,
    "liquidity_risk_score": 0.50,
    "category_risk_factor": 0.50,
    "early_momentum_index": 0.40,
    "whitepaper_quality_normalized": 0.45,
    "advisory_strength_score": 0.40,
}

# Feature values of a typical successful project.
SUCCESS_BENCHMARKS: dict[str, float] = {
    "funding_completion_rate": 0.80,
    "funding_velocity_normalized": 0.65,
    "team_strength_score": 0.75,
    "community_engagement_score": 0.70,
    "contract_security_score": 0.80,
    "project_quality_score": 0.70,
    "early_momentum_index": 0.70,
    "audit_safety_score": 0.75,
    "legal_risk_score": 0.15,
    "contributor_concentration_risk": 0.15,
}


def _pct(value: float) -> int:
    return int(round_half_up(value * 100))


@dataclass(frozen=True)
class FactorMeta:
    """How to present one feature to a human.

    ``is_risk_factor`` marks risk polarity (higher value means more risk).
    """

    display_name: str
    category: RiskCategory
    is_risk_factor: bool
    describe: Callable[[float], str]
    recommend: Callable[[float], str] | None = None


def _describe_sentiment(v: float) -> str:
    pct = _pct(v)
    if pct < 40:
        return "Community sentiment is predominantly negative."
    if pct < 60:
        return "Community sentiment is neutral."
    return f"Community sentiment is positive ({pct}/100)."


FACTOR_META: dict[str, FactorMeta] = {
    "funding_completion_rate": FactorMeta(
        display_name="Funding Progress",
        category=RiskCategory.FUNDING,
        is_risk_factor=False,
        describe=lambda v: f"Project has raised {_pct(v)}% of its funding goal.",
        recommend=lambda v: (
            "Funding traction is low. Consider improving marketing or adjusting the funding goal."
            if v < 0.3
            else "Moderate funding progress. Stronger community outreach may accelerate momentum."
            if v < 0.6
            else "Strong funding progress. Maintain current momentum."
        ),
    ),
    "early_momentum_index": FactorMeta(
        display_name="Early Momentum",
        category=RiskCategory.FUNDING,
        is_risk_factor=False,
        describe=lambda v: f"Early traction composite score: {_pct(v)}/100.",
        recommend=lambda v: (
            "Early momentum is weak. High-impact launches and strategic partnerships may help."
            if v < 0.4
            else "Momentum is adequate. Focus on converting community interest to contributions."
        ),
    ),
    "contributor_concentration_risk": FactorMeta(
        display_name="Whale Concentration Risk",
        category=RiskCategory.FUNDING,
        is_risk_factor=True,
        describe=lambda v: f"{_pct(v)}% of funds from single largest contributor.",
        recommend=lambda v: (
            "High concentration risk: a single whale withdrawal could collapse funding. "
            "Diversify contributor base."
            if v > 0.3
            else "Concentration risk is acceptable."
        ),
    ),
    "team_strength_score": FactorMeta(
        display_name="Team Quality",
        category=RiskCategory.TEAM,
        is_risk_factor=False,
        describe=lambda v: f"Team composite score: {_pct(v)}/100.",
        recommend=lambda v: (
            "Team score is below average. Consider adding experienced advisors "
            "or publicising team credentials."
            if v < 0.5
            else "Team appears solid. Highlight individual credentials for investor confidence."
        ),
    ),
    "previous_success_boost": FactorMeta(
        display_name="Founders' Track Record",
        category=RiskCategory.TEAM,
        is_risk_factor=False,
        describe=lambda v: f"Founders' historical project success rate: {_pct(v)}%.",
        recommend=lambda v: (
            "Limited prior success history. Detailed execution roadmap can compensate."
            if v < 0.4
            else "Good track record, a strong positive signal for investors."
        ),
    ),
    "contract_security_score": FactorMeta(
        display_name="Smart Contract Security",
        category=RiskCategory.TECHNICAL,
        is_risk_factor=False,
        describe=lambda v: f"Contract security score: {_pct(v)}/100 (audit + multisig).",
        recommend=lambda v: (
            "Smart contract security is concerning. A third-party audit is strongly recommended."
            if v < 0.5
            else "Security is moderate. Consider a reputable audit firm for additional assurance."
            if v < 0.75
            else "Strong security posture."
        ),
    ),
    "audit_safety_score": FactorMeta(
        display_name="Audit Status",
        category=RiskCategory.TECHNICAL,
        is_risk_factor=False,
        describe=lambda v: (
            "No audit or low-quality audit detected." if v < 0.35 else f"Audit score: {_pct(v)}/100."
        ),
        recommend=lambda v: (
            "Critical: contract is unaudited. This dramatically increases investor risk."
            if v < 0.35
            else "Audit coverage is adequate. Ensure audit reports are publicly accessible."
        ),
    ),
    "community_engagement_score": FactorMeta(
        display_name="Community Engagement",
        category=RiskCategory.COMMUNITY,
        is_risk_factor=False,
        describe=lambda v: f"Community activity score: {_pct(v)}/100.",
        recommend=lambda v: (
            "Community engagement is low. Regular AMAs, content, and Discord activity can help."
            if v < 0.4
            else "Community engagement is healthy."
        ),
    ),
    "sentiment_normalized": FactorMeta(
        display_name="Community Sentiment",
        category=RiskCategory.COMMUNITY,
        is_risk_factor=False,
        describe=_describe_sentiment,
        recommend=lambda v: (
            "Negative sentiment detected. Address community concerns transparently and promptly."
            if v < 0.4
            else "Sentiment is positive. Sustain open communication channels."
        ),
    ),
    "legal_risk_score": FactorMeta(
        display_name="Legal & Compliance Risk",
        category=RiskCategory.LEGAL,
        is_risk_factor=True,
        describe=lambda v: f"Legal risk score: {_pct(v)}/100 (higher = riskier).",
        recommend=lambda v: (
            "Significant compliance gaps identified. Engage legal counsel specialising "
            "in crypto/token regulation."
            if v > 0.5
            else "Moderate compliance risk. Review jurisdiction-specific requirements."
            if v > 0.3
            else "Legal posture appears sound."
        ),
    ),
    "liquidity_risk_score": FactorMeta(
        display_name="Liquidity Risk",
        category=RiskCategory.MARKET,
        is_risk_factor=True,
        describe=lambda v: (
            f"Liquidity risk: {_pct(v)}/100. Low liquidity increases exit difficulty."
        ),
        recommend=lambda v: (
            "Low liquidity is a concern for secondary market exits. "
            "Consider liquidity mining incentives."
            if v > 0.6
            else "Liquidity appears adequate."
        ),
    ),
    "project_quality_score": FactorMeta(
        display_name="Project Fundamentals",
        category=RiskCategory.MARKET,
        is_risk_factor=False,
        describe=lambda v: f"Overall project quality: {_pct(v)}/100.",
        recommend=lambda v: (
            "Project fundamentals need improvement. Whitepaper, roadmap, "
            "and partnership quality are key."
            if v < 0.5
            else "Strong project fundamentals."
        ),
    ),
    "github_activity_score": FactorMeta(
        display_name="Development Activity",
        category=RiskCategory.TECHNICAL,
        is_risk_factor=False,
        describe=lambda v: f"GitHub activity score: {_pct(v)}/100.",
        recommend=lambda v: (
            "Low development activity. Consistent commits and open-source "
            "engagement build investor trust."
            if v < 0.3
            else "Development activity is healthy."
        ),
    ),
}


class Explainer:
    """Attributes a feature vector against a baseline and narrates the result."""

    def __init__(
        self,
        feature_weights: Mapping[str, float] | None = None,
        baseline: Mapping[str, float] | None = None,
        benchmarks: Mapping[str, float] | None = None,
        risk_thresholds: RiskThresholds | None = None,
    ) -> None:
        self._weights = dict(
            feature_weights if feature_weights is not None else DEFAULT_MODEL_CONFIG.feature_weights
        )
        self._baseline = dict(baseline if baseline is not None else BASELINE_FEATURES)
        self._benchmarks = dict(benchmarks if benchmarks is not None else SUCCESS_BENCHMARKS)
        self._thresholds = risk_thresholds or DEFAULT_MODEL_CONFIG.risk_thresholds

    def shap_values(self, features: FeatureVector) -> dict[str, float]:
        """Per-feature signed contribution relative to the baseline project."""
        values = features.to_dict()
        return {
            name: self._weights.get(name, 0.0) * (value - self._baseline.get(name, 0.5))
            for name, value in values.items()
        }

    def _factors(self, features: FeatureVector) -> list[RiskFactor]:
        shap = self.shap_values(features)
        factors = []
        for name, meta in FACTOR_META.items():
            value = features.get(name)
            factors.append(
                RiskFactor(
                    name=name,
                    display_name=meta.display_name,
                    category=meta.category,
                    impact=shap[name],
                    weight=abs(self._weights.get(name, 0.0)),
                    current_value=value,
                    benchmark=self._benchmarks.get(name, self._baseline.get(name, 0.5)),
                    description=meta.describe(value),
                    recommendation=meta.recommend(value) if meta.recommend else None,
                )
            )
        return factors

    def top_risk_factors(self, features: FeatureVector, n: int = 5) -> list[RiskFactor]:
        """Features hurting the project most, most negative first."""
        hurting = [f for f in self._factors(features) if f.impact < 0]
        hurting.sort(key=lambda f: f.impact)
        return hurting[:n]

    def top_strengths(self, features: FeatureVector, n: int = 5) -> list[RiskFactor]:
        """Features helping the project most, most positive first."""
        helping = [f for f in self._factors(features) if f.impact > 0]
        helping.sort(key=lambda f: f.impact, reverse=True)
        return helping[:n]

    def _risk_word(self, overall: int) -> str:
        t = self._thresholds
        if overall >= t.very_low:
            return "very low risk"
        if overall >= t.low:
            return "low risk"
        if overall >= t.medium:
            return "moderate risk"
        if overall >= t.high:
            return "high risk"
        return "very high risk"

    def explanation_summary(
        self,
        risk_score: RiskScore,
        top_risks: Sequence[RiskFactor],
        top_strengths: Sequence[RiskFactor],
    ) -> str:
        top_risk_name = top_risks[0].display_name if top_risks else "unknown factor"
        top_strength_name = top_strengths[0].display_name if top_strengths else "team quality"

        weakest = min(risk_score.funding_risk, risk_score.team_risk, risk_score.technical_risk)
        if weakest == risk_score.funding_risk:
            weakest_domain = "funding momentum"
        elif weakest == risk_score.team_risk:
            weakest_domain = "team quality"
        else:
            weakest_domain = "technical robustness"

        return (
            f"This project is assessed as {self._risk_word(risk_score.overall)} "
            f"(score: {risk_score.overall}/100). "
            f"The primary concern is {top_risk_name.lower()}, while {top_strength_name.lower()} "
            f"is the strongest signal. The weakest domain is {weakest_domain}. "
            "Investors should weigh the identified risk factors carefully before committing capital."
        )

    def investor_insights(
        self,
        features: FeatureVector,
        risk_score: RiskScore,
        top_risks: Sequence[RiskFactor],
    ) -> list[str]:
        """Actionable notes in a fixed check order, capped at six."""
        insights: list[str] = []

        if risk_score.funding_risk < 50:
            insights.append(
                "Funding velocity is below target. The project may not reach its goal "
                "within the deadline."
            )
        if features.contributor_concentration_risk > 0.35:
            insights.append(
                f"Whale risk: the top contributor holds "
                f"{_pct(features.contributor_concentration_risk)}% of total funds. "
                "Consider setting a max contribution cap."
            )
        if features.audit_safety_score < 0.35:
            insights.append(
                "Smart contracts have not been independently audited, a significant "
                "security risk for investors."
            )
        if features.sentiment_normalized < 0.45:
            insights.append(
                "Community sentiment is trending negative. Monitor Discord and Twitter for grievances."
            )
        if features.legal_risk_score > 0.5:
            insights.append(
                "Elevated regulatory/legal risk. Confirm the project has obtained "
                "appropriate legal opinions."
            )
        if features.team_strength_score > 0.7 and features.project_quality_score > 0.65:
            insights.append(
                "Strong team and solid project fundamentals, a positive signal for long-term viability."
            )
        if risk_score.overall >= 70:
            insights.append(
                "Overall risk profile is favourable. This project meets baseline quality thresholds."
            )

        for factor in top_risks[:MAX_RECOMMENDATION_INSIGHTS]:
            if factor.recommendation:
                insights.append(factor.recommendation)

        return insights[:MAX_INSIGHTS]
