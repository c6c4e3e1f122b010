"""Feature extraction - raw project records to a normalized feature vector.

All transforms are pure: the same ``ProjectRawData`` always yields the same
``FeatureVector``. No I/O, no clock reads, no randomness.

Normalization strategies:
    - clamp01 for ratios that are bounded by construction
    - log_norm for heavy-tailed counts (followers, commits, stars, USD depth),
      so doubling an already large count yields diminishing gain
    - concentration_risk for the largest-contributor share of funding
"""

from __future__ import annotations

import dataclasses
import math
from collections.abc import Mapping
from dataclasses import dataclass

from project_risk_engine.ingestor.models import ProjectCategory, ProjectRawData
from project_risk_engine.scoring.models import FeatureVector

CATEGORY_RISK: dict[ProjectCategory, float] = {
    ProjectCategory.INFRASTRUCTURE: 0.20,
    ProjectCategory.DEFI: 0.45,
    ProjectCategory.DAO: 0.40,
    ProjectCategory.GAMING: 0.55,
    ProjectCategory.NFT: 0.70,
    ProjectCategory.SOCIAL: 0.50,
    ProjectCategory.OTHER: 0.60,
}
UNKNOWN_CATEGORY_RISK = 0.5

# Neutral priors used when an optional input is missing.
PREVIOUS_SUCCESS_PRIOR = 0.4
UNAUDITED_SCORE = 0.3
TOKENOMICS_PRIOR = 0.4
UNLISTED_LIQUIDITY_SCORE = 0.2
REDACTED_CONCENTRATION_PRIOR = 0.25


@dataclass(frozen=True)
class Benchmarks:
    """Reference values observed in historically successful projects."""

    min_contributors: int = 50
    good_contributors: int = 500
    good_funding_velocity: float = 5_000.0  # USD/day
    good_github_commits: int = 200
    good_github_contributors: int = 20
    good_github_stars: int = 500
    good_twitter_followers: int = 10_000
    good_discord_members: int = 5_000
    good_team_experience: float = 5.0  # years
    good_team_size: int = 10
    good_advisor_count: int = 3
    good_partnership_count: int = 2
    good_milestone_count: int = 10
    good_liquidity_depth: float = 500_000.0  # USD
    max_whale_concentration: float = 0.3


DEFAULT_BENCHMARKS = Benchmarks()


class FeatureExtractionError(ValueError):
    """Raised when a raw record cannot be turned into features."""


def clamp01(value: float) -> float:
    """Clamp a value to [0, 1]."""
    return min(1.0, max(0.0, value))


def sigmoid(x: float, scale: float = 1.0) -> float:
    """Logistic squashing of an unbounded input."""
    z = -x / scale
    if z > 700:
        return 0.0
    return 1.0 / (1.0 + math.exp(z))


def log_norm(value: float, reference: float) -> float:
    """Log-scale normalization against a reference 'good' value."""
    if value <= 0:
        return 0.0
    return clamp01(math.log1p(value) / math.log1p(reference))


def concentration_risk(largest: float | None, total: float) -> float:
    """Share of funding held by the largest contributor.

    No funding at all is maximal risk. A redacted largest contribution
    (privacy mode) maps to a neutral prior rather than zero.
    """
    if total <= 0:
        return 1.0
    if largest is None:
        return REDACTED_CONCENTRATION_PRIOR
    return clamp01(largest / total)


def round_half_up(value: float, ndigits: int = 0) -> float:
    """Round with ties going toward positive infinity."""
    factor = 10**ndigits
    return math.floor(value * factor + 0.5) / factor


def _check_finite(raw: ProjectRawData) -> None:
    for record in (raw.on_chain, raw.off_chain):
        for f in dataclasses.fields(record):
            value = getattr(record, f.name)
            if isinstance(value, float) and not math.isfinite(value):
                raise FeatureExtractionError(
                    f"{type(record).__name__}.{f.name} is not finite ({value!r})"
                )


class FeatureExtractor:
    """Turns a ProjectRawData into a FeatureVector.

    Composite features are fixed convex combinations of simpler ones.
    Benchmarks and category risk can be overridden for recalibration.
    """

    def __init__(
        self,
        benchmarks: Benchmarks = DEFAULT_BENCHMARKS,
        category_risk: Mapping[ProjectCategory, float] | None = None,
    ) -> None:
        self._benchmarks = benchmarks
        self._category_risk = dict(category_risk) if category_risk is not None else CATEGORY_RISK

    def extract(self, raw: ProjectRawData) -> FeatureVector:
        _check_finite(raw)
        b = self._benchmarks
        oc = raw.on_chain
        off = raw.off_chain

        # Funding
        funding_completion_rate = clamp01(oc.total_raised / (off.funding_goal or 1))
        days_remaining = max(0.0, off.funding_deadline_days - oc.days_active)
        days_remaining_ratio = (
            clamp01(days_remaining / off.funding_deadline_days)
            if off.funding_deadline_days > 0
            else 0.0
        )
        funding_velocity_normalized = log_norm(oc.funding_velocity, b.good_funding_velocity)
        contributor_concentration_risk = concentration_risk(
            oc.largest_contribution, oc.total_raised
        )

        # Team
        team_experience_normalized = log_norm(
            off.team_experience_years if oc.days_active > 0 else 0.0,
            b.good_team_experience,
        )
        previous_success_boost = (
            clamp01(off.previous_projects_success_rate)
            if off.previous_projects_success_rate is not None
            else PREVIOUS_SUCCESS_PRIOR
        )
        team_strength_score = clamp01(
            0.30 * team_experience_normalized
            + 0.25 * previous_success_boost
            + 0.25 * clamp01(off.team_size / b.good_team_size)
            + 0.20 * clamp01(off.advisor_quality_score / 100)
        )

        # Community and traction
        twitter = log_norm(off.twitter_followers or 0, b.good_twitter_followers)
        discord = log_norm(off.discord_members or 0, b.good_discord_members)
        sentiment_normalized = clamp01((off.sentiment_score + 1) / 2)
        community_engagement_score = clamp01(
            0.35 * twitter + 0.35 * discord + 0.30 * sentiment_normalized
        )
        github_activity_score = clamp01(
            0.5 * log_norm(off.github_commits or 0, b.good_github_commits)
            + 0.3 * log_norm(off.github_contributors or 0, b.good_github_contributors)
            + 0.2 * log_norm(off.github_stars or 0, b.good_github_stars)
        )
        social_reach_score = clamp01(0.6 * twitter + 0.4 * discord)

        # Technical
        audit_safety_score = (
            clamp01(oc.contract_audit_score / 100)
            if oc.contract_audit_score is not None
            else UNAUDITED_SCORE
        )
        contract_security_score = clamp01(
            0.6 * audit_safety_score + 0.4 * (1.0 if oc.has_multisig else 0.0)
        )
        tokenomics = (
            clamp01(oc.tokenomics_score / 100)
            if oc.tokenomics_score is not None
            else TOKENOMICS_PRIOR
        )
        technical_robustness_score = clamp01(
            0.4 * contract_security_score + 0.3 * github_activity_score + 0.3 * tokenomics
        )

        # Project quality
        whitepaper_quality_normalized = clamp01(off.whitepaper_score / 100)
        roadmap_score = clamp01(off.roadmap_clarity / 100)
        legal_risk_score = 1.0 - clamp01(off.legal_compliance_score / 100)
        advisory_strength_score = clamp01(
            0.5 * clamp01(off.advisor_count / b.good_advisor_count)
            + 0.5 * clamp01(off.advisor_quality_score / 100)
        )
        partnership = clamp01(off.partnership_count / (b.good_partnership_count + 1))
        project_quality_score = clamp01(
            0.25 * whitepaper_quality_normalized
            + 0.20 * roadmap_score
            + 0.20 * advisory_strength_score
            + 0.15 * partnership
            + 0.10 * clamp01(off.media_score / 100)
            + 0.10 * clamp01(off.milestone_count / b.good_milestone_count)
        )

        # Market and liquidity
        liquidity = (
            log_norm(oc.liquidity_depth, b.good_liquidity_depth)
            if oc.liquidity_depth is not None
            else UNLISTED_LIQUIDITY_SCORE
        )
        liquidity_risk_score = 1.0 - liquidity
        category_risk_factor = self._category_risk.get(off.category, UNKNOWN_CATEGORY_RISK)

        early_momentum_index = clamp01(
            0.35 * funding_completion_rate
            + 0.25 * funding_velocity_normalized
            + 0.20 * community_engagement_score
            + 0.20 * clamp01(oc.contributor_count / b.good_contributors)
        )

        return FeatureVector(
            funding_completion_rate=funding_completion_rate,
            funding_velocity_normalized=funding_velocity_normalized,
            days_remaining_ratio=days_remaining_ratio,
            contributor_concentration_risk=contributor_concentration_risk,
            team_strength_score=team_strength_score,
            team_experience_normalized=team_experience_normalized,
            previous_success_boost=previous_success_boost,
            community_engagement_score=community_engagement_score,
            sentiment_normalized=sentiment_normalized,
            github_activity_score=github_activity_score,
            social_reach_score=social_reach_score,
            technical_robustness_score=technical_robustness_score,
            audit_safety_score=audit_safety_score,
            contract_security_score=contract_security_score,
            project_quality_score=project_quality_score,
            roadmap_score=roadmap_score,
            legal_risk_score=legal_risk_score,
            liquidity_risk_score=liquidity_risk_score,
            category_risk_factor=category_risk_factor,
            early_momentum_index=early_momentum_index,
            whitepaper_quality_normalized=whitepaper_quality_normalized,
            advisory_strength_score=advisory_strength_score,
        )


_DEFAULT_EXTRACTOR = FeatureExtractor()


def extract_features(raw: ProjectRawData) -> FeatureVector:
    """Extract features with the default benchmarks."""
    return _DEFAULT_EXTRACTOR.extract(raw)
