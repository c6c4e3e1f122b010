"""Data models for project records fetched from on-chain and off-chain sources."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Generic, TypeVar

T = TypeVar("T")


class DataSourceType(str, Enum):
    """Where a project record came from."""

    ON_CHAIN = "ON_CHAIN"
    OFF_CHAIN = "OFF_CHAIN"
    HYBRID = "HYBRID"


class ProjectCategory(str, Enum):
    """Project categories with distinct historical risk profiles."""

    DEFI = "DEFI"
    NFT = "NFT"
    GAMING = "GAMING"
    INFRASTRUCTURE = "INFRASTRUCTURE"
    DAO = "DAO"
    SOCIAL = "SOCIAL"
    OTHER = "OTHER"

    @classmethod
    def parse(cls, value: object) -> ProjectCategory:
        """Parse a category, mapping unknown values to OTHER."""
        try:
            return cls(str(value).upper())
        except ValueError:
            return cls.OTHER


def _opt_float(data: dict[str, Any], key: str) -> float | None:
    value = data.get(key)
    return float(value) if value is not None else None


def _opt_int(data: dict[str, Any], key: str) -> int | None:
    value = data.get(key)
    return int(value) if value is not None else None


@dataclass(frozen=True)
class ProjectOnChainData:
    """On-chain funding snapshot for a project.

    Attributes:
        chain_id: EVM chain the contract lives on.
        total_raised: Total funds raised (USD).
        contributor_count: Distinct contributing wallets.
        average_contribution: Mean contribution size (USD).
        largest_contribution: Largest single contribution (USD), or None when
            redacted by privacy mode.
        funding_velocity: Funds raised per day (USD/day).
        days_active: Days since the campaign opened.
        has_multisig: Whether treasury funds sit behind a multisig.
        on_chain_activity_score: 0-100, derived from transaction history.
        contract_address: Campaign contract address, None when redacted.
        contract_audit_score: 0-100 if audited.
        tokenomics_score: 0-100 if assessed.
        liquidity_depth: USD in liquidity pools if listed.
    """

    chain_id: int
    total_raised: float
    contributor_count: int
    average_contribution: float
    largest_contribution: float | None
    funding_velocity: float
    days_active: float
    has_multisig: bool
    on_chain_activity_score: float
    contract_address: str | None = None
    contract_audit_score: float | None = None
    tokenomics_score: float | None = None
    liquidity_depth: float | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ProjectOnChainData:
        """Create from an on-chain API payload (camelCase keys)."""
        largest = _opt_float(data, "largestContribution")
        return cls(
            chain_id=int(data.get("chainId", 1)),
            total_raised=float(data["totalRaised"]),
            contributor_count=int(data["contributorCount"]),
            average_contribution=float(data.get("averageContribution", 0.0)),
            # The upstream API encodes a redacted figure as a negative sentinel.
            largest_contribution=largest if largest is not None and largest >= 0 else None,
            funding_velocity=float(data.get("fundingVelocity", 0.0)),
            days_active=float(data.get("daysActive", 0.0)),
            has_multisig=bool(data.get("hasMultisig", False)),
            on_chain_activity_score=float(data.get("onChainActivityScore", 0.0)),
            contract_address=data.get("contractAddress"),
            contract_audit_score=_opt_float(data, "contractAuditScore"),
            tokenomics_score=_opt_float(data, "tokenomicsScore"),
            liquidity_depth=_opt_float(data, "liquidityDepth"),
        )

    def sanitized(self) -> ProjectOnChainData:
        """Return a copy with individual contribution details redacted."""
        return dataclasses.replace(self, largest_contribution=None, contract_address=None)

    def to_dict(self) -> dict[str, object]:
        return {
            "contractAddress": self.contract_address,
            "chainId": self.chain_id,
            "totalRaised": self.total_raised,
            "contributorCount": self.contributor_count,
            "averageContribution": self.average_contribution,
            "largestContribution": self.largest_contribution,
            "fundingVelocity": self.funding_velocity,
            "daysActive": self.days_active,
            "contractAuditScore": self.contract_audit_score,
            "hasMultisig": self.has_multisig,
            "tokenomicsScore": self.tokenomics_score,
            "liquidityDepth": self.liquidity_depth,
            "onChainActivityScore": self.on_chain_activity_score,
        }


@dataclass(frozen=True)
class ProjectOffChainData:
    """Off-chain project metadata (team, community, documentation, legal)."""

    project_id: str
    title: str
    category: ProjectCategory
    team_size: int
    team_experience_years: float
    whitepaper_score: float
    roadmap_clarity: float
    partnership_count: int
    advisor_count: int
    advisor_quality_score: float
    legal_compliance_score: float
    media_score: float
    sentiment_score: float
    funding_goal: float
    funding_deadline_days: float
    milestone_count: int
    github_commits: int | None = None
    github_stars: int | None = None
    github_contributors: int | None = None
    twitter_followers: int | None = None
    discord_members: int | None = None
    previous_projects_success_rate: float | None = None
    milestone_completion_rate: float | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ProjectOffChainData:
        """Create from a project metadata API payload (camelCase keys)."""
        return cls(
            project_id=str(data["projectId"]),
            title=str(data.get("title", "")),
            category=ProjectCategory.parse(data.get("category", "OTHER")),
            team_size=int(data.get("teamSize", 0)),
            team_experience_years=float(data.get("teamExperienceYears", 0.0)),
            whitepaper_score=float(data.get("whitepaperScore", 0.0)),
            roadmap_clarity=float(data.get("roadmapClarity", 0.0)),
            partnership_count=int(data.get("partnershipCount", 0)),
            advisor_count=int(data.get("advisorCount", 0)),
            advisor_quality_score=float(data.get("advisorQualityScore", 0.0)),
            legal_compliance_score=float(data.get("legalComplianceScore", 0.0)),
            media_score=float(data.get("mediaScore", 0.0)),
            sentiment_score=float(data.get("sentimentScore", 0.0)),
            funding_goal=float(data["fundingGoal"]),
            funding_deadline_days=float(data.get("fundingDeadlineDays", 0.0)),
            milestone_count=int(data.get("milestoneCount", 0)),
            github_commits=_opt_int(data, "githubCommits"),
            github_stars=_opt_int(data, "githubStars"),
            github_contributors=_opt_int(data, "githubContributors"),
            twitter_followers=_opt_int(data, "twitterFollowers"),
            discord_members=_opt_int(data, "discordMembers"),
            previous_projects_success_rate=_opt_float(data, "previousProjectsSuccessRate"),
            milestone_completion_rate=_opt_float(data, "milestoneCompletionRate"),
        )

    def to_dict(self) -> dict[str, object]:
        return {
            "projectId": self.project_id,
            "title": self.title,
            "category": self.category.value,
            "teamSize": self.team_size,
            "teamExperienceYears": self.team_experience_years,
            "githubCommits": self.github_commits,
            "githubStars": self.github_stars,
            "githubContributors": self.github_contributors,
            "twitterFollowers": self.twitter_followers,
            "discordMembers": self.discord_members,
            "whitepaperScore": self.whitepaper_score,
            "roadmapClarity": self.roadmap_clarity,
            "partnershipCount": self.partnership_count,
            "advisorCount": self.advisor_count,
            "advisorQualityScore": self.advisor_quality_score,
            "previousProjectsSuccessRate": self.previous_projects_success_rate,
            "legalComplianceScore": self.legal_compliance_score,
            "mediaScore": self.media_score,
            "sentimentScore": self.sentiment_score,
            "fundingGoal": self.funding_goal,
            "fundingDeadlineDays": self.funding_deadline_days,
            "milestoneCount": self.milestone_count,
            "milestoneCompletionRate": self.milestone_completion_rate,
        }


@dataclass(frozen=True)
class ProjectRawData:
    """One on-chain and one off-chain record, the unit of feature extraction."""

    on_chain: ProjectOnChainData
    off_chain: ProjectOffChainData
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def project_id(self) -> str:
        return self.off_chain.project_id


@dataclass(frozen=True)
class FetchResult(Generic[T]):
    """Outcome of a single cached, retried fetch."""

    source: DataSourceType
    data: T | None
    fetched_at: datetime
    from_cache: bool = False
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.data is not None and self.error is None


@dataclass(frozen=True)
class AggregationResult:
    """Combined outcome of fetching both sources for a project.

    ``raw`` is None unless both sources succeeded; ``errors`` and
    ``data_sources_used`` describe each side independently.
    """

    raw: ProjectRawData | None
    errors: tuple[str, ...] = ()
    data_sources_used: tuple[DataSourceType, ...] = ()
