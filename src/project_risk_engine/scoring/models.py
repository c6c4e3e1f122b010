"""Data models for the scoring module."""

from __future__ import annotations

import dataclasses
import math
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum

from project_risk_engine.ingestor.models import DataSourceType


class RiskLevel(str, Enum):
    """Discrete risk band derived from the overall score (100 = safest)."""

    VERY_LOW = "VERY_LOW"
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    VERY_HIGH = "VERY_HIGH"

    @property
    def rank(self) -> int:
        """Ordinal where 0 is the safest band."""
        return list(RiskLevel).index(self)


class ConfidenceLevel(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class RiskCategory(str, Enum):
    FUNDING = "FUNDING"
    TEAM = "TEAM"
    TECHNICAL = "TECHNICAL"
    COMMUNITY = "COMMUNITY"
    MARKET = "MARKET"
    LEGAL = "LEGAL"


@dataclass(frozen=True)
class FeatureVector:
    """Normalized model inputs, every field in [0, 1].

    Fields ending in ``_risk``/``_risk_score``/``_risk_factor`` have risk
    polarity: higher means worse.
    """

    funding_completion_rate: float
    funding_velocity_normalized: float
    days_remaining_ratio: float
    contributor_concentration_risk: float
    team_strength_score: float
    team_experience_normalized: float
    previous_success_boost: float
    community_engagement_score: float
    sentiment_normalized: float
    github_activity_score: float
    social_reach_score: float
    technical_robustness_score: float
    audit_safety_score: float
    contract_security_score: float
    project_quality_score: float
    roadmap_score: float
    legal_risk_score: float
    liquidity_risk_score: float
    category_risk_factor: float
    early_momentum_index: float
    whitepaper_quality_normalized: float
    advisory_strength_score: float

    def __post_init__(self) -> None:
        for f in dataclasses.fields(self):
            value = getattr(self, f.name)
            if not math.isfinite(value) or value < 0.0 or value > 1.0:
                raise ValueError(f"Feature {f.name}={value!r} is outside [0, 1]")

    @classmethod
    def names(cls) -> tuple[str, ...]:
        return tuple(f.name for f in dataclasses.fields(cls))

    @classmethod
    def filled(cls, value: float = 0.5, **overrides: float) -> FeatureVector:
        """Build a vector with every feature at ``value`` except ``overrides``."""
        values = {name: value for name in cls.names()}
        unknown = set(overrides) - set(values)
        if unknown:
            raise ValueError(f"Unknown features: {sorted(unknown)}")
        values.update(overrides)
        return cls(**values)

    def get(self, name: str, default: float = 0.0) -> float:
        value = getattr(self, name, None)
        return default if value is None else float(value)

    def to_dict(self) -> dict[str, float]:
        return dataclasses.asdict(self)


@dataclass(frozen=True)
class RiskFactor:
    """A feature's attributed effect on the assessment.

    Attributes:
        name: Feature name.
        display_name: Human-readable label.
        category: Risk domain the feature belongs to.
        impact: Signed contribution (negative hurts the project).
        weight: Absolute model weight of the feature.
        current_value: Feature value for this project.
        benchmark: Feature value typical of successful projects.
        description: Sentence describing the current value.
        recommendation: Suggested action, if any.
    """

    name: str
    display_name: str
    category: RiskCategory
    impact: float
    weight: float
    current_value: float
    benchmark: float
    description: str
    recommendation: str | None = None

    def to_dict(self) -> dict[str, object]:
        return {
            "name": self.name,
            "display_name": self.display_name,
            "category": self.category.value,
            "impact": self.impact,
            "weight": self.weight,
            "current_value": self.current_value,
            "benchmark": self.benchmark,
            "description": self.description,
            "recommendation": self.recommendation,
        }


@dataclass(frozen=True)
class RiskScore:
    """Overall and per-domain safety scores, integers in [0, 100]."""

    overall: int
    funding_risk: int
    team_risk: int
    technical_risk: int
    community_risk: int
    market_risk: int
    legal_risk: int

    def to_dict(self) -> dict[str, int]:
        return dataclasses.asdict(self)


@dataclass(frozen=True)
class SuccessPrediction:
    probability: float
    confidence_interval: tuple[float, float]
    confidence_level: ConfidenceLevel
    model_version: str

    def to_dict(self) -> dict[str, object]:
        return {
            "probability": self.probability,
            "confidence_interval": list(self.confidence_interval),
            "confidence_level": self.confidence_level.value,
            "model_version": self.model_version,
        }


@dataclass(frozen=True)
class RiskAssessmentResult:
    """The externally visible outcome of one assessment."""

    project_id: str
    risk_level: RiskLevel
    risk_score: RiskScore
    success_prediction: SuccessPrediction
    top_risk_factors: tuple[RiskFactor, ...]
    top_strengths: tuple[RiskFactor, ...]
    explanation_summary: str
    investor_insights: tuple[str, ...]
    data_sources_used: tuple[DataSourceType, ...]
    assessment_version: str
    features: FeatureVector
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, object]:
        """Serialize for API responses and stream publishing."""
        return {
            "project_id": self.project_id,
            "timestamp": self.timestamp.isoformat(),
            "risk_level": self.risk_level.value,
            "risk_score": self.risk_score.to_dict(),
            "success_prediction": self.success_prediction.to_dict(),
            "top_risk_factors": [f.to_dict() for f in self.top_risk_factors],
            "top_strengths": [f.to_dict() for f in self.top_strengths],
            "explanation_summary": self.explanation_summary,
            "investor_insights": list(self.investor_insights),
            "data_sources_used": [s.value for s in self.data_sources_used],
            "assessment_version": self.assessment_version,
        }
