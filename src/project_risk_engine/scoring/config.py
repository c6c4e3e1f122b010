"""Versioned calibration data for the ensemble model.

Every weight, tree and threshold the scorer uses lives here as data so the
model can be recalibrated by shipping a JSON document instead of code.
"""

from __future__ import annotations

import json
import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from project_risk_engine.scoring.models import FeatureVector

MODEL_VERSION = "1.5.0"

_TOLERANCE = 1e-6


class ModelConfigError(ValueError):
    """Raised when calibration data is inconsistent or unreadable."""


@dataclass(frozen=True)
class TreeNode:
    """Depth-limited decision split; ``value <= threshold`` goes left."""

    feature: str
    threshold: float
    left: float | TreeNode
    right: float | TreeNode

    def evaluate(self, features: FeatureVector) -> float:
        branch = self.left if features.get(self.feature) <= self.threshold else self.right
        if isinstance(branch, TreeNode):
            return branch.evaluate(features)
        return float(branch)

    def referenced_features(self) -> set[str]:
        names = {self.feature}
        for branch in (self.left, self.right):
            if isinstance(branch, TreeNode):
                names |= branch.referenced_features()
        return names

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> TreeNode:
        def branch(value: Any) -> float | TreeNode:
            return cls.from_dict(value) if isinstance(value, Mapping) else float(value)

        return cls(
            feature=str(data["feature"]),
            threshold=float(data["threshold"]),
            left=branch(data["left"]),
            right=branch(data["right"]),
        )

    def to_dict(self) -> dict[str, object]:
        def branch(value: float | TreeNode) -> object:
            return value.to_dict() if isinstance(value, TreeNode) else value

        return {
            "feature": self.feature,
            "threshold": self.threshold,
            "left": branch(self.left),
            "right": branch(self.right),
        }


@dataclass(frozen=True)
class FeatureSubset:
    """One bagged member: a weighted sum over a few features."""

    features: tuple[str, ...]
    weights: tuple[float, ...]


@dataclass(frozen=True)
class EnsembleWeights:
    logistic_regression: float = 0.35
    gradient_boosting: float = 0.45
    random_forest: float = 0.20

    def as_tuple(self) -> tuple[float, float, float]:
        return (self.logistic_regression, self.gradient_boosting, self.random_forest)


@dataclass(frozen=True)
class RiskThresholds:
    very_low: float = 80
    low: float = 65
    medium: float = 45
    high: float = 25


DEFAULT_FEATURE_WEIGHTS: dict[str, float] = {
    # Funding
    "funding_completion_rate": 0.18,
    "funding_velocity_normalized": 0.12,
    "early_momentum_index": 0.14,
    "days_remaining_ratio": 0.05,
    "contributor_concentration_risk": -0.10,
    # Team
    "team_strength_score": 0.13,
    "team_experience_normalized": 0.07,
    "previous_success_boost": 0.09,
    "advisory_strength_score": 0.06,
    # Community
    "community_engagement_score": 0.10,
    "sentiment_normalized": 0.08,
    "github_activity_score": 0.07,
    "social_reach_score": 0.04,
    # Technical
    "technical_robustness_score": 0.11,
    "audit_safety_score": 0.09,
    "contract_security_score": 0.10,
    # Project quality
    "project_quality_score": 0.10,
    "roadmap_score": 0.07,
    "whitepaper_quality_normalized": 0.06,
    # Risk polarity
    "legal_risk_score": -0.09,
    "liquidity_risk_score": -0.06,
    "category_risk_factor": -0.05,
}

DEFAULT_TREES: tuple[TreeNode, ...] = (
    # Funding momentum
    TreeNode(
        "funding_completion_rate", 0.5,
        TreeNode("early_momentum_index", 0.3, -0.12, 0.04),
        TreeNode("funding_velocity_normalized", 0.6, 0.08, 0.18),
    ),
    # Team quality
    TreeNode(
        "team_strength_score", 0.5,
        TreeNode("previous_success_boost", 0.5, -0.10, 0.02),
        TreeNode("advisory_strength_score", 0.4, 0.06, 0.14),
    ),
    # Technical safety
    TreeNode(
        "contract_security_score", 0.5,
        TreeNode("audit_safety_score", 0.3, -0.15, -0.03),
        TreeNode("technical_robustness_score", 0.6, 0.05, 0.12),
    ),
    # Community sentiment
    TreeNode(
        "sentiment_normalized", 0.45,
        TreeNode("community_engagement_score", 0.3, -0.08, -0.02),
        TreeNode("social_reach_score", 0.5, 0.04, 0.10),
    ),
    # Risk factors
    TreeNode(
        "legal_risk_score", 0.5,
        TreeNode("liquidity_risk_score", 0.6, 0.06, -0.02),
        TreeNode("contributor_concentration_risk", 0.4, -0.04, -0.13),
    ),
    # Project quality
    TreeNode(
        "project_quality_score", 0.55,
        TreeNode("roadmap_score", 0.4, -0.07, 0.01),
        TreeNode("whitepaper_quality_normalized", 0.6, 0.05, 0.11),
    ),
)

DEFAULT_FOREST: tuple[FeatureSubset, ...] = (
    FeatureSubset(
        ("funding_completion_rate", "early_momentum_index", "team_strength_score"),
        (0.45, 0.35, 0.20),
    ),
    FeatureSubset(
        ("community_engagement_score", "github_activity_score", "sentiment_normalized"),
        (0.40, 0.35, 0.25),
    ),
    FeatureSubset(
        ("contract_security_score", "technical_robustness_score", "audit_safety_score"),
        (0.40, 0.35, 0.25),
    ),
    FeatureSubset(
        ("project_quality_score", "roadmap_score", "advisory_strength_score"),
        (0.40, 0.30, 0.30),
    ),
    FeatureSubset(
        ("team_experience_normalized", "previous_success_boost", "social_reach_score"),
        (0.35, 0.40, 0.25),
    ),
)

# Rollup of the six domain scores into the overall score.
DEFAULT_OVERALL_WEIGHTS: dict[str, float] = {
    "funding_risk": 0.25,
    "team_risk": 0.15,
    "technical_risk": 0.20,
    "community_risk": 0.10,
    "market_risk": 0.10,
    "legal_risk": 0.20,
}


@dataclass(frozen=True)
class ModelConfig:
    """Complete calibration of the scorer.

    Validated on construction; an invalid combination raises
    ``ModelConfigError`` rather than producing out-of-range scores later.
    """

    version: str = MODEL_VERSION
    feature_weights: Mapping[str, float] = field(
        default_factory=lambda: dict(DEFAULT_FEATURE_WEIGHTS)
    )
    logistic_bias: float = -0.5
    logistic_sharpness: float = 4.0
    trees: tuple[TreeNode, ...] = DEFAULT_TREES
    gbdt_base_score: float = 0.5
    learning_rate: float = 0.1
    forest: tuple[FeatureSubset, ...] = DEFAULT_FOREST
    ensemble_weights: EnsembleWeights = field(default_factory=EnsembleWeights)
    overall_weights: Mapping[str, float] = field(
        default_factory=lambda: dict(DEFAULT_OVERALL_WEIGHTS)
    )
    risk_thresholds: RiskThresholds = field(default_factory=RiskThresholds)
    high_confidence_std: float = 0.05
    medium_confidence_std: float = 0.12

    def __post_init__(self) -> None:
        known = set(FeatureVector.names())

        unknown = set(self.feature_weights) - known
        if unknown:
            raise ModelConfigError(f"feature_weights references unknown features: {sorted(unknown)}")

        for tree in self.trees:
            bad = tree.referenced_features() - known
            if bad:
                raise ModelConfigError(f"tree references unknown features: {sorted(bad)}")

        if not self.forest:
            raise ModelConfigError("forest must contain at least one feature subset")
        for subset in self.forest:
            if len(subset.features) != len(subset.weights):
                raise ModelConfigError("forest subset features and weights differ in length")
            if set(subset.features) - known:
                raise ModelConfigError(f"forest subset references unknown features: {subset.features}")
            if any(w < 0 for w in subset.weights) or sum(subset.weights) > 1 + _TOLERANCE:
                raise ModelConfigError("forest subset weights must be non-negative and sum to at most 1")

        ensemble = self.ensemble_weights.as_tuple()
        if any(w < 0 for w in ensemble):
            raise ModelConfigError("ensemble weights must be non-negative")
        if not math.isclose(sum(ensemble), 1.0, abs_tol=_TOLERANCE):
            raise ModelConfigError(f"ensemble weights must sum to 1 (got {sum(ensemble):.6f})")

        if set(self.overall_weights) != set(DEFAULT_OVERALL_WEIGHTS):
            raise ModelConfigError(
                f"overall_weights must cover exactly {sorted(DEFAULT_OVERALL_WEIGHTS)}"
            )
        if any(w < 0 for w in self.overall_weights.values()):
            raise ModelConfigError("overall weights must be non-negative")
        if not math.isclose(sum(self.overall_weights.values()), 1.0, abs_tol=_TOLERANCE):
            raise ModelConfigError("overall weights must sum to 1")

        t = self.risk_thresholds
        if not (100 >= t.very_low > t.low > t.medium > t.high >= 0):
            raise ModelConfigError("risk thresholds must be strictly decreasing within [0, 100]")

        if not (0 < self.high_confidence_std < self.medium_confidence_std):
            raise ModelConfigError("confidence cutoffs must satisfy 0 < high < medium")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ModelConfig:
        """Build from a JSON-shaped mapping; omitted keys keep their defaults."""
        defaults = cls()
        try:
            trees = (
                tuple(TreeNode.from_dict(t) for t in data["trees"])
                if "trees" in data
                else defaults.trees
            )
            forest = (
                tuple(
                    FeatureSubset(
                        features=tuple(str(f) for f in s["features"]),
                        weights=tuple(float(w) for w in s["weights"]),
                    )
                    for s in data["forest"]
                )
                if "forest" in data
                else defaults.forest
            )
            ensemble = data.get("ensemble_weights")
            thresholds = data.get("risk_thresholds")
            return cls(
                version=str(data.get("version", defaults.version)),
                feature_weights={
                    str(k): float(v)
                    for k, v in data.get("feature_weights", defaults.feature_weights).items()
                },
                logistic_bias=float(data.get("logistic_bias", defaults.logistic_bias)),
                logistic_sharpness=float(data.get("logistic_sharpness", defaults.logistic_sharpness)),
                trees=trees,
                gbdt_base_score=float(data.get("gbdt_base_score", defaults.gbdt_base_score)),
                learning_rate=float(data.get("learning_rate", defaults.learning_rate)),
                forest=forest,
                ensemble_weights=(
                    EnsembleWeights(**{k: float(v) for k, v in ensemble.items()})
                    if ensemble is not None
                    else defaults.ensemble_weights
                ),
                overall_weights={
                    str(k): float(v)
                    for k, v in data.get("overall_weights", defaults.overall_weights).items()
                },
                risk_thresholds=(
                    RiskThresholds(**{k: float(v) for k, v in thresholds.items()})
                    if thresholds is not None
                    else defaults.risk_thresholds
                ),
                high_confidence_std=float(data.get("high_confidence_std", defaults.high_confidence_std)),
                medium_confidence_std=float(
                    data.get("medium_confidence_std", defaults.medium_confidence_std)
                ),
            )
        except ModelConfigError:
            raise
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise ModelConfigError(f"Invalid model config: {e}") from e

    def to_dict(self) -> dict[str, object]:
        return {
            "version": self.version,
            "feature_weights": dict(self.feature_weights),
            "logistic_bias": self.logistic_bias,
            "logistic_sharpness": self.logistic_sharpness,
            "trees": [t.to_dict() for t in self.trees],
            "gbdt_base_score": self.gbdt_base_score,
            "learning_rate": self.learning_rate,
            "forest": [
                {"features": list(s.features), "weights": list(s.weights)} for s in self.forest
            ],
            "ensemble_weights": {
                "logistic_regression": self.ensemble_weights.logistic_regression,
                "gradient_boosting": self.ensemble_weights.gradient_boosting,
                "random_forest": self.ensemble_weights.random_forest,
            },
            "overall_weights": dict(self.overall_weights),
            "risk_thresholds": {
                "very_low": self.risk_thresholds.very_low,
                "low": self.risk_thresholds.low,
                "medium": self.risk_thresholds.medium,
                "high": self.risk_thresholds.high,
            },
            "high_confidence_std": self.high_confidence_std,
            "medium_confidence_std": self.medium_confidence_std,
        }


DEFAULT_MODEL_CONFIG = ModelConfig()


def load_model_config(path: Path | str) -> ModelConfig:
    """Load a calibration document from a JSON file.

    Raises:
        ModelConfigError: If the file is unreadable, not JSON, or inconsistent.
    """
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise ModelConfigError(f"Failed to read model config {path}: {e}") from e
    if not isinstance(data, Mapping):
        raise ModelConfigError(f"Model config {path} must be a JSON object")
    return ModelConfig.from_dict(data)
