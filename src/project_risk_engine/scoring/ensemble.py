"""Three-model ensemble producing a success probability and risk scores.

Members:
    - logistic: sigmoid(sharpness * (bias + sum(w_i * f_i)))
    - gradient boosting: base + learning_rate * sum(tree leaf values)
    - random forest: mean of clamped weighted sums over fixed feature subsets

The blended probability carries a confidence interval derived from how much
the members disagree: the ensemble-weighted variance of each member around
the blend gives a standard deviation, and the interval is +/- 1.96 sigma.
"""

from __future__ import annotations

import logging

import numpy as np

from project_risk_engine.scoring.config import DEFAULT_MODEL_CONFIG, ModelConfig, RiskThresholds
from project_risk_engine.scoring.features import clamp01, round_half_up, sigmoid
from project_risk_engine.scoring.models import (
    ConfidenceLevel,
    FeatureVector,
    RiskLevel,
    RiskScore,
    SuccessPrediction,
)

logger = logging.getLogger(__name__)

Z_95 = 1.96


def classify_risk_level(overall: float, thresholds: RiskThresholds | None = None) -> RiskLevel:
    """Map an overall score to a band; the first threshold met from the top wins."""
    t = thresholds or DEFAULT_MODEL_CONFIG.risk_thresholds
    if overall >= t.very_low:
        return RiskLevel.VERY_LOW
    if overall >= t.low:
        return RiskLevel.LOW
    if overall >= t.medium:
        return RiskLevel.MEDIUM
    if overall >= t.high:
        return RiskLevel.HIGH
    return RiskLevel.VERY_HIGH


def _to_score(value: float) -> int:
    return int(min(100.0, max(0.0, round_half_up(value))))


class EnsembleModel:
    """Scores a FeatureVector with a fixed, configurable calibration.

    Example:
        ```python
        model = EnsembleModel()
        prediction = model.predict(features)
        score = model.compute_risk_score(features)
        level = model.classify_risk_level(score.overall)
        ```
    """

    def __init__(self, config: ModelConfig | None = None) -> None:
        self._config = config or DEFAULT_MODEL_CONFIG
        self._ensemble_weights = np.array(self._config.ensemble_weights.as_tuple(), dtype=float)

    @property
    def config(self) -> ModelConfig:
        return self._config

    @property
    def version(self) -> str:
        return self._config.version

    def logistic_score(self, features: FeatureVector) -> float:
        logit = self._config.logistic_bias
        for name, weight in self._config.feature_weights.items():
            logit += weight * features.get(name)
        return sigmoid(self._config.logistic_sharpness * logit)

    def gradient_boosting_score(self, features: FeatureVector) -> float:
        residual = sum(tree.evaluate(features) for tree in self._config.trees)
        return clamp01(self._config.gbdt_base_score + self._config.learning_rate * residual)

    def random_forest_score(self, features: FeatureVector) -> float:
        predictions = [
            clamp01(sum(features.get(name) * w for name, w in zip(subset.features, subset.weights)))
            for subset in self._config.forest
        ]
        return sum(predictions) / len(predictions)

    def member_scores(self, features: FeatureVector) -> tuple[float, float, float]:
        return (
            self.logistic_score(features),
            self.gradient_boosting_score(features),
            self.random_forest_score(features),
        )

    def predict(self, features: FeatureVector) -> SuccessPrediction:
        """Blend the three members into a success probability."""
        scores = np.array(self.member_scores(features), dtype=float)
        weights = self._ensemble_weights

        blended = float(weights @ scores)
        variance = float(weights @ np.square(scores - blended))
        std_dev = float(np.sqrt(variance))
        margin = Z_95 * std_dev

        lower = max(0.0, blended - margin)
        upper = min(1.0, blended + margin)

        if std_dev < self._config.high_confidence_std:
            confidence = ConfidenceLevel.HIGH
        elif std_dev < self._config.medium_confidence_std:
            confidence = ConfidenceLevel.MEDIUM
        else:
            confidence = ConfidenceLevel.LOW

        logger.debug(
            "Ensemble members lr=%.4f gb=%.4f rf=%.4f blended=%.4f std=%.4f",
            scores[0],
            scores[1],
            scores[2],
            blended,
            std_dev,
        )

        return SuccessPrediction(
            probability=round_half_up(clamp01(blended), 3),
            confidence_interval=(round_half_up(lower, 3), round_half_up(upper, 3)),
            confidence_level=confidence,
            model_version=self._config.version,
        )

    def compute_risk_score(self, features: FeatureVector) -> RiskScore:
        """Six domain scores plus the weighted overall score (100 = safest)."""
        f = features
        sub_scores = {
            "funding_risk": _to_score(
                100
                * (
                    0.40 * f.funding_completion_rate
                    + 0.25 * f.funding_velocity_normalized
                    + 0.20 * (1 - f.contributor_concentration_risk)
                    + 0.15 * f.early_momentum_index
                )
            ),
            "team_risk": _to_score(
                100
                * (
                    0.35 * f.team_strength_score
                    + 0.25 * f.team_experience_normalized
                    + 0.25 * f.previous_success_boost
                    + 0.15 * f.advisory_strength_score
                )
            ),
            "technical_risk": _to_score(
                100
                * (
                    0.35 * f.contract_security_score
                    + 0.30 * f.technical_robustness_score
                    + 0.20 * f.audit_safety_score
                    + 0.15 * f.github_activity_score
                )
            ),
            "community_risk": _to_score(
                100
                * (
                    0.35 * f.community_engagement_score
                    + 0.30 * f.sentiment_normalized
                    + 0.20 * f.social_reach_score
                    + 0.15 * f.github_activity_score
                )
            ),
            "market_risk": _to_score(
                100
                * (
                    0.40 * (1 - f.liquidity_risk_score)
                    + 0.35 * (1 - f.category_risk_factor)
                    + 0.25 * f.early_momentum_index
                )
            ),
            "legal_risk": _to_score(100 * (1 - f.legal_risk_score)),
        }
        overall = _to_score(
            sum(self._config.overall_weights[name] * score for name, score in sub_scores.items())
        )
        return RiskScore(overall=overall, **sub_scores)

    def classify_risk_level(self, overall: float) -> RiskLevel:
        return classify_risk_level(overall, self._config.risk_thresholds)
