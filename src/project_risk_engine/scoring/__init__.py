"""Scoring layer - features, ensemble model and explanations."""

from project_risk_engine.scoring.config import (
    DEFAULT_MODEL_CONFIG,
    ModelConfig,
    ModelConfigError,
    load_model_config,
)
from project_risk_engine.scoring.ensemble import EnsembleModel, classify_risk_level
from project_risk_engine.scoring.explain import Explainer
from project_risk_engine.scoring.features import (
    FeatureExtractionError,
    FeatureExtractor,
    extract_features,
)
from project_risk_engine.scoring.models import (
    ConfidenceLevel,
    FeatureVector,
    RiskAssessmentResult,
    RiskCategory,
    RiskFactor,
    RiskLevel,
    RiskScore,
    SuccessPrediction,
)

__all__ = [
    "DEFAULT_MODEL_CONFIG",
    "ConfidenceLevel",
    "EnsembleModel",
    "Explainer",
    "FeatureExtractionError",
    "FeatureExtractor",
    "FeatureVector",
    "ModelConfig",
    "ModelConfigError",
    "RiskAssessmentResult",
    "RiskCategory",
    "RiskFactor",
    "RiskLevel",
    "RiskScore",
    "SuccessPrediction",
    "classify_risk_level",
    "extract_features",
    "load_model_config",
]
