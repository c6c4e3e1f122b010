"""Trend analysis and alert generation for monitoring cycles.

Pure functions: no state, no I/O. The caller supplies the clock reading so
results are reproducible in tests.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING

from project_risk_engine.monitor.models import (
    AlertSeverity,
    RiskAlert,
    RiskAlertType,
    TrendDirection,
)
from project_risk_engine.scoring.features import round_half_up
from project_risk_engine.scoring.models import FeatureVector

if TYPE_CHECKING:
    from project_risk_engine.config import MonitorSettings

DEFAULT_TREND_WINDOW = 5
STABLE_DELTA = 2
FULL_STRENGTH_DELTA = 20


@dataclass(frozen=True)
class AlertThresholds:
    """Per-cycle alert triggers.

    Score thresholds are in points of the 0-100 overall score; the rest are
    feature values in [0, 1].
    """

    critical_score_drop: float = 10
    warning_score_drop: float = 5
    score_improvement: float = 10
    whale_concentration: float = 0.4
    sentiment_floor: float = 0.35

    @classmethod
    def from_settings(cls, settings: MonitorSettings) -> AlertThresholds:
        return cls(
            critical_score_drop=settings.critical_score_drop,
            warning_score_drop=settings.warning_score_drop,
            score_improvement=settings.score_improvement,
            whale_concentration=settings.whale_concentration,
            sentiment_floor=settings.sentiment_floor,
        )


DEFAULT_THRESHOLDS = AlertThresholds()


def analyze_trend(
    scores: Sequence[int],
    window: int = DEFAULT_TREND_WINDOW,
) -> tuple[TrendDirection, float]:
    """Direction and strength of the score trend over the last ``window`` scores.

    The direction comes from the first-to-last change. Small changes are
    STABLE, with strength reflecting how much the score wobbled within the
    window; otherwise strength scales with the size of the change.
    """
    if len(scores) < 2:
        return TrendDirection.STABLE, 0.0

    recent = list(scores)[-window:]
    delta = recent[-1] - recent[0]
    spread = max(recent) - min(recent)

    if abs(delta) < STABLE_DELTA:
        return TrendDirection.STABLE, spread / 100

    direction = TrendDirection.IMPROVING if delta > 0 else TrendDirection.DECLINING
    return direction, min(1.0, abs(delta) / FULL_STRENGTH_DELTA)


def _pct(value: float) -> int:
    return int(round_half_up(value * 100))


def generate_alerts(
    project_id: str,
    previous_score: int,
    current_score: int,
    *,
    now: datetime,
    features: FeatureVector | None = None,
    thresholds: AlertThresholds = DEFAULT_THRESHOLDS,
) -> list[RiskAlert]:
    """Alerts for one poll cycle, in a fixed order.

    Score alerts need only the two scores; whale and sentiment alerts
    are raised only when ``features`` is given.
    """
    delta = current_score - previous_score
    stamp = int(now.timestamp() * 1000)
    alerts: list[RiskAlert] = []

    def make(
        alert_type: RiskAlertType,
        severity: AlertSeverity,
        message: str,
        factors: tuple[str, ...],
    ) -> RiskAlert:
        return RiskAlert(
            id=f"{project_id}-{alert_type.value}-{stamp}",
            project_id=project_id,
            timestamp=now,
            severity=severity,
            type=alert_type,
            message=message,
            affected_factors=factors,
            previous_score=previous_score,
            current_score=current_score,
            delta=delta,
        )

    transition = f"({previous_score} → {current_score})"

    if delta <= -thresholds.critical_score_drop:
        alerts.append(
            make(
                RiskAlertType.SCORE_DROP,
                AlertSeverity.CRITICAL,
                f"Risk score dropped {abs(delta):.1f} points {transition}. "
                "Immediate review recommended.",
                ("overall",),
            )
        )
    elif delta <= -thresholds.warning_score_drop:
        alerts.append(
            make(
                RiskAlertType.SCORE_DROP,
                AlertSeverity.WARNING,
                f"Risk score declined {abs(delta):.1f} points {transition}.",
                ("overall",),
            )
        )

    if delta >= thresholds.score_improvement:
        alerts.append(
            make(
                RiskAlertType.SCORE_IMPROVEMENT,
                AlertSeverity.INFO,
                f"Risk score improved {delta:.1f} points {transition}.",
                ("overall",),
            )
        )

    if features is None:
        return alerts

    if features.contributor_concentration_risk > thresholds.whale_concentration:
        alerts.append(
            make(
                RiskAlertType.WHALE_CONCENTRATION,
                AlertSeverity.WARNING,
                f"Single contributor holds {_pct(features.contributor_concentration_risk)}% "
                "of total funds. Whale exit risk is elevated.",
                ("contributor_concentration_risk", "funding_risk"),
            )
        )

    if features.sentiment_normalized < thresholds.sentiment_floor:
        alerts.append(
            make(
                RiskAlertType.COMMUNITY_SENTIMENT_DROP,
                AlertSeverity.WARNING,
                f"Community sentiment has fallen to {_pct(features.sentiment_normalized)}/100. "
                "Monitor community channels.",
                ("sentiment_normalized", "community_risk"),
            )
        )

    return alerts
