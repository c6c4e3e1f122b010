"""Data models for the monitor module."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum

from project_risk_engine.scoring.models import RiskLevel

DEFAULT_MAX_SNAPSHOTS = 100


class AlertSeverity(str, Enum):
    INFO = "INFO"
    WARNING = "WARNING"
    CRITICAL = "CRITICAL"


class RiskAlertType(str, Enum):
    SCORE_DROP = "SCORE_DROP"
    SCORE_IMPROVEMENT = "SCORE_IMPROVEMENT"
    WHALE_CONCENTRATION = "WHALE_CONCENTRATION"
    FUNDING_STALL = "FUNDING_STALL"
    COMMUNITY_SENTIMENT_DROP = "COMMUNITY_SENTIMENT_DROP"
    GITHUB_INACTIVITY = "GITHUB_INACTIVITY"
    SMART_CONTRACT_RISK = "SMART_CONTRACT_RISK"
    TEAM_CHANGE = "TEAM_CHANGE"
    MILESTONE_MISSED = "MILESTONE_MISSED"
    LIQUIDITY_RISK = "LIQUIDITY_RISK"


class TrendDirection(str, Enum):
    IMPROVING = "IMPROVING"
    DECLINING = "DECLINING"
    STABLE = "STABLE"


@dataclass(frozen=True)
class RiskAlert:
    """Alert raised by a poll cycle when conditions change materially.

    Attributes:
        id: ``{project_id}-{type}-{epoch_ms}``.
        project_id: Project the alert concerns.
        timestamp: When the alert was generated.
        severity: INFO, WARNING or CRITICAL.
        type: Alert category.
        message: Human-readable description.
        affected_factors: Feature or score names that triggered the alert.
        previous_score: Overall score before this cycle.
        current_score: Overall score after this cycle.
        delta: ``current_score - previous_score``.
    """

    id: str
    project_id: str
    timestamp: datetime
    severity: AlertSeverity
    type: RiskAlertType
    message: str
    affected_factors: tuple[str, ...]
    previous_score: int
    current_score: int
    delta: int

    def to_dict(self) -> dict[str, object]:
        """Serialize to dictionary for stream publishing."""
        return {
            "id": self.id,
            "project_id": self.project_id,
            "timestamp": self.timestamp.isoformat(),
            "severity": self.severity.value,
            "type": self.type.value,
            "message": self.message,
            "affected_factors": list(self.affected_factors),
            "previous_score": self.previous_score,
            "current_score": self.current_score,
            "delta": self.delta,
        }


@dataclass(frozen=True)
class MonitoringSnapshot:
    project_id: str
    timestamp: datetime
    risk_score: int
    risk_level: RiskLevel
    alerts: tuple[RiskAlert, ...]
    delta_from_previous: int
    trend_direction: TrendDirection
    trend_strength: float

    def to_dict(self) -> dict[str, object]:
        return {
            "project_id": self.project_id,
            "timestamp": self.timestamp.isoformat(),
            "risk_score": self.risk_score,
            "risk_level": self.risk_level.value,
            "alerts": [a.to_dict() for a in self.alerts],
            "delta_from_previous": self.delta_from_previous,
            "trend_direction": self.trend_direction.value,
            "trend_strength": self.trend_strength,
        }


@dataclass
class MonitoringSession:
    """Live polling state for one monitored project.

    Owned and mutated exclusively by ``RiskMonitor``. ``snapshots`` is a
    bounded ring buffer; the oldest snapshot is dropped when it is full.
    """

    session_id: str
    project_id: str
    interval_seconds: float
    chain_id: int = 1
    contract_address: str | None = None
    start_time: datetime = field(default_factory=lambda: datetime.now(UTC))
    max_snapshots: int = DEFAULT_MAX_SNAPSHOTS
    snapshots: deque[MonitoringSnapshot] = field(init=False)
    is_active: bool = True
    subscriber_count: int = 1

    def __post_init__(self) -> None:
        self.snapshots = deque(maxlen=self.max_snapshots)

    @property
    def latest_snapshot(self) -> MonitoringSnapshot | None:
        return self.snapshots[-1] if self.snapshots else None

    def to_dict(self) -> dict[str, object]:
        return {
            "session_id": self.session_id,
            "project_id": self.project_id,
            "chain_id": self.chain_id,
            "start_time": self.start_time.isoformat(),
            "interval_seconds": self.interval_seconds,
            "snapshot_count": len(self.snapshots),
            "is_active": self.is_active,
            "subscriber_count": self.subscriber_count,
        }
