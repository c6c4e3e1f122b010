"""Tests for the stateful risk monitor."""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime

import pytest

from project_risk_engine.config import MonitorSettings
from project_risk_engine.ingestor.models import DataSourceType
from project_risk_engine.monitor.models import (
    AlertSeverity,
    MonitoringSnapshot,
    RiskAlert,
    RiskAlertType,
    TrendDirection,
)
from project_risk_engine.monitor.service import MonitorError, RiskMonitor
from project_risk_engine.scoring.ensemble import classify_risk_level
from project_risk_engine.scoring.models import (
    ConfidenceLevel,
    FeatureVector,
    RiskAssessmentResult,
    RiskScore,
    SuccessPrediction,
)

PROJECT = "proj-aurora"
LONG_INTERVAL = 3600.0

# Quiet features: no feature-level alert fires for these values.
QUIET_FEATURES = FeatureVector.filled(0.5, contributor_concentration_risk=0.2)


def make_assessment(project_id: str, overall: int) -> RiskAssessmentResult:
    return RiskAssessmentResult(
        project_id=project_id,
        risk_level=classify_risk_level(overall),
        risk_score=RiskScore(
            overall=overall,
            funding_risk=overall,
            team_risk=overall,
            technical_risk=overall,
            community_risk=overall,
            market_risk=overall,
            legal_risk=overall,
        ),
        success_prediction=SuccessPrediction(
            probability=overall / 100,
            confidence_interval=(overall / 100, overall / 100),
            confidence_level=ConfidenceLevel.HIGH,
            model_version="test",
        ),
        top_risk_factors=(),
        top_strengths=(),
        explanation_summary="",
        investor_insights=(),
        data_sources_used=(DataSourceType.ON_CHAIN, DataSourceType.OFF_CHAIN),
        assessment_version="test",
        features=QUIET_FEATURES,
    )


class FakeEngine:
    """Assessor double returning a scripted sequence of overall scores."""

    def __init__(self, *scores: int | None) -> None:
        self.scores = list(scores) or [70]
        self.assess_calls = 0
        self.invalidations: list[tuple[str, int | None]] = []
        self.delay = 0.0
        self.error: Exception | None = None

    async def assess(
        self,
        project_id: str,
        chain_id: int = 1,
        contract_address: str | None = None,
    ) -> RiskAssessmentResult | None:
        index = min(self.assess_calls, len(self.scores) - 1)
        self.assess_calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        score = self.scores[index]
        return make_assessment(project_id, score) if score is not None else None

    def invalidate_project_cache(self, project_id: str, chain_id: int | None = None) -> int:
        self.invalidations.append((project_id, chain_id))
        return 0


@pytest.fixture
def clock() -> datetime:
    return datetime(2025, 3, 1, 12, 0, tzinfo=UTC)


class TestSessionLifecycle:
    """Tests for start/stop reference counting."""

    async def test_start_polls_immediately(self) -> None:
        engine = FakeEngine(72)
        monitor = RiskMonitor(engine)

        session = await monitor.start_monitoring(PROJECT, LONG_INTERVAL, chain_id=137)

        assert session.session_id.startswith(f"{PROJECT}-")
        assert session.subscriber_count == 1
        assert session.is_active
        assert len(session.snapshots) == 1
        assert session.latest_snapshot is not None
        assert session.latest_snapshot.risk_score == 72
        assert engine.invalidations == [(PROJECT, 137)]

        await monitor.close()

    async def test_shared_session_needs_two_stops(self) -> None:
        """Two starts share a session; only the second stop cancels the loop."""
        monitor = RiskMonitor(FakeEngine(70))

        first = await monitor.start_monitoring(PROJECT, LONG_INTERVAL)
        second = await monitor.start_monitoring(PROJECT, LONG_INTERVAL)
        task = monitor._tasks[first.session_id]

        assert second.session_id == first.session_id
        assert first.subscriber_count == 2

        await monitor.stop_monitoring(first.session_id)
        assert monitor.get_session(first.session_id) is first
        assert first.subscriber_count == 1
        assert not task.done()

        await monitor.stop_monitoring(first.session_id)
        assert monitor.get_session(first.session_id) is None
        assert not first.is_active
        assert task.done()
        assert monitor.active_session_ids() == []

    async def test_stop_is_idempotent(self) -> None:
        monitor = RiskMonitor(FakeEngine(70))
        session = await monitor.start_monitoring(PROJECT, LONG_INTERVAL)

        await monitor.stop_monitoring(session.session_id)
        await monitor.stop_monitoring(session.session_id)
        await monitor.stop_monitoring("never-existed")

        assert monitor.active_session_ids() == []

    async def test_default_interval_from_settings(self) -> None:
        settings = MonitorSettings(MONITOR_DEFAULT_INTERVAL_SECONDS=45)
        monitor = RiskMonitor(FakeEngine(70), settings)

        session = await monitor.start_monitoring(PROJECT)

        assert session.interval_seconds == 45
        await monitor.close()

    async def test_invalid_interval(self) -> None:
        monitor = RiskMonitor(FakeEngine(70))
        with pytest.raises(MonitorError):
            await monitor.start_monitoring(PROJECT, 0)

    def test_require_unknown_session(self) -> None:
        monitor = RiskMonitor(FakeEngine(70))
        with pytest.raises(MonitorError, match="Unknown monitoring session"):
            monitor.require_session("ghost")

    async def test_loop_polls_periodically(self) -> None:
        engine = FakeEngine(70)
        monitor = RiskMonitor(engine)

        await monitor.start_monitoring(PROJECT, 0.01)
        await asyncio.sleep(0.1)

        assert engine.assess_calls >= 3
        await monitor.close()
        calls = engine.assess_calls
        await asyncio.sleep(0.05)
        assert engine.assess_calls == calls


class TestPolling:
    """Tests for poll cycles and publishing."""

    async def test_score_drop_publishes_alert_then_snapshot(self, clock: datetime) -> None:
        monitor = RiskMonitor(FakeEngine(80, 68), clock=lambda: clock)
        events: list[tuple[str, object]] = []

        async def on_snapshot(snapshot: MonitoringSnapshot) -> None:
            events.append(("snapshot", snapshot))

        session = await monitor.start_monitoring(PROJECT, LONG_INTERVAL)
        monitor.on_alert(PROJECT, lambda alert: events.append(("alert", alert)))
        monitor.on_snapshot(PROJECT, on_snapshot)

        snapshot = await monitor.poll(session.session_id)

        assert snapshot is not None
        assert snapshot.risk_score == 68
        assert snapshot.delta_from_previous == -12
        assert [kind for kind, _ in events] == ["alert", "snapshot"]
        alert = events[0][1]
        assert isinstance(alert, RiskAlert)
        assert alert.severity is AlertSeverity.CRITICAL
        assert alert.type is RiskAlertType.SCORE_DROP
        assert (alert.previous_score, alert.current_score, alert.delta) == (80, 68, -12)
        assert snapshot.alerts == (alert,)
        await monitor.close()

    async def test_first_snapshot_has_no_delta(self) -> None:
        monitor = RiskMonitor(FakeEngine(75))

        session = await monitor.start_monitoring(PROJECT, LONG_INTERVAL)

        first = session.latest_snapshot
        assert first is not None
        assert first.delta_from_previous == 0
        assert first.alerts == ()
        assert first.trend_direction is TrendDirection.STABLE
        await monitor.close()

    async def test_trend_uses_prior_snapshots(self) -> None:
        monitor = RiskMonitor(FakeEngine(60, 64, 68, 72))
        session = await monitor.start_monitoring(PROJECT, LONG_INTERVAL)

        await monitor.poll(session.session_id)
        await monitor.poll(session.session_id)
        snapshot = await monitor.poll(session.session_id)

        assert snapshot is not None
        assert snapshot.trend_direction is TrendDirection.IMPROVING
        assert snapshot.trend_strength == pytest.approx(0.4)
        await monitor.close()

    async def test_snapshots_are_bounded(self) -> None:
        settings = MonitorSettings(MONITOR_MAX_SNAPSHOTS=3)
        monitor = RiskMonitor(FakeEngine(70, 71, 72, 73, 74), settings)
        session = await monitor.start_monitoring(PROJECT, LONG_INTERVAL)

        for _ in range(4):
            await monitor.poll(session.session_id)

        assert [s.risk_score for s in session.snapshots] == [72, 73, 74]
        recent = monitor.get_recent_snapshots(PROJECT, limit=2)
        assert [s.risk_score for s in recent] == [73, 74]
        assert monitor.get_recent_snapshots("other-project") == []
        await monitor.close()

    async def test_unavailable_data_skips_cycle(self) -> None:
        monitor = RiskMonitor(FakeEngine(70, None))
        session = await monitor.start_monitoring(PROJECT, LONG_INTERVAL)

        assert await monitor.poll(session.session_id) is None
        assert len(session.snapshots) == 1
        await monitor.close()

    async def test_poll_failure_is_logged_and_survived(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        engine = FakeEngine(70, 65)
        monitor = RiskMonitor(engine)
        session = await monitor.start_monitoring(PROJECT, LONG_INTERVAL)

        engine.error = RuntimeError("scoring exploded")
        with caplog.at_level(logging.ERROR):
            assert await monitor.poll(session.session_id) is None

        assert "Poll failed" in caplog.text
        assert session.is_active

        engine.error = None
        assert await monitor.poll(session.session_id) is not None
        await monitor.close()

    async def test_failing_subscriber_does_not_block_others(self) -> None:
        monitor = RiskMonitor(FakeEngine(70, 71))
        received: list[MonitoringSnapshot] = []

        def broken(snapshot: MonitoringSnapshot) -> None:
            raise ValueError("subscriber bug")

        session = await monitor.start_monitoring(PROJECT, LONG_INTERVAL)
        monitor.on_snapshot(PROJECT, broken)
        monitor.on_snapshot(PROJECT, lambda s: received.append(s))

        await monitor.poll(session.session_id)

        assert len(received) == 1
        await monitor.close()

    async def test_unsubscribe(self) -> None:
        monitor = RiskMonitor(FakeEngine(70, 71))
        received: list[MonitoringSnapshot] = []
        session = await monitor.start_monitoring(PROJECT, LONG_INTERVAL)

        unsubscribe = monitor.on_snapshot(PROJECT, lambda s: received.append(s))
        unsubscribe()
        unsubscribe()
        await monitor.poll(session.session_id)

        assert received == []
        await monitor.close()

    async def test_overlapping_poll_is_skipped(self) -> None:
        engine = FakeEngine(70, 71)
        monitor = RiskMonitor(engine)
        session = await monitor.start_monitoring(PROJECT, LONG_INTERVAL)
        engine.delay = 0.05

        in_flight = asyncio.create_task(monitor.poll(session.session_id))
        await asyncio.sleep(0.01)
        overlapping = await monitor.poll(session.session_id)

        assert overlapping is None
        assert await in_flight is not None
        assert engine.assess_calls == 2
        await monitor.close()

    async def test_stop_during_poll_publishes_nothing(self) -> None:
        """A poll that outlives its session completes but publishes nothing."""
        engine = FakeEngine(80, 60)
        monitor = RiskMonitor(engine)
        alerts: list[RiskAlert] = []
        snapshots: list[MonitoringSnapshot] = []
        session = await monitor.start_monitoring(PROJECT, LONG_INTERVAL)
        monitor.on_alert(PROJECT, lambda a: alerts.append(a))
        monitor.on_snapshot(PROJECT, lambda s: snapshots.append(s))
        engine.delay = 0.05

        in_flight = asyncio.create_task(monitor.poll(session.session_id))
        await asyncio.sleep(0.01)
        await monitor.stop_monitoring(session.session_id)

        assert await in_flight is None
        assert engine.assess_calls == 2
        assert alerts == []
        assert snapshots == []
        assert len(session.snapshots) == 1
