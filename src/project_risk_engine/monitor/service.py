"""Continuous risk monitoring with periodic re-assessment and alerting.

One ``MonitoringSession`` exists per monitored project. Observers of the
same project share a single poll loop: ``start_monitoring`` on an already
monitored project only bumps its subscriber count, and the loop stops once
every observer has called ``stop_monitoring``.
"""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import logging
import uuid
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Protocol, TypeVar

from project_risk_engine.monitor.alerts import (
    DEFAULT_THRESHOLDS,
    DEFAULT_TREND_WINDOW,
    AlertThresholds,
    analyze_trend,
    generate_alerts,
)
from project_risk_engine.monitor.models import (
    DEFAULT_MAX_SNAPSHOTS,
    MonitoringSession,
    MonitoringSnapshot,
    RiskAlert,
)
from project_risk_engine.scoring.models import RiskAssessmentResult

if TYPE_CHECKING:
    from project_risk_engine.config import MonitorSettings

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_INTERVAL_SECONDS = 60.0
DEFAULT_SNAPSHOT_LIMIT = 20
DEFAULT_HEARTBEAT_SECONDS = 30.0

AlertCallback = Callable[[RiskAlert], Awaitable[None] | None]
SnapshotCallback = Callable[[MonitoringSnapshot], Awaitable[None] | None]


class MonitorError(Exception):
    """Raised for invalid monitor operations (e.g. unknown sessions)."""


class Assessor(Protocol):
    async def assess(
        self,
        project_id: str,
        chain_id: int = 1,
        contract_address: str | None = None,
    ) -> RiskAssessmentResult | None: ...

    def invalidate_project_cache(self, project_id: str, chain_id: int | None = None) -> int: ...


class RiskMonitor:
    """Polls assessments for monitored projects and publishes changes.

    Each poll cycle:
    1. Invalidates cached data for the project so the assessment is fresh
    2. Runs a full assessment
    3. Computes the delta from the previous snapshot and the recent trend
    4. Generates alerts and appends a snapshot (bounded history)
    5. Publishes alerts, then the snapshot, to the project's subscribers

    A failed cycle is logged and skipped; the session keeps polling.

    Example:
        ```python
        monitor = RiskMonitor(engine)
        unsubscribe = monitor.on_alert("proj-1", handle_alert)
        session = await monitor.start_monitoring("proj-1", interval_seconds=30)
        ...
        unsubscribe()
        await monitor.stop_monitoring(session.session_id)
        ```
    """

    def __init__(
        self,
        engine: Assessor,
        settings: MonitorSettings | None = None,
        *,
        thresholds: AlertThresholds | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._engine = engine
        if settings is not None:
            self._default_interval = settings.default_interval_seconds
            self._max_snapshots = settings.max_snapshots
            self._trend_window = settings.trend_window
            self._heartbeat = settings.heartbeat_seconds
            self._thresholds = thresholds or AlertThresholds.from_settings(settings)
        else:
            self._default_interval = DEFAULT_INTERVAL_SECONDS
            self._max_snapshots = DEFAULT_MAX_SNAPSHOTS
            self._trend_window = DEFAULT_TREND_WINDOW
            self._heartbeat = DEFAULT_HEARTBEAT_SECONDS
            self._thresholds = thresholds or DEFAULT_THRESHOLDS
        self._clock = clock or (lambda: datetime.now(UTC))

        self._sessions: dict[str, MonitoringSession] = {}
        self._tasks: dict[str, asyncio.Task[None]] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._alert_callbacks: dict[str, set[AlertCallback]] = {}
        self._snapshot_callbacks: dict[str, set[SnapshotCallback]] = {}

    @property
    def default_interval_seconds(self) -> float:
        return self._default_interval

    @property
    def heartbeat_seconds(self) -> float:
        """Idle time after which event streams emit a heartbeat."""
        return self._heartbeat

    # Session lifecycle

    async def start_monitoring(
        self,
        project_id: str,
        interval_seconds: float | None = None,
        chain_id: int = 1,
        contract_address: str | None = None,
    ) -> MonitoringSession:
        """Start (or join) monitoring of a project.

        A new session is polled once before this returns, so the caller has
        data without waiting a full interval.
        """
        existing = self.get_session_by_project(project_id)
        if existing is not None:
            existing.subscriber_count += 1
            logger.debug(
                "Joined monitoring session %s (%d subscribers)",
                existing.session_id,
                existing.subscriber_count,
            )
            return existing

        interval = interval_seconds if interval_seconds is not None else self._default_interval
        if interval <= 0:
            raise MonitorError("interval_seconds must be positive")

        session = MonitoringSession(
            session_id=f"{project_id}-{uuid.uuid4().hex[:12]}",
            project_id=project_id,
            interval_seconds=interval,
            chain_id=chain_id,
            contract_address=contract_address,
            start_time=self._clock(),
            max_snapshots=self._max_snapshots,
        )
        self._sessions[session.session_id] = session
        self._locks[session.session_id] = asyncio.Lock()
        logger.info(
            "Started monitoring %s (session %s, every %.1fs)",
            project_id,
            session.session_id,
            interval,
        )

        await self.poll(session.session_id)

        # The session may have been stopped while the first poll ran.
        if self._sessions.get(session.session_id) is session:
            self._tasks[session.session_id] = asyncio.create_task(
                self._run_session_loop(session.session_id),
                name=f"risk-monitor-{session.session_id}",
            )
        return session

    async def stop_monitoring(self, session_id: str) -> None:
        """Release one subscription; the loop stops when none remain.

        Unknown or already stopped sessions are ignored.
        """
        session = self._sessions.get(session_id)
        if session is None:
            return

        session.subscriber_count = max(0, session.subscriber_count - 1)
        if session.subscriber_count > 0:
            return

        session.is_active = False
        del self._sessions[session_id]
        self._locks.pop(session_id, None)
        task = self._tasks.pop(session_id, None)
        if task is not None and task is not asyncio.current_task():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        logger.info("Stopped monitoring %s (session %s)", session.project_id, session_id)

    async def close(self) -> None:
        """Stop every session regardless of subscriber count."""
        for session in list(self._sessions.values()):
            session.subscriber_count = 1
            await self.stop_monitoring(session.session_id)
        self._alert_callbacks.clear()
        self._snapshot_callbacks.clear()

    async def _run_session_loop(self, session_id: str) -> None:
        while True:
            session = self._sessions.get(session_id)
            if session is None or not session.is_active:
                return
            await asyncio.sleep(session.interval_seconds)
            # Cancelling the loop must not interrupt a poll already in flight;
            # a poll that outlives its session publishes nothing.
            await asyncio.shield(self.poll(session_id))

    # Polling

    async def poll(self, session_id: str) -> MonitoringSnapshot | None:
        """Run one poll cycle for a session.

        Returns the new snapshot, or None when the cycle was skipped (unknown
        or stopped session, overlapping poll, unavailable data, or failure).
        """
        session = self._sessions.get(session_id)
        if session is None or not session.is_active:
            return None

        lock = self._locks.get(session_id)
        if lock is None:
            return None
        if lock.locked():
            logger.debug("Skipping overlapping poll for session %s", session_id)
            return None

        async with lock:
            try:
                return await self._poll_once(session)
            except Exception:
                logger.exception("Poll failed for session %s", session_id)
                return None

    async def _poll_once(self, session: MonitoringSession) -> MonitoringSnapshot | None:
        project_id = session.project_id

        self._engine.invalidate_project_cache(project_id, session.chain_id)
        assessment = await self._engine.assess(
            project_id, session.chain_id, session.contract_address
        )
        if assessment is None:
            logger.warning("No assessment available for %s; skipping cycle", project_id)
            return None

        if not session.is_active or self._sessions.get(session.session_id) is not session:
            logger.debug("Session %s stopped during poll; discarding result", session.session_id)
            return None

        current = assessment.risk_score.overall
        previous_snapshot = session.latest_snapshot
        previous = previous_snapshot.risk_score if previous_snapshot is not None else current

        direction, strength = analyze_trend(
            [s.risk_score for s in session.snapshots], window=self._trend_window
        )

        now = self._clock()
        alerts = generate_alerts(
            project_id,
            previous,
            current,
            now=now,
            features=assessment.features,
            thresholds=self._thresholds,
        )

        snapshot = MonitoringSnapshot(
            project_id=project_id,
            timestamp=now,
            risk_score=current,
            risk_level=assessment.risk_level,
            alerts=tuple(alerts),
            delta_from_previous=current - previous,
            trend_direction=direction,
            trend_strength=strength,
        )
        session.snapshots.append(snapshot)

        if alerts:
            logger.info(
                "%d alert(s) for %s: %s",
                len(alerts),
                project_id,
                ", ".join(f"{a.severity.value}:{a.type.value}" for a in alerts),
            )

        for alert in alerts:
            await self._publish(self._alert_callbacks.get(project_id), alert)
        await self._publish(self._snapshot_callbacks.get(project_id), snapshot)
        return snapshot

    async def _publish(
        self,
        callbacks: set[Callable[[T], Awaitable[None] | None]] | None,
        payload: T,
    ) -> None:
        if not callbacks:
            return
        # Copy: callbacks may unsubscribe while being notified.
        for callback in list(callbacks):
            try:
                result = callback(payload)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Monitor subscriber %r failed", callback)

    # Subscriptions

    def on_alert(self, project_id: str, callback: AlertCallback) -> Callable[[], None]:
        """Subscribe to alerts for a project; returns an unsubscribe function."""
        subscribers = self._alert_callbacks.setdefault(project_id, set())
        subscribers.add(callback)

        def unsubscribe() -> None:
            current = self._alert_callbacks.get(project_id)
            if current is not None:
                current.discard(callback)
                if not current:
                    del self._alert_callbacks[project_id]

        return unsubscribe

    def on_snapshot(self, project_id: str, callback: SnapshotCallback) -> Callable[[], None]:
        """Subscribe to snapshots for a project; returns an unsubscribe function."""
        subscribers = self._snapshot_callbacks.setdefault(project_id, set())
        subscribers.add(callback)

        def unsubscribe() -> None:
            current = self._snapshot_callbacks.get(project_id)
            if current is not None:
                current.discard(callback)
                if not current:
                    del self._snapshot_callbacks[project_id]

        return unsubscribe

    # Queries

    def get_session(self, session_id: str) -> MonitoringSession | None:
        return self._sessions.get(session_id)

    def require_session(self, session_id: str) -> MonitoringSession:
        session = self._sessions.get(session_id)
        if session is None:
            raise MonitorError(f"Unknown monitoring session: {session_id}")
        return session

    def get_session_by_project(self, project_id: str) -> MonitoringSession | None:
        for session in self._sessions.values():
            if session.project_id == project_id and session.is_active:
                return session
        return None

    def get_recent_snapshots(
        self,
        project_id: str,
        limit: int = DEFAULT_SNAPSHOT_LIMIT,
    ) -> list[MonitoringSnapshot]:
        session = self.get_session_by_project(project_id)
        if session is None or limit <= 0:
            return []
        return list(session.snapshots)[-limit:]

    def active_session_ids(self) -> list[str]:
        return list(self._sessions)
