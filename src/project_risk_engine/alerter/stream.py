"""Outbound delivery of monitor events.

Two sinks are provided:
- ``RedisStreamPublisher`` appends alerts and snapshots to per-project Redis
  streams for downstream consumers.
- ``monitor_event_stream`` yields server-sent-event frames for one project,
  for an HTTP layer to relay to a browser.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator, Callable
from datetime import UTC, datetime
from typing import Any

from redis.asyncio import Redis

from project_risk_engine.alerter.formatter import format_sse_event
from project_risk_engine.config import RedisSettings
from project_risk_engine.monitor.models import MonitoringSnapshot, RiskAlert
from project_risk_engine.monitor.service import RiskMonitor

logger = logging.getLogger(__name__)

DEFAULT_STREAM_MAXLEN = 10_000
DEFAULT_KEY_PREFIX = "risk"


class RedisStreamPublisher:
    """Publishes monitor output to Redis streams with XADD.

    Stream keys:
        ``{prefix}:alerts:{project_id}`` and ``{prefix}:snapshots:{project_id}``

    Each entry carries the JSON-serialized event under ``payload`` plus a
    few flat fields for cheap filtering by consumers.

    Example:
        ```python
        redis = Redis.from_url("redis://localhost:6379")
        publisher = RedisStreamPublisher(redis)
        detach = publisher.attach(monitor, "proj-1")
        ```
    """

    def __init__(
        self,
        redis: Redis,
        *,
        maxlen: int = DEFAULT_STREAM_MAXLEN,
        key_prefix: str = DEFAULT_KEY_PREFIX,
    ) -> None:
        self._redis = redis
        self._maxlen = maxlen
        self._key_prefix = key_prefix

    @classmethod
    def from_settings(cls, settings: RedisSettings) -> RedisStreamPublisher | None:
        """Connect using ``REDIS_URL``; None when no URL is configured."""
        if not settings.enabled:
            return None
        return cls(Redis.from_url(settings.url), maxlen=settings.stream_maxlen)

    async def close(self) -> None:
        await self._redis.aclose()

    def alert_stream_key(self, project_id: str) -> str:
        return f"{self._key_prefix}:alerts:{project_id}"

    def snapshot_stream_key(self, project_id: str) -> str:
        return f"{self._key_prefix}:snapshots:{project_id}"

    async def publish_alert(self, alert: RiskAlert) -> str:
        entry_id = await self._redis.xadd(
            self.alert_stream_key(alert.project_id),
            {
                "severity": alert.severity.value,
                "type": alert.type.value,
                "payload": json.dumps(alert.to_dict()),
            },
            maxlen=self._maxlen,
            approximate=True,
        )
        logger.debug("Published alert %s as %s", alert.id, entry_id)
        return entry_id.decode() if isinstance(entry_id, bytes) else str(entry_id)

    async def publish_snapshot(self, snapshot: MonitoringSnapshot) -> str:
        entry_id = await self._redis.xadd(
            self.snapshot_stream_key(snapshot.project_id),
            {
                "risk_score": snapshot.risk_score,
                "risk_level": snapshot.risk_level.value,
                "payload": json.dumps(snapshot.to_dict()),
            },
            maxlen=self._maxlen,
            approximate=True,
        )
        return entry_id.decode() if isinstance(entry_id, bytes) else str(entry_id)

    def attach(self, monitor: RiskMonitor, project_id: str) -> Callable[[], None]:
        """Forward a project's alerts and snapshots; returns a detach function."""
        unsubscribe_alerts = monitor.on_alert(project_id, self.publish_alert)
        unsubscribe_snapshots = monitor.on_snapshot(project_id, self.publish_snapshot)

        def detach() -> None:
            unsubscribe_alerts()
            unsubscribe_snapshots()

        return detach


async def monitor_event_stream(
    monitor: RiskMonitor,
    project_id: str,
    *,
    interval_seconds: float | None = None,
    chain_id: int = 1,
    contract_address: str | None = None,
    heartbeat_seconds: float | None = None,
) -> AsyncIterator[str]:
    """Yield SSE frames for a project until the consumer closes the iterator.

    Joins (or starts) monitoring, emits ``session_started`` and the latest
    snapshot, then relays ``alert``/``snapshot`` events as they are published
    and a ``heartbeat`` after every ``heartbeat_seconds`` of silence (the
    monitor's configured value by default). Closing the iterator releases the
    monitoring subscription.
    """
    if heartbeat_seconds is None:
        heartbeat_seconds = monitor.heartbeat_seconds
    queue: asyncio.Queue[tuple[str, Any]] = asyncio.Queue()

    # Subscribe first so alerts from the initial poll of a new session are relayed.
    unsubscribe_alerts = monitor.on_alert(project_id, lambda a: queue.put_nowait(("alert", a)))
    unsubscribe_snapshots = monitor.on_snapshot(
        project_id, lambda s: queue.put_nowait(("snapshot", s))
    )
    try:
        session = await monitor.start_monitoring(
            project_id, interval_seconds, chain_id=chain_id, contract_address=contract_address
        )
    except BaseException:
        unsubscribe_alerts()
        unsubscribe_snapshots()
        raise

    try:
        yield format_sse_event(
            "session_started",
            {
                "session_id": session.session_id,
                "project_id": project_id,
                "start_time": session.start_time.isoformat(),
                "interval_seconds": session.interval_seconds,
            },
        )
        # A joined session already has history; a new one queued its first poll.
        latest = session.latest_snapshot
        if latest is not None and queue.empty():
            yield format_sse_event("snapshot", latest)

        while True:
            try:
                event, data = await asyncio.wait_for(queue.get(), timeout=heartbeat_seconds)
            except TimeoutError:
                yield format_sse_event("heartbeat", {"timestamp": datetime.now(UTC).isoformat()})
                continue
            yield format_sse_event(event, data)
    finally:
        unsubscribe_alerts()
        unsubscribe_snapshots()
        await monitor.stop_monitoring(session.session_id)
