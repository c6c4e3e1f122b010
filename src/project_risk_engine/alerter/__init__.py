"""Alert rendering and delivery."""

from project_risk_engine.alerter.formatter import (
    AlertFormatter,
    FormattedAlert,
    format_snapshot,
    format_sse_event,
)
from project_risk_engine.alerter.stream import RedisStreamPublisher, monitor_event_stream

__all__ = [
    "AlertFormatter",
    "FormattedAlert",
    "RedisStreamPublisher",
    "format_snapshot",
    "format_sse_event",
    "monitor_event_stream",
]
