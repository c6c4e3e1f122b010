"""Alert message formatter for multi-channel delivery.

This module transforms RiskAlert objects into human-readable messages
(Markdown for chat channels, plain text for logs and email) and renders
monitor events as server-sent-event frames.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Literal

from project_risk_engine.monitor.models import AlertSeverity, MonitoringSnapshot, RiskAlert

# Embed colors (decimal values)
COLOR_CRITICAL = 15158332  # Red (#E74C3C)
COLOR_WARNING = 15105570  # Orange (#E67E22)
COLOR_INFO = 3447003  # Blue (#3498DB)

SEVERITY_ICONS = {
    AlertSeverity.CRITICAL: "🚨",
    AlertSeverity.WARNING: "⚠️",
    AlertSeverity.INFO: "ℹ️",
}

SSE_EVENT_TYPES = frozenset({"session_started", "snapshot", "alert", "heartbeat"})

_MARKDOWN_SPECIAL_CHARS = "_*[]()~`>#+-=|{}.!"


@dataclass(frozen=True)
class FormattedAlert:
    """An alert rendered for every supported channel."""

    title: str
    body: str
    markdown: str
    plain_text: str
    color: int
    fields: dict[str, str] = field(default_factory=dict)


def get_severity_color(severity: AlertSeverity) -> int:
    if severity is AlertSeverity.CRITICAL:
        return COLOR_CRITICAL
    if severity is AlertSeverity.WARNING:
        return COLOR_WARNING
    return COLOR_INFO


def humanize(name: str) -> str:
    """``contributor_concentration_risk`` -> ``Contributor Concentration Risk``."""
    return " ".join(part.capitalize() for part in name.split("_"))


def format_delta(delta: int) -> str:
    return f"+{delta}" if delta > 0 else str(delta)


def escape_markdown(text: str) -> str:
    """Escape Telegram MarkdownV2 special characters."""
    for char in _MARKDOWN_SPECIAL_CHARS:
        text = text.replace(char, f"\\{char}")
    return text


class AlertFormatter:
    """Formats RiskAlerts into multi-channel messages.

    Supports two verbosity levels:
    - compact: severity, project and message only
    - detailed: adds score transition and affected factors
    """

    def __init__(self, verbosity: Literal["compact", "detailed"] = "detailed") -> None:
        self.verbosity = verbosity

    def format(self, alert: RiskAlert) -> FormattedAlert:
        icon = SEVERITY_ICONS[alert.severity]
        alert_name = humanize(alert.type.value.lower())
        title = f"{icon} {alert.severity.value}: {alert_name} - {alert.project_id}"

        fields = {
            "Project": alert.project_id,
            "Severity": alert.severity.value,
            "Score": f"{alert.previous_score} → {alert.current_score} ({format_delta(alert.delta)})",
        }
        if alert.affected_factors:
            fields["Factors"] = ", ".join(humanize(f) for f in alert.affected_factors)

        return FormattedAlert(
            title=title,
            body=self._build_body(alert, fields),
            markdown=self._build_markdown(alert, title, fields),
            plain_text=self._build_plain_text(alert, alert_name, fields),
            color=get_severity_color(alert.severity),
            fields=fields,
        )

    def _build_body(self, alert: RiskAlert, fields: dict[str, str]) -> str:
        if self.verbosity == "compact":
            return f"[{alert.severity.value}] {alert.project_id}: {alert.message}"

        lines = [alert.message, f"Score: {fields['Score']}"]
        if "Factors" in fields:
            lines.append(f"Factors: {fields['Factors']}")
        return "\n".join(lines)

    def _build_markdown(self, alert: RiskAlert, title: str, fields: dict[str, str]) -> str:
        lines = [f"*{escape_markdown(title)}*", "", escape_markdown(alert.message)]
        if self.verbosity == "detailed":
            lines.append("")
            for name, value in fields.items():
                lines.append(f"*{escape_markdown(name)}:* {escape_markdown(value)}")
        return "\n".join(lines)

    def _build_plain_text(self, alert: RiskAlert, alert_name: str, fields: dict[str, str]) -> str:
        header = f"{alert.severity.value} RISK ALERT: {alert_name.upper()}"
        lines = [header, "=" * len(header), "", alert.message]
        if self.verbosity == "detailed":
            lines.append("")
            lines.extend(f"{name}: {value}" for name, value in fields.items())
            lines.append(f"Alert ID: {alert.id}")
            lines.append(f"Time: {alert.timestamp.isoformat()}")
        return "\n".join(lines)


def format_snapshot(snapshot: MonitoringSnapshot) -> str:
    """One-line summary of a monitoring snapshot."""
    line = (
        f"{snapshot.project_id}: score {snapshot.risk_score} ({snapshot.risk_level.value}), "
        f"{format_delta(snapshot.delta_from_previous)} since last poll, "
        f"trend {snapshot.trend_direction.value.lower()} ({snapshot.trend_strength:.2f})"
    )
    if snapshot.alerts:
        line += f", {len(snapshot.alerts)} alert(s)"
    return line


def format_sse_event(event: str, data: Any) -> str:
    """Render one server-sent-event frame.

    Objects with ``to_dict`` are serialized through it.

    Raises:
        ValueError: If ``event`` is not a known monitor event type.
    """
    if event not in SSE_EVENT_TYPES:
        raise ValueError(f"Unknown event type: {event}")
    payload = data.to_dict() if hasattr(data, "to_dict") else data
    return f"event: {event}\ndata: {json.dumps(payload, default=str)}\n\n"
