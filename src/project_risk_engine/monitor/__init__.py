"""Monitoring layer - periodic re-assessment, trends and alerts."""

from project_risk_engine.monitor.alerts import AlertThresholds, analyze_trend, generate_alerts
from project_risk_engine.monitor.models import (
    AlertSeverity,
    MonitoringSession,
    MonitoringSnapshot,
    RiskAlert,
    RiskAlertType,
    TrendDirection,
)
from project_risk_engine.monitor.service import MonitorError, RiskMonitor

__all__ = [
    "AlertSeverity",
    "AlertThresholds",
    "MonitorError",
    "MonitoringSession",
    "MonitoringSnapshot",
    "RiskAlert",
    "RiskAlertType",
    "RiskMonitor",
    "TrendDirection",
    "analyze_trend",
    "generate_alerts",
]
