"""
Threshold alerts driven by state transitions
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Deque, Dict, List, Optional

logger = logging.getLogger(__name__)


class AlertSeverity(str, Enum):
    WARNING = "warning"
    CRITICAL = "critical"
    RESOLVED = "resolved"


@dataclass
class Alert:
    type: str
    severity: AlertSeverity
    threshold: float
    current_value: float
    timestamp: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "severity": self.severity.value,
            "threshold": self.threshold,
            "current_value": self.current_value,
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class AlertRule:
    """``alert_type`` fires when ``metric`` exceeds ``threshold``.

    Severity is critical above ``threshold * critical_multiplier``.
    """

    alert_type: str
    metric: str
    threshold: float
    critical_multiplier: float

    @property
    def critical_at(self) -> float:
        return self.threshold * self.critical_multiplier


@dataclass
class AlertTracker:
    """Per-type alert state machine with a resolve band.

    idle -> active when the value exceeds the threshold. An active alert
    resolves only once the value falls below ``threshold * resolve_ratio``,
    so a value hovering around the threshold does not flap. A critical
    alert de-escalates to warning below ``critical_at * resolve_ratio``.
    Only transitions produce events.
    """

    resolve_ratio: float = 0.9
    history_size: int = 100
    active: Dict[str, Alert] = field(default_factory=dict)
    history: Deque[Alert] = field(init=False)
    total: int = 0

    def __post_init__(self):
        self.history = deque(maxlen=self.history_size)

    def _severity_for(self, rule: AlertRule, value: float) -> AlertSeverity:
        return AlertSeverity.CRITICAL if value > rule.critical_at else AlertSeverity.WARNING

    def evaluate(self, rule: AlertRule, value: float, now: float) -> Optional[Alert]:
        """Feed one sample; returns the emitted event, if any"""
        current = self.active.get(rule.alert_type)

        if current is None:
            if value <= rule.threshold:
                return None
            return self._emit(Alert(rule.alert_type, self._severity_for(rule, value), rule.threshold, value, now))

        if value < rule.threshold * self.resolve_ratio:
            del self.active[rule.alert_type]
            return self._record(Alert(rule.alert_type, AlertSeverity.RESOLVED, rule.threshold, value, now))

        if current.severity is AlertSeverity.WARNING and value > rule.critical_at:
            return self._emit(Alert(rule.alert_type, AlertSeverity.CRITICAL, rule.threshold, value, now))

        if (
            current.severity is AlertSeverity.CRITICAL
            and value < rule.critical_at * self.resolve_ratio
        ):
            return self._emit(Alert(rule.alert_type, AlertSeverity.WARNING, rule.threshold, value, now))

        current.current_value = value
        return None

    def _emit(self, alert: Alert) -> Alert:
        self.active[alert.type] = alert
        return self._record(alert)

    def _record(self, alert: Alert) -> Alert:
        self.history.append(alert)
        self.total += 1
        message = "%s ALERT: %s - Current: %.2f, Threshold: %.2f"
        args = (alert.severity.value.upper(), alert.type, alert.current_value, alert.threshold)
        if alert.severity is AlertSeverity.CRITICAL:
            logger.error("🚨 " + message, *args)
        elif alert.severity is AlertSeverity.WARNING:
            logger.warning("⚠️ " + message, *args)
        else:
            logger.info("✅ " + message, *args)
        return alert

    def recent(self, limit: int = 10) -> List[Alert]:
        return list(self.history)[-limit:]

    def reset(self) -> None:
        self.active.clear()
        self.history.clear()
        self.total = 0
