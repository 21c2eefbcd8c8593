"""Performance monitoring and alerting"""

from .alerts import Alert, AlertRule, AlertSeverity, AlertTracker
from .performance_monitor import (
    ApplicationMetrics,
    MetricSnapshot,
    PerformanceMonitor,
    SystemMetrics,
    psutil_probe,
)

__all__ = [
    "Alert",
    "AlertRule",
    "AlertSeverity",
    "AlertTracker",
    "ApplicationMetrics",
    "MetricSnapshot",
    "PerformanceMonitor",
    "SystemMetrics",
    "psutil_probe",
]
