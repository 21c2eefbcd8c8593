"""
Performance monitoring for the media orchestrator.

Periodically samples system metrics (memory, CPU estimated from load
average, load averages), combines them with application metrics pushed by
the orchestrator, keeps a bounded history, establishes baselines after a
warm-up window and raises threshold alerts on state transitions only.
"""

import asyncio
import logging
import os
import time
from collections import deque
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Deque, Dict, List, Optional, Tuple

import psutil

from media_orchestrator.config.manager import ConfigurationManager
from media_orchestrator.services.monitoring.alerts import Alert, AlertRule, AlertTracker

logger = logging.getLogger(__name__)

AlertListener = Callable[[Alert], None]
MetricsListener = Callable[["MetricSnapshot"], None]

DEFAULT_THRESHOLDS = {
    "memory_pct": 90,
    "cpu_pct": 95,
    "processing_time_ms": 60000,
    "error_rate_pct": 10,
    "queue_depth": 100,
}

# (alert type, snapshot metric, threshold key, critical multiplier)
_RULE_SPECS = (
    ("memory_high", "system.memory_pct", "memory_pct", 1.2),
    ("cpu_high", "system.cpu_pct", "cpu_pct", 1.2),
    ("processing_slow", "application.average_processing_time_ms", "processing_time_ms", 1.5),
    ("error_rate_high", "application.error_rate_pct", "error_rate_pct", 2.0),
    ("queue_large", "application.queued_jobs", "queue_depth", 2.0),
)


@dataclass
class SystemMetrics:
    memory_pct: float = 0.0
    cpu_pct: float = 0.0
    load_avg: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    process_rss: int = 0
    cpu_count: int = 1


@dataclass
class ApplicationMetrics:
    total_jobs: int = 0
    active_jobs: int = 0
    completed_jobs: int = 0
    failed_jobs: int = 0
    queued_jobs: int = 0
    average_processing_time_ms: float = 0.0
    error_rate_pct: float = 0.0
    throughput: float = 0.0  # jobs per minute


@dataclass
class MetricSnapshot:
    timestamp: float
    system: SystemMetrics
    application: ApplicationMetrics
    finished_jobs: int = 0

    def value(self, path: str) -> float:
        section, name = path.split(".", 1)
        return float(getattr(getattr(self, section), name))

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def psutil_probe() -> SystemMetrics:
    """Sample the host with psutil; CPU is the 1-minute load normalized by core count"""
    cores = psutil.cpu_count() or 1
    load = psutil.getloadavg()
    return SystemMetrics(
        memory_pct=psutil.virtual_memory().percent,
        cpu_pct=max(0.0, min(100.0, load[0] / cores * 100)),
        load_avg=tuple(load),
        process_rss=psutil.Process(os.getpid()).memory_info().rss,
        cpu_count=cores,
    )


def _average(values: List[float]) -> float:
    return sum(values) / len(values) if values else 0.0


class PerformanceMonitor:
    """Independent sampler with hysteretic alerting and reporting"""

    def __init__(
        self,
        thresholds: Optional[Dict[str, float]] = None,
        metrics_interval_ms: int = 10000,
        history_size: int = 1000,
        enable_alerts: bool = True,
        resolve_ratio: float = 0.9,
        baseline_warmup_samples: int = 6,
        baseline_window: int = 10,
        probe: Optional[Callable[[], SystemMetrics]] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.thresholds = dict(DEFAULT_THRESHOLDS)
        self.thresholds.update(thresholds or {})
        self.metrics_interval_ms = metrics_interval_ms
        self.enable_alerts = enable_alerts
        self.baseline_warmup_samples = baseline_warmup_samples
        self.baseline_window = baseline_window
        self._probe = probe or psutil_probe
        self._clock = clock

        self.system = SystemMetrics()
        self.application = ApplicationMetrics()
        self.processors: Dict[str, Dict[str, Any]] = {}
        self.cache: Dict[str, Any] = {"hit_rate": 0.0, "size": 0, "evictions": 0}

        self.history: Deque[MetricSnapshot] = deque(maxlen=history_size)
        self.baselines: Dict[str, float] = {}
        self.alert_tracker = AlertTracker(resolve_ratio=resolve_ratio)
        self._last_snapshot: Optional[MetricSnapshot] = None
        self._alert_listeners: List[AlertListener] = []
        self._metrics_listeners: List[MetricsListener] = []
        self._task: Optional[asyncio.Task] = None

    @classmethod
    def from_config(cls, config: ConfigurationManager, **kwargs) -> "PerformanceMonitor":
        """Build from ``performance.monitoring``; keyword arguments override"""
        monitoring = config.get_performance_config().get("monitoring", {})
        options = {
            "thresholds": monitoring.get("thresholds"),
            "metrics_interval_ms": monitoring.get("metrics_interval_ms", 10000),
            "history_size": monitoring.get("history_size", 1000),
            "enable_alerts": monitoring.get("enable_alerts", True),
            "resolve_ratio": monitoring.get("resolve_ratio", 0.9),
            "baseline_warmup_samples": monitoring.get("baseline_warmup_samples", 6),
            "baseline_window": monitoring.get("baseline_window", 10),
        }
        options.update(kwargs)
        return cls(**options)

    @property
    def rules(self) -> List[AlertRule]:
        return [
            AlertRule(alert_type, metric, float(self.thresholds[key]), multiplier)
            for alert_type, metric, key, multiplier in _RULE_SPECS
        ]

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def add_alert_listener(self, listener: AlertListener) -> None:
        self._alert_listeners.append(listener)

    def remove_alert_listener(self, listener: AlertListener) -> None:
        if listener in self._alert_listeners:
            self._alert_listeners.remove(listener)

    def add_metrics_listener(self, listener: MetricsListener) -> None:
        self._metrics_listeners.append(listener)

    def _notify(self, listeners: List[Callable[[Any], None]], payload: Any) -> None:
        for listener in list(listeners):
            try:
                listener(payload)
            except Exception:
                logger.exception("Performance monitor listener failed")

    # ------------------------------------------------------------------
    # Metric updates
    # ------------------------------------------------------------------

    def update_application_metrics(self, **updates: Any) -> None:
        for name, value in updates.items():
            if hasattr(self.application, name):
                setattr(self.application, name, value)
            else:
                logger.debug("Ignoring unknown application metric %s", name)

    def update_processor_metrics(self, processor_name: str, metrics: Dict[str, Any]) -> None:
        current = self.processors.get(processor_name, {})
        current.update(metrics)
        current["last_updated"] = self._clock()
        self.processors[processor_name] = current

    def update_cache_metrics(self, metrics: Dict[str, Any]) -> None:
        self.cache.update(metrics)

    # ------------------------------------------------------------------
    # Sampling
    # ------------------------------------------------------------------

    def _derive_application_metrics(self, now: float) -> int:
        app = self.application
        finished = app.completed_jobs + app.failed_jobs
        if finished:
            app.error_rate_pct = app.failed_jobs / finished * 100
        if self._last_snapshot is not None:
            minutes = (now - self._last_snapshot.timestamp) / 60
            if minutes > 0:
                app.throughput = (finished - self._last_snapshot.finished_jobs) / minutes
        return finished

    def sample(self) -> MetricSnapshot:
        """Collect one snapshot, update baselines and evaluate alerts"""
        now = self._clock()
        try:
            self.system = self._probe()
        except Exception as e:
            logger.warning("System metrics probe failed, reusing last values: %s", e)

        finished = self._derive_application_metrics(now)
        snapshot = MetricSnapshot(
            timestamp=now,
            system=SystemMetrics(**asdict(self.system)),
            application=ApplicationMetrics(**asdict(self.application)),
            finished_jobs=finished,
        )
        self.history.append(snapshot)
        self._last_snapshot = snapshot

        if not self.baselines and len(self.history) >= self.baseline_warmup_samples:
            self._establish_baselines()

        self._notify(self._metrics_listeners, snapshot)
        if self.enable_alerts:
            self.check_alerts(snapshot)
        return snapshot

    def check_alerts(self, snapshot: MetricSnapshot) -> List[Alert]:
        events = []
        for rule in self.rules:
            event = self.alert_tracker.evaluate(rule, snapshot.value(rule.metric), snapshot.timestamp)
            if event is not None:
                events.append(event)
                self._notify(self._alert_listeners, event)
        return events

    def _establish_baselines(self) -> None:
        window = list(self.history)[-self.baseline_window:]
        self.baselines = {
            "memory_pct": _average([s.system.memory_pct for s in window]),
            "cpu_pct": _average([s.system.cpu_pct for s in window]),
            "processing_time_ms": _average([s.application.average_processing_time_ms for s in window]),
            "throughput": _average([s.application.throughput for s in window]),
        }
        logger.info("📊 Performance baselines established: %s", self.baselines)

    async def _run(self) -> None:
        while True:
            try:
                self.sample()
            except Exception:
                logger.exception("Error collecting metrics")
            await asyncio.sleep(self.metrics_interval_ms / 1000)

    def start(self) -> None:
        """Start periodic sampling on the running event loop"""
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(self._run())
            logger.info("📊 Performance monitor started (interval %d ms)", self.metrics_interval_ms)

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    @staticmethod
    def calculate_trend(values: List[float]) -> float:
        """Signed percentage change of the second half's average over the first half's"""
        if len(values) < 2:
            return 0.0
        middle = len(values) // 2
        first, second = _average(values[:middle]), _average(values[middle:])
        if first == 0:
            return 0.0
        return (second - first) / first * 100

    def _summary(self, history: List[MetricSnapshot], path: str) -> Dict[str, float]:
        values = [s.value(path) for s in history]
        return {
            "average": _average(values),
            "peak": max(values),
            "trend": self.calculate_trend(values),
        }

    def _drift(self, history: List[MetricSnapshot]) -> Dict[str, float]:
        current = {
            "memory_pct": _average([s.system.memory_pct for s in history]),
            "cpu_pct": _average([s.system.cpu_pct for s in history]),
            "processing_time_ms": _average([s.application.average_processing_time_ms for s in history]),
            "throughput": _average([s.application.throughput for s in history]),
        }
        return {
            name: (current[name] - base) / base * 100 if base else 0.0
            for name, base in self.baselines.items()
        }

    def generate_recommendations(self, history: List[MetricSnapshot]) -> List[Dict[str, str]]:
        recommendations = []

        avg_memory = _average([s.system.memory_pct for s in history])
        if avg_memory > 70:
            recommendations.append({
                "category": "memory",
                "priority": "high" if avg_memory > 85 else "medium",
                "message": "Consider increasing available memory or optimizing memory usage",
                "details": f"Average memory usage: {avg_memory:.1f}%",
            })

        avg_cpu = _average([s.system.cpu_pct for s in history])
        if avg_cpu > 70:
            recommendations.append({
                "category": "cpu",
                "priority": "high" if avg_cpu > 85 else "medium",
                "message": "Consider scaling horizontally or optimizing CPU-intensive operations",
                "details": f"Average CPU usage: {avg_cpu:.1f}%",
            })

        avg_time = _average([s.application.average_processing_time_ms for s in history])
        if avg_time > 15000:
            recommendations.append({
                "category": "performance",
                "priority": "high" if avg_time > 30000 else "medium",
                "message": "Processing times are higher than optimal - consider optimization",
                "details": f"Average processing time: {avg_time / 1000:.1f} seconds",
            })

        # Throughput is meaningless before any job has finished
        if history and history[-1].finished_jobs > 0:
            avg_throughput = _average([s.application.throughput for s in history])
            if avg_throughput < 1:
                recommendations.append({
                    "category": "throughput",
                    "priority": "medium",
                    "message": "Low throughput detected - consider parallel processing improvements",
                    "details": f"Average throughput: {avg_throughput:.2f} jobs/minute",
                })

        return recommendations

    def generate_report(self, time_range_s: float = 3600) -> Dict[str, Any]:
        """Aggregate the snapshots of the last ``time_range_s`` seconds"""
        now = self._clock()
        history = [s for s in self.history if now - s.timestamp <= time_range_s]
        if not history:
            return {"error": "No data available for the specified time range"}

        return {
            "time_range_minutes": time_range_s / 60,
            "data_points": len(history),
            "summary": {
                "memory": self._summary(history, "system.memory_pct"),
                "cpu": self._summary(history, "system.cpu_pct"),
                "application": {
                    "total_jobs": history[-1].finished_jobs,
                    "average_processing_time_ms": _average(
                        [s.application.average_processing_time_ms for s in history]
                    ),
                    "error_rate_pct": _average([s.application.error_rate_pct for s in history]),
                    "throughput": _average([s.application.throughput for s in history]),
                },
            },
            "baselines": dict(self.baselines),
            "drift": self._drift(history),
            "recommendations": self.generate_recommendations(history),
            "alerts": [
                a.to_dict() for a in self.alert_tracker.history if now - a.timestamp <= time_range_s
            ],
        }

    def get_metrics(self) -> Dict[str, Any]:
        return {
            "system": asdict(self.system),
            "application": asdict(self.application),
            "processors": {name: dict(m) for name, m in self.processors.items()},
            "cache": dict(self.cache),
            "timestamp": self._clock(),
        }

    def get_alerts(self) -> Dict[str, Any]:
        return {
            "active": [a.to_dict() for a in self.alert_tracker.active.values()],
            "recent": [a.to_dict() for a in self.alert_tracker.recent(10)],
            "total": self.alert_tracker.total,
        }

    def get_history(self, limit: int = 100) -> List[MetricSnapshot]:
        return list(self.history)[-limit:]

    def reset(self) -> None:
        self.application = ApplicationMetrics()
        self.history.clear()
        self.baselines = {}
        self._last_snapshot = None
        self.alert_tracker.reset()
