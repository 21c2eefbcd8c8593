import pytest

from conftest import fake_probe
from media_orchestrator.services.monitoring.alerts import AlertRule, AlertSeverity, AlertTracker
from media_orchestrator.services.monitoring.performance_monitor import (
    PerformanceMonitor,
    SystemMetrics,
)


def make_monitor(clock, **kwargs):
    kwargs.setdefault("probe", fake_probe)
    return PerformanceMonitor(clock=clock, **kwargs)


def test_alert_fires_once_per_transition():
    tracker = AlertTracker(resolve_ratio=0.9)
    rule = AlertRule("memory_high", "system.memory_pct", threshold=90, critical_multiplier=1.2)

    events = [tracker.evaluate(rule, value, now=i) for i, value in enumerate([80, 95, 96, 97, 95])]

    fired = [e for e in events if e is not None]
    assert len(fired) == 1
    assert fired[0].severity is AlertSeverity.WARNING
    assert fired[0].current_value == 95
    assert tracker.active["memory_high"].current_value == 95


def test_alert_resolves_only_below_the_band():
    tracker = AlertTracker(resolve_ratio=0.9)
    rule = AlertRule("cpu_high", "system.cpu_pct", threshold=50, critical_multiplier=1.2)

    tracker.evaluate(rule, 55, now=0)
    assert tracker.evaluate(rule, 48, now=1) is None
    assert tracker.evaluate(rule, 52, now=2) is None
    resolved = tracker.evaluate(rule, 40, now=3)

    assert resolved.severity is AlertSeverity.RESOLVED
    assert "cpu_high" not in tracker.active
    assert tracker.total == 2


def test_alert_escalates_and_de_escalates():
    tracker = AlertTracker(resolve_ratio=0.9)
    rule = AlertRule("queue_large", "application.queued_jobs", threshold=100, critical_multiplier=2)

    assert tracker.evaluate(rule, 150, now=0).severity is AlertSeverity.WARNING
    assert tracker.evaluate(rule, 250, now=1).severity is AlertSeverity.CRITICAL
    assert tracker.evaluate(rule, 190, now=2) is None
    assert tracker.evaluate(rule, 170, now=3).severity is AlertSeverity.WARNING
    assert [a.severity for a in tracker.recent()] == [
        AlertSeverity.WARNING,
        AlertSeverity.CRITICAL,
        AlertSeverity.WARNING,
    ]


def test_value_far_above_threshold_starts_critical():
    tracker = AlertTracker()
    rule = AlertRule("error_rate_high", "application.error_rate_pct", threshold=10, critical_multiplier=2)
    assert tracker.evaluate(rule, 25, now=0).severity is AlertSeverity.CRITICAL


def test_monitor_notifies_listeners_on_transitions(clock):
    memory = {"value": 50.0}

    def probe():
        return SystemMetrics(memory_pct=memory["value"], cpu_pct=10.0)

    monitor = make_monitor(clock, probe=probe)
    received = []
    monitor.add_alert_listener(received.append)
    monitor.add_alert_listener(lambda alert: 1 / 0)

    monitor.sample()
    memory["value"] = 95.0
    monitor.sample()
    monitor.sample()
    memory["value"] = 60.0
    monitor.sample()

    assert [(a.type, a.severity) for a in received] == [
        ("memory_high", AlertSeverity.WARNING),
        ("memory_high", AlertSeverity.RESOLVED),
    ]
    assert monitor.get_alerts()["total"] == 2
    assert monitor.get_alerts()["active"] == []


def test_metrics_listeners_receive_every_snapshot(clock):
    monitor = make_monitor(clock)
    snapshots = []
    monitor.add_metrics_listener(lambda snapshot: 1 / 0)
    monitor.add_metrics_listener(snapshots.append)

    first = monitor.sample()
    second = monitor.sample()

    assert snapshots == [first, second]
    assert snapshots[0].system.memory_pct == 40


def test_alerts_can_be_disabled(clock):
    monitor = make_monitor(clock, enable_alerts=False, thresholds={"memory_pct": 10})
    monitor.sample()
    assert monitor.get_alerts()["total"] == 0


def test_probe_failure_keeps_last_values(clock):
    calls = {"count": 0}

    def flaky_probe():
        calls["count"] += 1
        if calls["count"] > 1:
            raise OSError("no /proc")
        return SystemMetrics(memory_pct=33.0)

    monitor = make_monitor(clock, probe=flaky_probe)
    monitor.sample()
    snapshot = monitor.sample()
    assert snapshot.system.memory_pct == 33.0


def test_error_rate_and_throughput_are_derived(clock):
    monitor = make_monitor(clock)
    monitor.update_application_metrics(completed_jobs=8, failed_jobs=2, not_a_metric=1)
    monitor.sample()
    clock.advance(60)
    monitor.update_application_metrics(completed_jobs=14, failed_jobs=2)
    snapshot = monitor.sample()

    assert snapshot.application.error_rate_pct == pytest.approx(100 * 2 / 16)
    assert snapshot.application.throughput == pytest.approx(6.0)


def test_baselines_after_warmup(clock):
    monitor = make_monitor(clock, baseline_warmup_samples=3, baseline_window=3)
    for _ in range(2):
        monitor.sample()
        clock.advance(10)
    assert monitor.baselines == {}
    monitor.sample()
    assert monitor.baselines["memory_pct"] == pytest.approx(40.0)
    assert monitor.baselines["cpu_pct"] == pytest.approx(20.0)


def test_trend_is_half_over_half_percentage():
    assert PerformanceMonitor.calculate_trend([10, 10, 20, 20]) == pytest.approx(100.0)
    assert PerformanceMonitor.calculate_trend([20, 20, 10, 10]) == pytest.approx(-50.0)
    assert PerformanceMonitor.calculate_trend([5]) == 0.0
    assert PerformanceMonitor.calculate_trend([0, 0, 4, 4]) == 0.0


def test_report_covers_the_requested_window(clock):
    monitor = make_monitor(clock)
    assert "error" in monitor.generate_report()

    monitor.sample()
    clock.advance(7200)
    monitor.update_application_metrics(average_processing_time_ms=20000.0, completed_jobs=1)
    monitor.sample()

    report = monitor.generate_report(time_range_s=3600)
    assert report["data_points"] == 1
    assert report["summary"]["memory"]["average"] == pytest.approx(40.0)
    assert report["summary"]["application"]["total_jobs"] == 1
    categories = {r["category"] for r in report["recommendations"]}
    assert "performance" in categories


def test_low_throughput_needs_finished_jobs(clock):
    monitor = make_monitor(clock)
    monitor.sample()
    assert monitor.generate_recommendations(monitor.get_history()) == []


def test_processor_and_cache_metrics(clock):
    monitor = make_monitor(clock)
    monitor.update_processor_metrics("ImageProcessor", {"stages_tracked": 4})
    monitor.update_cache_metrics({"size": 3, "hit_rate": 50.0})
    metrics = monitor.get_metrics()
    assert metrics["processors"]["ImageProcessor"]["stages_tracked"] == 4
    assert metrics["processors"]["ImageProcessor"]["last_updated"] == clock.now
    assert metrics["cache"]["size"] == 3


def test_reset_clears_history_and_alerts(clock):
    monitor = make_monitor(clock, thresholds={"memory_pct": 10})
    monitor.sample()
    assert monitor.get_alerts()["total"] == 1
    monitor.reset()
    assert monitor.get_history() == []
    assert monitor.get_alerts()["total"] == 0


def test_from_config_reads_thresholds(make_config, clock):
    config = make_config({"performance.monitoring.thresholds": {"memory_pct": 75}})
    monitor = PerformanceMonitor.from_config(config, probe=fake_probe, clock=clock)
    assert monitor.thresholds["memory_pct"] == 75
    assert monitor.thresholds["cpu_pct"] == 95
