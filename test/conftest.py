import pytest

from media_orchestrator.config.manager import ConfigurationManager
from media_orchestrator.services.capabilities.registry import CapabilityRegistry, Provider
from media_orchestrator.services.monitoring.performance_monitor import (
    PerformanceMonitor,
    SystemMetrics,
)
from media_orchestrator.services.orchestrator import Orchestrator

JPEG_BYTES = b"\xff\xd8\xff\xe0" + b"\x00" * 28
PNG_HEADER = b"\x89PNG\r\n\x1a\n"
WEBM_HEADER = b"\x1a\x45\xdf\xa3\x8b" + b"\x42\x86\x81\x01" + b"\x42\x82\x84webm"


class FakeClock:
    """Manually advanced wall clock"""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def fake_probe() -> SystemMetrics:
    return SystemMetrics(
        memory_pct=40.0, cpu_pct=20.0, load_avg=(0.8, 0.7, 0.6), process_rss=1024, cpu_count=4
    )


def stub_provider(name, result=None, error=None, priority=100, calls=None):
    """Async provider returning ``result`` or raising ``error``; appends to ``calls``"""

    async def execute(payload, options):
        if calls is not None:
            calls.append(name)
        if error is not None:
            raise error
        return result if result is not None else {"provider": name}

    return Provider(name=name, execute=execute, priority=priority)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_config():
    def _make(values=None, environ=None, config_path=""):
        config = ConfigurationManager(config_path=config_path, environ=environ or {})
        config.initialize()
        config.set("base.retry_delay_ms", 0)
        for path, value in (values or {}).items():
            config.set(path, value)
        return config

    return _make


@pytest.fixture
def make_orchestrator(make_config, clock):
    async def _make(values=None, providers=(), sink=None):
        config = make_config(values)
        registry = CapabilityRegistry(config)
        for capability, provider in providers:
            registry.register_provider(capability, provider)
        monitor = PerformanceMonitor.from_config(config, probe=fake_probe, clock=clock)
        orchestrator = Orchestrator(
            config=config, registry=registry, monitor=monitor, sink=sink, clock=clock
        )
        await orchestrator.initialize(start_background_tasks=False)
        return orchestrator

    return _make
