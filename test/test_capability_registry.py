import asyncio

import pytest

from conftest import stub_provider
from media_orchestrator.core.exceptions import CapabilityUnavailable, ProviderChainExhausted
from media_orchestrator.models.media import Capability
from media_orchestrator.services.capabilities.registry import CapabilityRegistry, Provider

pytestmark = pytest.mark.asyncio


async def test_fallback_records_failure_and_uses_next_provider():
    registry = CapabilityRegistry()
    calls = []
    registry.register_provider(
        Capability.OCR, stub_provider("a", error=RuntimeError("quota exceeded"), priority=10, calls=calls)
    )
    registry.register_provider(
        Capability.OCR, stub_provider("b", result={"text": "hello"}, priority=20, calls=calls)
    )

    outcome = await registry.execute_capability(Capability.OCR, b"payload")

    assert calls == ["a", "b"]
    assert outcome.provider == "b"
    assert outcome.result == {"text": "hello"}
    assert outcome.fallback_used is True
    assert len(outcome.failures) == 1
    assert outcome.failures[0].provider == "a"
    assert outcome.failures[0].message == "quota exceeded"
    assert outcome.failures[0].error_type == "RuntimeError"

    stats = registry.get_status_report()["stats"]
    assert stats == {"executions": 1, "attempts": 2, "failures": 1, "fallbacks": 1}


async def test_providers_run_in_priority_order_regardless_of_registration():
    registry = CapabilityRegistry()
    registry.register_provider("ocr", stub_provider("slow_lane", priority=50))
    registry.register_provider("ocr", stub_provider("fast_lane", priority=5))
    assert [p.name for p in registry.get_capability("ocr").providers] == ["fast_lane", "slow_lane"]
    outcome = await registry.execute_capability("ocr", b"")
    assert outcome.provider == "fast_lane"
    assert outcome.fallback_used is False


async def test_exhausted_chain_reports_last_error():
    registry = CapabilityRegistry()
    registry.register_provider("ocr", stub_provider("a", error=RuntimeError("first"), priority=1))
    registry.register_provider("ocr", stub_provider("b", error=ValueError("second"), priority=2))

    with pytest.raises(ProviderChainExhausted) as exc_info:
        await registry.execute_capability("ocr", b"")

    assert "All providers failed for capability ocr" in exc_info.value.message
    assert "Last error: second" in exc_info.value.message
    assert [f.provider for f in exc_info.value.failures] == ["a", "b"]


async def test_unknown_capability_is_unavailable():
    with pytest.raises(CapabilityUnavailable):
        await CapabilityRegistry().execute_capability("transcription", b"")


async def test_disabled_provider_is_skipped():
    registry = CapabilityRegistry()
    registry.register_provider("ocr", stub_provider("a", priority=1))
    registry.register_provider("ocr", stub_provider("b", priority=2))
    registry.set_provider_enabled("ocr", "a", False)

    outcome = await registry.execute_capability("ocr", b"")
    assert outcome.provider == "b"

    disabled = registry.get_status_report()["disabled_providers"]
    assert disabled == [{"name": "a", "capability": "ocr", "group": None, "reason": "Manually disabled"}]

    registry.set_provider_enabled("ocr", "b", False)
    assert registry.is_available("ocr") is False
    with pytest.raises(CapabilityUnavailable):
        await registry.execute_capability("ocr", b"")


async def test_provider_group_follows_configuration(make_config):
    config = make_config()
    registry = CapabilityRegistry(config)

    async def execute(payload, options):
        return "ok"

    registry.register_provider(
        Capability.IMAGE_ANALYSIS, Provider(name="vision", execute=execute, group="openai")
    )
    assert registry.is_available(Capability.IMAGE_ANALYSIS)

    config.set("providers.openai.enabled", False)
    assert not registry.is_available(Capability.IMAGE_ANALYSIS)


async def test_fallback_disabled_tries_only_first_provider(make_config):
    config = make_config({"providers.fallback.enable_automatic_fallback": False})
    registry = CapabilityRegistry(config)
    calls = []
    registry.register_provider("ocr", stub_provider("a", error=RuntimeError("down"), priority=1, calls=calls))
    registry.register_provider("ocr", stub_provider("b", priority=2, calls=calls))

    with pytest.raises(ProviderChainExhausted):
        await registry.execute_capability("ocr", b"")
    assert calls == ["a"]


async def test_max_fallback_attempts_caps_the_chain(make_config):
    config = make_config({"providers.fallback.max_fallback_attempts": 2})
    registry = CapabilityRegistry(config)
    calls = []
    for index, name in enumerate(["a", "b", "c"]):
        registry.register_provider(
            "ocr", stub_provider(name, error=RuntimeError(name), priority=index, calls=calls)
        )

    with pytest.raises(ProviderChainExhausted):
        await registry.execute_capability("ocr", b"")
    assert calls == ["a", "b"]


async def test_slow_provider_times_out_and_falls_back():
    registry = CapabilityRegistry()

    async def hang(payload, options):
        await asyncio.sleep(10)

    registry.register_provider("ocr", Provider(name="hang", execute=hang, priority=1, timeout_ms=20))
    registry.register_provider("ocr", stub_provider("quick", priority=2))

    outcome = await registry.execute_capability("ocr", b"")
    assert outcome.provider == "quick"
    assert outcome.failures[0].error_type == "TimeoutError"


async def test_sync_providers_run_in_executor():
    registry = CapabilityRegistry()
    registry.register_provider(
        "thumbnail_generation",
        Provider(name="sync", execute=lambda payload, options: {"size": len(payload), **options}),
    )
    outcome = await registry.execute_capability("thumbnail_generation", b"abcd", {"job_id": "j1"})
    assert outcome.result == {"size": 4, "job_id": "j1"}


async def test_readiness_probe_marks_unready_providers():
    registry = CapabilityRegistry()
    ready = {"value": False}
    registry.register_provider(
        "transcription",
        Provider(name="speech", execute=lambda p, o: "text", is_ready=lambda: ready["value"]),
    )

    assert registry.test_availability() == {"transcription": {"speech": False}}
    report = registry.get_status_report()
    assert report["capabilities"]["transcription"]["status"] == "unavailable"
    assert report["disabled_providers"][0]["reason"] == "Provider not ready"

    ready["value"] = True
    assert registry.test_availability() == {"transcription": {"speech": True}}
    assert registry.is_available("transcription")


async def test_cleanup_runs_each_hook_once():
    registry = CapabilityRegistry()
    cleaned = []

    def cleanup():
        cleaned.append("shared")

    def broken():
        raise RuntimeError("cleanup failed")

    shared = Provider(name="shared", execute=lambda p, o: None, cleanup=cleanup)
    registry.register_provider("ocr", shared)
    registry.register_provider("image_analysis", shared)
    registry.register_provider("ocr", Provider(name="broken", execute=lambda p, o: None, cleanup=broken))

    await registry.cleanup()
    assert cleaned == ["shared"]
