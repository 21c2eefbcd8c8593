import asyncio
import struct

import pytest

from conftest import JPEG_BYTES, PNG_HEADER, stub_provider
from media_orchestrator.core.exceptions import (
    InputValidationError,
    InternalError,
    JobTimeoutError,
    MediaProcessingError,
    NoTypeDetected,
)
from media_orchestrator.models.jobs import JobState
from media_orchestrator.models.media import Capability, MediaType
from media_orchestrator.models.responses import ResultStatus
from media_orchestrator.services.capabilities.registry import Provider
from media_orchestrator.services.orchestrator import Orchestrator

pytestmark = pytest.mark.asyncio


def blocking_provider(name, release: asyncio.Event, started: asyncio.Event = None):
    async def execute(payload, options):
        if started is not None:
            started.set()
        await release.wait()
        return {"provider": name}

    return Provider(name=name, execute=execute)


async def wait_for_state(orchestrator, state, count=1):
    for _ in range(200):
        jobs = [j for j in orchestrator.active_jobs.values() if j.state is state]
        if len(jobs) >= count:
            return jobs
        await asyncio.sleep(0.005)
    raise AssertionError(f"no job reached {state.value}")


async def test_jpeg_without_providers_completes_with_core_metadata(make_orchestrator):
    orchestrator = await make_orchestrator()

    response = await orchestrator.process_content(JPEG_BYTES, {"filename": "x.jpg", "ownerId": "user-1"})

    assert response.media_type == "image"
    assert response.features == {
        "object_detection": False,
        "ocr": False,
        "ai_description": False,
        "quality_analysis": False,
        "thumbnails": False,
    }
    envelope = response.results.data
    assert response.results.status is ResultStatus.COMPLETED
    assert envelope.results == {}
    assert envelope.owner_id == "user-1"
    assert envelope.metadata["size"] == len(JPEG_BYTES)
    assert envelope.metadata["format"] == "jpeg"
    assert len(response.warnings) == 5
    assert response.job_id.startswith("job_")
    assert orchestrator.active_jobs == {}
    assert orchestrator.metrics.completed_jobs == 1


async def test_available_features_require_flag_and_provider(make_orchestrator):
    orchestrator = await make_orchestrator(
        values={"image.enable_ocr": False},
        providers=[
            (Capability.OCR, stub_provider("ocr_engine")),
            (Capability.IMAGE_ANALYSIS, stub_provider("vision")),
        ],
    )
    features = orchestrator.get_available_features(MediaType.IMAGE)
    assert features["ocr"] is False
    assert features["ai_description"] is True
    assert features["thumbnails"] is False


async def test_feature_results_come_from_providers(make_orchestrator):
    orchestrator = await make_orchestrator(
        providers=[(Capability.IMAGE_ANALYSIS, stub_provider("vision", result={"description": "a cat"}))]
    )

    response = await orchestrator.process_content(JPEG_BYTES, {"type": "image"})

    result = response.results.data.results["ai_description"]
    assert result["provider"] == "vision"
    assert result["data"] == {"description": "a cat"}
    assert response.features["ai_description"] is True


async def test_partial_failure_completes_with_errors(make_orchestrator):
    orchestrator = await make_orchestrator(
        values={"base.retry_attempts": 1},
        providers=[
            (Capability.IMAGE_ANALYSIS, stub_provider("vision")),
            (Capability.OCR, stub_provider("ocr_engine", error=RuntimeError("ocr down"))),
        ],
    )

    response = await orchestrator.process_content(JPEG_BYTES, {"filename": "x.jpg"})

    assert response.results.status is ResultStatus.COMPLETED_WITH_ERRORS
    assert "ocr" not in response.results.data.results
    assert orchestrator.metrics.completed_jobs == 1


async def test_job_without_usable_output_fails(make_orchestrator):
    orchestrator = await make_orchestrator(
        values={"base.retry_attempts": 1},
        providers=[(Capability.OCR, stub_provider("ocr_engine", error=RuntimeError("ocr down")))],
    )

    with pytest.raises(MediaProcessingError) as exc_info:
        await orchestrator.process_content(JPEG_BYTES, {"filename": "x.jpg"})

    assert exc_info.value.error_code == "processing_failed"
    assert orchestrator.metrics.failed_jobs == 1
    assert orchestrator.active_jobs == {}
    assert len(orchestrator.cache) == 0


async def test_inputs_rejected_before_job_creation(make_orchestrator):
    orchestrator = await make_orchestrator(values={"base.max_file_size": 16})

    with pytest.raises(InputValidationError):
        await orchestrator.process_content(b"", {"filename": "x.jpg"})
    with pytest.raises(InputValidationError) as exc_info:
        await orchestrator.process_content(JPEG_BYTES, {"filename": "x.jpg"})
    assert exc_info.value.error_code == "file_too_large"
    with pytest.raises(NoTypeDetected):
        await orchestrator.process_content(b"\x00" * 12)

    assert orchestrator.active_jobs == {}
    assert orchestrator.metrics.total_jobs == 0


async def test_invalid_metadata_is_a_validation_error(make_orchestrator):
    orchestrator = await make_orchestrator()
    with pytest.raises(InputValidationError):
        await orchestrator.process_content(JPEG_BYTES, {"filename": ["not", "a", "name"]})


async def test_failures_while_preparing_a_job_free_its_slot(make_orchestrator, monkeypatch):
    orchestrator = await make_orchestrator()

    def broken_options(*args, **kwargs):
        raise RuntimeError("options unavailable")

    monkeypatch.setattr(orchestrator, "build_processing_options", broken_options)
    with pytest.raises(InternalError, match="options unavailable"):
        await orchestrator.process_content(JPEG_BYTES, {"filename": "x.jpg"})

    assert orchestrator.active_jobs == {}
    assert orchestrator.metrics.failed_jobs == 1


async def test_numeric_owner_id_is_accepted(make_orchestrator):
    orchestrator = await make_orchestrator()

    response = await orchestrator.process_content(JPEG_BYTES, {"filename": "x.jpg", "ownerId": 42})

    assert response.results.status is ResultStatus.COMPLETED
    assert response.results.data.owner_id == "42"


async def test_boolean_owner_id_is_rejected(make_orchestrator):
    orchestrator = await make_orchestrator()
    with pytest.raises(InputValidationError):
        await orchestrator.process_content(JPEG_BYTES, {"filename": "x.jpg", "ownerId": True})


async def test_one_failing_job_does_not_affect_another(make_orchestrator):
    orchestrator = await make_orchestrator()
    oversized_png = PNG_HEADER + struct.pack(">I", 13) + b"IHDR" + struct.pack(">II", 10000, 10) + b"\x08\x06\x00\x00\x00"

    results = await asyncio.gather(
        orchestrator.process_content(oversized_png),
        orchestrator.process_content(JPEG_BYTES, {"filename": "ok.jpg"}),
        return_exceptions=True,
    )

    assert isinstance(results[0], InputValidationError)
    assert results[0].error_code == "dimensions_exceeded"
    assert results[1].results.status is ResultStatus.COMPLETED
    assert orchestrator.metrics.total_jobs == 2
    assert orchestrator.metrics.completed_jobs == 1
    assert orchestrator.metrics.failed_jobs == 1
    assert orchestrator.active_jobs == {}


async def test_status_is_served_from_cache_until_expiry(make_orchestrator, clock):
    orchestrator = await make_orchestrator(values={"performance.caching.cache_timeout_ms": 60000})
    response = await orchestrator.process_content(JPEG_BYTES, {"filename": "x.jpg"})

    status = orchestrator.get_job_status(response.job_id)
    assert status.from_cache is True
    assert status.status == "completed"
    assert status.media_type == "image"
    assert status.results.job_id == response.job_id

    clock.advance(61)
    assert orchestrator.get_job_status(response.job_id) is None
    assert orchestrator.get_job_status("job_unknown") is None


async def test_caching_can_be_disabled(make_orchestrator):
    orchestrator = await make_orchestrator(values={"performance.caching.enable_result_caching": False})
    response = await orchestrator.process_content(JPEG_BYTES, {"filename": "x.jpg"})
    assert orchestrator.get_job_status(response.job_id) is None


async def test_live_status_reports_progress(make_orchestrator):
    release, started = asyncio.Event(), asyncio.Event()
    orchestrator = await make_orchestrator(
        providers=[(Capability.IMAGE_ANALYSIS, blocking_provider("vision", release, started))]
    )

    task = asyncio.ensure_future(orchestrator.process_content(JPEG_BYTES, {"filename": "x.jpg"}))
    await asyncio.wait_for(started.wait(), 1)

    job_id = next(iter(orchestrator.active_jobs))
    status = orchestrator.get_job_status(job_id)
    assert status.status == "processing"
    assert status.from_cache is False
    assert 30 <= status.progress < 100
    assert status.available_features["ai_description"] is True

    release.set()
    response = await task
    assert response.job_id == job_id


async def test_global_gate_queues_jobs_and_times_out(make_orchestrator):
    release, started = asyncio.Event(), asyncio.Event()
    orchestrator = await make_orchestrator(
        values={
            "performance.concurrent_processing.max_concurrent_jobs": 1,
            "performance.concurrent_processing.queue_timeout_ms": 50,
        },
        providers=[(Capability.IMAGE_ANALYSIS, blocking_provider("vision", release, started))],
    )

    first = asyncio.ensure_future(orchestrator.process_content(JPEG_BYTES, {"filename": "a.jpg"}))
    await asyncio.wait_for(started.wait(), 1)

    with pytest.raises(JobTimeoutError, match="waiting in queue"):
        await orchestrator.process_content(JPEG_BYTES, {"filename": "b.jpg"})

    release.set()
    await first
    assert orchestrator.metrics.completed_jobs == 1
    assert orchestrator.metrics.failed_jobs == 1


async def test_queued_jobs_are_visible_and_admitted_after_resize(make_orchestrator):
    release, started = asyncio.Event(), asyncio.Event()
    orchestrator = await make_orchestrator(
        values={"performance.concurrent_processing.max_concurrent_jobs": 1},
        providers=[(Capability.IMAGE_ANALYSIS, blocking_provider("vision", release, started))],
    )

    first = asyncio.ensure_future(orchestrator.process_content(JPEG_BYTES, {"filename": "a.jpg"}))
    await asyncio.wait_for(started.wait(), 1)
    second = asyncio.ensure_future(orchestrator.process_content(JPEG_BYTES, {"filename": "b.jpg"}))
    await wait_for_state(orchestrator, JobState.QUEUED)
    assert orchestrator.get_system_status()["orchestrator"]["queued_jobs"] == 1

    orchestrator.config.set("performance.concurrent_processing.max_concurrent_jobs", 2)
    await wait_for_state(orchestrator, JobState.PROCESSING, count=2)

    release.set()
    await asyncio.gather(first, second)
    assert orchestrator.metrics.completed_jobs == 2


async def test_job_timeout_fails_the_job(make_orchestrator):
    release = asyncio.Event()
    orchestrator = await make_orchestrator(
        values={"base.timeout_ms": 50},
        providers=[(Capability.IMAGE_ANALYSIS, blocking_provider("vision", release))],
    )

    with pytest.raises(JobTimeoutError):
        await orchestrator.process_content(JPEG_BYTES, {"filename": "x.jpg"})

    assert orchestrator.metrics.failed_jobs == 1
    assert orchestrator.active_jobs == {}


async def test_sweep_reclaims_stuck_jobs(make_orchestrator, clock):
    release, started = asyncio.Event(), asyncio.Event()
    orchestrator = await make_orchestrator(
        values={"performance.cleanup.stale_job_threshold_ms": 1000},
        providers=[(Capability.IMAGE_ANALYSIS, blocking_provider("vision", release, started))],
    )

    task = asyncio.ensure_future(orchestrator.process_content(JPEG_BYTES, {"filename": "x.jpg"}))
    await asyncio.wait_for(started.wait(), 1)

    assert orchestrator.sweep() == {"evicted": 0, "reclaimed": 0}
    clock.advance(2)
    assert orchestrator.sweep() == {"evicted": 0, "reclaimed": 1}

    with pytest.raises(JobTimeoutError, match="reclaimed"):
        await task
    assert orchestrator.active_jobs == {}
    assert orchestrator.metrics.failed_jobs == 1
    assert orchestrator._global_gate.active == 0


async def test_sweep_evicts_expired_results(make_orchestrator, clock):
    orchestrator = await make_orchestrator(values={"performance.caching.cache_timeout_ms": 1000})
    await orchestrator.process_content(JPEG_BYTES, {"filename": "x.jpg"})
    clock.advance(5)
    assert orchestrator.sweep()["evicted"] == 1
    assert len(orchestrator.cache) == 0


class RecordingSink:
    def __init__(self, fail=False):
        self.stored = []
        self.fail = fail

    async def store(self, job_id, results):
        if self.fail:
            raise IOError("disk full")
        self.stored.append((job_id, results.status))


async def test_sink_receives_completed_results(make_orchestrator):
    sink = RecordingSink()
    orchestrator = await make_orchestrator(sink=sink)
    response = await orchestrator.process_content(JPEG_BYTES, {"filename": "x.jpg"})
    await orchestrator.shutdown()
    assert sink.stored == [(response.job_id, ResultStatus.COMPLETED)]


async def test_sink_failures_never_reach_the_caller(make_orchestrator):
    orchestrator = await make_orchestrator(sink=RecordingSink(fail=True))
    response = await orchestrator.process_content(JPEG_BYTES, {"filename": "x.jpg"})
    await orchestrator.shutdown()
    assert response.results.status is ResultStatus.COMPLETED


async def test_configuration_changes_resize_gates_and_cache(make_orchestrator):
    orchestrator = await make_orchestrator()
    orchestrator.config.set("performance.concurrent_processing", {"max_concurrent_jobs": 7})
    orchestrator.config.set("performance.concurrent_processing.max_concurrent_per_type", 4)
    orchestrator.config.set("performance.caching.max_cache_size", 5)

    assert orchestrator._global_gate.limit == 7
    assert all(gate.limit == 4 for gate in orchestrator._type_gates.values())
    assert orchestrator.cache.max_size == 5


async def test_metrics_are_pushed_to_the_monitor(make_orchestrator):
    orchestrator = await make_orchestrator()
    await orchestrator.process_content(JPEG_BYTES, {"filename": "x.jpg"})

    metrics = orchestrator.monitor.get_metrics()
    assert metrics["application"]["completed_jobs"] == 1
    assert metrics["application"]["total_jobs"] == 1
    assert "ImageProcessor" in metrics["processors"]
    assert metrics["cache"]["size"] == 1


async def test_system_status(make_orchestrator):
    orchestrator = await make_orchestrator(providers=[(Capability.OCR, stub_provider("ocr_engine"))])
    await orchestrator.process_content(JPEG_BYTES, {"filename": "x.jpg"})

    status = orchestrator.get_system_status()
    assert status["orchestrator"]["initialized"] is True
    assert status["orchestrator"]["active_jobs"] == 0
    assert status["orchestrator"]["cache_size"] == 1
    assert status["orchestrator"]["metrics"]["completed_jobs"] == 1
    assert status["processors"] == ["video", "audio", "image"]
    assert status["capabilities"]["capabilities"]["ocr"]["status"] == "available"
    assert "performance" in status["configuration"]["sections"]
    assert status["monitoring"]["alerts"]["total"] == 0


async def test_shutdown_clears_state(make_orchestrator):
    orchestrator = await make_orchestrator()
    await orchestrator.process_content(JPEG_BYTES, {"filename": "x.jpg"})
    await orchestrator.shutdown()

    assert orchestrator.initialized is False
    assert len(orchestrator.cache) == 0

    orchestrator.config.set("performance.caching.max_cache_size", 3)
    assert orchestrator.cache.max_size == 1000


async def test_processors_must_honor_the_contract(make_config):
    orchestrator = Orchestrator(config=make_config(), processors={MediaType.IMAGE: object()})
    with pytest.raises(InternalError, match="does not implement IMediaProcessor"):
        await orchestrator.initialize(start_background_tasks=False)
    assert orchestrator.initialized is False
