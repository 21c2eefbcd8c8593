"""
Orchestrator: central coordinator for media processing jobs.

Detects the media type, resolves which features are available, builds
per-job options, dispatches to the matching processor behind a bounded
concurrency gate, tracks job state, updates rolling metrics and caches
completed results. A background sweep evicts expired cache entries and
reclaims jobs that have been active longer than the staleness threshold.
"""

import asyncio
import logging
import time
import uuid
from typing import Any, Callable, Dict, List, Mapping, Optional, Set

from pydantic import ValidationError

from media_orchestrator.config.manager import ConfigurationManager
from media_orchestrator.core.exceptions import (
    InputValidationError,
    InternalError,
    JobTimeoutError,
    MediaProcessingError,
)
from media_orchestrator.interfaces.processor import IMediaProcessor
from media_orchestrator.interfaces.storage import IResultSink
from media_orchestrator.models.jobs import Job, JobState, OrchestratorMetrics, ProcessingOptions
from media_orchestrator.models.media import MediaInput, MediaType, features_for
from media_orchestrator.models.requests import ContentMetadata
from media_orchestrator.models.responses import (
    FormattedResults,
    JobStatusResponse,
    ProcessContentResponse,
    ResultEnvelope,
    ResultStatus,
)
from media_orchestrator.services.cache.result_cache import ResultCache
from media_orchestrator.services.capabilities.registry import CapabilityRegistry
from media_orchestrator.services.concurrency import ConcurrencyGate
from media_orchestrator.services.detection.detector import MediaTypeDetector
from media_orchestrator.services.monitoring.alerts import Alert
from media_orchestrator.services.monitoring.performance_monitor import PerformanceMonitor
from media_orchestrator.services.processors.core.base_processor import BaseMediaProcessor
from media_orchestrator.services.processors.media import (
    AudioProcessor,
    ImageProcessor,
    VideoProcessor,
)

logger = logging.getLogger(__name__)

_CONCURRENCY = "performance.concurrent_processing"
_CACHING = "performance.caching"
_CLEANUP = "performance.cleanup"


class Orchestrator:
    """Coordinates detection, feature resolution, processing, caching and metrics.

    Construct one per process and pass it to consumers. Every collaborator
    can be injected; anything omitted is built from the configuration
    during ``initialize``.
    """

    def __init__(
        self,
        config: Optional[ConfigurationManager] = None,
        registry: Optional[CapabilityRegistry] = None,
        detector: Optional[MediaTypeDetector] = None,
        processors: Optional[Mapping[MediaType, IMediaProcessor]] = None,
        cache: Optional[ResultCache] = None,
        monitor: Optional[PerformanceMonitor] = None,
        sink: Optional[IResultSink] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config or ConfigurationManager()
        self.registry = registry or CapabilityRegistry(self.config)
        self.detector = detector or MediaTypeDetector(self.config)
        self.processors: Dict[MediaType, IMediaProcessor] = dict(processors or {})
        self.cache: Optional[ResultCache] = cache
        self.monitor = monitor
        self.sink = sink
        self._clock = clock

        self.active_jobs: Dict[str, Job] = {}
        self.metrics = OrchestratorMetrics()
        self._global_gate: Optional[ConcurrencyGate] = None
        self._type_gates: Dict[MediaType, ConcurrencyGate] = {}
        self._sweep_task: Optional[asyncio.Task] = None
        self._sink_tasks: Set[asyncio.Future] = set()
        self._watchers: List = []
        self.initialized = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self, start_background_tasks: bool = True) -> None:
        """Load configuration, build missing collaborators and initialize processors.

        Args:
            start_background_tasks: Start the cleanup sweep and the monitor's sampler

        Raises:
            InternalError: If any part of initialization fails
        """
        if self.initialized:
            return

        try:
            self.config.initialize()
            for problem in self.config.validate_config():
                logger.warning("Configuration problem: %s", problem)

            if self.cache is None:
                self.cache = ResultCache(
                    max_size=self.config.get(f"{_CACHING}.max_cache_size", 1000),
                    default_ttl_seconds=self.config.get(f"{_CACHING}.cache_timeout_ms", 3600000) / 1000,
                    clock=self._clock,
                )

            self._global_gate = ConcurrencyGate(
                self.config.get(f"{_CONCURRENCY}.max_concurrent_jobs", 3), name="global"
            )
            per_type = self.config.get(f"{_CONCURRENCY}.max_concurrent_per_type", 2)
            self._type_gates = {
                media_type: ConcurrencyGate(per_type, name=media_type.value)
                for media_type in MediaType
            }

            if not self.processors:
                self.processors = {
                    MediaType.VIDEO: VideoProcessor(self.registry),
                    MediaType.AUDIO: AudioProcessor(self.registry),
                    MediaType.IMAGE: ImageProcessor(self.registry),
                }
            for media_type, processor in self.processors.items():
                if not isinstance(processor, IMediaProcessor):
                    raise TypeError(f"{type(processor).__name__} does not implement IMediaProcessor")
                await processor.initialize(self.config.get_processor_config(media_type))

            self.registry.test_availability()

            if self.monitor is None and self.config.get("performance.monitoring.enable_metrics", True):
                self.monitor = PerformanceMonitor.from_config(self.config)
            if self.monitor is not None:
                self.monitor.add_alert_listener(self._on_alert)

            self._register_config_watchers()

            if start_background_tasks:
                self._sweep_task = asyncio.get_running_loop().create_task(self._sweep_loop())
                if self.monitor is not None:
                    self.monitor.start()
        except MediaProcessingError:
            raise
        except Exception as e:
            logger.error("Failed to initialize orchestrator: %s", e, exc_info=True)
            raise InternalError(f"Orchestrator initialization failed: {e}") from e

        self.initialized = True
        logger.info(
            "✅ Orchestrator initialized (processors: %s)",
            ", ".join(t.value for t in self.processors),
        )

    def _register_config_watchers(self) -> None:
        def resize_global(new, old, path):
            if isinstance(new, int) and new > 0:
                self._global_gate.resize(new)

        def resize_per_type(new, old, path):
            if isinstance(new, int) and new > 0:
                for gate in self._type_gates.values():
                    gate.resize(new)

        def resize_cache(new, old, path):
            if isinstance(new, int) and new > 0:
                self.cache.resize(new)

        def retune_cache_ttl(new, old, path):
            if isinstance(new, int) and new > 0:
                self.cache.default_ttl_seconds = new / 1000

        self._watchers = [
            (f"{_CONCURRENCY}.max_concurrent_jobs", resize_global),
            (f"{_CONCURRENCY}.max_concurrent_per_type", resize_per_type),
            (f"{_CACHING}.max_cache_size", resize_cache),
            (f"{_CACHING}.cache_timeout_ms", retune_cache_ttl),
        ]
        for path, callback in self._watchers:
            self.config.watch(path, callback)

    def _on_alert(self, alert: Alert) -> None:
        logger.warning("🚨 Performance alert: %s - %s", alert.type, alert.severity.value)

    async def shutdown(self) -> None:
        """Stop background work, clean up processors and providers, drop all state"""
        if self._sweep_task is not None:
            self._sweep_task.cancel()
            try:
                await self._sweep_task
            except asyncio.CancelledError:
                pass
            self._sweep_task = None

        if self.monitor is not None:
            await self.monitor.stop()
            self.monitor.remove_alert_listener(self._on_alert)

        for job in list(self.active_jobs.values()):
            self._fail_job(job, "Orchestrator shut down before the job finished")
            if job.task is not None and not job.task.done():
                job.task.cancel()

        if self._sink_tasks:
            await asyncio.gather(*self._sink_tasks, return_exceptions=True)

        for media_type, processor in self.processors.items():
            try:
                await processor.cleanup()
            except Exception as e:
                logger.warning("Cleanup failed for %s processor: %s", media_type.value, e)
        await self.registry.cleanup()

        for path, callback in self._watchers:
            self.config.unwatch(path, callback)
        self._watchers = []

        if self.cache is not None:
            self.cache.clear()
        self.active_jobs.clear()
        self.initialized = False
        logger.info("🧹 Orchestrator shut down")

    cleanup = shutdown

    # ------------------------------------------------------------------
    # Feature resolution and options
    # ------------------------------------------------------------------

    def get_available_features(self, media_type: MediaType) -> Dict[str, bool]:
        """Feature flag = config enable-flag AND capability availability"""
        return {
            binding.feature.value: (
                self.config.is_feature_enabled(binding.config_flag)
                and self.registry.is_available(binding.capability)
            )
            for binding in features_for(media_type)
        }

    def build_processing_options(
        self,
        job_id: str,
        media_type: MediaType,
        metadata: Dict[str, Any],
        features: Dict[str, bool],
    ) -> ProcessingOptions:
        return ProcessingOptions(
            job_id=job_id,
            media_type=media_type,
            config=self.config.get_processor_config(media_type),
            metadata=dict(metadata),
            features=dict(features),
            capabilities={
                binding.feature.value: binding.capability.value
                for binding in features_for(media_type)
            },
        )

    def format_results(
        self,
        envelope: ResultEnvelope,
        media_type: MediaType,
        job_id: str,
        features: Optional[Dict[str, bool]] = None,
    ) -> FormattedResults:
        return FormattedResults(
            job_id=job_id,
            media_type=media_type.value,
            status=envelope.status or ResultStatus.COMPLETED,
            features=dict(features or {}),
            data=envelope,
        )

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------

    def _generate_job_id(self) -> str:
        while True:
            job_id = f"job_{int(self._clock() * 1000)}_{uuid.uuid4().hex[:12]}"
            if job_id not in self.active_jobs:
                return job_id

    def _validate_buffer(self, buffer: bytes, filename: Optional[str]) -> None:
        if not buffer:
            raise InputValidationError("Input is empty", file_name=filename)
        max_size = self.config.get("base.max_file_size")
        if max_size and len(buffer) > max_size:
            raise InputValidationError(
                f"Input too large: {len(buffer)} bytes (max: {max_size})",
                error_code="file_too_large",
                file_name=filename,
            )

    async def process_content(
        self, buffer: bytes, metadata: Optional[Mapping[str, Any]] = None
    ) -> ProcessContentResponse:
        """Process one content buffer end to end.

        Args:
            buffer: Raw content
            metadata: ``type``, ``filename``, ``mimeType``/``mime_type``, ``ownerId``/``owner_id``
                and any extra keys, which are passed to the processor

        Returns:
            ProcessContentResponse

        Raises:
            InputValidationError: If the input is empty, oversized, undetectable or invalid
            JobTimeoutError: If the job timed out in the queue or while processing, or was reclaimed
            MediaProcessingError: If processing failed
        """
        if not self.initialized:
            await self.initialize()

        try:
            meta = ContentMetadata.model_validate(dict(metadata or {}))
        except ValidationError as e:
            raise InputValidationError(f"Invalid metadata: {e.errors()[0]['msg']}") from e
        meta_dict = meta.model_dump(exclude_none=True)
        self._validate_buffer(buffer, meta.filename)

        job = Job(id=self._generate_job_id(), owner_id=meta.owner_id, start_time=self._clock())
        self.active_jobs[job.id] = job

        try:
            detection = self.detector.detect(buffer, meta_dict)
        except InputValidationError:
            self.active_jobs.pop(job.id, None)
            raise
        job.media_type = detection.media_type

        processor = self.processors.get(detection.media_type)
        if processor is None:
            error = InternalError(f"No processor available for media type: {detection.media_type.value}")
            self._fail_job(job, error.message)
            raise error

        try:
            features = self.get_available_features(detection.media_type)
            options = self.build_processing_options(job.id, detection.media_type, meta_dict, features)
            job.available_features = features
            job.options = options.snapshot()

            media = MediaInput.from_bytes(
                buffer,
                detection.media_type,
                filename=meta.filename,
                mime_type=meta.mime_type,
                format_name=detection.format_name,
            )
        except Exception as e:
            logger.error("Failed to prepare job %s: %s", job.id, e, exc_info=True)
            self._fail_job(job, str(e))
            raise InternalError(f"Failed to prepare job {job.id}: {e}") from e
        logger.info(
            "🎬 Job %s: %s via %s (%d bytes)",
            job.id,
            detection.media_type.value,
            detection.source,
            media.size,
        )

        task = asyncio.ensure_future(self._execute(job, processor, media, options))
        job.task = task
        try:
            envelope = await task
        except asyncio.CancelledError:
            if task.cancelled() and job.state.is_terminal:
                raise self._terminated_error(job) from None
            self._fail_job(job, "Job cancelled")
            raise
        except MediaProcessingError as e:
            self._fail_job(job, e.message)
            raise
        except Exception as e:
            logger.error("Job %s failed unexpectedly: %s", job.id, e, exc_info=True)
            self._fail_job(job, str(e))
            raise InternalError(f"Processing failed: {e}") from e
        finally:
            job.task = None

        if job.state.is_terminal:
            raise self._terminated_error(job)

        if envelope.status is ResultStatus.FAILED:
            message = envelope.errors[0].message if envelope.errors else "Processing produced no output"
            self._fail_job(job, message)
            raise MediaProcessingError(message, error_code="processing_failed")

        return self._complete_job(job, processor, envelope)

    async def _execute(
        self,
        job: Job,
        processor: IMediaProcessor,
        media: MediaInput,
        options: ProcessingOptions,
    ) -> ResultEnvelope:
        queue_timeout = self.config.get(f"{_CONCURRENCY}.queue_timeout_ms", 600000) / 1000
        type_gate = self._type_gates[media.media_type]

        try:
            await self._global_gate.acquire(queue_timeout)
        except asyncio.TimeoutError:
            raise JobTimeoutError(f"Job {job.id} timed out waiting in queue", job_id=job.id) from None
        try:
            try:
                await type_gate.acquire(queue_timeout)
            except asyncio.TimeoutError:
                raise JobTimeoutError(
                    f"Job {job.id} timed out waiting in {media.media_type.value} queue", job_id=job.id
                ) from None
            try:
                job.transition(JobState.PROCESSING)

                def on_progress(progress: int, message: str) -> None:
                    job.progress = progress
                    job.progress_message = message

                try:
                    return await asyncio.wait_for(
                        processor.process(job.owner_id, media, options, on_progress),
                        options.timeout_ms / 1000,
                    )
                except asyncio.TimeoutError:
                    raise JobTimeoutError(
                        f"Job {job.id} exceeded timeout of {options.timeout_ms} ms", job_id=job.id
                    ) from None
            finally:
                await type_gate.release()
        finally:
            await self._global_gate.release()

    def _complete_job(
        self, job: Job, processor: IMediaProcessor, envelope: ResultEnvelope
    ) -> ProcessContentResponse:
        end_time = self._clock()
        formatted = self.format_results(envelope, job.media_type, job.id, job.available_features)
        formatted.processing_time_ms = max(0, int((end_time - job.start_time) * 1000))
        job.complete(formatted.model_dump(), end_time)
        job.warnings = [w.message for w in envelope.warnings]
        job.errors = [e.message for e in envelope.errors]

        self.metrics.record(job)
        if self.config.get(f"{_CACHING}.enable_result_caching", True):
            self.cache.put(job.id, formatted)
        self.active_jobs.pop(job.id, None)
        self._dispatch_to_sink(job.id, formatted)
        self._push_metrics(processor)

        logger.info(
            "✅ Job %s %s in %d ms (%d warnings)",
            job.id,
            formatted.status.value,
            formatted.processing_time_ms,
            len(job.warnings),
        )
        return ProcessContentResponse(
            job_id=job.id,
            media_type=job.media_type.value,
            processing_time_ms=formatted.processing_time_ms,
            results=formatted,
            warnings=list(job.warnings),
            features=dict(job.available_features),
        )

    def _terminated_error(self, job: Job) -> MediaProcessingError:
        """Error for a job that was failed from outside its own task"""
        if job.reclaimed:
            return JobTimeoutError(
                f"Job {job.id} reclaimed after exceeding the staleness threshold", job_id=job.id
            )
        return InternalError(job.errors[-1] if job.errors else f"Job {job.id} was terminated")

    def _fail_job(self, job: Job, message: str) -> None:
        """Mark ``job`` failed once, update metrics and free its table slot"""
        if not job.fail(message, self._clock()):
            return
        self.metrics.record(job)
        self.active_jobs.pop(job.id, None)
        processor = self.processors.get(job.media_type) if job.media_type else None
        self._push_metrics(processor)
        logger.error("❌ Job %s failed after %d ms: %s", job.id, job.processing_time_ms(), message)

    def _dispatch_to_sink(self, job_id: str, results: FormattedResults) -> None:
        if self.sink is None:
            return
        task = asyncio.ensure_future(self._store(job_id, results))
        self._sink_tasks.add(task)
        task.add_done_callback(self._sink_tasks.discard)

    async def _store(self, job_id: str, results: FormattedResults) -> None:
        try:
            await self.sink.store(job_id, results)
        except Exception as e:
            logger.warning("Result sink failed for job %s: %s", job_id, e)

    def _queued_count(self) -> int:
        return sum(1 for job in self.active_jobs.values() if job.state is JobState.QUEUED)

    def _push_metrics(self, processor: Optional[IMediaProcessor] = None) -> None:
        if self.monitor is None:
            return
        self.monitor.update_application_metrics(
            total_jobs=self.metrics.total_jobs,
            active_jobs=len(self.active_jobs),
            completed_jobs=self.metrics.completed_jobs,
            failed_jobs=self.metrics.failed_jobs,
            queued_jobs=self._queued_count(),
            average_processing_time_ms=self.metrics.average_processing_time_ms,
        )
        if isinstance(processor, BaseMediaProcessor):
            self.monitor.update_processor_metrics(processor.processor_type, processor.get_metrics())
        if self.cache is not None:
            self.monitor.update_cache_metrics(self.cache.stats())

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def get_job_status(self, job_id: str) -> Optional[JobStatusResponse]:
        """Live status for active jobs, cached status for finished ones, else None"""
        job = self.active_jobs.get(job_id)
        if job is not None:
            return JobStatusResponse(
                id=job.id,
                status=job.state.value,
                media_type=job.media_type.value if job.media_type else None,
                processing_time_ms=job.processing_time_ms(self._clock()),
                available_features=dict(job.available_features),
                progress=job.progress,
                progress_message=job.progress_message or None,
            )

        cached: Optional[FormattedResults] = self.cache.get(job_id) if self.cache is not None else None
        if cached is not None:
            return JobStatusResponse(
                id=job_id,
                status=JobState.COMPLETED.value,
                media_type=cached.media_type,
                processing_time_ms=cached.processing_time_ms,
                available_features=dict(cached.features),
                from_cache=True,
                results=cached,
            )
        return None

    def get_system_status(self) -> Dict[str, Any]:
        summary = self.config.get_config_summary()
        status = {
            "orchestrator": {
                "initialized": self.initialized,
                "active_jobs": len(self.active_jobs),
                "queued_jobs": self._queued_count(),
                "cache_size": len(self.cache) if self.cache is not None else 0,
                "metrics": self.metrics.to_dict(),
            },
            "processors": [media_type.value for media_type in self.processors],
            "capabilities": self.registry.get_status_report(),
            "configuration": {
                "loaded": self.config.initialized,
                "sections": list(summary.keys()),
                "summary": summary,
            },
        }
        if self.monitor is not None:
            status["monitoring"] = {
                "running": self.monitor.running,
                "alerts": self.monitor.get_alerts(),
            }
        return status

    # ------------------------------------------------------------------
    # Background sweep
    # ------------------------------------------------------------------

    def sweep(self) -> Dict[str, int]:
        """Evict expired cache entries and reclaim stuck jobs.

        A job older than ``stale_job_threshold_ms`` is failed with a timeout
        and its in-flight task is cancelled.
        """
        evicted = self.cache.evict_expired() if self.cache is not None else 0
        threshold_s = self.config.get(f"{_CLEANUP}.stale_job_threshold_ms", 3600000) / 1000
        now = self._clock()

        reclaimed = 0
        for job in list(self.active_jobs.values()):
            if now - job.start_time <= threshold_s:
                continue
            logger.warning("Reclaiming long-running job %s (%s)", job.id, job.state.value)
            job.reclaimed = True
            self._fail_job(
                job,
                JobTimeoutError(
                    f"Job {job.id} exceeded stale job threshold of {int(threshold_s * 1000)} ms",
                    job_id=job.id,
                ).message,
            )
            if job.task is not None and not job.task.done():
                job.task.cancel()
            reclaimed += 1

        if self.monitor is not None and self.cache is not None:
            self.monitor.update_cache_metrics(self.cache.stats())
        return {"evicted": evicted, "reclaimed": reclaimed}

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.get(f"{_CLEANUP}.interval_ms", 300000) / 1000)
            try:
                self.sweep()
            except Exception:
                logger.exception("Cleanup sweep failed")
