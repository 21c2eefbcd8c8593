"""Abstract base class for media processors"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Type, TypeVar

from media_orchestrator.core.exceptions import (
    CapabilityUnavailable,
    ConfigError,
    InputValidationError,
)
from media_orchestrator.interfaces.processor import IProgressSink
from media_orchestrator.models.jobs import ProcessingOptions
from media_orchestrator.models.media import MediaInput
from media_orchestrator.models.responses import (
    InputDescriptor,
    IssueRecord,
    ResultEnvelope,
    ResultStatus,
)

from .metrics import MetricsCollector, ProcessingMetrics, ProcessingStage
from .progress import ProgressReporter

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Failures that retrying cannot fix
NON_RETRYABLE: Tuple[Type[BaseException], ...] = (
    InputValidationError,
    ConfigError,
    CapabilityUnavailable,
)


class BaseMediaProcessor(ABC):
    """Contract and shared behavior for every media processor.

    Subclasses implement the lifecycle (initialize, validate, process,
    cleanup) and describe themselves through ``get_supported_types`` and
    ``get_capabilities``. This class supplies retry with linear backoff,
    per-call progress reporting, result envelope accumulation and stage
    metrics.

    Processors are shared across concurrent jobs, so nothing job-specific
    is stored on the instance.
    """

    def __init__(self, metrics_collector: Optional[MetricsCollector] = None):
        """
        Args:
            metrics_collector: Collector shared with sibling processors; a private one is created if omitted
        """
        self.metrics_collector = metrics_collector or MetricsCollector()
        self.logger = logging.getLogger(self.__class__.__name__)
        self.config: Dict[str, Any] = {}
        self.initialized = False

    @property
    def processor_type(self) -> str:
        return self.__class__.__name__

    # ------------------------------------------------------------------
    # Lifecycle contract
    # ------------------------------------------------------------------

    @abstractmethod
    async def initialize(self, config: Dict[str, Any]) -> None:
        """Prepare clients and settings from the merged processor config"""

    @abstractmethod
    async def validate(self, media: MediaInput) -> bool:
        """Check the input before processing.

        Raises:
            InputValidationError: If the input cannot be processed
        """

    @abstractmethod
    async def process(
        self,
        owner_id: Optional[str],
        media: MediaInput,
        options: ProcessingOptions,
        progress_sink: Optional[IProgressSink] = None,
    ) -> ResultEnvelope:
        """Process one input and return a finalized envelope"""

    @abstractmethod
    async def cleanup(self, owner_id: Optional[str] = None) -> None:
        """Release resources, optionally only for one owner"""

    @abstractmethod
    def get_supported_types(self) -> List[str]:
        """Supported container formats"""

    @abstractmethod
    def get_capabilities(self) -> Dict[str, Any]:
        """Describe the processor's features"""

    # ------------------------------------------------------------------
    # Shared behavior
    # ------------------------------------------------------------------

    def validate_input(self, media: MediaInput) -> bool:
        """Checks every processor applies: non-empty and within ``max_file_size``"""
        if not media.data:
            raise InputValidationError("Input is empty", file_name=media.filename)
        max_size = self.config.get("max_file_size")
        if max_size and media.size > max_size:
            raise InputValidationError(
                f"Input too large: {media.size} bytes (max: {max_size})",
                error_code="file_too_large",
                file_name=media.filename,
            )
        return True

    async def execute_with_retry(
        self,
        operation: Callable[[], Awaitable[T]],
        operation_name: str = "operation",
        max_attempts: Optional[int] = None,
        base_delay_ms: Optional[int] = None,
    ) -> T:
        """Run ``operation`` until it succeeds or attempts run out.

        The delay before attempt ``n + 1`` is ``base_delay_ms * n``. Validation
        and configuration failures are raised immediately.

        Args:
            operation: Zero-argument coroutine function
            operation_name: Name for logging
            max_attempts: Total attempts (defaults to ``retry_attempts`` config)
            base_delay_ms: Base delay (defaults to ``retry_delay_ms`` config)

        Returns:
            The operation's result

        Raises:
            Exception: The last failure once attempts are exhausted
        """
        attempts = max(1, max_attempts if max_attempts is not None else self.config.get("retry_attempts", 3))
        delay_ms = base_delay_ms if base_delay_ms is not None else self.config.get("retry_delay_ms", 1000)

        for attempt in range(1, attempts + 1):
            try:
                if attempt > 1:
                    self.logger.info(
                        "🔄 Retrying %s (attempt %d/%d)", operation_name, attempt, attempts
                    )
                return await operation()
            except NON_RETRYABLE:
                raise
            except Exception as e:
                if attempt == attempts:
                    self.logger.error(
                        "❌ %s failed after %d attempts: %s", operation_name, attempts, e
                    )
                    raise
                self.logger.debug("%s attempt %d failed: %s", operation_name, attempt, e)
                await asyncio.sleep(delay_ms * attempt / 1000)

    def create_progress(self, sink: Optional[IProgressSink] = None) -> ProgressReporter:
        return ProgressReporter(sink, label=self.processor_type)

    def initialize_results(self, owner_id: Optional[str], media: MediaInput) -> ResultEnvelope:
        """Start an envelope for one input"""
        return ResultEnvelope(
            owner_id=owner_id,
            input=InputDescriptor(
                filename=media.filename,
                mime_type=media.mime_type,
                media_type=media.media_type.value,
                format_name=media.format_name,
                size=media.size,
                checksum=media.checksum,
            ),
            processor_type=self.processor_type,
            start_time=datetime.now(),
        )

    def _issue(self, message: str, context: Optional[Dict[str, Any]]) -> IssueRecord:
        return IssueRecord(message=message, context=context or {}, processor=self.processor_type)

    def add_error(
        self, envelope: ResultEnvelope, message: str, context: Optional[Dict[str, Any]] = None
    ) -> None:
        envelope.errors.append(self._issue(message, context))
        self.logger.error("❌ %s", message)

    def add_warning(
        self, envelope: ResultEnvelope, message: str, context: Optional[Dict[str, Any]] = None
    ) -> None:
        envelope.warnings.append(self._issue(message, context))
        self.logger.warning("⚠️ %s", message)

    def finalize_results(self, envelope: ResultEnvelope) -> ResultEnvelope:
        """Stamp the end time and derive the status.

        ``failed`` when errors were recorded and nothing usable was produced,
        ``completed_with_errors`` when errors accompany partial output,
        otherwise ``completed``. Warnings alone never degrade the status.
        """
        envelope.end_time = datetime.now()
        envelope.duration_ms = max(
            0, int((envelope.end_time - envelope.start_time).total_seconds() * 1000)
        )
        if not envelope.errors:
            envelope.status = ResultStatus.COMPLETED
        elif envelope.has_output:
            envelope.status = ResultStatus.COMPLETED_WITH_ERRORS
        else:
            envelope.status = ResultStatus.FAILED
        return envelope

    # ------------------------------------------------------------------
    # Stage metrics
    # ------------------------------------------------------------------

    def _start_processing(self, stage: ProcessingStage) -> ProcessingMetrics:
        """Begin timing a pipeline stage"""
        return self.metrics_collector.start_stage(stage)

    def _end_processing(
        self,
        metric: ProcessingMetrics,
        success: bool = True,
        error_message: Optional[str] = None,
        items_processed: int = 0,
    ) -> None:
        """Close a stage timing and fold it into the collector"""
        self.metrics_collector.end_stage(
            metric,
            success=success,
            error_message=error_message,
            items_processed=items_processed,
        )

    def get_metrics(self) -> Dict[str, Any]:
        summary = self.metrics_collector.get_summary()
        summary["processor_type"] = self.processor_type
        summary["timestamp"] = time.time()
        return summary
