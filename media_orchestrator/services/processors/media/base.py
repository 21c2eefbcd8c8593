"""
Shared pipeline for processors that run their features through the capability registry
"""

from typing import Any, Dict, List, Optional

from media_orchestrator.config.defaults import DEFAULT_CONFIG
from media_orchestrator.core.exceptions import (
    CapabilityUnavailable,
    InputValidationError,
    ProviderError,
)
from media_orchestrator.interfaces.processor import IProgressSink
from media_orchestrator.models.jobs import ProcessingOptions
from media_orchestrator.models.media import FeatureBinding, MediaInput, MediaType, features_for
from media_orchestrator.models.responses import ResultEnvelope
from media_orchestrator.services.capabilities.registry import CapabilityRegistry
from media_orchestrator.services.processors.core.base_processor import BaseMediaProcessor
from media_orchestrator.services.processors.core.metrics import MetricsCollector, ProcessingStage


class CapabilityBackedProcessor(BaseMediaProcessor):
    """Produces core metadata locally and delegates each feature to a capability.

    A feature that is disabled or has no available provider is skipped with
    a warning. A provider that fails before another one succeeds is recorded
    as a warning; a feature whose whole provider chain fails is recorded as
    an error and degrades the envelope.
    """

    media_type: MediaType

    def __init__(
        self,
        registry: CapabilityRegistry,
        metrics_collector: Optional[MetricsCollector] = None,
    ):
        super().__init__(metrics_collector)
        self.registry = registry

    async def initialize(self, config: Dict[str, Any]) -> None:
        self.config = dict(config)
        self.initialized = True
        self.logger.info("🔧 %s initialized", self.processor_type)

    async def cleanup(self, owner_id: Optional[str] = None) -> None:
        self.logger.debug("Cleanup requested (owner=%s)", owner_id)

    def get_supported_types(self) -> List[str]:
        formats = self.config.get("supported_formats")
        if formats is None:
            formats = DEFAULT_CONFIG[self.media_type.value]["supported_formats"]
        return list(formats)

    def get_capabilities(self) -> Dict[str, Any]:
        return {
            "media_type": self.media_type.value,
            "supported_formats": self.get_supported_types(),
            "features": {
                binding.feature.value: binding.capability.value
                for binding in features_for(self.media_type)
            },
        }

    # ------------------------------------------------------------------
    # Hooks for concrete processors
    # ------------------------------------------------------------------

    def extract_metadata(self, media: MediaInput) -> Dict[str, Any]:
        """Type-specific metadata parsed from the payload itself"""
        return {}

    def validate_metadata(self, media: MediaInput, metadata: Dict[str, Any]) -> None:
        """Reject inputs whose parsed metadata exceeds configured limits"""

    def feature_options(self, binding: FeatureBinding, options: ProcessingOptions) -> Dict[str, Any]:
        section = options.config.get(binding.feature.value)
        feature_opts = dict(section) if isinstance(section, dict) else {}
        feature_opts["job_id"] = options.job_id
        return feature_opts

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    async def validate(self, media: MediaInput) -> bool:
        self.validate_input(media)
        if media.media_type is not self.media_type:
            raise InputValidationError(
                f"{self.processor_type} cannot process {media.media_type.value} content",
                file_name=media.filename,
            )
        fmt = (media.format_name or "").lower()
        if fmt and fmt not in self.get_supported_types():
            raise InputValidationError(
                f"Unsupported {self.media_type.value} format: {fmt}",
                error_code="unsupported_format",
                file_name=media.filename,
            )
        return True

    def core_metadata(self, media: MediaInput) -> Dict[str, Any]:
        return {
            "size": media.size,
            "checksum": media.checksum,
            "format": media.format_name,
            "filename": media.filename,
            "mime_type": media.mime_type,
        }

    async def process(
        self,
        owner_id: Optional[str],
        media: MediaInput,
        options: ProcessingOptions,
        progress_sink: Optional[IProgressSink] = None,
    ) -> ResultEnvelope:
        progress = self.create_progress(progress_sink)
        envelope = self.initialize_results(owner_id, media)

        metric = self._start_processing(ProcessingStage.VALIDATION)
        try:
            await self.validate(media)
        except InputValidationError as e:
            self._end_processing(metric, success=False, error_message=e.message)
            raise
        self._end_processing(metric, items_processed=1)
        progress.update(10, "Input validated")

        metric = self._start_processing(ProcessingStage.METADATA)
        metadata = self.core_metadata(media)
        metadata.update(self.extract_metadata(media))
        try:
            self.validate_metadata(media, metadata)
        except InputValidationError as e:
            self._end_processing(metric, success=False, error_message=e.message)
            raise
        envelope.metadata = metadata
        self._end_processing(metric, items_processed=1)
        progress.update(30, "Metadata extracted")

        bindings = features_for(self.media_type)
        metric = self._start_processing(ProcessingStage.FEATURE_EXTRACTION)
        completed = 0
        for index, binding in enumerate(bindings, start=1):
            if await self._run_feature(binding, media, options, envelope):
                completed += 1
            progress.update(30 + 60 * index / len(bindings), f"Feature {binding.feature.value} done")
        self._end_processing(metric, success=not envelope.errors, items_processed=completed)

        metric = self._start_processing(ProcessingStage.FINALIZATION)
        self.finalize_results(envelope)
        self._end_processing(metric, items_processed=1)
        progress.complete(f"Processing {envelope.status.value}")
        return envelope

    async def _run_feature(
        self,
        binding: FeatureBinding,
        media: MediaInput,
        options: ProcessingOptions,
        envelope: ResultEnvelope,
    ) -> bool:
        feature = binding.feature.value
        if not options.is_enabled(binding.feature):
            self.add_warning(
                envelope,
                f"Feature {feature} skipped: capability {binding.capability.value} unavailable or disabled",
                {"feature": feature, "capability": binding.capability.value},
            )
            return False

        feature_opts = self.feature_options(binding, options)
        try:
            outcome = await self.execute_with_retry(
                lambda: self.registry.execute_capability(binding.capability, media, feature_opts),
                operation_name=f"{feature} ({binding.capability.value})",
                max_attempts=options.retry_attempts,
                base_delay_ms=options.retry_delay_ms,
            )
        except CapabilityUnavailable as e:
            self.add_warning(envelope, f"Feature {feature} skipped: {e.message}", {"feature": feature})
            return False
        except ProviderError as e:
            self.add_error(
                envelope,
                f"Feature {feature} failed: {e.message}",
                {"feature": feature, "capability": binding.capability.value},
            )
            return False

        for failure in outcome.failures:
            self.add_warning(
                envelope,
                f"Provider {failure.provider} failed for {binding.capability.value}: {failure.message}",
                {"feature": feature, "provider": failure.provider, "error_type": failure.error_type},
            )
        envelope.results[feature] = {
            "provider": outcome.provider,
            "fallback_used": outcome.fallback_used,
            "data": outcome.result,
        }
        return True
