"""
Interfaces for media processors.

This module defines the protocol interfaces every media backend must
honor so the orchestrator can treat them uniformly.
"""

from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

from media_orchestrator.models.jobs import ProcessingOptions
from media_orchestrator.models.media import MediaInput
from media_orchestrator.models.responses import ResultEnvelope


@runtime_checkable
class IProgressSink(Protocol):
    """Receives progress updates for a single job."""

    def __call__(self, progress: int, message: str) -> None:
        """Report progress.

        Args:
            progress: Percentage in 0..100, never decreasing within a job
            message: Human-readable stage description
        """


@runtime_checkable
class IMediaProcessor(Protocol):
    """Interface for media processors.

    Implementations are initialized once, validate each input before
    processing it, and always return a finalized ResultEnvelope.
    """

    async def initialize(self, config: Dict[str, Any]) -> None:
        """Prepare the processor with its merged configuration."""

    async def validate(self, media: MediaInput) -> bool:
        """Check the input.

        Raises:
            InputValidationError: If the input cannot be processed
        """

    async def process(
        self,
        owner_id: Optional[str],
        media: MediaInput,
        options: ProcessingOptions,
        progress_sink: Optional[IProgressSink] = None,
    ) -> ResultEnvelope:
        """Process one input and return its envelope."""

    async def cleanup(self, owner_id: Optional[str] = None) -> None:
        """Release resources, optionally only those held for one owner."""

    def get_supported_types(self) -> List[str]:
        """Supported container formats."""

    def get_capabilities(self) -> Dict[str, Any]:
        """Describe what the processor can do."""
