"""
Persistence interfaces.
"""

from typing import Protocol, runtime_checkable

from media_orchestrator.models.responses import FormattedResults


@runtime_checkable
class IResultSink(Protocol):
    """Durable storage for finalized job results."""

    async def store(self, job_id: str, results: FormattedResults) -> None:
        """Persist the results of a finished job.

        Called once per completed job; failures are logged by the caller
        and never affect the job.
        """
