"""
Job bookkeeping owned by the orchestrator
"""

import asyncio
import copy
import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Deque, Dict, List, Optional

from media_orchestrator.models.media import MediaType


class JobState(str, Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobState.COMPLETED, JobState.FAILED)


_ALLOWED_TRANSITIONS = {
    JobState.QUEUED: (JobState.PROCESSING, JobState.FAILED),
    JobState.PROCESSING: (JobState.COMPLETED, JobState.FAILED),
    JobState.COMPLETED: (),
    JobState.FAILED: (),
}


class InvalidTransition(RuntimeError):
    pass


@dataclass
class ProcessingOptions:
    """Immutable-by-convention snapshot handed to a processor for one job"""

    job_id: str
    media_type: MediaType
    config: Dict[str, Any]
    metadata: Dict[str, Any]
    features: Dict[str, bool]
    capabilities: Dict[str, str] = field(default_factory=dict)

    @property
    def retry_attempts(self) -> int:
        return int(self.config.get("retry_attempts", 3))

    @property
    def retry_delay_ms(self) -> int:
        return int(self.config.get("retry_delay_ms", 1000))

    @property
    def timeout_ms(self) -> int:
        return int(self.config.get("timeout_ms", 300000))

    def is_enabled(self, feature: Any) -> bool:
        return bool(self.features.get(getattr(feature, "value", feature), False))

    def snapshot(self) -> Dict[str, Any]:
        return {
            "job_id": self.job_id,
            "media_type": self.media_type.value,
            "config": copy.deepcopy(self.config),
            "metadata": copy.deepcopy(self.metadata),
            "features": dict(self.features),
            "capabilities": dict(self.capabilities),
        }


@dataclass
class Job:
    """One pass through the pipeline, from submission to a terminal state"""

    id: str
    owner_id: Optional[str] = None
    state: JobState = JobState.QUEUED
    media_type: Optional[MediaType] = None
    start_time: float = field(default_factory=time.time)
    end_time: Optional[float] = None
    options: Optional[Dict[str, Any]] = None
    available_features: Dict[str, bool] = field(default_factory=dict)
    results: Optional[Dict[str, Any]] = None
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    progress: int = 0
    progress_message: str = ""
    reclaimed: bool = False
    task: Optional[asyncio.Task] = field(default=None, repr=False)

    def transition(self, new_state: JobState) -> None:
        """Move to ``new_state``; terminal states never change again"""
        if new_state not in _ALLOWED_TRANSITIONS[self.state]:
            raise InvalidTransition(
                f"Job {self.id}: {self.state.value} -> {new_state.value} not allowed"
            )
        self.state = new_state

    def complete(self, results: Dict[str, Any], end_time: float) -> None:
        self.transition(JobState.COMPLETED)
        self.results = results
        self.end_time = end_time

    def fail(self, message: str, end_time: float) -> bool:
        """Mark failed; returns False when the job already reached a terminal state"""
        if self.state.is_terminal:
            return False
        self.transition(JobState.FAILED)
        self.errors.append(message)
        self.end_time = end_time
        return True

    def processing_time_ms(self, now: Optional[float] = None) -> int:
        if self.end_time is not None:
            end = self.end_time
        else:
            end = now if now is not None else time.time()
        return max(0, int((end - self.start_time) * 1000))


@dataclass
class OrchestratorMetrics:
    """Rolling job counters; durations cover the last 100 completed jobs"""

    total_jobs: int = 0
    completed_jobs: int = 0
    failed_jobs: int = 0
    processing_times: Deque[int] = field(default_factory=lambda: deque(maxlen=100))

    @property
    def average_processing_time_ms(self) -> float:
        if not self.processing_times:
            return 0.0
        return sum(self.processing_times) / len(self.processing_times)

    @property
    def error_rate_pct(self) -> float:
        finished = self.completed_jobs + self.failed_jobs
        return (self.failed_jobs / finished) * 100 if finished else 0.0

    def record(self, job: Job) -> None:
        self.total_jobs += 1
        if job.state is JobState.COMPLETED:
            self.completed_jobs += 1
            self.processing_times.append(job.processing_time_ms())
        else:
            self.failed_jobs += 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_jobs": self.total_jobs,
            "completed_jobs": self.completed_jobs,
            "failed_jobs": self.failed_jobs,
            "average_processing_time_ms": round(self.average_processing_time_ms, 2),
            "error_rate_pct": round(self.error_rate_pct, 2),
        }
