"""
Stage timing and counters shared by the media processors.

One collector may be shared by several processors; the summary it hands
to the performance monitor aggregates per stage rather than per call.
"""

import logging
import time
from collections import defaultdict, deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Deque, Dict, Optional

logger = logging.getLogger(__name__)


class ProcessingStage(Enum):
    """Steps of the shared processing pipeline"""

    VALIDATION = "validation"
    METADATA = "metadata"
    FEATURE_EXTRACTION = "feature_extraction"
    FINALIZATION = "finalization"


@dataclass
class ProcessingMetrics:
    """One timed run of a stage"""

    stage: ProcessingStage
    started_at: float
    finished_at: Optional[float] = None
    success: bool = True
    error_message: Optional[str] = None
    items_processed: int = 0

    @property
    def elapsed_ms(self) -> float:
        if self.finished_at is None:
            return 0.0
        return (self.finished_at - self.started_at) * 1000


@dataclass
class StageTotals:
    runs: int = 0
    failures: int = 0
    total_ms: float = 0.0
    max_ms: float = 0.0
    items: int = 0
    last_error: Optional[str] = None

    def add(self, metric: ProcessingMetrics) -> None:
        self.runs += 1
        self.total_ms += metric.elapsed_ms
        self.max_ms = max(self.max_ms, metric.elapsed_ms)
        self.items += metric.items_processed
        if not metric.success:
            self.failures += 1
            self.last_error = metric.error_message

    def to_dict(self) -> Dict[str, Any]:
        return {
            "runs": self.runs,
            "failures": self.failures,
            "average_ms": round(self.total_ms / self.runs, 3) if self.runs else 0.0,
            "max_ms": round(self.max_ms, 3),
            "items": self.items,
            "last_error": self.last_error,
        }


class MetricsCollector:
    """Collects stage timings and named counters for processors.

    Recent runs are kept in a bounded window; per-stage totals and
    counters are cumulative for the collector's lifetime.
    """

    def __init__(self, max_history: int = 500, clock: Callable[[], float] = time.perf_counter):
        self.recent: Deque[ProcessingMetrics] = deque(maxlen=max_history)
        self._stages: Dict[ProcessingStage, StageTotals] = defaultdict(StageTotals)
        self._counters: Dict[str, int] = defaultdict(int)
        self._clock = clock

    def start_stage(self, stage: ProcessingStage) -> ProcessingMetrics:
        return ProcessingMetrics(stage=stage, started_at=self._clock())

    def end_stage(
        self,
        metric: ProcessingMetrics,
        success: bool = True,
        error_message: Optional[str] = None,
        items_processed: int = 0,
    ) -> None:
        """Close ``metric`` and fold it into the stage totals"""
        metric.finished_at = self._clock()
        metric.success = success
        metric.error_message = error_message
        metric.items_processed = items_processed

        self.recent.append(metric)
        self._stages[metric.stage].add(metric)
        self.increment_counter(f"{metric.stage.value}_{'succeeded' if success else 'failed'}")
        logger.debug(
            "Stage %s took %.1f ms (success: %s)", metric.stage.value, metric.elapsed_ms, success
        )

    def increment_counter(self, name: str, value: int = 1) -> None:
        self._counters[name] += value

    def get_counter(self, name: str) -> int:
        return self._counters.get(name, 0)

    def get_summary(self) -> Dict[str, Any]:
        recent_failures = [m.stage.value for m in self.recent if not m.success]
        return {
            "stages_tracked": sum(totals.runs for totals in self._stages.values()),
            "stages": {stage.value: totals.to_dict() for stage, totals in self._stages.items()},
            "recent_failures": recent_failures[-10:],
            "counters": dict(self._counters),
        }
