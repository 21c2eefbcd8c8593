"""Processor contract, progress and stage metrics"""

from .base_processor import NON_RETRYABLE, BaseMediaProcessor
from .metrics import MetricsCollector, ProcessingMetrics, ProcessingStage
from .progress import ProgressReporter

__all__ = [
    "NON_RETRYABLE",
    "BaseMediaProcessor",
    "MetricsCollector",
    "ProcessingMetrics",
    "ProcessingStage",
    "ProgressReporter",
]
