"""Media processors and their shared contract"""

from .core import BaseMediaProcessor, MetricsCollector, ProcessingStage, ProgressReporter
from .media import AudioProcessor, CapabilityBackedProcessor, ImageProcessor, VideoProcessor

__all__ = [
    "BaseMediaProcessor",
    "MetricsCollector",
    "ProcessingStage",
    "ProgressReporter",
    "AudioProcessor",
    "CapabilityBackedProcessor",
    "ImageProcessor",
    "VideoProcessor",
]
