"""Media type detection"""

from .detector import DetectionResult, MediaTypeDetector, sniff

__all__ = ["DetectionResult", "MediaTypeDetector", "sniff"]
