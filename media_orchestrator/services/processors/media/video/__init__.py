"""Video processing"""

from .processor import VideoProcessor

__all__ = ["VideoProcessor"]
