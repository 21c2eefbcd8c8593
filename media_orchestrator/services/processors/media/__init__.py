"""Built-in media processors"""

from .audio import AudioProcessor
from .base import CapabilityBackedProcessor
from .image import ImageProcessor
from .video import VideoProcessor

__all__ = ["AudioProcessor", "CapabilityBackedProcessor", "ImageProcessor", "VideoProcessor"]
