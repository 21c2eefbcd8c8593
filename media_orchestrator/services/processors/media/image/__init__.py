"""Image processing"""

from .processor import ImageProcessor, image_dimensions

__all__ = ["ImageProcessor", "image_dimensions"]
