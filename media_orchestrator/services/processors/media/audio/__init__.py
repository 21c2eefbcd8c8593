"""Audio processing"""

from .processor import AudioProcessor

__all__ = ["AudioProcessor"]
