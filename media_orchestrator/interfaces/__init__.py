"""Protocol seams between the orchestrator and its collaborators"""

from .processor import IMediaProcessor, IProgressSink
from .storage import IResultSink

__all__ = ["IMediaProcessor", "IProgressSink", "IResultSink"]
