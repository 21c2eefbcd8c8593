"""
Per-job progress reporting
"""

import logging
from typing import Optional

from media_orchestrator.interfaces.processor import IProgressSink

logger = logging.getLogger(__name__)


class ProgressReporter:
    """Tracks one job's progress; values never decrease and stay within 0..100"""

    def __init__(self, sink: Optional[IProgressSink] = None, label: str = "processor"):
        self.sink = sink
        self.label = label
        self.progress = 0
        self.message = ""

    def update(self, progress: float, message: str = "") -> int:
        value = int(min(100, max(0, progress)))
        self.progress = max(self.progress, value)
        if message:
            self.message = message
            logger.debug("📊 %s progress: %d%% - %s", self.label, self.progress, message)

        if self.sink is not None:
            try:
                self.sink(self.progress, self.message)
            except Exception:
                logger.exception("Progress sink failed for %s", self.label)
        return self.progress

    def complete(self, message: str = "Completed") -> int:
        return self.update(100, message)
