"""Media content orchestration: detection, capability routing, processing and monitoring"""

from media_orchestrator.config import ConfigurationManager, settings
from media_orchestrator.core.exceptions import MediaProcessingError
from media_orchestrator.models.media import MediaType
from media_orchestrator.services import Orchestrator, create_orchestrator

__version__ = "0.1.0"

__all__ = [
    "ConfigurationManager",
    "MediaProcessingError",
    "MediaType",
    "Orchestrator",
    "create_orchestrator",
    "settings",
]
