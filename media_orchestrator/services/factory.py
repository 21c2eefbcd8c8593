"""
Wiring helpers for building a ready-to-use orchestrator
"""

import logging
from typing import Mapping, Optional

from media_orchestrator.config.manager import ConfigurationManager
from media_orchestrator.config.settings import settings
from media_orchestrator.interfaces.storage import IResultSink
from media_orchestrator.models.media import MediaType
from media_orchestrator.services.capabilities.providers import register_default_providers
from media_orchestrator.services.capabilities.registry import CapabilityRegistry
from media_orchestrator.services.orchestrator import Orchestrator
from media_orchestrator.services.processors.core.metrics import MetricsCollector
from media_orchestrator.services.processors.media import (
    AudioProcessor,
    ImageProcessor,
    VideoProcessor,
)

logger = logging.getLogger(__name__)


def create_orchestrator(
    config_path: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
    register_providers: bool = True,
    sink: Optional[IResultSink] = None,
    metrics_collector: Optional[MetricsCollector] = None,
    api_key: Optional[str] = None,
) -> Orchestrator:
    """
    Build an orchestrator with its configuration, registry and processors.

    Args:
        config_path: JSON override file (defaults to ``settings.config_path``)
        environ: Environment mapping for overrides (defaults to ``os.environ``)
        register_providers: Register the bundled providers
        sink: Optional result sink notified after each completed job
        metrics_collector: Collector shared by the processors
        api_key: OpenAI API key (defaults to ``settings.openai_api_key``)

    Returns:
        Orchestrator: Not yet initialized; call ``initialize`` or just submit content
    """
    config = ConfigurationManager(config_path=config_path, environ=environ)
    config.initialize()
    registry = CapabilityRegistry(config)

    if register_providers:
        served = register_default_providers(
            registry, config, api_key=api_key if api_key is not None else settings.openai_api_key
        )
        logger.info("Registered bundled providers for: %s", ", ".join(served))

    # Processors share one collector so the system status shows all stages
    collector = metrics_collector or MetricsCollector()
    processors = {
        MediaType.VIDEO: VideoProcessor(registry, collector),
        MediaType.AUDIO: AudioProcessor(registry, collector),
        MediaType.IMAGE: ImageProcessor(registry, collector),
    }
    return Orchestrator(config=config, registry=registry, processors=processors, sink=sink)
