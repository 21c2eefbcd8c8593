"""
Logging setup
"""

import logging
from typing import Optional

from media_orchestrator.config.settings import Settings, settings as default_settings


def configure_logging(
    settings: Optional[Settings] = None, level: Optional[str] = None
) -> None:
    """Configure root logging from settings.

    Args:
        settings: Settings to read format and level from (defaults to the global instance)
        level: Optional level name overriding ``settings.log_level``
    """
    active = settings or default_settings
    logging.basicConfig(
        level=getattr(logging, (level or active.log_level).upper(), logging.INFO),
        format=active.log_format,
        datefmt=active.log_date_format,
        force=True,
    )
    logging.getLogger(__name__).debug(
        "Logging configured for %s at %s", active.service_name, level or active.log_level
    )
