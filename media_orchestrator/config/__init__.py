"""Process settings and layered media configuration"""

from .settings import Settings, settings
from .defaults import DEFAULT_CONFIG, DEFAULT_VALIDATORS
from .manager import ConfigurationManager

__all__ = [
    "Settings",
    "settings",
    "DEFAULT_CONFIG",
    "DEFAULT_VALIDATORS",
    "ConfigurationManager",
]
