"""Error types and logging setup"""

from .exceptions import (
    CapabilityUnavailable,
    ConfigError,
    InputValidationError,
    InternalError,
    JobTimeoutError,
    MediaProcessingError,
    NoTypeDetected,
    ProviderChainExhausted,
    ProviderError,
    UnsupportedMediaType,
)
from .logging import configure_logging

__all__ = [
    "CapabilityUnavailable",
    "ConfigError",
    "InputValidationError",
    "InternalError",
    "JobTimeoutError",
    "MediaProcessingError",
    "NoTypeDetected",
    "ProviderChainExhausted",
    "ProviderError",
    "UnsupportedMediaType",
    "configure_logging",
]
