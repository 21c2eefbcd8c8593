"""
Custom error types
"""

from typing import List, Optional, Sequence


class MediaProcessingError(Exception):
    """Base exception for media processing errors"""

    default_code = "media_processing_error"

    def __init__(self, message: str, error_code: Optional[str] = None):
        self.message = message
        self.error_code = error_code or self.default_code
        super().__init__(self.message)


class InputValidationError(MediaProcessingError):
    """Input rejected before processing: unsupported, empty, oversized or corrupt"""

    default_code = "validation_error"

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        file_name: Optional[str] = None,
    ):
        self.file_name = file_name
        super().__init__(message, error_code)


class NoTypeDetected(InputValidationError):
    """No hint, extension, MIME type or signature identified the media type"""

    default_code = "no_type_detected"


class UnsupportedMediaType(InputValidationError):
    """An explicit media type that is not video, audio or image"""

    default_code = "unsupported_media_type"


class ProviderError(MediaProcessingError):
    """A capability provider failed"""

    default_code = "provider_error"

    def __init__(
        self,
        message: str,
        capability: Optional[str] = None,
        provider: Optional[str] = None,
        error_code: Optional[str] = None,
    ):
        self.capability = capability
        self.provider = provider
        super().__init__(message, error_code)


class CapabilityUnavailable(ProviderError):
    """No enabled, ready provider exists for the capability"""

    default_code = "capability_unavailable"


class ProviderChainExhausted(ProviderError):
    """Every provider in the fallback chain failed"""

    default_code = "provider_chain_exhausted"

    def __init__(self, capability: str, failures: Sequence = ()):
        self.failures: List = list(failures)
        last = self.failures[-1].message if self.failures else "no providers attempted"
        super().__init__(
            f"All providers failed for capability {capability}. Last error: {last}",
            capability=capability,
        )


class ConfigError(MediaProcessingError):
    """Invalid configuration value"""

    default_code = "config_error"

    def __init__(self, message: str, path: Optional[str] = None):
        self.path = path
        super().__init__(message)


class JobTimeoutError(MediaProcessingError):
    """A job exceeded its timeout, queue wait or staleness threshold"""

    default_code = "job_timeout"

    def __init__(self, message: str, job_id: Optional[str] = None):
        self.job_id = job_id
        super().__init__(message)


class InternalError(MediaProcessingError):
    """Unexpected failure inside the orchestration layer"""

    default_code = "internal_error"
