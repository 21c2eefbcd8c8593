"""Capability registry and providers"""

from .registry import (
    CapabilityDescriptor,
    CapabilityRegistry,
    CapabilityResult,
    Provider,
    ProviderFailure,
)

__all__ = [
    "CapabilityDescriptor",
    "CapabilityRegistry",
    "CapabilityResult",
    "Provider",
    "ProviderFailure",
]
