"""Bundled capability providers"""

from .openai_vision import ImageDescription, OpenAIVisionProvider, register_default_providers

__all__ = ["ImageDescription", "OpenAIVisionProvider", "register_default_providers"]
