"""
OpenAIVisionProvider: image description and object listing via PydanticAI.
- Uses a PydanticAI Agent with structured output so results are type safe.
- Ready only when an OpenAI API key is configured.
"""

import logging
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field
from pydantic_ai import Agent, BinaryContent
from pydantic_ai.models.openai import OpenAIChatModel
from pydantic_ai.providers.openai import OpenAIProvider

from media_orchestrator.config.manager import ConfigurationManager
from media_orchestrator.config.settings import settings
from media_orchestrator.core.exceptions import ProviderError
from media_orchestrator.models.media import Capability, MediaInput
from media_orchestrator.services.capabilities.registry import CapabilityRegistry, Provider

logger = logging.getLogger(__name__)

_MIME_BY_FORMAT = {
    "jpeg": "image/jpeg",
    "jpg": "image/jpeg",
    "png": "image/png",
    "gif": "image/gif",
    "webp": "image/webp",
}


class ImageDescription(BaseModel):
    """Structured result for AI image analysis"""

    description: str = Field(description="Detailed description of the image")
    objects: List[str] = Field(default_factory=list, description="Notable objects visible")
    text: Optional[str] = Field(None, description="Any legible text in the image")


class OpenAIVisionProvider:
    """Image analysis backed by an OpenAI vision model"""

    name = "openai_vision"
    group = "openai"

    def __init__(
        self,
        config: Optional[ConfigurationManager] = None,
        api_key: Optional[str] = None,
    ):
        self.config = config
        self.api_key = api_key if api_key is not None else settings.openai_api_key
        self._agent: Optional[Agent] = None

    def is_ready(self) -> bool:
        return bool(self.api_key and self.api_key.strip())

    def _model_name(self) -> str:
        if self.config is None:
            return "gpt-4.1-nano"
        return self.config.get("providers.openai.default_model", "gpt-4.1-nano")

    def _get_agent(self) -> Agent:
        if self._agent is None:
            model = OpenAIChatModel(
                self._model_name(), provider=OpenAIProvider(api_key=self.api_key)
            )
            self._agent = Agent(
                model=model,
                output_type=ImageDescription,
                system_prompt=(
                    "You are an image analysis assistant. Describe the image "
                    "accurately and list the notable objects you can see."
                ),
            )
            logger.info("🤖 PydanticAI vision agent initialized (%s)", self._model_name())
        return self._agent

    async def execute(self, media: MediaInput, options: Dict[str, Any]) -> Dict[str, Any]:
        """Describe ``media`` and return a plain dict of the structured output"""
        if not self.is_ready():
            raise ProviderError(
                "OpenAI API key not configured",
                capability=Capability.IMAGE_ANALYSIS.value,
                provider=self.name,
            )

        prompt = options.get("prompt") or (
            "Describe this image in detail, including objects, text, colors, "
            "and notable features."
        )
        media_type = media.mime_type or _MIME_BY_FORMAT.get(
            (media.format_name or "").lower(), "image/jpeg"
        )
        settings_kwargs = {}
        if options.get("max_tokens"):
            settings_kwargs["model_settings"] = {"max_tokens": int(options["max_tokens"])}

        result = await self._get_agent().run(
            [prompt, BinaryContent(data=media.data, media_type=media_type)],
            **settings_kwargs,
        )
        output: ImageDescription = result.output
        return output.model_dump()

    def cleanup(self) -> None:
        self._agent = None

    def as_provider(self, priority: int = 20) -> Provider:
        return Provider(
            name=self.name,
            execute=self.execute,
            priority=priority,
            group=self.group,
            is_ready=self.is_ready,
            cleanup=self.cleanup,
        )


def register_default_providers(
    registry: CapabilityRegistry,
    config: Optional[ConfigurationManager] = None,
    api_key: Optional[str] = None,
) -> List[str]:
    """Register the bundled providers; returns the capabilities they serve.

    Providers are registered even without credentials so status reports
    show them as disabled with a reason.
    """
    vision = OpenAIVisionProvider(config=config or registry.config, api_key=api_key)
    served = [Capability.IMAGE_ANALYSIS, Capability.OBJECT_DETECTION]
    for capability in served:
        registry.register_provider(capability, vision.as_provider())
    return [c.value for c in served]
