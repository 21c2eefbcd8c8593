"""
Process settings using Pydantic Settings
"""

import logging
from typing import Optional

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Process-level settings with environment variable support.

    Media processing knobs live in the layered ConfigurationManager; this
    class only covers what has to be known before that manager loads.
    """

    service_name: str = "media-orchestrator"

    # Logging Settings
    log_level: str = "INFO"
    log_format: str = "[%(asctime)s] %(levelname)s %(name)s: %(message)s"
    log_date_format: str = "%Y-%m-%d %H:%M:%S"

    # Layered configuration sources
    config_path: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("mm_config_path", "config_path"),
    )
    env_prefix: str = Field(
        default="MM_",
        validation_alias=AliasChoices("mm_env_prefix", "env_prefix"),
    )

    # Provider credentials (presence is a readiness signal)
    openai_api_key: str = ""
    google_application_credentials: str = ""

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
    }

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, v):
        """Accept any case, fall back to INFO for unknown level names"""
        level = str(v).upper()
        if not isinstance(logging.getLevelName(level), int):
            return "INFO"
        return level

    @field_validator("env_prefix")
    @classmethod
    def normalize_env_prefix(cls, v):
        prefix = str(v).upper()
        if prefix and not prefix.endswith("_"):
            prefix += "_"
        return prefix


# Global settings instance
settings = Settings()
