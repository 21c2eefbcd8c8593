"""
Caller-supplied metadata accompanying a content buffer
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ContentMetadata(BaseModel):
    """Loosely typed metadata; unknown keys are kept and passed to processors"""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    type: Optional[str] = Field(None, description="Explicit media type hint")
    filename: Optional[str] = Field(None, description="Original filename")
    mime_type: Optional[str] = Field(None, alias="mimeType", description="Declared MIME type")
    owner_id: Optional[str] = Field(None, alias="ownerId", description="Owner of the content")

    @field_validator("owner_id", mode="before")
    @classmethod
    def stringify_owner_id(cls, v):
        """Numeric ids (e.g. database keys) are accepted as their string form"""
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(v)
        return v
