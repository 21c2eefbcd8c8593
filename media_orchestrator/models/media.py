"""
Media categories, capabilities and the per-type feature tables
"""

import hashlib
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple, Union


class MediaType(str, Enum):
    """The three media categories the orchestrator routes"""

    VIDEO = "video"
    AUDIO = "audio"
    IMAGE = "image"

    @classmethod
    def parse(cls, value: Any) -> Optional["MediaType"]:
        """Normalize a loosely typed value, returning None when it is not a category"""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


class Capability(str, Enum):
    """Named optional features backed by one or more providers"""

    TRANSCRIPTION = "transcription"
    SPEAKER_DIARIZATION = "speaker_diarization"
    VOICE_PRINT_MATCHING = "voice_print_matching"
    SENTIMENT = "sentiment"
    OBJECT_DETECTION = "object_detection"
    OCR = "ocr"
    IMAGE_ANALYSIS = "image_analysis"
    THUMBNAIL_GENERATION = "thumbnail_generation"
    QUALITY_ANALYSIS = "quality_analysis"


class VideoFeature(str, Enum):
    THUMBNAILS = "thumbnails"
    QUALITY_ANALYSIS = "quality_analysis"
    OCR = "ocr"


class AudioFeature(str, Enum):
    TRANSCRIPTION = "transcription"
    SPEAKER_DIARIZATION = "speaker_diarization"
    VOICE_PRINT_MATCHING = "voice_print_matching"
    SENTIMENT_ANALYSIS = "sentiment_analysis"


class ImageFeature(str, Enum):
    OBJECT_DETECTION = "object_detection"
    OCR = "ocr"
    AI_DESCRIPTION = "ai_description"
    QUALITY_ANALYSIS = "quality_analysis"
    THUMBNAILS = "thumbnails"


Feature = Union[VideoFeature, AudioFeature, ImageFeature]


@dataclass(frozen=True)
class FeatureBinding:
    """Ties a feature to its config enable-flag and the capability that serves it"""

    feature: Feature
    config_flag: str
    capability: Capability


FEATURE_BINDINGS: Dict[MediaType, Tuple[FeatureBinding, ...]] = {
    MediaType.VIDEO: (
        FeatureBinding(VideoFeature.THUMBNAILS, "video.enable_thumbnails", Capability.THUMBNAIL_GENERATION),
        FeatureBinding(VideoFeature.QUALITY_ANALYSIS, "video.enable_quality_analysis", Capability.QUALITY_ANALYSIS),
        FeatureBinding(VideoFeature.OCR, "video.enable_ocr", Capability.OCR),
    ),
    MediaType.AUDIO: (
        FeatureBinding(AudioFeature.TRANSCRIPTION, "audio.enable_transcription", Capability.TRANSCRIPTION),
        FeatureBinding(AudioFeature.SPEAKER_DIARIZATION, "audio.enable_speaker_diarization", Capability.SPEAKER_DIARIZATION),
        FeatureBinding(AudioFeature.VOICE_PRINT_MATCHING, "audio.enable_voice_print_matching", Capability.VOICE_PRINT_MATCHING),
        FeatureBinding(AudioFeature.SENTIMENT_ANALYSIS, "audio.enable_sentiment_analysis", Capability.SENTIMENT),
    ),
    MediaType.IMAGE: (
        FeatureBinding(ImageFeature.OBJECT_DETECTION, "image.enable_object_detection", Capability.OBJECT_DETECTION),
        FeatureBinding(ImageFeature.OCR, "image.enable_ocr", Capability.OCR),
        FeatureBinding(ImageFeature.AI_DESCRIPTION, "image.enable_ai_description", Capability.IMAGE_ANALYSIS),
        FeatureBinding(ImageFeature.QUALITY_ANALYSIS, "image.enable_quality_analysis", Capability.QUALITY_ANALYSIS),
        FeatureBinding(ImageFeature.THUMBNAILS, "image.enable_thumbnails", Capability.THUMBNAIL_GENERATION),
    ),
}


def features_for(media_type: MediaType) -> Tuple[FeatureBinding, ...]:
    return FEATURE_BINDINGS[media_type]


@dataclass
class MediaInput:
    """Raw content handed to a processor"""

    data: bytes
    media_type: MediaType
    filename: Optional[str] = None
    mime_type: Optional[str] = None
    format_name: Optional[str] = None
    checksum: str = ""
    attributes: Dict[str, Any] = field(default_factory=dict)

    @property
    def size(self) -> int:
        return len(self.data)

    @classmethod
    def from_bytes(
        cls,
        data: bytes,
        media_type: MediaType,
        filename: Optional[str] = None,
        mime_type: Optional[str] = None,
        format_name: Optional[str] = None,
    ) -> "MediaInput":
        return cls(
            data=bytes(data),
            media_type=media_type,
            filename=filename,
            mime_type=mime_type,
            format_name=format_name,
            checksum=hashlib.sha256(data).hexdigest(),
        )
