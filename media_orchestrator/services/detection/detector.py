"""
Media type detection from hints, filenames, MIME types and magic numbers
"""

import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Tuple

from media_orchestrator.config.defaults import DEFAULT_CONFIG
from media_orchestrator.config.manager import ConfigurationManager
from media_orchestrator.core.exceptions import NoTypeDetected, UnsupportedMediaType
from media_orchestrator.models.media import MediaType

logger = logging.getLogger(__name__)

SNIFF_LENGTH = 12

# ftyp major brands that mark audio-only or still-image ISO-BMFF files
_AUDIO_BRANDS = (b"M4A ", b"M4B ", b"M4P ")
_IMAGE_BRANDS = (b"heic", b"heix", b"mif1", b"msf1", b"avif")


@dataclass(frozen=True)
class DetectionResult:
    """Detected category plus which step decided it"""

    media_type: MediaType
    source: str  # hint, extension, mime or signature
    format_name: Optional[str] = None


def sniff(buffer: bytes) -> Optional[Tuple[MediaType, str]]:
    """Classify ``buffer`` by its leading bytes.

    Only the first 12 bytes are inspected. Returns ``(media_type, format)``
    or None when no signature matches.
    """
    head = bytes(buffer[:SNIFF_LENGTH])

    if head[4:8] == b"ftyp":
        brand = head[8:12]
        if brand in _AUDIO_BRANDS:
            return MediaType.AUDIO, "m4a"
        if brand in _IMAGE_BRANDS:
            return MediaType.IMAGE, brand.decode("ascii", "replace").strip()
        if brand.startswith(b"qt"):
            return MediaType.VIDEO, "mov"
        return MediaType.VIDEO, "mp4"

    if head.startswith(b"\x1a\x45\xdf\xa3"):
        return MediaType.VIDEO, "webm"

    if head.startswith(b"RIFF"):
        kind = head[8:12]
        if kind == b"AVI ":
            return MediaType.VIDEO, "avi"
        if kind == b"WAVE":
            return MediaType.AUDIO, "wav"
        if kind == b"WEBP":
            return MediaType.IMAGE, "webp"
        return None

    if head.startswith(b"ID3"):
        return MediaType.AUDIO, "mp3"
    if head.startswith(b"fLaC"):
        return MediaType.AUDIO, "flac"
    if head.startswith(b"OggS"):
        return MediaType.AUDIO, "ogg"

    if head.startswith(b"\xff\xd8\xff"):
        return MediaType.IMAGE, "jpeg"
    if head.startswith(b"\x89PNG\r\n\x1a\n"):
        return MediaType.IMAGE, "png"
    if head.startswith((b"GIF87a", b"GIF89a")):
        return MediaType.IMAGE, "gif"

    # MPEG audio frame sync: 11 set bits; checked after JPEG (FF D8) on purpose
    if len(head) >= 2 and head[0] == 0xFF and (head[1] & 0xE0) == 0xE0:
        return MediaType.AUDIO, "mp3"

    return None


class MediaTypeDetector:
    """Classifies content into video, audio or image.

    Resolution order, first match wins: explicit ``type`` hint, filename
    extension, MIME type prefix, binary signature. Nothing matching is a
    hard failure; there is no default category.
    """

    def __init__(self, config: Optional[ConfigurationManager] = None):
        self.config = config

    def _formats(self, media_type: MediaType) -> List[str]:
        path = f"{media_type.value}.supported_formats"
        if self.config is not None:
            return self.config.get(path, [])
        return list(DEFAULT_CONFIG[media_type.value]["supported_formats"])

    def type_from_hint(self, hint: Any) -> MediaType:
        media_type = MediaType.parse(hint)
        if media_type is None:
            raise UnsupportedMediaType(f"Unsupported media type: {hint}")
        return media_type

    def type_from_extension(self, filename: str) -> Optional[MediaType]:
        ext = os.path.splitext(filename)[1].lower().lstrip(".")
        if not ext:
            return None
        for media_type in MediaType:
            if ext in self._formats(media_type):
                return media_type
        return None

    @staticmethod
    def type_from_mime(mime_type: str) -> Optional[MediaType]:
        prefix = mime_type.strip().lower().split("/", 1)[0]
        return MediaType.parse(prefix) if "/" in mime_type else None

    def detect(self, buffer: bytes, metadata: Optional[Mapping[str, Any]] = None) -> DetectionResult:
        """Detect the media type and report how it was decided.

        Args:
            buffer: Raw content (only the first bytes are inspected)
            metadata: Optional ``type``, ``filename`` and ``mime_type``/``mimeType``

        Returns:
            DetectionResult

        Raises:
            UnsupportedMediaType: If an explicit hint names an unknown category
            NoTypeDetected: If no step matched
        """
        metadata = metadata or {}
        sniffed = sniff(buffer or b"")
        signature_format = sniffed[1] if sniffed else None

        hint = metadata.get("type")
        if hint:
            return DetectionResult(self.type_from_hint(hint), "hint", signature_format)

        filename = metadata.get("filename")
        if filename:
            media_type = self.type_from_extension(filename)
            if media_type is not None:
                ext = os.path.splitext(filename)[1].lower().lstrip(".")
                return DetectionResult(media_type, "extension", signature_format or ext)

        mime_type = metadata.get("mime_type") or metadata.get("mimeType")
        if mime_type:
            media_type = self.type_from_mime(mime_type)
            if media_type is not None:
                return DetectionResult(media_type, "mime", signature_format)

        if sniffed is not None:
            return DetectionResult(sniffed[0], "signature", signature_format)

        logger.debug("No media type matched (filename=%s, mime=%s)", filename, mime_type)
        raise NoTypeDetected(
            "Unable to detect media type from provided data", file_name=filename
        )

    def detect_type(self, buffer: bytes, metadata: Optional[Mapping[str, Any]] = None) -> MediaType:
        """Return only the detected category"""
        return self.detect(buffer, metadata).media_type

    def describe(self) -> Dict[str, List[str]]:
        """Extension sets currently used for each category"""
        return {media_type.value: self._formats(media_type) for media_type in MediaType}
