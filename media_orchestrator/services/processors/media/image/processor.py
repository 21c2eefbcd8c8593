"""
ImageProcessor: core image metadata plus detection, OCR, AI description,
quality analysis and thumbnails through the capability registry.
"""

import struct
from typing import Any, Dict, Optional, Tuple

from media_orchestrator.core.exceptions import InputValidationError
from media_orchestrator.models.media import MediaInput, MediaType
from media_orchestrator.services.processors.media.base import CapabilityBackedProcessor

# JPEG start-of-frame markers carrying the image size
_SOF_MARKERS = {0xC0, 0xC1, 0xC2, 0xC3, 0xC5, 0xC6, 0xC7, 0xC9, 0xCA, 0xCB, 0xCD, 0xCE, 0xCF}


def _jpeg_size(data: bytes) -> Optional[Tuple[int, int]]:
    index = 2
    while index + 9 < len(data):
        if data[index] != 0xFF:
            return None
        marker = data[index + 1]
        if marker == 0xFF:
            index += 1
            continue
        if marker in (0xD8, 0x01) or 0xD0 <= marker <= 0xD7:
            index += 2
            continue
        (length,) = struct.unpack(">H", data[index + 2:index + 4])
        if marker in _SOF_MARKERS:
            height, width = struct.unpack(">HH", data[index + 5:index + 9])
            return width, height
        index += 2 + length
    return None


def image_dimensions(data: bytes, format_name: Optional[str]) -> Optional[Tuple[int, int]]:
    """Read ``(width, height)`` from PNG, GIF or JPEG headers; None if unknown"""
    fmt = (format_name or "").lower()
    if fmt == "png" and len(data) >= 24 and data[12:16] == b"IHDR":
        return struct.unpack(">II", data[16:24])
    if fmt == "gif" and len(data) >= 10:
        return struct.unpack("<HH", data[6:10])
    if fmt in ("jpeg", "jpg"):
        return _jpeg_size(data)
    return None


class ImageProcessor(CapabilityBackedProcessor):
    """Image analysis processor"""

    media_type = MediaType.IMAGE

    def extract_metadata(self, media: MediaInput) -> Dict[str, Any]:
        size = image_dimensions(media.data, media.format_name)
        if size is None:
            return {}
        width, height = size
        return {"width": width, "height": height}

    def validate_metadata(self, media: MediaInput, metadata: Dict[str, Any]) -> None:
        limits = self.config.get("max_dimensions") or {}
        width, height = metadata.get("width"), metadata.get("height")
        if width is None or height is None:
            return
        if width > limits.get("width", width) or height > limits.get("height", height):
            raise InputValidationError(
                f"Image dimensions {width}x{height} exceed maximum "
                f"{limits.get('width')}x{limits.get('height')}",
                error_code="dimensions_exceeded",
                file_name=media.filename,
            )
