"""
VideoProcessor: container metadata plus thumbnails, quality analysis and
OCR through the capability registry.
"""

from typing import Any, Dict, Optional, Tuple

from media_orchestrator.models.media import MediaInput, MediaType
from media_orchestrator.services.processors.media.base import CapabilityBackedProcessor

EBML_MAGIC = b"\x1a\x45\xdf\xa3"
EBML_DOCTYPE_ID = 0x4282


def _read_vint(data: bytes, index: int, keep_marker: bool = False) -> Optional[Tuple[int, int]]:
    """Decode an EBML variable-length integer; returns (value, next index)"""
    if index >= len(data):
        return None
    first = data[index]
    length, mask = 1, 0x80
    while length <= 8 and not first & mask:
        length += 1
        mask >>= 1
    if length > 8 or index + length > len(data):
        return None
    # Element ids keep their length marker, sizes drop it
    value = first if keep_marker else first & (mask - 1)
    for byte in data[index + 1:index + length]:
        value = (value << 8) | byte
    return value, index + length


def ebml_doctype(data: bytes) -> Optional[str]:
    """DocType of a Matroska/WebM header ("webm", "matroska"), if present"""
    if data[:4] != EBML_MAGIC:
        return None
    header = _read_vint(data, 4)
    if header is None:
        return None
    size, index = header
    end = min(len(data), index + size)
    while index < end:
        element = _read_vint(data, index, keep_marker=True)
        if element is None:
            return None
        element_id, index = element
        length = _read_vint(data, index)
        if length is None:
            return None
        size, index = length
        if element_id == EBML_DOCTYPE_ID:
            doctype = data[index:index + size].decode("ascii", "replace").rstrip("\x00")
            return doctype or None
        index += size
    return None


class VideoProcessor(CapabilityBackedProcessor):
    """Video analysis processor"""

    media_type = MediaType.VIDEO

    def extract_metadata(self, media: MediaInput) -> Dict[str, Any]:
        head = media.data[:12]
        if head[4:8] == b"ftyp":
            return {"brand": head[8:12].decode("ascii", "replace").strip()}
        doctype = ebml_doctype(media.data[:4096])
        if doctype:
            return {"doctype": doctype}
        return {}
