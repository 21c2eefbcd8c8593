"""
AudioProcessor: core audio metadata plus transcription, diarization,
voice print matching and sentiment through the capability registry.
"""

import struct
from typing import Any, Dict

from media_orchestrator.core.exceptions import InputValidationError
from media_orchestrator.models.media import MediaInput, MediaType
from media_orchestrator.services.processors.media.base import CapabilityBackedProcessor


def wav_info(data: bytes) -> Dict[str, Any]:
    """Walk RIFF chunks for format and duration; empty when not a readable WAV"""
    if len(data) < 12 or data[:4] != b"RIFF" or data[8:12] != b"WAVE":
        return {}
    info: Dict[str, Any] = {}
    index = 12
    while index + 8 <= len(data):
        chunk_id = data[index:index + 4]
        (size,) = struct.unpack("<I", data[index + 4:index + 8])
        body = index + 8
        if chunk_id == b"fmt " and body + 16 <= len(data):
            _, channels, sample_rate, byte_rate, _, bits = struct.unpack(
                "<HHIIHH", data[body:body + 16]
            )
            info.update(channels=channels, sample_rate=sample_rate, bits_per_sample=bits)
            info["_byte_rate"] = byte_rate
        elif chunk_id == b"data":
            byte_rate = info.pop("_byte_rate", 0)
            if byte_rate:
                info["duration"] = round(size / byte_rate, 3)
            break
        index = body + size + (size & 1)
    info.pop("_byte_rate", None)
    return info


class AudioProcessor(CapabilityBackedProcessor):
    """Audio analysis processor"""

    media_type = MediaType.AUDIO

    def extract_metadata(self, media: MediaInput) -> Dict[str, Any]:
        if (media.format_name or "").lower() == "wav":
            return wav_info(media.data)
        return {}

    def validate_metadata(self, media: MediaInput, metadata: Dict[str, Any]) -> None:
        duration = metadata.get("duration")
        max_duration = self.config.get("max_duration")
        if duration is not None and max_duration and duration > max_duration:
            raise InputValidationError(
                f"Audio duration {duration}s exceeds maximum {max_duration}s",
                error_code="duration_exceeded",
                file_name=media.filename,
            )
