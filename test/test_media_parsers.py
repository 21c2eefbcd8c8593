import struct

from conftest import PNG_HEADER, WEBM_HEADER
from media_orchestrator.services.processors.core.progress import ProgressReporter
from media_orchestrator.services.processors.media.audio.processor import wav_info
from media_orchestrator.services.processors.media.image.processor import image_dimensions
from media_orchestrator.services.processors.media.video.processor import ebml_doctype


def png_bytes(width, height):
    return PNG_HEADER + struct.pack(">I", 13) + b"IHDR" + struct.pack(">II", width, height) + b"\x08\x06\x00\x00\x00"


def wav_bytes(seconds, sample_rate=8000):
    byte_rate = sample_rate * 2
    data_size = int(byte_rate * seconds)
    fmt = struct.pack("<HHIIHH", 1, 1, sample_rate, byte_rate, 2, 16)
    return (
        b"RIFF" + struct.pack("<I", 36 + data_size) + b"WAVE"
        + b"fmt " + struct.pack("<I", 16) + fmt
        + b"data" + struct.pack("<I", data_size)
    )


def test_header_parsers():
    assert image_dimensions(png_bytes(320, 200), "png") == (320, 200)
    assert image_dimensions(b"GIF89a\x10\x00\x20\x00", "gif") == (16, 32)
    jpeg = b"\xff\xd8" + b"\xff\xc0\x00\x11\x08" + struct.pack(">HH", 90, 120) + b"\x00" * 12
    assert image_dimensions(jpeg, "jpeg") == (120, 90)
    assert image_dimensions(b"\x00" * 4, "bmp") is None

    info = wav_info(wav_bytes(1.5))
    assert info["sample_rate"] == 8000
    assert info["duration"] == 1.5
    assert wav_info(b"not a wav") == {}

    assert ebml_doctype(WEBM_HEADER) == "webm"
    assert ebml_doctype(WEBM_HEADER[:12]) is None
    assert ebml_doctype(b"\x00" * 16) is None


def test_progress_never_goes_backwards():
    seen = []
    reporter = ProgressReporter(lambda p, m: seen.append(p))
    reporter.update(40, "half")
    reporter.update(20, "stale")
    reporter.update(150)
    assert seen == [40, 40, 100]


def test_progress_sink_errors_are_swallowed():
    def broken(progress, message):
        raise RuntimeError("sink down")

    assert ProgressReporter(broken).complete() == 100
