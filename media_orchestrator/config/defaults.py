"""
Compiled configuration defaults and per-path validators.

Sections: ``base`` (shared by every processor), one section per media type,
``providers`` (capability backends and fallback policy) and ``performance``
(concurrency, caching, cleanup and monitoring).
"""

import os
import tempfile
from typing import Any, Callable, Dict, List, Union

from pydantic import Field, StrictInt, TypeAdapter
from typing_extensions import Annotated, TypedDict

MB = 1024 * 1024

DEFAULT_CONFIG: Dict[str, Dict[str, Any]] = {
    "base": {
        "retry_attempts": 3,
        "retry_delay_ms": 1000,
        "timeout_ms": 300000,  # 5 minutes
        "temp_dir": os.path.join(tempfile.gettempdir(), "multimedia"),
        "max_file_size": 100 * MB,
        "cleanup_temp_files": True,
        "enable_progress_tracking": True,
    },
    "video": {
        "max_duration": 3600,  # seconds
        "supported_formats": ["mp4", "avi", "mov", "webm", "mkv"],
        "enable_thumbnails": True,
        "enable_quality_analysis": True,
        "enable_ocr": True,
        "thumbnail_sizes": [
            {"width": 320, "height": 240, "name": "small"},
            {"width": 640, "height": 480, "name": "medium"},
            {"width": 1280, "height": 720, "name": "large"},
        ],
        "quality_thresholds": {
            "bitrate": {"min": 500000, "optimal": 2000000},
            "framerate": {"min": 15, "optimal": 30},
        },
    },
    "audio": {
        "max_duration": 7200,  # seconds
        "supported_formats": ["mp3", "wav", "flac", "m4a", "ogg", "aac"],
        "enable_transcription": True,
        "enable_speaker_diarization": True,
        "enable_voice_print_matching": True,
        "enable_sentiment_analysis": True,
        "transcription_language": "en-US",
        "voice_print": {"confidence_threshold": 0.8, "max_speakers": 10},
    },
    "image": {
        "max_dimensions": {"width": 4096, "height": 4096},
        "supported_formats": ["jpg", "jpeg", "png", "gif", "bmp", "webp", "tiff"],
        "enable_object_detection": True,
        "enable_ocr": True,
        "enable_ai_description": True,
        "enable_quality_analysis": True,
        "enable_thumbnails": True,
        "thumbnail_sizes": [
            {"width": 150, "height": 150, "name": "thumbnail"},
            {"width": 300, "height": 300, "name": "small"},
            {"width": 600, "height": 600, "name": "medium"},
        ],
        "ai_description": {
            "max_tokens": 500,
            "prompt": (
                "Describe this image in detail, including objects, text, "
                "colors, and notable features."
            ),
        },
    },
    "providers": {
        "google_cloud": {
            "enabled": True,
            "region": "us-central1",
            "timeout_ms": 60000,
        },
        "openai": {
            "enabled": True,
            "timeout_ms": 60000,
            "default_model": "gpt-4.1-nano",
            "whisper_model": "whisper-1",
        },
        "fallback": {
            "enable_automatic_fallback": True,
            "provider_timeout_ms": 30000,
            "max_fallback_attempts": 3,
        },
    },
    "performance": {
        "concurrent_processing": {
            "max_concurrent_jobs": 3,
            "max_concurrent_per_type": 2,
            "queue_timeout_ms": 600000,  # 10 minutes
        },
        "caching": {
            "enable_result_caching": True,
            "cache_timeout_ms": 3600000,  # 1 hour
            "max_cache_size": 1000,
        },
        "cleanup": {
            "interval_ms": 300000,  # 5 minutes
            "stale_job_threshold_ms": 3600000,  # 1 hour
        },
        "monitoring": {
            "enable_metrics": True,
            "enable_alerts": True,
            "metrics_interval_ms": 10000,
            "history_size": 1000,
            "baseline_warmup_samples": 6,
            "baseline_window": 10,
            "resolve_ratio": 0.9,
            "thresholds": {
                "memory_pct": 90,
                "cpu_pct": 95,
                "processing_time_ms": 60000,
                "error_rate_pct": 10,
                "queue_depth": 100,
            },
        },
    },
}


class Dimensions(TypedDict):
    width: Annotated[StrictInt, Field(gt=0, le=8192)]
    height: Annotated[StrictInt, Field(gt=0, le=8192)]


Validator = Union[TypeAdapter, Callable[[Any], bool]]


def _bounded_int(**bounds) -> TypeAdapter:
    return TypeAdapter(Annotated[StrictInt, Field(**bounds)])


_FORMATS = TypeAdapter(Annotated[List[str], Field(min_length=1)])
_BOOL = TypeAdapter(bool)

DEFAULT_VALIDATORS: Dict[str, Validator] = {
    "base.retry_attempts": _bounded_int(ge=0, le=10),
    "base.retry_delay_ms": _bounded_int(ge=0, le=60000),
    "base.timeout_ms": _bounded_int(gt=0, le=1800000),  # max 30 minutes
    "base.max_file_size": _bounded_int(gt=0),
    "video.max_duration": _bounded_int(gt=0, le=7200),
    "video.supported_formats": _FORMATS,
    "audio.max_duration": _bounded_int(gt=0, le=14400),
    "audio.supported_formats": _FORMATS,
    "image.max_dimensions": TypeAdapter(Dimensions),
    "image.supported_formats": _FORMATS,
    "providers.fallback.provider_timeout_ms": _bounded_int(gt=0),
    "providers.fallback.max_fallback_attempts": _bounded_int(ge=1),
    "performance.concurrent_processing.max_concurrent_jobs": _bounded_int(gt=0, le=10),
    "performance.concurrent_processing.max_concurrent_per_type": _bounded_int(gt=0, le=10),
    "performance.concurrent_processing.queue_timeout_ms": _bounded_int(gt=0),
    "performance.caching.enable_result_caching": _BOOL,
    "performance.caching.cache_timeout_ms": _bounded_int(gt=0),
    "performance.caching.max_cache_size": _bounded_int(ge=1),
    "performance.cleanup.interval_ms": _bounded_int(gt=0),
    "performance.cleanup.stale_job_threshold_ms": _bounded_int(gt=0),
    "performance.monitoring.metrics_interval_ms": _bounded_int(gt=0),
    "performance.monitoring.history_size": _bounded_int(ge=1),
    "performance.monitoring.resolve_ratio": TypeAdapter(
        Annotated[float, Field(gt=0, le=1)]
    ),
}

SECTIONS = tuple(DEFAULT_CONFIG.keys())
