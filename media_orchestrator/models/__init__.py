"""Data models"""

from .jobs import InvalidTransition, Job, JobState, OrchestratorMetrics, ProcessingOptions
from .media import (
    FEATURE_BINDINGS,
    AudioFeature,
    Capability,
    FeatureBinding,
    ImageFeature,
    MediaInput,
    MediaType,
    VideoFeature,
    features_for,
)
from .requests import ContentMetadata
from .responses import (
    FormattedResults,
    InputDescriptor,
    IssueRecord,
    JobStatusResponse,
    ProcessContentResponse,
    ResultEnvelope,
    ResultStatus,
)

__all__ = [
    "InvalidTransition",
    "Job",
    "JobState",
    "OrchestratorMetrics",
    "ProcessingOptions",
    "FEATURE_BINDINGS",
    "AudioFeature",
    "Capability",
    "FeatureBinding",
    "ImageFeature",
    "MediaInput",
    "MediaType",
    "VideoFeature",
    "features_for",
    "ContentMetadata",
    "FormattedResults",
    "InputDescriptor",
    "IssueRecord",
    "JobStatusResponse",
    "ProcessContentResponse",
    "ResultEnvelope",
    "ResultStatus",
]
