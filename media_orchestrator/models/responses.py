"""
Result and status models returned to callers
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class IssueRecord(BaseModel):
    """An error or warning recorded while processing"""

    message: str = Field(description="Human-readable description")
    context: Dict[str, Any] = Field(default_factory=dict, description="Structured context")
    timestamp: datetime = Field(default_factory=datetime.now, description="When it was recorded")
    processor: str = Field(description="Processor that recorded the issue")


class InputDescriptor(BaseModel):
    """What was processed, without the payload itself"""

    filename: Optional[str] = Field(None, description="Declared filename")
    mime_type: Optional[str] = Field(None, description="Declared MIME type")
    media_type: str = Field(description="Detected media category")
    format_name: Optional[str] = Field(None, description="Container format from signature or extension")
    size: int = Field(description="Payload size in bytes")
    checksum: str = Field(description="SHA-256 of the payload")


class ResultStatus(str, Enum):
    COMPLETED = "completed"
    COMPLETED_WITH_ERRORS = "completed_with_errors"
    FAILED = "failed"


class ResultEnvelope(BaseModel):
    """Uniform output of every processor"""

    owner_id: Optional[str] = Field(None, description="Owner the content belongs to")
    input: InputDescriptor = Field(description="Descriptor of the processed input")
    processor_type: str = Field(description="Processor that produced the envelope")
    start_time: datetime = Field(description="Processing start")
    end_time: Optional[datetime] = Field(None, description="Processing end")
    duration_ms: Optional[int] = Field(None, description="Processing duration in milliseconds")
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Core metadata")
    results: Dict[str, Any] = Field(default_factory=dict, description="Per-feature results")
    errors: List[IssueRecord] = Field(default_factory=list, description="Errors recorded")
    warnings: List[IssueRecord] = Field(default_factory=list, description="Warnings recorded")
    status: Optional[ResultStatus] = Field(None, description="Set when the envelope is finalized")

    @property
    def has_output(self) -> bool:
        """Feature results; core metadata alone is not usable output"""
        return bool(self.results)


class FormattedResults(BaseModel):
    """Envelope wrapped with orchestration context"""

    job_id: str = Field(description="Job identifier")
    media_type: str = Field(description="Detected media category")
    processed_at: datetime = Field(default_factory=datetime.now, description="Formatting timestamp")
    status: ResultStatus = Field(description="Envelope status")
    features: Dict[str, bool] = Field(default_factory=dict, description="Resolved feature flags")
    processing_time_ms: Optional[int] = Field(None, description="Total job time, set on completion")
    data: ResultEnvelope = Field(description="Processor envelope")


class ProcessContentResponse(BaseModel):
    """Returned by Orchestrator.process_content"""

    job_id: str = Field(description="Job identifier")
    media_type: str = Field(description="Detected media category")
    processing_time_ms: int = Field(description="Total time from submission to completion")
    results: FormattedResults = Field(description="Formatted processor output")
    warnings: List[str] = Field(default_factory=list, description="Warning messages")
    features: Dict[str, bool] = Field(default_factory=dict, description="Resolved feature flags")


class JobStatusResponse(BaseModel):
    """Returned by Orchestrator.get_job_status"""

    id: str = Field(description="Job identifier")
    status: str = Field(description="queued, processing, completed or failed")
    media_type: Optional[str] = Field(None, description="Detected media category")
    processing_time_ms: Optional[int] = Field(None, description="Elapsed or total processing time")
    available_features: Dict[str, bool] = Field(default_factory=dict, description="Resolved feature flags")
    progress: Optional[int] = Field(None, description="Progress percentage for live jobs")
    progress_message: Optional[str] = Field(None, description="Current stage message")
    from_cache: bool = Field(False, description="Whether the status came from the result cache")
    results: Optional[FormattedResults] = Field(None, description="Cached results")
