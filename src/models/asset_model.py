"""
Pydantic data models for the video-to-3D asset pipeline.

This module defines the records that flow through the pipeline, from the
frames extracted out of an uploaded video to the per-asset state tracked
while remote generation jobs are polled to completion.
"""

import re
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from src.generators.base import InvalidTransitionError


# Enums for controlled vocabularies

class ModelStatus(str, Enum):
    """Lifecycle state of one asset in a batch."""
    CACHED = "cached"
    GENERATING = "generating"
    COMPLETED = "completed"
    FAILED = "failed"


class RemoteJobStatus(str, Enum):
    """Status reported by the remote generation queue."""
    IN_QUEUE = "IN_QUEUE"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def parse(cls, value: Any) -> "RemoteJobStatus":
        """Map a raw status string onto the enum, unknown strings included."""
        try:
            return cls(str(value).upper())
        except ValueError:
            return cls.UNKNOWN

    @property
    def is_terminal(self) -> bool:
        return self in (RemoteJobStatus.COMPLETED, RemoteJobStatus.FAILED)


class ErrorKind(str, Enum):
    """Why an asset ended up failed."""
    VALIDATION = "validation"
    SUBMISSION = "submission"
    REMOTE_FAILURE = "remote_failure"
    QUERY_ERROR = "query_error"
    EXTRACTION = "extraction"
    TIMEOUT = "timeout"


# Only a generating record may move, and only to a terminal state.
ALLOWED_TRANSITIONS: Dict[ModelStatus, FrozenSet[ModelStatus]] = {
    ModelStatus.CACHED: frozenset(),
    ModelStatus.GENERATING: frozenset({ModelStatus.COMPLETED, ModelStatus.FAILED}),
    ModelStatus.COMPLETED: frozenset(),
    ModelStatus.FAILED: frozenset(),
}

_FRAME_TIMESTAMP = re.compile(r"_(\d+)\.")


# Core Data Models

class FrameInfo(BaseModel):
    """A still frame produced by the frame extraction step."""

    model_config = ConfigDict(frozen=True)

    timestamp: float = Field(0.0, ge=0.0)
    filename: str
    url: str
    path: Optional[str] = None


class GenerationJob(BaseModel):
    """A job accepted by the remote generation queue."""

    model_config = ConfigDict(frozen=True)

    request_id: str
    asset_key: str


class FrameResult(BaseModel):
    """Outcome of submitting one frame in a batch."""

    filename: str
    asset_key: str
    cached: bool = False
    artifact_url: Optional[str] = None
    request_id: Optional[str] = None
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None

    @property
    def needs_polling(self) -> bool:
        return not self.cached and self.error is None and self.request_id is not None


class ModelRecord(BaseModel):
    """Tracked state of one asset while its batch is being processed."""

    filename: str
    asset_key: str
    timestamp: float = 0.0
    status: ModelStatus
    artifact_url: Optional[str] = None
    request_id: Optional[str] = None
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    poll_attempts: int = 0
    query_failures: int = 0

    @classmethod
    def from_frame_result(cls, result: FrameResult, index: int = 0, interval: float = 2.0) -> "ModelRecord":
        """Build the initial record for a batch result."""
        error = result.error
        if not error and not result.cached and not result.request_id:
            error = "No request id was returned for this frame"

        if error:
            status = ModelStatus.FAILED
        elif result.cached:
            status = ModelStatus.CACHED
        else:
            status = ModelStatus.GENERATING

        match = _FRAME_TIMESTAMP.search(result.filename)
        timestamp = float(match.group(1)) if match else index * interval

        return cls(
            filename=result.filename,
            asset_key=result.asset_key,
            timestamp=timestamp,
            status=status,
            artifact_url=result.artifact_url,
            request_id=result.request_id,
            error=error,
            error_kind=(result.error_kind or ErrorKind.SUBMISSION) if error else None,
        )

    @property
    def is_generating(self) -> bool:
        return self.status == ModelStatus.GENERATING

    @property
    def is_terminal(self) -> bool:
        return self.status in (ModelStatus.CACHED, ModelStatus.COMPLETED, ModelStatus.FAILED)

    def can_transition_to(self, new_status: ModelStatus) -> bool:
        return new_status in ALLOWED_TRANSITIONS[self.status]

    def transition(self, new_status: ModelStatus, **changes: Any) -> "ModelRecord":
        """Return a copy moved to ``new_status``, rejecting illegal moves."""
        if not self.can_transition_to(new_status):
            raise InvalidTransitionError(
                f"Illegal transition {self.status.value} -> {new_status.value} for {self.asset_key}",
                from_status=self.status.value,
                to_status=new_status.value,
            )
        return self.model_copy(update={"status": new_status, **changes})

    def fail(self, error: str, kind: ErrorKind) -> "ModelRecord":
        return self.transition(ModelStatus.FAILED, error=error, error_kind=kind)

    def complete(self, artifact_url: str) -> "ModelRecord":
        return self.transition(ModelStatus.COMPLETED, artifact_url=artifact_url, error=None, error_kind=None)


class JobResultPayload(BaseModel):
    """Result section of a completed job's status payload."""

    model_config = ConfigDict(protected_namespaces=())

    model_url: Optional[str] = None
    usage_tokens: Optional[int] = None
    local_archive_path: Optional[str] = None
    local_model_path: Optional[str] = None
    local_archive_url: Optional[str] = None
    local_model_url: Optional[str] = None


class JobStatusPayload(BaseModel):
    """Status of one remote job as exposed by the job status service."""

    status: RemoteJobStatus
    position: Optional[int] = None
    logs: List[str] = Field(default_factory=list)
    result: Optional[JobResultPayload] = None
    error: Optional[str] = None


class ExtractionResult(BaseModel):
    """Frames pulled out of one uploaded video."""

    video_name: str
    duration: float
    frames: List[FrameInfo]

