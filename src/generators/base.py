"""
Error hierarchy and shared helpers for the generation service integration.

This module provides the exception taxonomy used across the pipeline
(submission, remote failure, transient query errors, archive extraction,
poll timeouts and illegal state transitions).
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


class ErrorSeverity(str, Enum):
    """Error severity levels."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


# Error Handling Classes

class GenerationError(Exception):
    """Base exception for all generation-related errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        details: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.severity = severity
        self.details = details or {}
        self.original_exception = original_exception
        self.timestamp = datetime.utcnow()

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary format."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "error_code": self.error_code,
            "severity": self.severity.value,
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
            "original_exception": str(self.original_exception) if self.original_exception else None,
        }


class ConfigurationError(GenerationError):
    """The service is not configured (missing key, missing integration)."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, severity=ErrorSeverity.CRITICAL, **kwargs)


class APIError(GenerationError):
    """API-related errors (network, authentication, service unavailable)."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_data: Optional[Any] = None,
        **kwargs,
    ):
        super().__init__(message, **kwargs)
        self.status_code = status_code
        self.response_data = response_data
        self.details.update({
            "status_code": status_code,
            "response_data": response_data,
        })


class SubmissionError(APIError):
    """The queue rejected a submission or could not be reached."""


class TransientQueryError(APIError):
    """A status, result or download request failed; the job itself may be fine."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("severity", ErrorSeverity.LOW)
        super().__init__(message, **kwargs)


class RemoteFailure(GenerationError):
    """The remote service reported the job as failed."""

    def __init__(self, message: str, request_id: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.request_id = request_id
        self.details.update({"request_id": request_id})


class ExtractionError(GenerationError):
    """An archive did not contain a usable model entry."""

    def __init__(self, message: str, asset_key: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.asset_key = asset_key
        self.details.update({"asset_key": asset_key})


class PollTimeoutError(GenerationError):
    """A job stayed pending longer than the configured poll bound."""

    def __init__(self, message: str, timeout_duration: Optional[float] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.timeout_duration = timeout_duration
        self.details.update({"timeout_duration": timeout_duration})


class InvalidTransitionError(GenerationError):
    """A record was asked to move along a transition that is not allowed."""

    def __init__(self, message: str, from_status: Optional[str] = None, to_status: Optional[str] = None, **kwargs):
        super().__init__(message, severity=ErrorSeverity.HIGH, **kwargs)
        self.details.update({"from_status": from_status, "to_status": to_status})


class FrameExtractionError(GenerationError):
    """The video could not be probed or produced no frames."""


__all__ = [
    "ErrorSeverity",
    "GenerationError",
    "ConfigurationError",
    "APIError",
    "SubmissionError",
    "TransientQueryError",
    "RemoteFailure",
    "ExtractionError",
    "PollTimeoutError",
    "InvalidTransitionError",
    "FrameExtractionError",
]
