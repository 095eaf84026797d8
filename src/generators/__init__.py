"""
Generation service integration for image-to-3D jobs.

This module provides the error taxonomy, configuration and queue client
used to submit frames to the remote generation service and follow them to
completion.
"""

from .base import (
    APIError,
    ConfigurationError,
    ErrorSeverity,
    ExtractionError,
    FrameExtractionError,
    GenerationError,
    InvalidTransitionError,
    PollTimeoutError,
    RemoteFailure,
    SubmissionError,
    TransientQueryError,
)
from .configs import ServiceConfig
from .enums import ServiceProvider, ServiceStatus

__all__ = [
    # Error classes
    "GenerationError",
    "ErrorSeverity",
    "ConfigurationError",
    "APIError",
    "SubmissionError",
    "TransientQueryError",
    "RemoteFailure",
    "ExtractionError",
    "PollTimeoutError",
    "InvalidTransitionError",
    "FrameExtractionError",
    # Service configuration
    "ServiceConfig",
    "ServiceProvider",
    "ServiceStatus",
]
