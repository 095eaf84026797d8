"""
Models for the generation service integration.

This module contains Pydantic models for the queue's status and result responses.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from src.models.asset_model import RemoteJobStatus


class RemoteStatus(BaseModel):
    """Status of a queued request as reported by the remote service."""

    status: RemoteJobStatus
    position: int | None = None
    logs: list[str] = Field(default_factory=list)
    error: str | None = None


class RemoteResult(BaseModel):
    """Output of a completed request."""

    model_config = ConfigDict(protected_namespaces=())

    model_url: str | None = None
    usage_tokens: int | None = None
    raw: dict[str, Any] = Field(default_factory=dict)


def extract_logs(logs: Any) -> list[str]:
    """Normalise queue log entries into non-empty message strings."""
    if not isinstance(logs, list):
        return []

    messages: list[str] = []
    for entry in logs:
        if isinstance(entry, str):
            message = entry
        elif isinstance(entry, dict) and "message" in entry:
            message = str(entry.get("message") or "").strip()
        else:
            message = ""
        if message:
            messages.append(message)
    return messages


def describe_error(error: Any) -> str | None:
    """Turn a remote error field (string, dict or list) into a message."""
    if error is None or error == "":
        return None
    if isinstance(error, str):
        return error
    if isinstance(error, dict):
        for key in ("message", "detail", "msg"):
            if error.get(key):
                return describe_error(error[key])
        return str(error)
    if isinstance(error, list) and error:
        return describe_error(error[0])
    return str(error)
