"""
Configurations for the generation service integration.

This module contains the configuration dataclass for the remote queue.
"""

from dataclasses import dataclass

DEFAULT_QUEUE_URL = "https://queue.fal.run"
DEFAULT_SEED3D_ENDPOINT = "fal-ai/bytedance/seed3d/image-to-3d"


@dataclass
class ServiceConfig:
    """Configuration for an image-to-3D queue service."""

    api_key: str
    base_url: str = DEFAULT_QUEUE_URL
    endpoint: str = DEFAULT_SEED3D_ENDPOINT
    timeout_seconds: int = 120
    download_retry_attempts: int = 2
    download_retry_delay_seconds: float = 1.0

    @property
    def app_id(self) -> str:
        """Owner/app prefix of the endpoint, used for request status routes."""
        parts = [part for part in self.endpoint.split("/") if part]
        if len(parts) < 2:
            raise ValueError(f"Invalid endpoint id: {self.endpoint!r}")
        return "/".join(parts[:2])

    @property
    def submit_url(self) -> str:
        return f"{self.base_url.rstrip('/')}/{self.endpoint.strip('/')}"

    def request_url(self, request_id: str) -> str:
        return f"{self.base_url.rstrip('/')}/{self.app_id}/requests/{request_id}"

    def status_url(self, request_id: str) -> str:
        return f"{self.request_url(request_id)}/status"
