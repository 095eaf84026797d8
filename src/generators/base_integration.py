"""
Base integration for image-to-3D queue services.

This module provides the BaseServiceIntegration class for queue-backed 3D
generation services: submit a job, query its status, fetch its result.
"""

from datetime import datetime
from typing import Any

from .configs import ServiceConfig
from .enums import ServiceStatus
from .models import RemoteResult, RemoteStatus


class BaseServiceIntegration:
    """Base class for 3D generation queue integrations."""

    def __init__(self, config: ServiceConfig) -> None:
        self.config = config
        self.session: Any | None = None  # Will be initialized as needed
        self._health_status = ServiceStatus.AVAILABLE
        self._last_health_check = datetime.utcnow()

    async def __aenter__(self) -> "BaseServiceIntegration":
        """Async context manager entry."""
        await self.initialize()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.cleanup()

    async def initialize(self) -> None:
        """Initialize the service integration."""
        pass

    async def cleanup(self) -> None:
        """Clean up resources."""
        pass

    async def check_health(self) -> ServiceStatus:
        """Check service health status."""
        return self._health_status

    async def submit(self, image_data_uri: str) -> str:
        """Submit one image and return the remote request id."""
        raise NotImplementedError("Subclasses must implement submit")

    async def get_status(self, request_id: str) -> RemoteStatus:
        """Query the status of a submitted request."""
        raise NotImplementedError("Subclasses must implement get_status")

    async def get_result(self, request_id: str) -> RemoteResult:
        """Fetch the output of a completed request."""
        raise NotImplementedError("Subclasses must implement get_result")

    async def download_archive(self, url: str) -> bytes:
        """Download a generated artifact bundle."""
        raise NotImplementedError("Subclasses must implement download_archive")
