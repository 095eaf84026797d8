"""
fal.ai Seed3D integration for image-to-3D generation.

This module provides the FalSeed3DIntegration class, a thin client over the
fal.ai queue REST API: submit an image, poll the request status, fetch the
result and download the generated model bundle.
"""

import asyncio
import contextlib
from datetime import datetime
from typing import Any

import aiohttp
import structlog

from src.generators.base import SubmissionError, TransientQueryError
from src.generators.base_integration import BaseServiceIntegration
from src.generators.models import RemoteResult, RemoteStatus, describe_error, extract_logs
from src.models.asset_model import RemoteJobStatus

from .enums import ServiceProvider, ServiceStatus

logger = structlog.get_logger(__name__)


class FalSeed3DIntegration(BaseServiceIntegration):
    """fal.ai queue integration for the Seed3D image-to-3D endpoint."""

    provider = ServiceProvider.FAL_SEED3D

    async def check_health(self) -> ServiceStatus:
        """Check service health status for fal.ai."""
        # The queue has no health endpoint; a configured key is the best signal we have
        if self.config.api_key:
            self._health_status = ServiceStatus.AVAILABLE
            logger.info("fal.ai service marked as available (API key present)")
        else:
            self._health_status = ServiceStatus.UNAVAILABLE
            logger.warning("fal.ai service marked as unavailable (no API key)")

        self._last_health_check = datetime.utcnow()
        return self._health_status

    async def initialize(self) -> None:
        """Create an HTTP session bound to the current event loop."""
        if self.session and not self.session.closed:
            with contextlib.suppress(aiohttp.ClientError, RuntimeError):
                await self.session.close()
        self.session = None

        timeout = aiohttp.ClientTimeout(total=self.config.timeout_seconds)
        self.session = aiohttp.ClientSession(timeout=timeout)
        logger.info(f"Created new HTTP session for {self.__class__.__name__}")

    async def cleanup(self) -> None:
        """Clean up resources."""
        if self.session:
            await self.session.close()
            self.session = None

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Key {self.config.api_key}", "Content-Type": "application/json"}

    async def _ensure_session(self) -> Any:
        if not self.session or self.session.closed:
            await self.initialize()
        return self.session

    async def submit(self, image_data_uri: str) -> str:
        """Submit an image to the Seed3D queue and return the request id."""
        session = await self._ensure_session()
        payload = {"image_url": image_data_uri}

        logger.info("Submitting Seed3D job", endpoint=self.config.endpoint, payload_bytes=len(image_data_uri))

        try:
            async with session.post(self.config.submit_url, headers=self._headers(), json=payload) as response:
                if response.status not in (200, 201, 202):
                    error_text = await response.text()
                    logger.error(f"Seed3D submit failed: {response.status} - {error_text}")
                    raise SubmissionError(
                        f"Seed3D request failed: {response.status}",
                        status_code=response.status,
                        response_data=error_text,
                        error_code="SEED3D_SUBMIT_FAILED",
                    )
                data = await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            logger.error(f"Seed3D submit request failed: {type(e).__name__}: {e}")
            raise SubmissionError(
                f"Could not reach the Seed3D queue: {e}", error_code="SEED3D_UNREACHABLE", original_exception=e
            ) from e

        request_id = data.get("request_id") if isinstance(data, dict) else None
        if not request_id:
            raise SubmissionError(
                "Seed3D queue accepted the request but returned no request id",
                response_data=data,
                error_code="SEED3D_NO_REQUEST_ID",
            )

        logger.info("Seed3D job created", request_id=request_id, provider=self.provider.value)
        return str(request_id)

    async def _get_json(self, url: str, params: dict[str, str] | None = None) -> Any:
        session = await self._ensure_session()
        try:
            async with session.get(url, headers=self._headers(), params=params) as response:
                if response.status != 200:
                    error_text = await response.text()
                    raise TransientQueryError(
                        f"Seed3D query failed: {response.status}",
                        status_code=response.status,
                        response_data=error_text,
                    )
                return await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise TransientQueryError(f"Seed3D query error: {e}", original_exception=e) from e

    async def get_status(self, request_id: str) -> RemoteStatus:
        """Query the queue status of a request, including its logs."""
        data = await self._get_json(self.config.status_url(request_id), params={"logs": "1"})
        if not isinstance(data, dict):
            raise TransientQueryError("Seed3D status response was not an object", response_data=data)

        status = RemoteStatus(
            status=RemoteJobStatus.parse(data.get("status")),
            position=data.get("queue_position", data.get("position")),
            logs=extract_logs(data.get("logs")),
            error=describe_error(data.get("error")),
        )
        logger.debug(f"Seed3D request {request_id} status: {status.status.value}", position=status.position)
        return status

    async def get_result(self, request_id: str) -> RemoteResult:
        """Fetch the output of a completed request."""
        data = await self._get_json(self.config.request_url(request_id))
        if not isinstance(data, dict):
            raise TransientQueryError("Seed3D result response was not an object", response_data=data)

        # The queue may wrap the output in a "response" or "data" envelope
        output = data.get("response") or data.get("data") or data
        model = output.get("model") if isinstance(output, dict) else None
        model_url = model.get("url") if isinstance(model, dict) else None

        return RemoteResult(
            model_url=model_url,
            usage_tokens=output.get("usage_tokens") if isinstance(output, dict) else None,
            raw=data,
        )

    async def download_archive(self, url: str) -> bytes:
        """Download a generated model bundle, retrying with exponential backoff."""
        max_retries = max(1, self.config.download_retry_attempts)
        last_error: Exception | None = None

        for attempt in range(max_retries):
            session = await self._ensure_session()
            try:
                logger.info(f"Downloading model bundle from: {url}")
                async with session.get(url) as response:
                    if response.status != 200:
                        raise TransientQueryError(
                            f"Model download failed: HTTP {response.status}", status_code=response.status
                        )
                    body = await response.read()
                if not body:
                    raise TransientQueryError("Model download returned an empty body")

                logger.info(f"Successfully downloaded model bundle ({len(body)} bytes)")
                return body
            except TransientQueryError as e:
                last_error = e
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                last_error = TransientQueryError(f"Model download error: {e}", original_exception=e)

            logger.error(f"Error downloading model (attempt {attempt + 1}): {last_error}")
            if attempt + 1 < max_retries:
                await asyncio.sleep(self.config.download_retry_delay_seconds * (2**attempt))

        assert last_error is not None  # nosec
        raise last_error
