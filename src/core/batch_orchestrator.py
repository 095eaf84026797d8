"""
Batch submission of video frames to the generation service.

For every frame the orchestrator derives an asset key, serves the stored
model on a cache hit and otherwise submits the frame image as a new job.
Frames are handled concurrently; failures are recorded per frame.
"""

import asyncio
import base64
from collections.abc import Sequence
from pathlib import Path
from typing import Any

import aiofiles
import structlog

from src.generators.base import ConfigurationError, GenerationError
from src.generators.base_integration import BaseServiceIntegration
from src.models.asset_model import ErrorKind, FrameInfo, FrameResult, GenerationJob
from src.storage.artifact_store import ArtifactStore
from src.utils.asset_key import derive_asset_key
from src.utils.validators import FileValidator, FrameValidator, ValidationException

logger = structlog.get_logger(__name__)


def to_data_uri(image_bytes: bytes, filename: str) -> str:
    """Encode image bytes as a base64 data URI."""
    mime_type = FileValidator.image_mime_type(filename)
    return f"data:{mime_type};base64,{base64.b64encode(image_bytes).decode('ascii')}"


class BatchOrchestrator:
    """Decides cached vs. generate for each frame and submits the misses."""

    def __init__(self, store: ArtifactStore, service: BaseServiceIntegration | None, frames_dir: Path):
        self.store = store
        self.service = service
        self.frames_dir = Path(frames_dir)

    def _require_service(self) -> BaseServiceIntegration:
        if self.service is None:
            raise ConfigurationError("FAL_KEY is missing on the server.", error_code="SERVICE_NOT_CONFIGURED")
        return self.service

    def _frame_path(self, frame: FrameInfo) -> Path:
        if frame.path:
            return Path(frame.path)
        return self.frames_dir / frame.filename

    async def process_batch(self, frames: Sequence[FrameInfo | dict[str, Any]]) -> list[FrameResult]:
        """
        Resolve every frame to a cached artifact, a new job, or an error.

        Returns one FrameResult per input frame, in input order.

        Raises:
            ValidationException: If the frame list is empty or malformed
            ConfigurationError: If no generation service is configured
        """
        validated = FrameValidator.validate_frames(frames)
        service = self._require_service()

        logger.info("Processing frame batch", frame_count=len(validated))
        results = await asyncio.gather(*(self._process_frame(frame, service) for frame in validated))

        cached = sum(1 for r in results if r.cached)
        failed = sum(1 for r in results if r.error)
        logger.info(
            "Frame batch processed",
            frame_count=len(results),
            cached=cached,
            submitted=len(results) - cached - failed,
            failed=failed,
        )
        return list(results)

    async def _process_frame(self, frame: FrameInfo, service: BaseServiceIntegration) -> FrameResult:
        asset_key = derive_asset_key(frame.filename)

        try:
            artifact_url = self.store.read_model_url(asset_key)
            if artifact_url:
                logger.debug("Cache hit", asset_key=asset_key, filename=frame.filename)
                return FrameResult(filename=frame.filename, asset_key=asset_key, cached=True, artifact_url=artifact_url)

            frame_path = self._frame_path(frame)
            FileValidator.validate_frame_image(frame_path, frame.filename)
            async with aiofiles.open(frame_path, "rb") as f:
                image_bytes = await f.read()

            request_id = await service.submit(to_data_uri(image_bytes, frame.filename))
            return FrameResult(filename=frame.filename, asset_key=asset_key, cached=False, request_id=request_id)

        except ValidationException as e:
            error, kind = e.message, ErrorKind.VALIDATION
        except OSError as e:
            error, kind = f"Frame file could not be read: {frame.filename}", ErrorKind.VALIDATION
            logger.debug("Frame read error", filename=frame.filename, error=str(e))
        except GenerationError as e:
            error, kind = e.message, ErrorKind.SUBMISSION
        except Exception as e:
            error, kind = str(e) or "Processing failed", ErrorKind.SUBMISSION

        logger.error(
            f"Failed to process frame {frame.filename}", asset_key=asset_key, error=error, error_kind=kind.value
        )
        return FrameResult(filename=frame.filename, asset_key=asset_key, cached=False, error=error, error_kind=kind)

    async def submit_image(self, image_bytes: bytes, filename: str, asset_key: str | None = None) -> GenerationJob:
        """
        Submit a single uploaded image as a generation job.

        Raises:
            ValidationException: If the image is empty
            ConfigurationError: If no generation service is configured
            SubmissionError: If the queue rejects the request
        """
        if not image_bytes:
            raise ValidationException("The uploaded image is empty, please select again.", field="image", code="EMPTY_FILE")

        service = self._require_service()
        key = derive_asset_key(asset_key or filename)
        request_id = await service.submit(to_data_uri(image_bytes, filename))
        logger.info("Submitted single image", asset_key=key, request_id=request_id)
        return GenerationJob(request_id=request_id, asset_key=key)
