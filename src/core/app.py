from dataclasses import dataclass, field
from pathlib import Path

import structlog

from src.core.batch_orchestrator import BatchOrchestrator
from src.core.batch_session import BatchSession
from src.core.events import BatchEvent, EventQueue
from src.core.frame_extractor import FrameExtractor
from src.core.job_status import JobStatusPoller, JobStatusService
from src.factories.generation_service_factory import create_generation_service
from src.generators.base import ConfigurationError
from src.generators.seed3d_integration import FalSeed3DIntegration
from src.models.asset_model import ExtractionResult, FrameInfo, FrameResult, GenerationJob, JobStatusPayload, ModelRecord
from src.storage.artifact_store import ArtifactStore
from src.utils.env_config import AppSettings, get_settings

logger = structlog.get_logger(__name__)


@dataclass
class BatchRun:
    """Everything produced by processing one video."""

    video_name: str
    duration: float
    frames: list[FrameInfo]
    results: list[FrameResult]
    session: BatchSession | None = None
    records: list[ModelRecord] = field(default_factory=list)


class VideoAssetApp:
    """Main application class for the video-to-3D asset generator."""

    def __init__(self, settings: AppSettings | None = None) -> None:
        """Initialize the application."""
        self.settings: AppSettings = settings or get_settings()

        # Initialize directories
        for directory in self.settings.get_storage_config().values():
            directory.mkdir(parents=True, exist_ok=True)

        self.store = ArtifactStore(self.settings.generated_dir)
        self.extractor = FrameExtractor(
            frames_dir=self.settings.frames_dir,
            temp_dir=self.settings.temp_dir,
            interval_seconds=self.settings.frame_interval,
            ffmpeg_binary=self.settings.ffmpeg_binary,
            ffprobe_binary=self.settings.ffprobe_binary,
        )
        self.events = EventQueue()

        # Built in initialize()
        self.service: FalSeed3DIntegration | None = None
        self.orchestrator: BatchOrchestrator | None = None
        self.status_service: JobStatusService | None = None
        self.poller: JobStatusPoller | None = None

        self.active_session: BatchSession | None = None
        self.last_run: BatchRun | None = None
        self.is_initialized = False

    async def initialize(self) -> None:
        """Initialize all components asynchronously."""
        if self.is_initialized:
            return

        logger.info("Initializing Video Asset App")

        self.service = create_generation_service(self.settings)
        if self.service:
            await self.service.initialize()
            logger.info("Seed3D integration initialized successfully")
        else:
            logger.warning("No FAL_KEY provided, generation requests will be rejected")

        self.orchestrator = BatchOrchestrator(self.store, self.service, self.settings.frames_dir)
        if self.service:
            self.status_service = JobStatusService(self.service, self.store)
            self.poller = JobStatusPoller(
                self.status_service,
                fallback_dir=self.settings.temp_dir / "models",
                max_query_failures=self.settings.max_query_failures,
            )

        self.is_initialized = True
        logger.info("App initialization completed successfully", **self.store.get_store_stats())

    def _require_orchestrator(self) -> BatchOrchestrator:
        if self.orchestrator is None:
            raise RuntimeError("Application not initialized")
        return self.orchestrator

    async def process_video(self, video_path: Path, video_name: str | None = None) -> BatchRun:
        """
        Extract frames from a video on disk and start generating their models.

        The previous batch's polling is cancelled and its records dropped.
        """
        self._require_orchestrator()
        self.cancel_active_session()

        extraction = await self.extractor.extract_frames(Path(video_path), video_name)
        return await self._process_extraction(extraction)

    async def process_upload(self, data: bytes, original_name: str) -> BatchRun:
        """Same as process_video for raw uploaded bytes."""
        self._require_orchestrator()
        self.cancel_active_session()

        extraction = await self.extractor.extract_upload(data, original_name)
        return await self._process_extraction(extraction)

    async def _process_extraction(self, extraction: ExtractionResult) -> BatchRun:
        orchestrator = self._require_orchestrator()
        results = await orchestrator.process_batch(extraction.frames)

        records = [
            ModelRecord.from_frame_result(result, index, self.settings.frame_interval)
            for index, result in enumerate(results)
        ]

        run = BatchRun(
            video_name=extraction.video_name,
            duration=extraction.duration,
            frames=extraction.frames,
            results=results,
            records=records,
        )
        self.last_run = run

        if self.poller is not None and any(r.needs_polling for r in results):
            session = BatchSession(records, self.poller, events=self.events, **self._session_options())
            self.active_session = session
            run.session = session
            session.start()
        else:
            logger.info("Nothing to poll for this batch", video_name=extraction.video_name)

        return run

    def _session_options(self) -> dict[str, float]:
        polling = self.settings.get_polling_config()
        return {"poll_interval": polling["poll_interval"], "max_poll_duration": polling["max_poll_duration"]}

    async def submit_image(self, image_bytes: bytes, filename: str, asset_key: str | None = None) -> GenerationJob:
        """Submit a single image for generation."""
        return await self._require_orchestrator().submit_image(image_bytes, filename, asset_key)

    async def poll_job(self, request_id: str, asset: str | None) -> JobStatusPayload:
        """Report a job's status, storing its model once it completes."""
        self._require_orchestrator()
        if self.status_service is None:
            raise ConfigurationError("FAL_KEY is missing on the server.", error_code="SERVICE_NOT_CONFIGURED")
        return await self.status_service.poll_job(request_id, asset)

    def cancel_active_session(self) -> bool:
        """Stop polling the current batch. Returns True if one was active."""
        session = self.active_session
        self.active_session = None
        self.last_run = None
        self.events.history.clear()
        if session is None or session.cancelled:
            return False
        session.cancel()
        return True

    def current_records(self) -> list[ModelRecord]:
        """Records of the latest batch, live while it is being polled."""
        if self.active_session is not None:
            return self.active_session.snapshot()
        if self.last_run is not None:
            return [r.model_copy() for r in self.last_run.records]
        return []

    def event_log(self) -> list[BatchEvent]:
        return self.events.history

    async def shutdown(self) -> None:
        """Shutdown the application and clean up resources."""
        logger.info("Shutting down Video Asset App")

        session = self.active_session
        self.cancel_active_session()
        if session is not None:
            await session.wait_closed()

        if self.service:
            await self.service.cleanup()

        logger.info("Application shutdown completed")
