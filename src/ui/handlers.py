"""
Event handlers for the video-to-3D asset generator UI.

This module contains the event handling logic behind the Gradio interface:
uploading a video, refreshing the model table while jobs are polled and
previewing finished models.
"""

from collections import Counter
from pathlib import Path
from urllib.parse import unquote, urlparse

import aiofiles
import structlog

from src.core.app import VideoAssetApp
from src.core.batch_session import batch_summary
from src.generators.base import GenerationError
from src.models.asset_model import ModelRecord, ModelStatus
from src.utils.validators import ValidationException

logger = structlog.get_logger(__name__)

TABLE_HEADERS = ["Frame", "Time (s)", "Status", "Model", "Error"]

STATUS_LABELS = {
    ModelStatus.CACHED: "✓ cached",
    ModelStatus.GENERATING: "⏳ generating",
    ModelStatus.COMPLETED: "✓ completed",
    ModelStatus.FAILED: "✗ failed",
}


def status_banner(message: str, level: str = "success") -> str:
    icon = {"success": "✅", "warning": "⚠️", "error": "❌"}.get(level, "")
    return f'<div class="status-{level}">{icon} {message}</div>'


class UIHandlers:
    """Event handlers for UI interactions."""

    def __init__(self, app: VideoAssetApp):
        """Initialize handlers with the application instance."""
        self.app = app

    async def startup(self) -> str:
        """Initialize the app on the UI's event loop."""
        await self.app.initialize()
        if self.app.service is None:
            return status_banner("FAL_KEY is missing on the server.", "error")
        return status_banner("Ready. Upload a video to begin.")

    async def process_video(self, video_path: str | None) -> tuple[str, list[list[str]], str, bool]:
        """Extract frames from the uploaded video and start generation."""
        if not video_path:
            return status_banner("Please upload a video first.", "warning"), [], "", False

        try:
            await self.app.initialize()
            async with aiofiles.open(video_path, "rb") as f:
                data = await f.read()

            run = await self.app.process_upload(data, Path(video_path).name)

        except (GenerationError, ValidationException) as e:
            logger.warning("Video processing failed", error=e.message)
            return status_banner(e.message, "error"), [], "", False
        except OSError as e:
            logger.error("Uploaded video could not be read", error=str(e))
            return status_banner("The uploaded video could not be read.", "error"), [], "", False

        polling = run.session is not None
        message = f"Extracted {len(run.frames)} frames from {run.video_name} ({run.duration:.1f}s)."
        if not polling:
            statuses = [record.status.value for record in run.records]
            message += " " + batch_summary(Counter(statuses))

        return status_banner(message), self.table_rows(), self.event_text(), polling

    def refresh(self) -> tuple[list[list[str]], str, bool]:
        """Poll-timer tick: re-read the current records."""
        session = self.app.active_session
        still_polling = session is not None and session.is_running
        return self.table_rows(), self.event_text(), still_polling

    def cancel(self) -> tuple[str, bool]:
        if self.app.cancel_active_session():
            return status_banner("Generation cancelled.", "warning"), False
        return status_banner("No active generation to cancel.", "warning"), False

    def table_rows(self) -> list[list[str]]:
        return [
            [
                record.filename,
                f"{record.timestamp:g}",
                STATUS_LABELS[record.status],
                record.artifact_url or "",
                record.error or "",
            ]
            for record in self.app.current_records()
        ]

    def event_text(self) -> str:
        return "\n".join(event.message for event in self.app.event_log())

    def ready_assets(self) -> list[str]:
        """Asset keys whose model can be previewed."""
        return [r.asset_key for r in self.app.current_records() if self._model_file(r) is not None]

    def preview_model(self, asset_key: str | None) -> str | None:
        if not asset_key:
            return None
        for record in self.app.current_records():
            if record.asset_key == asset_key:
                path = self._model_file(record)
                return str(path) if path else None
        return None

    def _model_file(self, record: ModelRecord) -> Path | None:
        if record.status not in (ModelStatus.CACHED, ModelStatus.COMPLETED):
            return None
        if self.app.store.exists(record.asset_key):
            return self.app.store.model_path(record.asset_key)
        if record.artifact_url and record.artifact_url.startswith("file://"):
            path = Path(unquote(urlparse(record.artifact_url).path))
            if path.exists():
                return path
        return None
