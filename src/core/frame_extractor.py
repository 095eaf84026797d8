"""
Frame extraction from uploaded videos.

Probes a video's duration with ffprobe and grabs one still frame every
``interval_seconds`` with ffmpeg. Frames are written as
``<video-name>_<seconds>.jpg`` into the frames directory.
"""

import asyncio
import json
import re
import time
from pathlib import Path

import aiofiles
import structlog

from src.generators.base import FrameExtractionError
from src.models.asset_model import ExtractionResult, FrameInfo
from src.utils.validators import FileValidator

logger = structlog.get_logger(__name__)

_UNSAFE_FILENAME_CHARS = re.compile(r"[^a-zA-Z0-9.-]")


class FrameExtractor:
    """Turns a video file into a list of still frames."""

    def __init__(
        self,
        frames_dir: Path,
        temp_dir: Path,
        interval_seconds: int = 2,
        ffmpeg_binary: str = "ffmpeg",
        ffprobe_binary: str = "ffprobe",
        public_prefix: str = "/frames",
    ):
        self.frames_dir = Path(frames_dir)
        self.temp_dir = Path(temp_dir)
        self.interval_seconds = interval_seconds
        self.ffmpeg_binary = ffmpeg_binary
        self.ffprobe_binary = ffprobe_binary
        self.public_prefix = "/" + public_prefix.strip("/")

    async def _run(self, *cmd: str) -> tuple[int, str, str]:
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd, stdout=asyncio.subprocess.PIPE, stderr=asyncio.subprocess.PIPE
            )
        except FileNotFoundError as e:
            raise FrameExtractionError(f"{cmd[0]} is not installed or not on PATH", original_exception=e) from e

        stdout, stderr = await process.communicate()
        return process.returncode, stdout.decode(errors="replace"), stderr.decode(errors="replace")

    async def probe_duration(self, video_path: Path) -> float:
        """Return the video's duration in seconds, 0 when unknown."""
        returncode, stdout, stderr = await self._run(
            self.ffprobe_binary,
            "-v", "error",
            "-show_entries", "format=duration",
            "-of", "json",
            str(video_path),
        )

        if returncode != 0:
            logger.error(f"FFprobe failed: {stderr}")
            raise FrameExtractionError("Failed to analyze video file", details={"stderr": stderr})

        try:
            duration_data = json.loads(stdout)
            return float(duration_data.get("format", {}).get("duration") or 0)
        except (ValueError, AttributeError) as e:
            raise FrameExtractionError(f"Unreadable ffprobe output: {e}", original_exception=e) from e

    async def extract_frame(self, video_path: Path, output_path: Path, timestamp: float) -> None:
        """Write the frame at ``timestamp`` seconds to ``output_path``."""
        returncode, _, stderr = await self._run(
            self.ffmpeg_binary,
            "-y",
            "-ss", str(timestamp),
            "-i", str(video_path),
            "-frames:v", "1",
            str(output_path),
        )
        if returncode != 0 or not output_path.exists():
            logger.error(f"FFmpeg failed at {timestamp}s: {stderr}")
            raise FrameExtractionError(
                f"Failed to extract frame at {timestamp}s", details={"timestamp": timestamp, "stderr": stderr}
            )

    async def extract_frames(self, video_path: Path, video_name: str | None = None) -> ExtractionResult:
        """
        Extract one frame every ``interval_seconds`` from a video.

        Raises:
            FrameExtractionError: If the duration cannot be determined, ffmpeg
                fails, or no frames were produced
        """
        video_path = Path(video_path)
        video_name = video_name or video_path.stem

        duration = await self.probe_duration(video_path)
        if duration <= 0:
            raise FrameExtractionError("Unable to get video duration, please ensure you upload a valid video file")

        self.frames_dir.mkdir(parents=True, exist_ok=True)
        frames: list[FrameInfo] = []

        timestamp = 0
        while timestamp < duration:
            filename = f"{video_name}_{timestamp}.jpg"
            frame_path = self.frames_dir / filename
            await self.extract_frame(video_path, frame_path, timestamp)
            frames.append(
                FrameInfo(
                    timestamp=timestamp,
                    filename=filename,
                    url=f"{self.public_prefix}/{filename}",
                    path=str(frame_path),
                )
            )
            timestamp += self.interval_seconds

        if not frames:
            raise FrameExtractionError("Failed to extract any video frames")

        logger.info("Extracted video frames", video_name=video_name, duration=duration, frame_count=len(frames))
        return ExtractionResult(video_name=video_name, duration=duration, frames=frames)

    async def save_upload(self, data: bytes, original_name: str) -> Path:
        """Store an uploaded video in the temp directory under a collision-free name."""
        FileValidator.validate_video_upload(original_name, data)

        self.temp_dir.mkdir(parents=True, exist_ok=True)
        safe_name = _UNSAFE_FILENAME_CHARS.sub("_", Path(original_name).name)
        target = self.temp_dir / f"{int(time.time() * 1000)}_{safe_name}"

        async with aiofiles.open(target, "wb") as f:
            await f.write(data)
        return target

    async def extract_upload(self, data: bytes, original_name: str) -> ExtractionResult:
        """Save an upload, extract its frames and remove the temporary copy."""
        temp_path = await self.save_upload(data, original_name)
        video_name = Path(original_name).stem

        try:
            return await self.extract_frames(temp_path, video_name)
        finally:
            try:
                temp_path.unlink(missing_ok=True)
            except OSError as e:
                logger.error(f"Failed to clean up temp file: {e}")
