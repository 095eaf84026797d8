"""
Input validation for the video-to-3D asset pipeline.

This module provides validation for batch inputs, uploaded videos and the
frame images that get submitted to the generation service.
"""

from pathlib import Path
from typing import Any

from PIL import Image, UnidentifiedImageError

from src.models.asset_model import FrameInfo


# Configuration and Constants


class ValidationConfig:
    """Configuration for validation parameters."""

    # File upload limits (in bytes)
    MAX_IMAGE_SIZE = 50 * 1024 * 1024  # 50MB
    MAX_VIDEO_SIZE = 500 * 1024 * 1024  # 500MB

    # Batch limits
    MAX_FRAMES_PER_BATCH = 500

    # Allowed file formats
    ALLOWED_IMAGE_FORMATS = {".jpg", ".jpeg", ".png", ".webp"}
    ALLOWED_VIDEO_FORMATS = {".mp4", ".mov", ".webm", ".mkv", ".avi", ".m4v"}


# Custom Exceptions


class ValidationException(Exception):
    """Base exception for validation errors."""

    def __init__(self, message: str, field: str | None = None, code: str | None = None):
        self.message = message
        self.field = field
        self.code = code
        super().__init__(message)


class FileValidationException(ValidationException):
    """Exception for file validation failures."""

    pass


# Standardized Error Messages


class ErrorMessages:
    """Standardized error messages for consistent user experience."""

    NO_FRAMES = "Please provide a valid frame list (frames)"
    TOO_MANY_FRAMES = "A batch cannot contain more than {max_frames} frames"
    FRAME_MISSING = "Frame file does not exist: {filename}"
    FILE_EMPTY = "Uploaded file is empty, please select again"
    FILE_TOO_LARGE = "File size ({size}) exceeds maximum allowed size ({max_size})"
    FILE_INVALID_FORMAT = "File format '{format}' is not supported. Allowed formats: {allowed}"
    IMAGE_UNREADABLE = "Frame image could not be decoded: {filename}"


# Validators


class FrameValidator:
    """Validates the frame list handed to a batch submission."""

    @staticmethod
    def validate_frames(frames: Any) -> list[FrameInfo]:
        """
        Validate and normalise a batch's frame list.

        Accepts FrameInfo instances or plain mappings with at least
        ``filename`` and ``url``.

        Raises:
            ValidationException: If the list is missing, empty or too long
        """
        if not isinstance(frames, (list, tuple)) or not frames:
            raise ValidationException(ErrorMessages.NO_FRAMES, field="frames", code="NO_FRAMES")

        if len(frames) > ValidationConfig.MAX_FRAMES_PER_BATCH:
            raise ValidationException(
                ErrorMessages.TOO_MANY_FRAMES.format(max_frames=ValidationConfig.MAX_FRAMES_PER_BATCH),
                field="frames",
                code="TOO_MANY_FRAMES",
            )

        normalised: list[FrameInfo] = []
        for index, frame in enumerate(frames):
            if isinstance(frame, FrameInfo):
                normalised.append(frame)
            elif isinstance(frame, dict) and frame.get("filename"):
                normalised.append(
                    FrameInfo(
                        timestamp=frame.get("timestamp", 0.0),
                        filename=frame["filename"],
                        url=frame.get("url", ""),
                        path=frame.get("path"),
                    )
                )
            else:
                raise ValidationException(
                    f"Frame {index} is missing a filename", field=f"frames[{index}]", code="INVALID_FRAME"
                )
        return normalised


class FileValidator:
    """Handles file validation for frame images and uploaded videos."""

    @staticmethod
    def validate_frame_image(file_path: str | Path, filename: str | None = None) -> dict[str, Any]:
        """
        Validate a frame image before it is read and submitted.

        Args:
            file_path: Path to the frame image
            filename: Name to report in error messages

        Returns:
            Dict with file information

        Raises:
            FileValidationException: If the frame is missing, empty, too large,
                in an unsupported format or not a decodable image
        """
        file_path = Path(file_path)
        filename = filename or file_path.name

        if not file_path.is_file():
            raise FileValidationException(
                ErrorMessages.FRAME_MISSING.format(filename=filename), field="frame", code="FILE_NOT_FOUND"
            )

        file_size = file_path.stat().st_size
        if file_size == 0:
            raise FileValidationException(ErrorMessages.FILE_EMPTY, field="frame", code="EMPTY_FILE")

        if file_size > ValidationConfig.MAX_IMAGE_SIZE:
            raise FileValidationException(
                ErrorMessages.FILE_TOO_LARGE.format(
                    size=FileValidator._format_file_size(file_size),
                    max_size=FileValidator._format_file_size(ValidationConfig.MAX_IMAGE_SIZE),
                ),
                field="frame",
                code="FILE_TOO_LARGE",
            )

        extension = file_path.suffix.lower()
        if extension not in ValidationConfig.ALLOWED_IMAGE_FORMATS:
            raise FileValidationException(
                ErrorMessages.FILE_INVALID_FORMAT.format(
                    format=extension, allowed=", ".join(sorted(ValidationConfig.ALLOWED_IMAGE_FORMATS))
                ),
                field="frame",
                code="INVALID_FORMAT",
            )

        try:
            with Image.open(file_path) as image:
                image.verify()
        except (UnidentifiedImageError, OSError, SyntaxError) as e:
            raise FileValidationException(
                ErrorMessages.IMAGE_UNREADABLE.format(filename=filename), field="frame", code="INVALID_IMAGE"
            ) from e

        return {
            "path": str(file_path),
            "size": file_size,
            "extension": extension,
            "mime_type": FileValidator.image_mime_type(file_path.name),
        }

    @staticmethod
    def validate_video_upload(file_name: str, data: bytes) -> str:
        """Validate an uploaded video's name and size, returning its extension."""
        if not data:
            raise FileValidationException(ErrorMessages.FILE_EMPTY, field="video", code="EMPTY_FILE")

        if len(data) > ValidationConfig.MAX_VIDEO_SIZE:
            raise FileValidationException(
                ErrorMessages.FILE_TOO_LARGE.format(
                    size=FileValidator._format_file_size(len(data)),
                    max_size=FileValidator._format_file_size(ValidationConfig.MAX_VIDEO_SIZE),
                ),
                field="video",
                code="FILE_TOO_LARGE",
            )

        extension = Path(file_name).suffix.lower()
        if extension not in ValidationConfig.ALLOWED_VIDEO_FORMATS:
            raise FileValidationException(
                ErrorMessages.FILE_INVALID_FORMAT.format(
                    format=extension or "(none)", allowed=", ".join(sorted(ValidationConfig.ALLOWED_VIDEO_FORMATS))
                ),
                field="video",
                code="INVALID_FORMAT",
            )
        return extension

    @staticmethod
    def image_mime_type(filename: str) -> str:
        """MIME type used in the data URI for a frame image."""
        extension = Path(filename).suffix.lower()
        if extension == ".png":
            return "image/png"
        if extension == ".webp":
            return "image/webp"
        return "image/jpeg"

    @staticmethod
    def _format_file_size(size_bytes: int) -> str:
        """Format file size in human-readable format."""
        size = float(size_bytes)
        for unit in ["B", "KB", "MB", "GB"]:
            if size < 1024.0:
                return f"{size:.1f} {unit}"
            size /= 1024.0
        return f"{size:.1f} TB"
