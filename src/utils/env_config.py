"""
Environment-based configuration system for the video-to-3D asset generator.

This module provides a simple configuration system based entirely on environment
variables, optionally seeded from a ``.env`` file at the project root.
"""

import os
from pathlib import Path
from typing import Any, Optional
from dataclasses import dataclass, field
from dotenv import load_dotenv
import logging

from src.generators.configs import DEFAULT_QUEUE_URL, DEFAULT_SEED3D_ENDPOINT

logger = logging.getLogger(__name__)

# Load environment variables from .env file
env_file = Path(__file__).parent.parent.parent / ".env"
if env_file.exists():
    load_dotenv(env_file, override=True)
    logger.info(f"Loaded environment variables from: {env_file}")


def get_env_bool(key: str, default: bool = False) -> bool:
    """Get boolean value from environment variable."""
    value = os.getenv(key, "").lower()
    return value in ("true", "1", "yes", "on") if value else default


def get_env_int(key: str, default: int = 0) -> int:
    """Get integer value from environment variable."""
    try:
        return int(os.getenv(key, str(default)))
    except ValueError:
        return default


def get_env_float(key: str, default: float = 0.0) -> float:
    """Get float value from environment variable."""
    try:
        return float(os.getenv(key, str(default)))
    except ValueError:
        return default


@dataclass
class AppSettings:
    """Application settings from environment variables."""

    # Environment
    environment: str = field(default_factory=lambda: os.getenv("ENVIRONMENT", "development"))
    debug: bool = field(default_factory=lambda: get_env_bool("DEBUG", True))

    # Application info (constants - not configurable via environment)
    app_name: str = "Video to 3D Asset Generator"
    app_version: str = "0.1.0"

    # Generation service configuration
    fal_key: Optional[str] = field(default_factory=lambda: os.getenv("FAL_KEY"))
    fal_queue_url: str = field(default_factory=lambda: os.getenv("FAL_QUEUE_URL", DEFAULT_QUEUE_URL))
    seed3d_endpoint: str = field(default_factory=lambda: os.getenv("SEED3D_ENDPOINT", DEFAULT_SEED3D_ENDPOINT))
    seed3d_timeout: int = field(default_factory=lambda: get_env_int("SEED3D_TIMEOUT", 120))
    download_retry_attempts: int = field(default_factory=lambda: get_env_int("DOWNLOAD_RETRY_ATTEMPTS", 2))

    # Polling configuration
    poll_interval: float = field(default_factory=lambda: get_env_float("POLL_INTERVAL", 5.0))
    max_poll_duration: float = field(default_factory=lambda: get_env_float("MAX_POLL_DURATION", 900.0))
    max_query_failures: int = field(default_factory=lambda: get_env_int("MAX_QUERY_FAILURES", 3))

    # Frame extraction configuration
    frame_interval: int = field(default_factory=lambda: get_env_int("FRAME_INTERVAL", 2))
    ffmpeg_binary: str = field(default_factory=lambda: os.getenv("FFMPEG_BINARY", "ffmpeg"))
    ffprobe_binary: str = field(default_factory=lambda: os.getenv("FFPROBE_BINARY", "ffprobe"))

    # Storage layout
    data_dir: str = field(default_factory=lambda: os.getenv("DATA_DIR", "./public"))

    # Gradio Configuration
    gradio_host: str = field(default_factory=lambda: os.getenv("GRADIO_HOST", "127.0.0.1"))
    gradio_port: int = field(default_factory=lambda: get_env_int("GRADIO_PORT", 7860))
    gradio_debug: bool = field(default_factory=lambda: get_env_bool("GRADIO_DEBUG"))
    gradio_share: bool = field(default_factory=lambda: get_env_bool("GRADIO_SHARE", False))
    gradio_show_error: bool = field(default_factory=lambda: get_env_bool("GRADIO_SHOW_ERROR", True))
    # These are constants - not configurable via environment
    gradio_title: str = "Video to 3D Asset Generator"
    gradio_description: str = "Turn video frames into 3D models"

    # Logging Configuration
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))
    log_json_format: bool = field(default_factory=lambda: get_env_bool("LOG_JSON_FORMAT", True))

    def __post_init__(self):
        """Validate configuration after initialization."""
        # Set debug based on environment if not explicitly set
        if self.environment == "development" and not os.getenv("DEBUG"):
            self.debug = True
        elif self.environment == "production" and not os.getenv("DEBUG"):
            self.debug = False

        if not self.fal_key:
            logger.warning("FAL_KEY is not set. Generation will fail until it is configured.")

        if self.poll_interval <= 0:
            logger.warning(f"Invalid POLL_INTERVAL {self.poll_interval}, falling back to 5 seconds")
            self.poll_interval = 5.0

        if self.frame_interval <= 0:
            logger.warning(f"Invalid FRAME_INTERVAL {self.frame_interval}, falling back to 2 seconds")
            self.frame_interval = 2

    @property
    def generated_dir(self) -> Path:
        return Path(self.data_dir) / "generated"

    @property
    def frames_dir(self) -> Path:
        return Path(self.data_dir) / "frames"

    @property
    def temp_dir(self) -> Path:
        return Path(self.data_dir) / "temp"

    def get_generation_config(self) -> dict[str, Any]:
        """Get generation service configuration as a dictionary."""
        return {
            "api_key": self.fal_key,
            "base_url": self.fal_queue_url,
            "endpoint": self.seed3d_endpoint,
            "timeout_seconds": self.seed3d_timeout,
            "download_retry_attempts": self.download_retry_attempts,
        }

    def get_polling_config(self) -> dict[str, Any]:
        """Get polling configuration as a dictionary."""
        return {
            "poll_interval": self.poll_interval,
            "max_poll_duration": self.max_poll_duration,
            "max_query_failures": self.max_query_failures,
        }

    def get_storage_config(self) -> dict[str, Any]:
        """Get storage layout as a dictionary."""
        return {
            "generated_dir": self.generated_dir,
            "frames_dir": self.frames_dir,
            "temp_dir": self.temp_dir,
        }

    def get_gradio_config(self) -> dict[str, Any]:
        """Get Gradio configuration as a dictionary."""
        return {
            "host": self.gradio_host,
            "port": self.gradio_port,
            "debug": self.gradio_debug,
            "share": self.gradio_share,
            "show_error": self.gradio_show_error,
            "title": self.gradio_title,
            "description": self.gradio_description,
        }


# Global settings instance
_settings: Optional[AppSettings] = None


def get_settings() -> AppSettings:
    """Get the global application settings instance."""
    global _settings
    if _settings is None:
        _settings = AppSettings()
        logger.info(f"Loaded settings for environment: {_settings.environment}")
    return _settings


def reload_settings() -> AppSettings:
    """Reload the global application settings."""
    global _settings
    # Force reload of environment variables
    if env_file.exists():
        load_dotenv(env_file, override=True)
    _settings = AppSettings()
    logger.info(f"Reloaded settings for environment: {_settings.environment}")
    return _settings
