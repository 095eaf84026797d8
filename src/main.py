#!/usr/bin/env python3
"""
Main entry point for the video-to-3D asset generator.

Configures logging, builds the application and launches the Gradio web app.
"""

import sys

import structlog

from src.core.app import VideoAssetApp
from src.ui import create_app_interface
from src.utils.env_config import get_settings
from src.utils.logging_config import configure_logging

logger = structlog.get_logger(__name__)


def main():
    """Main entry point for the application."""
    settings = get_settings()
    configure_logging(settings.log_level, settings.log_json_format)

    try:
        # Async components are initialized on Gradio's event loop when the page loads
        app = VideoAssetApp(settings)
        interface = create_app_interface(app)

        gradio_config = settings.get_gradio_config()
        storage = settings.get_storage_config()

        logger.info("Launching Gradio interface", host=gradio_config["host"], port=gradio_config["port"])
        interface.launch(
            server_name=gradio_config["host"],
            server_port=gradio_config["port"],
            share=gradio_config["share"],
            debug=gradio_config["debug"],
            show_error=gradio_config["show_error"],
            allowed_paths=[str(storage["generated_dir"]), str(storage["temp_dir"])],
            quiet=False,
        )

    except KeyboardInterrupt:
        logger.info("Application interrupted by user")
    except Exception as e:
        logger.error("Application failed to start", error=str(e))
        sys.exit(1)


if __name__ == "__main__":
    main()
