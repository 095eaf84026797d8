"""
UI module for the video-to-3D asset generator.

This module provides the Gradio web interface over the application object.
"""

from .app import create_app_interface

__all__ = [
    "create_app_interface",
]
