"""
Enums for the generation service integration.

This module contains enums for service providers and service health.
"""

from enum import Enum


class ServiceProvider(str, Enum):
    """Available image-to-3D service providers."""

    FAL_SEED3D = "fal_seed3d"


class ServiceStatus(str, Enum):
    """Service availability status."""

    AVAILABLE = "available"
    UNAVAILABLE = "unavailable"
    DEGRADED = "degraded"
