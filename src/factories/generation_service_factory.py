"""
Factory for creating the generation service integration.
"""

from src.generators.configs import ServiceConfig
from src.generators.seed3d_integration import FalSeed3DIntegration
from src.utils.env_config import AppSettings


def create_generation_service(settings: AppSettings) -> FalSeed3DIntegration | None:
    """Create the Seed3D integration when a fal.ai key is configured."""
    if not settings.fal_key:
        return None

    config = ServiceConfig(**settings.get_generation_config())
    return FalSeed3DIntegration(config)
