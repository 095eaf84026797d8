"""
Local storage for generated 3D artifacts.

Archives returned by the generation service and the models extracted from
them are kept on disk, keyed by asset key.
"""

from .artifact_store import ArtifactStore, MaterializedArtifact

__all__ = [
    "ArtifactStore",
    "MaterializedArtifact",
]
