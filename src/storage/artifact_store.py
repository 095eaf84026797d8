"""
On-disk store for generated 3D artifacts.

Artifacts live in one flat directory keyed by asset key: ``<key>.zip`` holds
the bundle returned by the generation service and ``<key>.glb`` the model
extracted from it. Only the model file counts as a cache hit; an archive on
its own means extraction still has to happen.
"""

import io
import os
import uuid
import zipfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import aiofiles
import structlog

from src.generators.base import ExtractionError

logger = structlog.get_logger(__name__)


@dataclass
class MaterializedArtifact:
    """Paths written (or found) for one asset key."""

    archive_path: Path
    model_path: Optional[Path]


class ArtifactStore:
    """Maps asset keys to archives and extracted models on disk."""

    def __init__(self, root_dir: Path, public_prefix: str = "/generated", model_suffix: str = ".glb"):
        self.root_dir = Path(root_dir)
        self.root_dir.mkdir(parents=True, exist_ok=True)
        self.public_prefix = "/" + public_prefix.strip("/")
        self.model_suffix = model_suffix.lower()

    def archive_path(self, key: str) -> Path:
        return self.root_dir / f"{key}.zip"

    def model_path(self, key: str) -> Path:
        return self.root_dir / f"{key}{self.model_suffix}"

    def public_url(self, path: Path) -> str:
        return f"{self.public_prefix}/{path.name}"

    def exists(self, key: str) -> bool:
        """True when the extracted model for ``key`` is on disk."""
        return self.model_path(key).is_file()

    def has_archive(self, key: str) -> bool:
        return self.archive_path(key).is_file()

    def read_model_url(self, key: str) -> Optional[str]:
        """Public URL of the stored model, or None on a cache miss."""
        if not self.exists(key):
            return None
        return self.public_url(self.model_path(key))

    def read_archive_url(self, key: str) -> Optional[str]:
        if not self.has_archive(key):
            return None
        return self.public_url(self.archive_path(key))

    def extract_model_entry(self, archive_bytes: bytes, key: Optional[str] = None) -> bytes:
        """Return the first model-format entry of an archive."""
        try:
            with zipfile.ZipFile(io.BytesIO(archive_bytes)) as archive:
                for name in archive.namelist():
                    if name.lower().endswith(self.model_suffix) and not name.endswith("/"):
                        return archive.read(name)
        except (zipfile.BadZipFile, zipfile.LargeZipFile, OSError, ValueError) as e:
            raise ExtractionError(f"Archive could not be opened: {e}", asset_key=key, original_exception=e) from e

        raise ExtractionError(f"No {self.model_suffix} file found in archive", asset_key=key)

    async def _write_atomic(self, target: Path, data: bytes) -> None:
        # Concurrent writers of the same key produce identical bytes; the rename keeps readers from seeing a partial file
        temp_path = target.with_name(f".{target.name}.{uuid.uuid4().hex[:8]}.tmp")
        try:
            async with aiofiles.open(temp_path, "wb") as f:
                await f.write(data)
            os.replace(temp_path, target)
        finally:
            if temp_path.exists():
                temp_path.unlink()

    async def materialize(self, key: str, archive_bytes: bytes) -> MaterializedArtifact:
        """
        Persist an archive and its extracted model for ``key``.

        Existing files are never rewritten, so repeated calls with the same
        bytes are no-ops. A failed extraction keeps the archive and reports
        ``model_path=None``.
        """
        self.root_dir.mkdir(parents=True, exist_ok=True)
        archive_path = self.archive_path(key)
        model_path = self.model_path(key)

        if not archive_path.exists():
            await self._write_atomic(archive_path, archive_bytes)
            logger.info("Stored model archive", asset_key=key, bytes=len(archive_bytes))

        if not model_path.exists():
            try:
                model_bytes = self.extract_model_entry(archive_bytes, key)
            except ExtractionError as e:
                logger.error("Model extraction failed, keeping archive only", asset_key=key, error=e.message)
                return MaterializedArtifact(archive_path=archive_path, model_path=None)

            if not model_path.exists():
                await self._write_atomic(model_path, model_bytes)
                logger.info("Extracted model from archive", asset_key=key, bytes=len(model_bytes))

        return MaterializedArtifact(archive_path=archive_path, model_path=model_path)

    async def reextract(self, key: str) -> Optional[Path]:
        """Retry extraction from an archive already on disk."""
        if self.exists(key):
            return self.model_path(key)
        if not self.has_archive(key):
            return None

        async with aiofiles.open(self.archive_path(key), "rb") as f:
            archive_bytes = await f.read()
        artifact = await self.materialize(key, archive_bytes)
        return artifact.model_path

    def get_store_stats(self) -> Dict[str, Any]:
        """Get store statistics."""
        models = list(self.root_dir.glob(f"*{self.model_suffix}"))
        archives = list(self.root_dir.glob("*.zip"))
        total_size = sum(p.stat().st_size for p in models + archives)
        return {
            "model_count": len(models),
            "archive_count": len(archives),
            "total_size_bytes": total_size,
            "total_size_mb": round(total_size / (1024 * 1024), 2),
        }
