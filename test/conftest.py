import io
import itertools
import tempfile
import zipfile
from collections.abc import Callable, Generator
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
import structlog
from PIL import Image

from src.generators.base_integration import BaseServiceIntegration
from src.generators.models import RemoteResult, RemoteStatus
from src.models.asset_model import FrameInfo, RemoteJobStatus
from src.storage.artifact_store import ArtifactStore
from src.utils.env_config import AppSettings

GLB_BYTES = b"glTF\x02\x00\x00\x00test-model"


def make_archive(entries: dict[str, bytes]) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        for name, data in entries.items():
            archive.writestr(name, data)
    return buffer.getvalue()


@pytest.fixture
def temp_dir() -> Generator[Path]:
    with tempfile.TemporaryDirectory() as tmpdirname:
        yield Path(tmpdirname)


@pytest.fixture
def store(temp_dir: Path) -> ArtifactStore:
    return ArtifactStore(temp_dir / "generated")


@pytest.fixture
def frames_dir(temp_dir: Path) -> Path:
    path = temp_dir / "frames"
    path.mkdir(parents=True, exist_ok=True)
    return path


@pytest.fixture
def make_frame(frames_dir: Path) -> Callable[[str], FrameInfo]:
    """Write a small real JPEG into the frames dir and describe it."""

    def _make(filename: str) -> FrameInfo:
        path = frames_dir / filename
        Image.new("RGB", (8, 8), color=(200, 30, 30)).save(path, format="PNG" if filename.endswith(".png") else "JPEG")
        return FrameInfo(timestamp=0, filename=filename, url=f"/frames/{filename}", path=str(path))

    return _make


@pytest.fixture
def archive_factory() -> Callable[[dict[str, bytes]], bytes]:
    return make_archive


@pytest.fixture
def glb_bytes() -> bytes:
    return GLB_BYTES


@pytest.fixture
def model_archive() -> bytes:
    return make_archive({"output/readme.txt": b"hello", "output/model.glb": GLB_BYTES})


@pytest.fixture
def fake_service(model_archive: bytes) -> MagicMock:
    request_ids = itertools.count(1)
    service = MagicMock(spec=BaseServiceIntegration)
    service.submit = AsyncMock(side_effect=lambda uri: f"req-{next(request_ids)}")
    service.get_status = AsyncMock(return_value=RemoteStatus(status=RemoteJobStatus.IN_QUEUE))
    service.get_result = AsyncMock(return_value=RemoteResult(model_url="https://cdn.example/model.zip"))
    service.download_archive = AsyncMock(return_value=model_archive)
    service.initialize = AsyncMock()
    service.cleanup = AsyncMock()
    return service


@pytest.fixture
def mock_settings(temp_dir: Path) -> AppSettings:
    return AppSettings(
        fal_key="test-key",
        data_dir=str(temp_dir / "public"),
        poll_interval=0.01,
        max_poll_duration=60.0,
        max_query_failures=3,
    )


@pytest.fixture(autouse=True)
def mock_logger(mocker: Any) -> MagicMock:
    return mocker.patch.object(structlog, "get_logger", return_value=MagicMock())


@pytest.fixture
def async_mock(mocker: Any) -> type[AsyncMock]:
    return AsyncMock
