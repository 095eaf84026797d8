import asyncio
import gc
from collections.abc import Callable
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.core.job_status import JobStatusPoller, JobStatusService
from src.generators.base import TransientQueryError
from src.generators.models import RemoteResult, RemoteStatus
from src.models.asset_model import ErrorKind, ModelRecord, ModelStatus, RemoteJobStatus
from src.storage.artifact_store import ArtifactStore
from src.utils.validators import ValidationException


@pytest.fixture
def status_service(fake_service: MagicMock, store: ArtifactStore) -> JobStatusService:
    return JobStatusService(fake_service, store)


@pytest.fixture
def poller(status_service: JobStatusService, temp_dir: Path) -> JobStatusPoller:
    return JobStatusPoller(status_service, fallback_dir=temp_dir / "fallback", max_query_failures=3)


def generating_record(asset_key: str = "clip-0", request_id: str = "req-1") -> ModelRecord:
    return ModelRecord(
        filename=f"{asset_key.replace('-', '_')}.jpg",
        asset_key=asset_key,
        status=ModelStatus.GENERATING,
        request_id=request_id,
    )


# JobStatusService


@pytest.mark.asyncio
async def test_poll_job_requires_parameters(status_service: JobStatusService) -> None:
    with pytest.raises(ValidationException, match="asset parameter is missing"):
        await status_service.poll_job("req-1", None)
    with pytest.raises(ValidationException, match="requestId parameter is missing"):
        await status_service.poll_job("", "clip-0")


@pytest.mark.asyncio
async def test_poll_job_pending(status_service: JobStatusService, fake_service: MagicMock) -> None:
    fake_service.get_status.return_value = RemoteStatus(
        status=RemoteJobStatus.IN_PROGRESS, position=2, logs=["Loading model"]
    )

    payload = await status_service.poll_job("req-1", "clip_0.jpg")

    assert payload.status == RemoteJobStatus.IN_PROGRESS
    assert payload.position == 2
    assert payload.logs == ["Loading model"]
    assert payload.result is None
    fake_service.get_result.assert_not_awaited()


@pytest.mark.asyncio
async def test_poll_job_failed_uses_default_message(status_service: JobStatusService, fake_service: MagicMock) -> None:
    fake_service.get_status.return_value = RemoteStatus(status=RemoteJobStatus.FAILED)

    payload = await status_service.poll_job("req-1", "clip-0")

    assert payload.status == RemoteJobStatus.FAILED
    assert payload.error == "Seed3D job failed."


@pytest.mark.asyncio
async def test_poll_job_completed_materializes_artifact(
    status_service: JobStatusService, fake_service: MagicMock, store: ArtifactStore, glb_bytes: bytes
) -> None:
    fake_service.get_status.return_value = RemoteStatus(status=RemoteJobStatus.COMPLETED)
    fake_service.get_result.return_value = RemoteResult(model_url="https://cdn.example/m.zip", usage_tokens=42)

    payload = await status_service.poll_job("req-1", "Clip_0.jpg")

    assert payload.result is not None
    assert payload.result.model_url == "https://cdn.example/m.zip"
    assert payload.result.usage_tokens == 42
    assert payload.result.local_model_url == "/generated/clip-0.glb"
    assert payload.result.local_archive_url == "/generated/clip-0.zip"
    assert store.model_path("clip-0").read_bytes() == glb_bytes
    fake_service.download_archive.assert_awaited_once_with("https://cdn.example/m.zip")


@pytest.mark.asyncio
async def test_poll_job_completed_skips_download_when_stored(
    status_service: JobStatusService, fake_service: MagicMock, store: ArtifactStore, model_archive: bytes
) -> None:
    await store.materialize("clip-0", model_archive)
    fake_service.get_status.return_value = RemoteStatus(status=RemoteJobStatus.COMPLETED)

    payload = await status_service.poll_job("req-1", "clip-0")

    assert payload.result.local_model_url == "/generated/clip-0.glb"
    fake_service.download_archive.assert_not_awaited()


@pytest.mark.asyncio
async def test_poll_job_reextracts_stored_archive(
    status_service: JobStatusService, fake_service: MagicMock, store: ArtifactStore, model_archive: bytes
) -> None:
    store.archive_path("clip-0").write_bytes(model_archive)
    fake_service.get_status.return_value = RemoteStatus(status=RemoteJobStatus.COMPLETED)

    payload = await status_service.poll_job("req-1", "clip-0")

    assert payload.result.local_model_url == "/generated/clip-0.glb"
    fake_service.download_archive.assert_not_awaited()


@pytest.mark.asyncio
async def test_concurrent_polls_download_once(
    status_service: JobStatusService, fake_service: MagicMock, store: ArtifactStore
) -> None:
    fake_service.get_status.return_value = RemoteStatus(status=RemoteJobStatus.COMPLETED)

    payloads = await asyncio.gather(*(status_service.poll_job("req-1", "clip-0") for _ in range(3)))

    assert all(p.result.local_model_url == "/generated/clip-0.glb" for p in payloads)
    fake_service.download_archive.assert_awaited_once()


@pytest.mark.asyncio
async def test_materialization_locks_are_released(status_service: JobStatusService, fake_service: MagicMock) -> None:
    fake_service.get_status.return_value = RemoteStatus(status=RemoteJobStatus.COMPLETED)

    await asyncio.gather(*(status_service.poll_job("req-1", key) for key in ("clip-0", "clip-2", "clip-4")))
    gc.collect()

    assert len(status_service._locks) == 0


@pytest.mark.asyncio
async def test_poll_job_extraction_failure_still_reports_remote_url(
    status_service: JobStatusService,
    fake_service: MagicMock,
    store: ArtifactStore,
    archive_factory: Callable[[dict[str, bytes]], bytes],
) -> None:
    fake_service.get_status.return_value = RemoteStatus(status=RemoteJobStatus.COMPLETED)
    fake_service.download_archive.return_value = archive_factory({"notes.txt": b"nothing"})

    payload = await status_service.poll_job("req-1", "clip-0")

    assert payload.result.model_url == "https://cdn.example/model.zip"
    assert payload.result.local_model_url is None
    assert payload.result.local_archive_url == "/generated/clip-0.zip"


@pytest.mark.asyncio
async def test_poll_job_download_error_is_logged_not_raised(
    status_service: JobStatusService, fake_service: MagicMock
) -> None:
    fake_service.get_status.return_value = RemoteStatus(status=RemoteJobStatus.COMPLETED)
    fake_service.download_archive.side_effect = TransientQueryError("Model download failed: HTTP 503")

    payload = await status_service.poll_job("req-1", "clip-0")

    assert payload.status == RemoteJobStatus.COMPLETED
    assert payload.result.local_model_url is None


@pytest.mark.asyncio
async def test_poll_job_query_error_propagates(status_service: JobStatusService, fake_service: MagicMock) -> None:
    fake_service.get_status.side_effect = TransientQueryError("Seed3D query failed: 502")

    with pytest.raises(TransientQueryError):
        await status_service.poll_job("req-1", "clip-0")


# JobStatusPoller


@pytest.mark.asyncio
async def test_check_status_pending_leaves_record_generating(poller: JobStatusPoller) -> None:
    record = await poller.check_status(generating_record())

    assert record.status == ModelStatus.GENERATING
    assert record.poll_attempts == 1


@pytest.mark.asyncio
async def test_check_status_completed_with_local_copy(poller: JobStatusPoller, fake_service: MagicMock) -> None:
    fake_service.get_status.return_value = RemoteStatus(status=RemoteJobStatus.COMPLETED)

    record = await poller.check_status(generating_record())

    assert record.status == ModelStatus.COMPLETED
    assert record.artifact_url == "/generated/clip-0.glb"
    assert record.error is None


@pytest.mark.asyncio
async def test_check_status_remote_failure(poller: JobStatusPoller, fake_service: MagicMock) -> None:
    fake_service.get_status.return_value = RemoteStatus(status=RemoteJobStatus.FAILED, error="NSFW image")

    record = await poller.check_status(generating_record())

    assert record.status == ModelStatus.FAILED
    assert record.error == "NSFW image"
    assert record.error_kind == ErrorKind.REMOTE_FAILURE


@pytest.mark.asyncio
async def test_check_status_falls_back_to_client_side_extraction(
    status_service: JobStatusService, temp_dir: Path, glb_bytes: bytes
) -> None:
    status_service.poll_job = AsyncMock(
        return_value=MagicMock(
            status=RemoteJobStatus.COMPLETED,
            result=MagicMock(local_model_url=None, model_url="https://cdn.example/m.zip"),
        )
    )
    poller = JobStatusPoller(status_service, fallback_dir=temp_dir / "fallback")

    record = await poller.check_status(generating_record())

    target = temp_dir / "fallback" / "clip-0.glb"
    assert record.status == ModelStatus.COMPLETED
    assert record.artifact_url == target.resolve().as_uri()
    assert target.read_bytes() == glb_bytes


@pytest.mark.asyncio
async def test_check_status_fallback_extraction_failure(
    status_service: JobStatusService,
    fake_service: MagicMock,
    temp_dir: Path,
    archive_factory: Callable[[dict[str, bytes]], bytes],
) -> None:
    status_service.poll_job = AsyncMock(
        return_value=MagicMock(
            status=RemoteJobStatus.COMPLETED,
            result=MagicMock(local_model_url=None, model_url="https://cdn.example/m.zip"),
        )
    )
    fake_service.download_archive.return_value = archive_factory({"notes.txt": b"nothing"})
    poller = JobStatusPoller(status_service, fallback_dir=temp_dir / "fallback")

    record = await poller.check_status(generating_record())

    assert record.status == ModelStatus.FAILED
    assert record.error_kind == ErrorKind.EXTRACTION
    assert "No .glb file found" in record.error


@pytest.mark.asyncio
async def test_check_status_fallback_download_failure_is_retried(
    status_service: JobStatusService, fake_service: MagicMock, temp_dir: Path
) -> None:
    status_service.poll_job = AsyncMock(
        return_value=MagicMock(
            status=RemoteJobStatus.COMPLETED,
            result=MagicMock(local_model_url=None, model_url="https://cdn.example/m.zip"),
        )
    )
    fake_service.download_archive.side_effect = TransientQueryError("Model download failed: HTTP 503")
    poller = JobStatusPoller(status_service, fallback_dir=temp_dir / "fallback", max_query_failures=3)

    record = await poller.check_status(generating_record())
    assert record.status == ModelStatus.GENERATING
    assert record.query_failures == 1
    assert record.error is None

    record = await poller.check_status(record)
    record = await poller.check_status(record)
    assert record.status == ModelStatus.FAILED
    assert record.error_kind == ErrorKind.QUERY_ERROR
    assert record.error == "Unable to fetch job status: Model download failed: HTTP 503"


@pytest.mark.asyncio
async def test_check_status_completed_without_model_url(
    status_service: JobStatusService, poller: JobStatusPoller, fake_service: MagicMock
) -> None:
    fake_service.get_status.return_value = RemoteStatus(status=RemoteJobStatus.COMPLETED)
    fake_service.get_result.return_value = RemoteResult(model_url=None)

    record = await poller.check_status(generating_record())

    assert record.status == ModelStatus.FAILED
    assert record.error_kind == ErrorKind.EXTRACTION


@pytest.mark.asyncio
async def test_query_errors_are_retried_then_fail(poller: JobStatusPoller, fake_service: MagicMock) -> None:
    fake_service.get_status.side_effect = TransientQueryError("Seed3D query failed: 502")
    record = generating_record()

    record = await poller.check_status(record)
    assert record.status == ModelStatus.GENERATING and record.query_failures == 1

    record = await poller.check_status(record)
    assert record.status == ModelStatus.GENERATING and record.query_failures == 2

    record = await poller.check_status(record)
    assert record.status == ModelStatus.FAILED
    assert record.error_kind == ErrorKind.QUERY_ERROR
    assert record.error == "Unable to fetch job status: Seed3D query failed: 502"
    assert record.poll_attempts == 3


@pytest.mark.asyncio
async def test_successful_query_resets_failure_count(poller: JobStatusPoller, fake_service: MagicMock) -> None:
    fake_service.get_status.side_effect = [
        TransientQueryError("boom"),
        TransientQueryError("boom"),
        RemoteStatus(status=RemoteJobStatus.IN_QUEUE),
        TransientQueryError("boom"),
    ]
    record = generating_record()
    for _ in range(4):
        record = await poller.check_status(record)

    assert record.status == ModelStatus.GENERATING
    assert record.query_failures == 1


@pytest.mark.asyncio
async def test_check_status_ignores_settled_records(poller: JobStatusPoller, fake_service: MagicMock) -> None:
    done = generating_record().complete("/generated/clip-0.glb")
    no_request = ModelRecord(filename="x.jpg", asset_key="x", status=ModelStatus.GENERATING)

    assert await poller.check_status(done) is done
    assert await poller.check_status(no_request) is no_request
    fake_service.get_status.assert_not_awaited()
