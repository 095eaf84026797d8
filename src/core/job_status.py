"""
Job status reconciliation.

``JobStatusService`` is the server-side view of one remote job: it reports
the queue status and, once the job completes, materializes the artifact into
the store. ``JobStatusPoller`` is the client-side step that turns that report
into a transition of a ``ModelRecord``.
"""

import asyncio
import weakref
from pathlib import Path

import aiofiles
import structlog

from src.generators.base import ExtractionError, GenerationError, RemoteFailure, TransientQueryError
from src.generators.base_integration import BaseServiceIntegration
from src.models.asset_model import ErrorKind, JobResultPayload, JobStatusPayload, ModelRecord, RemoteJobStatus
from src.storage.artifact_store import ArtifactStore
from src.utils.asset_key import derive_asset_key
from src.utils.validators import ValidationException

logger = structlog.get_logger(__name__)

DEFAULT_REMOTE_FAILURE = "Seed3D job failed."
DEFAULT_GENERATION_FAILURE = "Generation failed"


class JobStatusService:
    """Reports remote job status and stores finished artifacts exactly once."""

    def __init__(self, service: BaseServiceIntegration, store: ArtifactStore):
        self.service = service
        self.store = store
        # Entries vanish once no poll holds or waits on the lock
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    def _lock_for(self, asset_key: str) -> asyncio.Lock:
        lock = self._locks.get(asset_key)
        if lock is None:
            lock = self._locks[asset_key] = asyncio.Lock()
        return lock

    async def poll_job(self, request_id: str, asset: str | None) -> JobStatusPayload:
        """
        Query one job and, if it completed, make sure its artifact is stored.

        Raises:
            ValidationException: If the request id or asset is missing
            TransientQueryError: If the status or result query fails
        """
        if not asset:
            raise ValidationException("asset parameter is missing.", field="asset", code="MISSING_ASSET")
        if not request_id:
            raise ValidationException("requestId parameter is missing.", field="request_id", code="MISSING_REQUEST_ID")

        asset_key = derive_asset_key(asset)
        remote = await self.service.get_status(request_id)

        if remote.status == RemoteJobStatus.FAILED:
            logger.warning("Remote job failed", request_id=request_id, asset_key=asset_key, error=remote.error)
            return JobStatusPayload(
                status=remote.status,
                position=remote.position,
                logs=remote.logs,
                error=remote.error or DEFAULT_REMOTE_FAILURE,
            )

        if not remote.status.is_terminal:
            return JobStatusPayload(status=remote.status, position=remote.position, logs=remote.logs)

        result = await self.service.get_result(request_id)
        payload = JobResultPayload(model_url=result.model_url, usage_tokens=result.usage_tokens)

        try:
            await self._ensure_local_copy(asset_key, result.model_url)
        except (GenerationError, OSError) as e:
            logger.error("Failed to save local copy", asset_key=asset_key, request_id=request_id, error=str(e))

        if self.store.has_archive(asset_key):
            payload.local_archive_path = str(self.store.archive_path(asset_key))
            payload.local_archive_url = self.store.read_archive_url(asset_key)
        if self.store.exists(asset_key):
            payload.local_model_path = str(self.store.model_path(asset_key))
            payload.local_model_url = self.store.read_model_url(asset_key)

        return JobStatusPayload(status=remote.status, position=remote.position, logs=remote.logs, result=payload)

    async def _ensure_local_copy(self, asset_key: str, remote_url: str | None) -> None:
        if not remote_url:
            return

        # Duplicate polls for one key queue up here; the loser finds the model already written
        async with self._lock_for(asset_key):
            if self.store.exists(asset_key):
                return

            if self.store.has_archive(asset_key):
                await self.store.reextract(asset_key)
                if self.store.exists(asset_key):
                    return

            archive_bytes = await self.service.download_archive(remote_url)
            await self.store.materialize(asset_key, archive_bytes)


class JobStatusPoller:
    """Advances a generating record by one status query."""

    def __init__(
        self,
        status_service: JobStatusService,
        fallback_dir: Path,
        max_query_failures: int = 3,
    ):
        self.status_service = status_service
        self.fallback_dir = Path(fallback_dir)
        self.max_query_failures = max(1, max_query_failures)

    async def check_status(self, record: ModelRecord) -> ModelRecord:
        """Return the record's next state; unchanged while the job is pending."""
        if not record.request_id or not record.is_generating:
            return record

        attempts = record.poll_attempts + 1
        try:
            payload = await self.status_service.poll_job(record.request_id, record.asset_key)
        except Exception as e:
            return self._query_failed(record, attempts, e)

        polled = record.model_copy(update={"poll_attempts": attempts, "query_failures": 0})
        try:
            artifact_url = await self._resolve_artifact(polled, payload)
        except RemoteFailure as e:
            return polled.fail(e.message, ErrorKind.REMOTE_FAILURE)
        except ExtractionError as e:
            return polled.fail(e.message, ErrorKind.EXTRACTION)
        except TransientQueryError as e:
            # Counter not reset by this poll: consecutive download failures accumulate
            return self._query_failed(record, attempts, e)
        except OSError as e:
            return polled.fail(f"Model could not be written: {e}", ErrorKind.EXTRACTION)

        return polled.complete(artifact_url) if artifact_url else polled

    async def _resolve_artifact(self, record: ModelRecord, payload: JobStatusPayload) -> str | None:
        """
        Artifact URL of a finished job, or None while it is still pending.

        Raises:
            RemoteFailure: If the remote job failed
            ExtractionError: If no model could be obtained from the result
            TransientQueryError: If the fallback archive download fails
        """
        if payload.status == RemoteJobStatus.FAILED:
            raise RemoteFailure(payload.error or DEFAULT_GENERATION_FAILURE, request_id=record.request_id)

        if payload.status != RemoteJobStatus.COMPLETED:
            return None

        result = payload.result
        if result and result.local_model_url:
            return result.local_model_url
        if result and result.model_url:
            return await self._download_and_extract(record.asset_key, result.model_url)

        raise ExtractionError("Generation finished without a model URL", asset_key=record.asset_key)

    def _query_failed(self, record: ModelRecord, attempts: int, error: Exception) -> ModelRecord:
        failures = record.query_failures + 1
        message = error.message if isinstance(error, (GenerationError, ValidationException)) else str(error)
        record = record.model_copy(update={"poll_attempts": attempts, "query_failures": failures})

        if not isinstance(error, TransientQueryError):
            logger.error("Unexpected error while checking job", request_id=record.request_id, error=message)

        if failures >= self.max_query_failures:
            logger.error(
                "Giving up on job after repeated status query failures",
                request_id=record.request_id,
                asset_key=record.asset_key,
                failures=failures,
            )
            return record.fail(f"Unable to fetch job status: {message}", ErrorKind.QUERY_ERROR)

        logger.warning(
            "Job status query failed, will retry",
            request_id=record.request_id,
            asset_key=record.asset_key,
            failures=failures,
            error=message,
        )
        return record

    async def _download_and_extract(self, asset_key: str, model_url: str) -> str:
        archive_bytes = await self.status_service.service.download_archive(model_url)
        model_bytes = self.status_service.store.extract_model_entry(archive_bytes, asset_key)

        self.fallback_dir.mkdir(parents=True, exist_ok=True)
        target = self.fallback_dir / f"{asset_key}{self.status_service.store.model_suffix}"
        async with aiofiles.open(target, "wb") as f:
            await f.write(model_bytes)

        logger.info("Extracted model on the client side", asset_key=asset_key, path=str(target))
        return target.resolve().as_uri()
