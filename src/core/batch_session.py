"""
Polling scheduler for one video's batch of generation jobs.

A ``BatchSession`` owns the model records of a single batch together with
the timer that polls their jobs. Each cycle checks every generating record
concurrently, merges all results in one step, then drains the resulting
notifications. The session stops itself once nothing is generating.
"""

import asyncio
import time
import uuid
from collections.abc import Callable, Iterable, Mapping

import structlog

from src.core.events import BatchEvent, EventQueue, EventType, Listener
from src.core.job_status import JobStatusPoller
from src.generators.base import PollTimeoutError
from src.models.asset_model import ErrorKind, ModelRecord, ModelStatus

logger = structlog.get_logger(__name__)


def batch_summary(counts: Mapping[str, int]) -> str:
    """Closing message for a batch whose records have all settled."""
    failed = counts.get(ModelStatus.FAILED.value, 0)
    if not failed:
        return "All models generated"

    ready = counts.get(ModelStatus.CACHED.value, 0) + counts.get(ModelStatus.COMPLETED.value, 0)
    if not ready:
        return f"No models generated, {failed} failed"
    return f"{ready} of {ready + failed} models generated, {failed} failed"


class BatchSession:
    """Owns a batch's records and drives polling until every job settles."""

    def __init__(
        self,
        records: Iterable[ModelRecord],
        poller: JobStatusPoller,
        poll_interval: float = 5.0,
        max_poll_duration: float = 900.0,
        events: EventQueue | None = None,
        session_id: str | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.session_id = session_id or str(uuid.uuid4())
        self.poller = poller
        self.poll_interval = poll_interval
        self.max_poll_duration = max_poll_duration
        self.events = events or EventQueue()
        self._clock = clock
        self._records: list[ModelRecord] = list(records)
        self._task: asyncio.Task | None = None
        self._stop = asyncio.Event()
        self._generation = 0
        self._started_at: float | None = None
        self._completed = False
        self._cancelled = False
        self.cycles = 0

    # Lifecycle

    def start(self) -> None:
        """Run the first cycle now and then one every ``poll_interval`` seconds."""
        if self._cancelled:
            raise RuntimeError("Cannot restart a cancelled batch session")
        if self.is_running or self._completed:
            return

        self._generation += 1
        self._task = asyncio.create_task(self._run(self._generation))
        logger.info("Batch polling started", session_id=self.session_id, pending=self.pending_count)

    def cancel(self) -> None:
        """Stop polling; results of a cycle still in flight are discarded."""
        if self._cancelled:
            return
        self._cancelled = True
        self._generation += 1
        self._stop.set()
        self.events.clear()
        logger.info("Batch polling cancelled", session_id=self.session_id)

    async def wait_closed(self) -> None:
        """Wait for the polling task to finish."""
        if self._task is not None:
            await self._task

    async def _run(self, generation: int) -> None:
        while not self._stop.is_set():
            try:
                if await self.run_cycle(generation):
                    break
            except Exception as e:
                logger.error("Error in poll cycle", session_id=self.session_id, error=str(e))

            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self.poll_interval)
            except asyncio.TimeoutError:
                continue

    # State

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def completed(self) -> bool:
        return self._completed

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def pending_count(self) -> int:
        return sum(1 for r in self._records if r.is_generating)

    def snapshot(self) -> list[ModelRecord]:
        """Copies of the records in input order."""
        return [r.model_copy() for r in self._records]

    def get_record(self, asset_key: str) -> ModelRecord | None:
        for record in self._records:
            if record.asset_key == asset_key:
                return record.model_copy()
        return None

    def subscribe(self, listener: Listener) -> None:
        self.events.subscribe(listener)

    # Polling

    def _pending_jobs(self) -> list[ModelRecord]:
        seen: set[str] = set()
        pending: list[ModelRecord] = []
        for record in self._records:
            if record.is_generating and record.asset_key not in seen:
                seen.add(record.asset_key)
                pending.append(record)
        return pending

    def _check_deadline(self) -> None:
        if not self.max_poll_duration or self._started_at is None:
            return
        if self._clock() - self._started_at >= self.max_poll_duration:
            raise PollTimeoutError(
                f"Generation did not finish within {self.max_poll_duration:g} seconds",
                timeout_duration=self.max_poll_duration,
            )

    async def run_cycle(self, generation: int | None = None) -> bool:
        """
        Run one check-and-update cycle.

        Returns True when the session has nothing left to poll (or has been
        cancelled), False when another cycle is needed.
        """
        generation = self._generation if generation is None else generation
        if self._completed or self._cancelled or generation != self._generation:
            return True

        if self._started_at is None:
            self._started_at = self._clock()
        try:
            self._check_deadline()
        except PollTimeoutError as e:
            self._expire_pending(e)

        pending = self._pending_jobs()
        if not pending:
            self._finish()
            return True

        updates = await asyncio.gather(
            *(self.poller.check_status(record) for record in pending), return_exceptions=True
        )

        if self._cancelled or generation != self._generation:
            logger.info("Discarding results from a stale poll cycle", session_id=self.session_id)
            return True

        self._merge(pending, updates)
        self.cycles += 1
        self.events.drain()

        if self.pending_count == 0:
            self._finish()
            return True
        return False

    def _merge(self, pending: list[ModelRecord], updates: list) -> None:
        # No awaits in here: the whole cycle's results land together
        for original, updated in zip(pending, updates):
            if isinstance(updated, BaseException):
                logger.error("Status check raised", asset_key=original.asset_key, error=str(updated))
                continue
            self._apply(updated)

    def _apply(self, updated: ModelRecord) -> None:
        transitioned: ModelRecord | None = None

        for index, current in enumerate(self._records):
            if current.asset_key != updated.asset_key:
                continue
            if not current.is_generating:
                logger.debug("Ignoring update for settled record", asset_key=current.asset_key)
                continue

            counters = {"poll_attempts": updated.poll_attempts, "query_failures": updated.query_failures}
            if updated.status == ModelStatus.GENERATING:
                self._records[index] = current.model_copy(update=counters)
                continue

            if not current.can_transition_to(updated.status):
                logger.warning(
                    "Rejected illegal transition",
                    asset_key=current.asset_key,
                    from_status=current.status.value,
                    to_status=updated.status.value,
                )
                continue

            self._records[index] = current.transition(
                updated.status,
                artifact_url=updated.artifact_url,
                error=updated.error,
                error_kind=updated.error_kind,
                **counters,
            )
            transitioned = self._records[index]

        if transitioned is not None:
            self._notify_transition(transitioned)

    def _notify_transition(self, record: ModelRecord) -> None:
        if record.status == ModelStatus.COMPLETED:
            logger.info("Asset ready", asset_key=record.asset_key, artifact_url=record.artifact_url)
            self.events.emit(
                BatchEvent(
                    type=EventType.ASSET_READY,
                    message=f"✓ {record.filename} generated (saved locally)",
                    asset_key=record.asset_key,
                    data={"artifact_url": record.artifact_url},
                )
            )
        elif record.status == ModelStatus.FAILED:
            logger.warning("Asset failed", asset_key=record.asset_key, error=record.error)
            self.events.emit(
                BatchEvent(
                    type=EventType.ASSET_FAILED,
                    message=f"✗ {record.filename} failed: {record.error}",
                    asset_key=record.asset_key,
                    data={"error": record.error, "error_kind": record.error_kind.value if record.error_kind else None},
                )
            )

    def _expire_pending(self, timeout: PollTimeoutError) -> None:
        for index, record in enumerate(self._records):
            if record.is_generating:
                self._records[index] = record.fail(timeout.message, ErrorKind.TIMEOUT)
                self._notify_transition(self._records[index])
        logger.warning("Poll duration exceeded", session_id=self.session_id, timeout=timeout.timeout_duration)

    def _finish(self) -> None:
        if self._completed:
            return
        self._completed = True
        self._stop.set()

        statuses = [r.status for r in self._records]
        summary = {status.value: statuses.count(status) for status in ModelStatus}
        logger.info("Batch complete", session_id=self.session_id, **summary)
        self.events.emit(BatchEvent(type=EventType.BATCH_COMPLETE, message=batch_summary(summary), data=summary))
        self.events.drain()
