"""Queue processor driving records toward completion.

A processing pass checks connectivity once, then attempts every eligible
record in queue order: pending records, and failed records with retries
left whose backoff window has elapsed. Each attempt resolves the artifact
bytes, uploads them, and on success announces the URL to the emergency
contact. Failures are written into the record, never raised.

All mutation goes through one asyncio.Lock, so a pass and the manual
operations (enqueue, submit, retry, cancel, clear) never interleave, and
at most one pass runs at a time.
"""

import asyncio
import logging
import time
from datetime import datetime, timedelta
from typing import Callable, Protocol

from evidence_sync.errors import PersistenceError, RecordStateError
from evidence_sync.logging import (
    log_record_enqueued,
    log_record_state_change,
    log_upload_failed,
    log_upload_success,
)
from evidence_sync.models import (
    ArtifactReference,
    PassSummary,
    QueueRecord,
    UploadResult,
    UploadStatus,
    utcnow,
)
from evidence_sync.sync.connectivity import ConnectivityOracle
from evidence_sync.sync.source import ArtifactSource
from evidence_sync.sync.store import QueueStore
from evidence_sync.sync.uploader import CloudUploader

logger = logging.getLogger(__name__)

OFFLINE_QUEUED_MESSAGE = "No internet connection. Photo queued for upload."


class Notifier(Protocol):
    async def share(self, url: str, artifact: ArtifactReference) -> bool:
        ...


def backoff_delay(retry_index: int) -> timedelta:
    """Exponential backoff: 1s, 2s, 4s, 8s, 16s for retry_index 0..4.

    Args:
        retry_index: Zero-based index of the retry about to be made

    Raises:
        ValueError: If retry_index is negative
    """
    if retry_index < 0:
        raise ValueError(f"retry_index must be >= 0, got {retry_index}")
    return timedelta(seconds=2**retry_index)


def _is_pending(record: QueueRecord) -> bool:
    return record.status == UploadStatus.PENDING or (
        record.status == UploadStatus.FAILED and record.has_retries_left
    )


class QueueProcessor:
    """Processes the upload queue against connectivity and backoff.

    Example:
        processor = QueueProcessor(store, oracle, source, uploader, fanout)
        record = await processor.enqueue(artifact)
        summary = await processor.process_once()
    """

    def __init__(
        self,
        store: QueueStore,
        connectivity: ConnectivityOracle,
        source: ArtifactSource,
        uploader: CloudUploader,
        notifier: Notifier | None = None,
        *,
        attempt_timeout: float | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        """Initialize the processor.

        Args:
            store: Loaded queue store
            connectivity: Network reachability check
            source: Resolves artifact bytes from source handles
            uploader: Cloud store returning a URL per artifact
            notifier: Announces uploaded artifacts (optional)
            attempt_timeout: Seconds allowed per resolve+upload, None for no limit
            clock: Returns the current aware UTC time
        """
        self.store = store
        self.connectivity = connectivity
        self.source = source
        self.uploader = uploader
        self.notifier = notifier
        self.attempt_timeout = attempt_timeout
        self._clock = clock

        self._lock = asyncio.Lock()
        self._pass_running = False

    @property
    def is_processing(self) -> bool:
        """True while a processing pass is running."""
        return self._pass_running

    def is_eligible(self, record: QueueRecord, now: datetime) -> bool:
        """Whether a record may be attempted at time now."""
        if record.status == UploadStatus.PENDING:
            return True
        if record.status != UploadStatus.FAILED or not record.has_retries_left:
            return False
        if record.retry_count == 0 or record.last_attempt_at is None:
            return True
        return now - record.last_attempt_at >= backoff_delay(record.retry_count - 1)

    async def _is_online(self) -> bool:
        try:
            return bool(await self.connectivity.is_reachable())
        except Exception as e:
            logger.warning("Connectivity check raised, assuming offline: %s", e)
            return False

    # --- Processing ---

    async def process_once(self) -> PassSummary:
        """Run one processing pass.

        Returns immediately with ran=False if another pass is in progress.
        Records still inside their backoff window are left for a later pass.

        Returns:
            Summary of what the pass did
        """
        if self._pass_running:
            logger.debug("Processing pass already running, skipping")
            return PassSummary(ran=False)

        self._pass_running = True
        try:
            async with self._lock:
                return await self._run_pass()
        finally:
            self._pass_running = False

    async def _run_pass(self) -> PassSummary:
        summary = PassSummary()
        summary.online = await self._is_online()
        if not summary.online:
            logger.debug("Offline, skipping processing pass")
            return summary

        now = self._clock()
        candidates = sorted(self.store.by_status(_is_pending), key=lambda r: r.queued_at)

        for record in candidates:
            if not self.is_eligible(record, now):
                summary.deferred += 1
                continue

            summary.attempted += 1
            summary.record_ids.append(record.id)
            try:
                result = await self._attempt(record, trigger="pass")
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.exception("Unexpected error processing record: id=%s", record.id)
                if record.status == UploadStatus.IN_PROGRESS:
                    self._record_failure(record, str(e) or type(e).__name__)
                summary.failed += 1
                continue

            if result.success:
                summary.completed += 1
            else:
                summary.failed += 1

        logger.info(
            "Processing pass finished: attempted=%d, completed=%d, failed=%d, deferred=%d",
            summary.attempted,
            summary.completed,
            summary.failed,
            summary.deferred,
        )
        return summary

    def _persist(self, record: QueueRecord) -> None:
        try:
            self.store.update(record)
        except PersistenceError as e:
            # The in-memory record already holds the change; the next
            # successful write carries it to disk.
            logger.error("Failed to persist record: id=%s, error=%s", record.id, e)

    async def _resolve_and_upload(self, artifact: ArtifactReference) -> str | None:
        data = await self.source.resolve_bytes(artifact.source_handle)
        return await self.uploader.upload(data, artifact.upload_metadata())

    async def _attempt(self, record: QueueRecord, trigger: str) -> UploadResult:
        """Perform one upload attempt. Caller must hold the lock."""
        old_status = record.status
        record.status = UploadStatus.IN_PROGRESS
        record.last_attempt_at = self._clock()
        self._persist(record)
        log_record_state_change(logger, record.id, old_status.value, record.status.value, trigger)

        started = time.monotonic()
        url: str | None = None
        error: str | None = None
        try:
            if self.attempt_timeout is not None:
                url = await asyncio.wait_for(
                    self._resolve_and_upload(record.artifact), timeout=self.attempt_timeout
                )
            else:
                url = await self._resolve_and_upload(record.artifact)
        except asyncio.TimeoutError as e:
            if self.attempt_timeout is not None:
                error = f"Upload timed out after {self.attempt_timeout:g}s"
            else:
                error = str(e) or type(e).__name__
        except asyncio.CancelledError:
            raise
        except Exception as e:
            error = str(e) or type(e).__name__

        if error is None and not url:
            error = "Upload returned no URL"

        if error is not None:
            return self._record_failure(record, error)

        record.status = UploadStatus.COMPLETED
        record.result_url = url
        record.error_message = None
        self._persist(record)
        log_upload_success(
            logger, record.id, record.artifact.id, (time.monotonic() - started) * 1000
        )

        if self.notifier is not None:
            try:
                await self.notifier.share(url, record.artifact)
            except Exception:
                logger.exception("Notification failed: record_id=%s", record.id)

        return UploadResult(success=True, record=record, url=url)

    def _record_failure(self, record: QueueRecord, error: str) -> UploadResult:
        record.retry_count = min(record.retry_count + 1, record.max_retries)
        record.status = UploadStatus.FAILED
        record.error_message = error
        self._persist(record)

        terminal = record.is_terminal_failure
        log_upload_failed(logger, record.id, error, record.retry_count, terminal)

        if terminal:
            message = f"Upload failed after {record.max_retries} attempts: {error}"
        else:
            message = (
                f"Upload failed, will retry ({record.retry_count}/{record.max_retries}): {error}"
            )
        return UploadResult(success=False, record=record, error=message)

    # --- Producer and operator operations ---

    async def enqueue(self, artifact: ArtifactReference) -> QueueRecord:
        """Add an artifact to the queue for the next pass."""
        async with self._lock:
            record = self.store.enqueue(artifact)
        log_record_enqueued(logger, record.id, artifact.id, artifact.reason)
        return record

    async def submit(self, artifact: ArtifactReference) -> UploadResult:
        """Enqueue an artifact and attempt it right away when online.

        Offline submissions stay pending and are reported as queued.
        """
        async with self._lock:
            record = self.store.enqueue(artifact)
            log_record_enqueued(logger, record.id, artifact.id, artifact.reason)

            if not await self._is_online():
                return UploadResult(
                    success=False,
                    record=record,
                    error=OFFLINE_QUEUED_MESSAGE,
                    queued=True,
                )
            return await self._attempt(record, trigger="submit")

    async def retry(self, record_id: str) -> UploadResult | None:
        """Reset a failed record and attempt it immediately.

        Returns:
            Result of the attempt, or None if the record does not exist

        Raises:
            RecordStateError: If the record is not failed
        """
        async with self._lock:
            record = self.store.get(record_id)
            if record is None:
                return None
            if record.status != UploadStatus.FAILED:
                raise RecordStateError(record_id, record.status.value, "retry")

            record.status = UploadStatus.PENDING
            record.retry_count = 0
            record.error_message = None
            self.store.update(record)
            log_record_state_change(
                logger, record.id, UploadStatus.FAILED.value, record.status.value, "manual_retry"
            )
            return await self._attempt(record, trigger="manual_retry")

    async def cancel(self, record_id: str) -> bool:
        """Cancel a record that has not completed.

        The record stays in the store for audit purposes.

        Returns:
            False if the record does not exist

        Raises:
            RecordStateError: If the record already completed
        """
        async with self._lock:
            record = self.store.get(record_id)
            if record is None:
                return False
            if record.status == UploadStatus.COMPLETED:
                raise RecordStateError(record_id, record.status.value, "cancel")
            if record.status == UploadStatus.CANCELLED:
                return True

            old_status = record.status
            record.status = UploadStatus.CANCELLED
            self.store.update(record)
            log_record_state_change(
                logger, record.id, old_status.value, record.status.value, "cancel"
            )
            return True

    async def clear_completed(self) -> int:
        """Remove completed records. Returns the number removed."""
        async with self._lock:
            removed = self.store.remove_where(lambda r: r.status == UploadStatus.COMPLETED)
        logger.info("Cleared completed records: count=%d", removed)
        return removed

    async def clear_failed(self) -> int:
        """Remove terminally failed records. Returns the number removed."""
        async with self._lock:
            removed = self.store.remove_where(lambda r: r.is_terminal_failure)
        logger.info("Cleared failed records: count=%d", removed)
        return removed

    # --- Read-only views ---

    def list_all(self) -> list[QueueRecord]:
        return self.store.all()

    def list_pending(self) -> list[QueueRecord]:
        """Pending records plus failed records that will be retried."""
        return self.store.by_status(_is_pending)

    def list_completed(self) -> list[QueueRecord]:
        return self.store.by_status(lambda r: r.status == UploadStatus.COMPLETED)

    def list_failed(self) -> list[QueueRecord]:
        """Records whose automatic retries are exhausted."""
        return self.store.by_status(lambda r: r.is_terminal_failure)

    def pending_count(self) -> int:
        return len(self.list_pending())

    def failed_count(self) -> int:
        return len(self.list_failed())

    def stats(self) -> dict[str, int]:
        """Record counts by status, plus total."""
        stats = {status.value: 0 for status in UploadStatus}
        records = self.store.all()
        for record in records:
            stats[record.status.value] += 1
        stats["total"] = len(records)
        return stats
