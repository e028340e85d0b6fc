"""Persistent, ordered store of upload queue records.

The full record list is written as one JSON document under a single
storage key on every mutation, and read back in full by load(). Backends
only move opaque documents around, so persistence failure modes can be
exercised without touching the queue logic.
"""

import json
import logging
import os
import sqlite3
import tempfile
import threading
import uuid
from copy import copy
from pathlib import Path
from typing import Callable, Iterable, Protocol

from evidence_sync.errors import PersistenceError, StoreNotInitializedError
from evidence_sync.models import ArtifactReference, QueueRecord, UploadStatus, utcnow

logger = logging.getLogger(__name__)

DEFAULT_STORAGE_KEY = "evidence_upload_queue"
INTERRUPTED_ATTEMPT_ERROR = "Attempt interrupted before completion"


class StorageBackend(Protocol):
    """Key/document storage used by QueueStore."""

    def read(self, key: str) -> str | None:
        """Return the document stored under key, or None if absent."""
        ...

    def write(self, key: str, document: str) -> None:
        """Replace the document stored under key."""
        ...


class MemoryBackend:
    """Dictionary-backed storage, lost when the process exits."""

    def __init__(self, documents: dict[str, str] | None = None) -> None:
        self.documents: dict[str, str] = dict(documents or {})

    def read(self, key: str) -> str | None:
        return self.documents.get(key)

    def write(self, key: str, document: str) -> None:
        self.documents[key] = document


class JsonFileBackend:
    """One JSON file per key inside a directory.

    Writes go to a temporary file in the same directory which is then
    renamed over the target, so readers never see a half-written document.
    """

    def __init__(self, directory: Path) -> None:
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def path_for(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def read(self, key: str) -> str | None:
        path = self.path_for(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def write(self, key: str, document: str) -> None:
        path = self.path_for(key)
        fd, tmp_name = tempfile.mkstemp(dir=self.directory, prefix=f".{key}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(document)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise


class SqliteBackend:
    """SQLite key/value table holding queue documents."""

    def __init__(self, db_path: Path) -> None:
        """Open (or create) the database.

        Args:
            db_path: Path to the SQLite database file
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS queue_state (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)
        self._conn.commit()

    def read(self, key: str) -> str | None:
        row = self._conn.execute(
            "SELECT value FROM queue_state WHERE key = ?",
            (key,),
        ).fetchone()
        return row[0] if row else None

    def write(self, key: str, document: str) -> None:
        self._conn.execute(
            """
            INSERT INTO queue_state (key, value, updated_at)
            VALUES (?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET value = excluded.value,
                                           updated_at = excluded.updated_at
            """,
            (key, document, utcnow().isoformat()),
        )
        self._conn.commit()

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()


def encode_records(records: Iterable[QueueRecord]) -> str:
    """Serialize records as an ordered JSON array."""
    return json.dumps([record.to_dict() for record in records])


def decode_records(document: str) -> list[QueueRecord]:
    """Parse a JSON array of records.

    Raises:
        ValueError, KeyError, TypeError: If the document is malformed
    """
    data = json.loads(document)
    if not isinstance(data, list):
        raise ValueError(f"Expected a JSON array, got {type(data).__name__}")
    return [QueueRecord.from_dict(item) for item in data]


class QueueStore:
    """Durable, ordered collection of queue records addressable by id.

    Records keep their enqueue order. Every mutating call rewrites the
    whole document through the backend; load() reads it back after a
    restart. Unreadable or corrupt state loads as an empty queue.

    Example:
        store = QueueStore(JsonFileBackend(data_dir))
        store.load()
        record = store.enqueue(artifact)
    """

    def __init__(self, backend: StorageBackend, storage_key: str = DEFAULT_STORAGE_KEY) -> None:
        self.backend = backend
        self.storage_key = storage_key
        self._records: list[QueueRecord] = []
        self._loaded = False
        self._mutex = threading.RLock()

    @property
    def loaded(self) -> bool:
        return self._loaded

    def load(self) -> list[QueueRecord]:
        """Read the persisted queue, replacing any in-memory state.

        Records still marked in_progress were interrupted by a crash; each
        is counted as one failed attempt so the retry cap still holds.

        Returns:
            Copies of the loaded records
        """
        with self._mutex:
            self._records = self._read_records()
            self._loaded = True

            recovered = 0
            for record in self._records:
                if record.status == UploadStatus.IN_PROGRESS:
                    record.status = UploadStatus.FAILED
                    record.retry_count = min(record.retry_count + 1, record.max_retries)
                    record.error_message = INTERRUPTED_ATTEMPT_ERROR
                    recovered += 1

            if recovered:
                logger.warning("Recovered %d interrupted upload attempt(s)", recovered)
                try:
                    self._save()
                except PersistenceError as e:
                    # Recovery is re-applied on the next load
                    logger.warning("Could not persist recovered records: %s", e)

            logger.debug("Queue loaded: key=%s, records=%d", self.storage_key, len(self._records))
            return self.all()

    def _read_records(self) -> list[QueueRecord]:
        try:
            document = self.backend.read(self.storage_key)
        except (OSError, sqlite3.Error, ValueError) as e:
            logger.warning("Queue state unreadable, starting empty: %s", e)
            return []

        if not document:
            return []

        try:
            records = decode_records(document)
        except (ValueError, KeyError, TypeError, IndexError, OverflowError, RecursionError) as e:
            logger.warning("Queue state corrupt, starting empty: %s", e)
            return []

        seen: set[str] = set()
        unique = []
        for record in records:
            if record.id in seen:
                logger.warning("Dropping duplicate queue record: id=%s", record.id)
                continue
            seen.add(record.id)
            unique.append(record)
        return unique

    def _require_loaded(self) -> None:
        if not self._loaded:
            raise StoreNotInitializedError("QueueStore.load() must be called first")

    def _save(self) -> None:
        document = encode_records(self._records)
        try:
            self.backend.write(self.storage_key, document)
        except (OSError, sqlite3.Error) as e:
            raise PersistenceError(f"Failed to persist upload queue: {e}") from e

    def _index_of(self, record_id: str) -> int | None:
        for index, record in enumerate(self._records):
            if record.id == record_id:
                return index
        return None

    def enqueue(self, artifact: ArtifactReference) -> QueueRecord:
        """Append a new pending record for an artifact.

        Args:
            artifact: The artifact to upload

        Returns:
            A copy of the new record
        """
        with self._mutex:
            self._require_loaded()
            record = QueueRecord(
                id=str(uuid.uuid4()),
                artifact=artifact,
                status=UploadStatus.PENDING,
                queued_at=utcnow(),
            )
            self._records.append(record)
            self._save()
            return copy(record)

    def all(self) -> list[QueueRecord]:
        """Return copies of every record in queue order."""
        with self._mutex:
            self._require_loaded()
            return [copy(record) for record in self._records]

    def by_status(self, predicate: Callable[[QueueRecord], bool]) -> list[QueueRecord]:
        """Return copies of the records matching predicate, in queue order."""
        with self._mutex:
            self._require_loaded()
            return [copy(record) for record in self._records if predicate(record)]

    def get(self, record_id: str) -> QueueRecord | None:
        with self._mutex:
            self._require_loaded()
            index = self._index_of(record_id)
            return copy(self._records[index]) if index is not None else None

    def update(self, record: QueueRecord) -> None:
        """Replace the stored record with the same id.

        Unknown ids are ignored.
        """
        with self._mutex:
            self._require_loaded()
            index = self._index_of(record.id)
            if index is None:
                return
            self._records[index] = copy(record)
            self._save()

    def remove(self, record_id: str) -> bool:
        """Remove a record.

        Returns:
            True if the record existed
        """
        with self._mutex:
            self._require_loaded()
            index = self._index_of(record_id)
            if index is None:
                return False
            del self._records[index]
            self._save()
            return True

    def remove_where(self, predicate: Callable[[QueueRecord], bool]) -> int:
        """Remove every record matching predicate with a single write.

        Returns:
            Number of records removed
        """
        with self._mutex:
            self._require_loaded()
            kept = [record for record in self._records if not predicate(record)]
            removed = len(self._records) - len(kept)
            if removed:
                self._records = kept
                self._save()
            return removed

    def __len__(self) -> int:
        with self._mutex:
            return len(self._records)
