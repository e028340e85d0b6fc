"""Tests for QueueStore persistence, recovery and backends."""

import json
from datetime import timedelta
from pathlib import Path

import pytest
from conftest import T0, make_artifact

from evidence_sync.errors import PersistenceError, StoreNotInitializedError
from evidence_sync.models import QueueRecord, UploadStatus
from evidence_sync.sync.store import (
    DEFAULT_STORAGE_KEY,
    INTERRUPTED_ATTEMPT_ERROR,
    JsonFileBackend,
    MemoryBackend,
    QueueStore,
    SqliteBackend,
    decode_records,
    encode_records,
)


def _mixed_records() -> list[QueueRecord]:
    """One record per status, with every optional field exercised."""
    return [
        QueueRecord(
            id="r-pending",
            artifact=make_artifact("A1"),
            status=UploadStatus.PENDING,
            queued_at=T0,
        ),
        QueueRecord(
            id="r-progress",
            artifact=make_artifact("A2", with_location=True),
            status=UploadStatus.IN_PROGRESS,
            queued_at=T0 + timedelta(seconds=1),
            last_attempt_at=T0 + timedelta(seconds=5),
        ),
        QueueRecord(
            id="r-done",
            artifact=make_artifact("A3", reason="panic_mode"),
            status=UploadStatus.COMPLETED,
            queued_at=T0 + timedelta(seconds=2),
            retry_count=2,
            last_attempt_at=T0 + timedelta(seconds=9),
            result_url="https://cloud.example/photos/A3",
        ),
        QueueRecord(
            id="r-failed",
            artifact=make_artifact("A4"),
            status=UploadStatus.FAILED,
            queued_at=T0 + timedelta(seconds=3),
            retry_count=5,
            last_attempt_at=T0 + timedelta(seconds=40),
            error_message="Server error: 503",
        ),
        QueueRecord(
            id="r-cancelled",
            artifact=make_artifact("A5"),
            status=UploadStatus.CANCELLED,
            queued_at=T0 + timedelta(seconds=4),
        ),
    ]


class TestSerialization:
    def test_round_trip_preserves_every_field(self):
        records = _mixed_records()

        assert decode_records(encode_records(records)) == records

    def test_document_is_ordered_json_array(self):
        data = json.loads(encode_records(_mixed_records()))

        assert [item["id"] for item in data] == [
            "r-pending",
            "r-progress",
            "r-done",
            "r-failed",
            "r-cancelled",
        ]
        assert data[2]["status"] == "completed"
        assert data[1]["artifact"]["location"]["latitude"] == 52.52
        assert "location" not in data[0]["artifact"]


class TestQueueStore:
    def test_operations_require_load(self, backend):
        store = QueueStore(backend)

        with pytest.raises(StoreNotInitializedError):
            store.enqueue(make_artifact())
        with pytest.raises(StoreNotInitializedError):
            store.all()

    def test_enqueue_creates_pending_record(self, store, backend):
        record = store.enqueue(make_artifact("A1"))

        assert record.status == UploadStatus.PENDING
        assert record.retry_count == 0
        assert record.max_retries == 5
        assert record.result_url is None
        assert record.id != "A1"
        assert json.loads(backend.read(DEFAULT_STORAGE_KEY))[0]["id"] == record.id

    def test_records_survive_restart(self, backend):
        store = QueueStore(backend)
        store.load()
        ids = [store.enqueue(make_artifact(f"A{i}")).id for i in range(3)]

        reopened = QueueStore(backend)
        loaded = reopened.load()

        assert [r.id for r in loaded] == ids
        assert [r.artifact.id for r in loaded] == ["A0", "A1", "A2"]

    def test_update_replaces_record(self, store):
        record = store.enqueue(make_artifact("A1"))
        record.status = UploadStatus.FAILED
        record.retry_count = 1
        record.error_message = "boom"

        store.update(record)

        assert store.get(record.id) == record

    def test_update_unknown_record_is_noop(self, store, backend):
        store.enqueue(make_artifact("A1"))
        before = backend.read(DEFAULT_STORAGE_KEY)
        stranger = QueueRecord(
            id="nope", artifact=make_artifact("X"), status=UploadStatus.PENDING, queued_at=T0
        )

        store.update(stranger)

        assert store.get("nope") is None
        assert backend.read(DEFAULT_STORAGE_KEY) == before

    def test_views_return_copies(self, store):
        record = store.enqueue(make_artifact("A1"))

        view = store.all()[0]
        view.status = UploadStatus.CANCELLED

        assert store.get(record.id).status == UploadStatus.PENDING

    def test_remove(self, store):
        record = store.enqueue(make_artifact("A1"))

        assert store.remove(record.id) is True
        assert store.remove(record.id) is False
        assert store.all() == []

    def test_by_status(self, store):
        first = store.enqueue(make_artifact("A1"))
        second = store.enqueue(make_artifact("A2"))
        second.status = UploadStatus.CANCELLED
        store.update(second)

        pending = store.by_status(lambda r: r.status == UploadStatus.PENDING)

        assert [r.id for r in pending] == [first.id]

    def test_write_failure_raises_persistence_error(self):
        class ReadOnlyBackend(MemoryBackend):
            def write(self, key: str, document: str) -> None:
                raise OSError("read-only file system")

        store = QueueStore(ReadOnlyBackend())
        store.load()

        with pytest.raises(PersistenceError):
            store.enqueue(make_artifact("A1"))


class TestCorruptState:
    """Unreadable persisted state loads as an empty queue."""

    @pytest.mark.parametrize(
        "document",
        [
            "{not json",
            '{"id": "object-not-array"}',
            '[{"id": "r1"}]',
            '[{"id": "r1", "status": "exploded", "artifact": {}, "queued_at": "2026-01-24"}]',
        ],
    )
    def test_corrupt_document_loads_empty(self, document):
        backend = MemoryBackend({DEFAULT_STORAGE_KEY: document})
        store = QueueStore(backend)

        assert store.load() == []
        assert store.loaded

    def test_completed_without_url_is_corrupt(self):
        data = _mixed_records()[2].to_dict()
        data["result_url"] = None
        backend = MemoryBackend({DEFAULT_STORAGE_KEY: json.dumps([data])})

        assert QueueStore(backend).load() == []

    def test_unreadable_backend_loads_empty(self):
        class UnreadableBackend(MemoryBackend):
            def read(self, key: str) -> str | None:
                raise OSError("permission denied")

        store = QueueStore(UnreadableBackend())

        assert store.load() == []
        store.enqueue(make_artifact("A1"))

    def test_empty_document_loads_empty(self):
        assert QueueStore(MemoryBackend({DEFAULT_STORAGE_KEY: ""})).load() == []

    def test_invalid_utf8_file_loads_empty(self, tmp_path: Path):
        backend = JsonFileBackend(tmp_path)
        backend.path_for(DEFAULT_STORAGE_KEY).write_bytes(b"\xff\xfe[garbage")

        store = QueueStore(backend)

        assert store.load() == []
        store.enqueue(make_artifact("A1"))
        assert len(QueueStore(backend).load()) == 1

    def test_infinite_retry_count_loads_empty(self):
        document = encode_records(_mixed_records()[:1]).replace(
            '"retry_count": 0', '"retry_count": Infinity'
        )
        assert "Infinity" in document

        assert QueueStore(MemoryBackend({DEFAULT_STORAGE_KEY: document})).load() == []

    def test_negative_status_index_loads_empty(self):
        data = _mixed_records()[0].to_dict()
        data["status"] = -1
        backend = MemoryBackend({DEFAULT_STORAGE_KEY: json.dumps([data])})

        assert QueueStore(backend).load() == []

    def test_legacy_integer_status_accepted(self):
        data = _mixed_records()[0].to_dict()
        data["status"] = 4
        backend = MemoryBackend({DEFAULT_STORAGE_KEY: json.dumps([data])})

        loaded = QueueStore(backend).load()

        assert loaded[0].status == UploadStatus.CANCELLED


class TestCrashRecovery:
    def test_in_progress_record_counts_as_failed_attempt(self):
        backend = MemoryBackend({DEFAULT_STORAGE_KEY: encode_records(_mixed_records())})

        loaded = {r.id: r for r in QueueStore(backend).load()}

        recovered = loaded["r-progress"]
        assert recovered.status == UploadStatus.FAILED
        assert recovered.retry_count == 1
        assert recovered.error_message == INTERRUPTED_ATTEMPT_ERROR
        assert json.loads(backend.read(DEFAULT_STORAGE_KEY))[1]["status"] == "failed"

    def test_recovery_respects_retry_cap(self):
        record = _mixed_records()[1]
        record.retry_count = 5
        backend = MemoryBackend({DEFAULT_STORAGE_KEY: encode_records([record])})

        recovered = QueueStore(backend).load()[0]

        assert recovered.retry_count == 5
        assert recovered.is_terminal_failure


class TestBackends:
    def test_json_file_backend_round_trip(self, tmp_path: Path):
        store = QueueStore(JsonFileBackend(tmp_path))
        store.load()
        record = store.enqueue(make_artifact("A1", with_location=True))

        reopened = QueueStore(JsonFileBackend(tmp_path))

        assert reopened.load() == [record]
        assert (tmp_path / f"{DEFAULT_STORAGE_KEY}.json").exists()
        assert list(tmp_path.glob("*.tmp")) == []

    def test_json_file_backend_missing_file(self, tmp_path: Path):
        assert JsonFileBackend(tmp_path / "new").read("anything") is None

    def test_sqlite_backend_persists_across_reopen(self, tmp_path: Path):
        db_path = tmp_path / "queue.db"
        backend = SqliteBackend(db_path)
        store = QueueStore(backend)
        store.load()
        first = store.enqueue(make_artifact("A1"))
        second = store.enqueue(make_artifact("A2"))
        store.remove(first.id)
        backend.close()

        reopened_backend = SqliteBackend(db_path)
        reopened = QueueStore(reopened_backend)

        assert [r.id for r in reopened.load()] == [second.id]
        reopened_backend.close()

    def test_custom_storage_key(self, backend):
        store = QueueStore(backend, storage_key="other_queue")
        store.load()
        store.enqueue(make_artifact("A1"))

        assert backend.read("other_queue") is not None
        assert backend.read(DEFAULT_STORAGE_KEY) is None
