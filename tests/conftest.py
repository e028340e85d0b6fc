"""Shared fakes and fixtures for the evidence upload queue tests."""

import asyncio
from collections import deque
from datetime import datetime, timedelta, timezone

import pytest

from evidence_sync.errors import ArtifactNotFoundError, UploadError
from evidence_sync.models import ArtifactReference, GeoLocation
from evidence_sync.sync.processor import QueueProcessor
from evidence_sync.sync.store import MemoryBackend, QueueStore

T0 = datetime(2026, 1, 24, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class FakeConnectivity:
    def __init__(self, online: bool = True) -> None:
        self.online = online
        self.checks = 0

    async def is_reachable(self) -> bool:
        self.checks += 1
        return self.online


class FakeSource:
    """Serves bytes for every handle except those listed as missing."""

    def __init__(self, missing: set[str] | None = None) -> None:
        self.missing = set(missing or ())
        self.requests: list[str] = []

    async def resolve_bytes(self, source_handle: str) -> bytes:
        self.requests.append(source_handle)
        if source_handle in self.missing:
            raise ArtifactNotFoundError(source_handle, "file does not exist")
        return b"\xff\xd8jpeg-bytes-" + source_handle.encode()


class ScriptedUploader:
    """Replays scripted outcomes, then succeeds.

    A string outcome is returned as the URL, an exception instance is
    raised, and None simulates an uploader that returns no URL.
    """

    def __init__(self, *outcomes) -> None:
        self.outcomes = deque(outcomes)
        self.calls: list[dict] = []

    async def upload(self, data: bytes, metadata: dict) -> str | None:
        self.calls.append(metadata)
        if self.outcomes:
            outcome = self.outcomes.popleft()
            if isinstance(outcome, BaseException):
                raise outcome
            return outcome
        return f"https://cloud.example/photos/{metadata['id']}"


class FailingUploader:
    def __init__(self, message: str = "Server error: 503") -> None:
        self.message = message
        self.calls = 0

    async def upload(self, data: bytes, metadata: dict) -> str:
        self.calls += 1
        raise UploadError(self.message, status_code=503)


class GatedUploader:
    """Blocks inside upload() until released."""

    def __init__(self) -> None:
        self.started = asyncio.Event()
        self.release = asyncio.Event()
        self.calls = 0

    async def upload(self, data: bytes, metadata: dict) -> str:
        self.calls += 1
        self.started.set()
        await self.release.wait()
        return f"https://cloud.example/photos/{metadata['id']}"


class RecordingNotifier:
    def __init__(self, result: bool = True, error: Exception | None = None) -> None:
        self.result = result
        self.error = error
        self.calls: list[tuple[str, ArtifactReference]] = []

    async def share(self, url: str, artifact: ArtifactReference) -> bool:
        self.calls.append((url, artifact))
        if self.error is not None:
            raise self.error
        return self.result


def make_artifact(
    artifact_id: str = "A1",
    reason: str = "failed_login",
    with_location: bool = False,
) -> ArtifactReference:
    location = None
    if with_location:
        location = GeoLocation(
            latitude=52.52,
            longitude=13.405,
            accuracy=12.5,
            timestamp=T0,
        )
    return ArtifactReference(
        id=artifact_id,
        source_handle=f"/data/captures/{artifact_id}.jpg",
        captured_at=T0,
        reason=reason,
        location=location,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def backend() -> MemoryBackend:
    return MemoryBackend()


@pytest.fixture
def store(backend: MemoryBackend) -> QueueStore:
    queue_store = QueueStore(backend)
    queue_store.load()
    return queue_store


@pytest.fixture
def connectivity() -> FakeConnectivity:
    return FakeConnectivity(online=True)


@pytest.fixture
def source() -> FakeSource:
    return FakeSource()


@pytest.fixture
def uploader() -> ScriptedUploader:
    return ScriptedUploader()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def processor(store, connectivity, source, uploader, notifier, clock) -> QueueProcessor:
    return QueueProcessor(store, connectivity, source, uploader, notifier, clock=clock)
