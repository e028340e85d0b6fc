"""Tests for the scheduler, the orchestrator and settings."""

import asyncio

import pytest
from conftest import FakeConnectivity, RecordingNotifier, make_artifact
from pydantic import ValidationError

from evidence_sync.config import Settings
from evidence_sync.engine import QueueScheduler, SyncOrchestrator
from evidence_sync.models import ArtifactReference, UploadStatus
from evidence_sync.sync import JsonFileBackend, SimulatedCloudUploader, SqliteBackend


async def _wait_for(predicate, timeout: float = 2.0) -> None:
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


class CountingProcessor:
    def __init__(self, error: Exception | None = None) -> None:
        self.passes = 0
        self.error = error

    async def process_once(self):
        self.passes += 1
        if self.error is not None:
            raise self.error


class TestQueueScheduler:
    @pytest.mark.asyncio
    async def test_runs_pass_on_start(self):
        processor = CountingProcessor()
        scheduler = QueueScheduler(processor, interval=3600)

        scheduler.start()
        await _wait_for(lambda: processor.passes == 1)

        assert scheduler.running
        await scheduler.stop()
        assert not scheduler.running

    @pytest.mark.asyncio
    async def test_trigger_runs_extra_pass(self):
        processor = CountingProcessor()
        scheduler = QueueScheduler(processor, interval=3600)
        scheduler.start()
        await _wait_for(lambda: scheduler.pass_count == 1)

        scheduler.trigger()
        await _wait_for(lambda: processor.passes == 2)

        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_interval_elapses(self):
        processor = CountingProcessor()
        scheduler = QueueScheduler(processor, interval=0.02)

        scheduler.start()
        await _wait_for(lambda: processor.passes >= 3)

        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_pass_errors_do_not_stop_loop(self):
        processor = CountingProcessor(error=RuntimeError("boom"))
        scheduler = QueueScheduler(processor, interval=0.02)

        scheduler.start()
        await _wait_for(lambda: processor.passes >= 2)

        assert scheduler.running
        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_stop_without_start(self):
        await QueueScheduler(CountingProcessor()).stop()


class TestSyncOrchestrator:
    def _settings(self, tmp_path, **overrides) -> Settings:
        values = {
            "data_dir": tmp_path,
            "simulate_uploads": True,
            "contacts_file": tmp_path / "contacts.yaml",
        }
        values.update(overrides)
        return Settings(**values)

    def _artifact(self, tmp_path) -> ArtifactReference:
        photo = tmp_path / "captures" / "A1.jpg"
        photo.parent.mkdir(parents=True, exist_ok=True)
        photo.write_bytes(b"\xff\xd8jpeg")
        return ArtifactReference(
            id="A1",
            source_handle="A1.jpg",
            captured_at=make_artifact().captured_at,
            reason="failed_login",
        )

    @pytest.mark.asyncio
    async def test_builds_collaborators_from_settings(self, tmp_path):
        orchestrator = SyncOrchestrator(self._settings(tmp_path))

        assert isinstance(orchestrator.backend, JsonFileBackend)
        assert isinstance(orchestrator.processor.uploader, SimulatedCloudUploader)
        assert orchestrator.scheduler.interval == 300
        assert orchestrator.processor.attempt_timeout == 120.0
        await orchestrator.stop()

    @pytest.mark.asyncio
    async def test_submit_uploads_and_notifies(self, tmp_path):
        notifier = RecordingNotifier()
        settings = self._settings(tmp_path)
        orchestrator = SyncOrchestrator(
            settings,
            connectivity=FakeConnectivity(),
            uploader=SimulatedCloudUploader(delay=0),
            notifier=notifier,
        )

        async with orchestrator:
            result = await orchestrator.processor.submit(self._artifact(tmp_path))
            status = orchestrator.get_status()

        assert result.success is True
        assert result.url.startswith("https://cloud.antitheft.app/photos/A1?t=")
        assert len(notifier.calls) == 1
        assert status["queue"]["completed"] == 1
        assert status["queue"]["awaiting_upload"] == 0
        assert status["store_backend"] == "json"

    @pytest.mark.asyncio
    async def test_queue_survives_restart_with_sqlite(self, tmp_path):
        settings = self._settings(tmp_path, store_backend="sqlite")
        connectivity = FakeConnectivity(online=False)

        async with SyncOrchestrator(settings, connectivity=connectivity) as orchestrator:
            assert isinstance(orchestrator.backend, SqliteBackend)
            result = await orchestrator.processor.submit(self._artifact(tmp_path))
            assert result.queued is True

        connectivity.online = True
        async with SyncOrchestrator(
            settings,
            connectivity=connectivity,
            uploader=SimulatedCloudUploader(delay=0),
            notifier=RecordingNotifier(),
        ) as orchestrator:
            assert orchestrator.processor.pending_count() == 1
            summary = await orchestrator.processor.process_once()
            assert summary.completed == 1
            assert orchestrator.processor.list_completed()[0].status == UploadStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_start_runs_initial_pass(self, tmp_path):
        connectivity = FakeConnectivity(online=False)
        orchestrator = SyncOrchestrator(
            self._settings(tmp_path), connectivity=connectivity, notifier=RecordingNotifier()
        )

        orchestrator.start()
        await _wait_for(lambda: connectivity.checks >= 1)
        assert orchestrator.get_status()["scheduler_running"] is True

        await orchestrator.stop()
        assert orchestrator.get_status()["scheduler_running"] is False


class TestSettings:
    def test_defaults(self, tmp_path):
        settings = Settings(data_dir=tmp_path)

        assert settings.process_interval == 300
        assert settings.store_backend == "json"
        assert settings.data_path == tmp_path

    def test_environment_prefix(self, monkeypatch, tmp_path):
        monkeypatch.setenv("EVIDENCE_PROCESS_INTERVAL", "60")
        monkeypatch.setenv("EVIDENCE_STORE_BACKEND", "sqlite")

        settings = Settings(data_dir=tmp_path)

        assert settings.process_interval == 60
        assert settings.store_backend == "sqlite"

    def test_log_level_normalized(self):
        assert Settings(log_level="debug").log_level == "DEBUG"

    @pytest.mark.parametrize(
        "field, value",
        [
            ("process_interval", 0),
            ("attempt_timeout", 0),
            ("log_level", "LOUD"),
            ("store_backend", "postgres"),
        ],
    )
    def test_invalid_values_rejected(self, field, value):
        with pytest.raises(ValidationError):
            Settings(**{field: value})

    @pytest.mark.asyncio
    async def test_notification_timeout_reaches_fallback_channel(self, tmp_path):
        settings = Settings(
            data_dir=tmp_path,
            fallback_command="sms-send --to {contact} --text {message}",
            notification_timeout=2.5,
        )

        orchestrator = SyncOrchestrator(settings, connectivity=FakeConnectivity())

        assert orchestrator.processor.notifier.fallback.timeout == 2.5
        await orchestrator.stop()
