"""Composition root wiring the upload queue from settings."""

import inspect
import logging
from typing import Any

from evidence_sync.config import Settings
from evidence_sync.engine.scheduler import QueueScheduler
from evidence_sync.notify import (
    CommandChannel,
    NotificationFanout,
    WebhookChannel,
    YamlContactDirectory,
)
from evidence_sync.sync import (
    DnsConnectivityOracle,
    FileArtifactSource,
    HttpCloudUploader,
    HttpConnectivityOracle,
    JsonFileBackend,
    QueueProcessor,
    QueueStore,
    SimulatedCloudUploader,
    SqliteBackend,
)
from evidence_sync.sync.connectivity import ConnectivityOracle
from evidence_sync.sync.processor import Notifier
from evidence_sync.sync.source import ArtifactSource
from evidence_sync.sync.store import StorageBackend
from evidence_sync.sync.uploader import CloudUploader

logger = logging.getLogger(__name__)


class SyncOrchestrator:
    """Owns the queue store, adapters, processor and scheduler.

    Collaborators are built from settings unless passed in explicitly.

    Example:
        async with SyncOrchestrator(settings) as orchestrator:
            await orchestrator.processor.submit(artifact)
    """

    def __init__(
        self,
        config: Settings,
        *,
        backend: StorageBackend | None = None,
        connectivity: ConnectivityOracle | None = None,
        source: ArtifactSource | None = None,
        uploader: CloudUploader | None = None,
        notifier: Notifier | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            config: Settings instance with all configuration
            backend: Storage backend override
            connectivity: Connectivity oracle override
            source: Artifact source override
            uploader: Cloud uploader override
            notifier: Notification fan-out override
        """
        self.config = config
        self._closables: list[Any] = []

        self.backend = backend or self._build_backend()
        self.store = QueueStore(self.backend)
        self.processor = QueueProcessor(
            self.store,
            connectivity or self._build_connectivity(),
            source or FileArtifactSource(config.data_path / "captures"),
            uploader or self._build_uploader(),
            notifier or self._build_notifier(),
            attempt_timeout=config.attempt_timeout,
        )
        self.scheduler = QueueScheduler(self.processor, interval=float(config.process_interval))

    def _build_backend(self) -> StorageBackend:
        if self.config.store_backend == "sqlite":
            backend = SqliteBackend(self.config.data_path / "queue.db")
            self._closables.append(backend)
            return backend
        return JsonFileBackend(self.config.data_path)

    def _build_connectivity(self) -> ConnectivityOracle:
        if self.config.connectivity_url:
            oracle = HttpConnectivityOracle(
                self.config.connectivity_url, timeout=self.config.connectivity_timeout
            )
            self._closables.append(oracle)
            return oracle
        return DnsConnectivityOracle(
            self.config.connectivity_host, timeout=self.config.connectivity_timeout
        )

    def _build_uploader(self) -> CloudUploader:
        if self.config.simulate_uploads:
            logger.warning("Using simulated uploads, artifacts will not leave this device")
            return SimulatedCloudUploader(self.config.simulated_base_url)
        uploader = HttpCloudUploader(
            self.config.upload_url,
            token=self.config.upload_token,
            timeout=self.config.request_timeout,
        )
        self._closables.append(uploader)
        return uploader

    def _build_notifier(self) -> NotificationFanout:
        primary = None
        if self.config.primary_webhook_url:
            primary = WebhookChannel(
                self.config.primary_webhook_url,
                token=self.config.primary_webhook_token,
                name="primary",
                timeout=self.config.notification_timeout,
            )
            self._closables.append(primary)

        fallback = None
        if self.config.fallback_command:
            fallback = CommandChannel(
                self.config.fallback_command,
                name="fallback",
                timeout=self.config.notification_timeout,
            )

        contacts = YamlContactDirectory(
            self.config.contacts_path, default=self.config.emergency_contact
        )
        return NotificationFanout(contacts, primary=primary, fallback=fallback)

    def open(self) -> None:
        """Load the persisted queue. Safe to call more than once."""
        if not self.store.loaded:
            self.store.load()
            logger.info(
                "Upload queue opened, data_dir=%s, records=%d",
                self.config.data_path,
                len(self.store),
            )

    def start(self) -> None:
        """Load the queue and start periodic processing."""
        self.open()
        self.scheduler.start()

    async def stop(self) -> None:
        """Stop scheduling and release network and database resources."""
        await self.scheduler.stop()

        for resource in reversed(self._closables):
            result = resource.close()
            if inspect.isawaitable(result):
                await result
        self._closables.clear()
        logger.info("Sync orchestrator stopped")

    async def __aenter__(self) -> "SyncOrchestrator":
        self.open()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.stop()

    def get_status(self) -> dict[str, Any]:
        """Get current queue status.

        Returns:
            Dictionary with scheduler state and queue counts
        """
        stats = self.processor.stats()
        return {
            "scheduler_running": self.scheduler.running,
            "processing": self.processor.is_processing,
            "queue": {
                **stats,
                "awaiting_upload": self.processor.pending_count(),
                "terminal_failed": self.processor.failed_count(),
            },
            "data_dir": str(self.config.data_path),
            "store_backend": self.config.store_backend,
        }
