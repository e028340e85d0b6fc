"""Sync module for the evidence upload queue and its collaborators."""

from evidence_sync.sync.connectivity import (
    ConnectivityOracle,
    DnsConnectivityOracle,
    HttpConnectivityOracle,
)
from evidence_sync.sync.processor import QueueProcessor, backoff_delay
from evidence_sync.sync.source import ArtifactSource, FileArtifactSource
from evidence_sync.sync.store import (
    JsonFileBackend,
    MemoryBackend,
    QueueStore,
    SqliteBackend,
    StorageBackend,
)
from evidence_sync.sync.uploader import CloudUploader, HttpCloudUploader, SimulatedCloudUploader

__all__ = [
    "ArtifactSource",
    "CloudUploader",
    "ConnectivityOracle",
    "DnsConnectivityOracle",
    "FileArtifactSource",
    "HttpCloudUploader",
    "HttpConnectivityOracle",
    "JsonFileBackend",
    "MemoryBackend",
    "QueueProcessor",
    "QueueStore",
    "SimulatedCloudUploader",
    "SqliteBackend",
    "StorageBackend",
    "backoff_delay",
]
