"""Exception types for the evidence upload queue."""


class EvidenceSyncError(Exception):
    """Base class for all evidence-sync errors."""


class ArtifactNotFoundError(EvidenceSyncError):
    """The artifact bytes behind a source handle could not be read."""

    def __init__(self, source_handle: str, reason: str | None = None) -> None:
        self.source_handle = source_handle
        message = f"Artifact not found: {source_handle}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class UploadError(EvidenceSyncError):
    """The cloud store rejected or failed to accept an upload."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class PersistenceError(EvidenceSyncError):
    """The queue document could not be written to its backend."""


class StoreNotInitializedError(EvidenceSyncError):
    """A queue store was used before load() completed."""


class RecordStateError(EvidenceSyncError, ValueError):
    """A manual operation was requested on a record in the wrong state."""

    def __init__(self, record_id: str, status: str, operation: str) -> None:
        self.record_id = record_id
        self.status = status
        self.operation = operation
        super().__init__(f"Cannot {operation} record {record_id} with status '{status}'")
