"""Queue data model: artifact references, queue records and their JSON form."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

MAX_RETRIES = 5


def utcnow() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def _dump_time(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _load_time(value: Any) -> datetime | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise TypeError(f"Expected ISO 8601 string, got {type(value).__name__}")
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class UploadStatus(Enum):
    """Delivery status of a queue record."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @classmethod
    def parse(cls, value: Any) -> "UploadStatus":
        """Parse a persisted status.

        Accepts the string value, or the integer index used by documents
        written by the device app (pending=0 ... cancelled=4).
        """
        if isinstance(value, bool):
            raise ValueError(f"Invalid status: {value!r}")
        if isinstance(value, int):
            if value < 0:
                raise ValueError(f"Invalid status index: {value}")
            return list(cls)[value]
        return cls(value)


@dataclass(frozen=True)
class GeoLocation:
    """Where an artifact was captured."""

    latitude: float
    longitude: float
    accuracy: float
    timestamp: datetime
    address: str | None = None

    def maps_link(self) -> str:
        """Return a Google Maps link for this position."""
        return f"https://maps.google.com/?q={self.latitude},{self.longitude}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "latitude": self.latitude,
            "longitude": self.longitude,
            "accuracy": self.accuracy,
            "timestamp": _dump_time(self.timestamp),
            "address": self.address,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "GeoLocation":
        return cls(
            latitude=float(data["latitude"]),
            longitude=float(data["longitude"]),
            accuracy=float(data.get("accuracy", 0.0)),
            timestamp=_load_time(data["timestamp"]),
            address=data.get("address"),
        )


@dataclass(frozen=True)
class ArtifactReference:
    """Immutable description of a captured artifact awaiting upload.

    Attributes:
        id: Producer-assigned artifact identifier
        source_handle: Opaque handle resolved by an ArtifactSource (a file path
            for the file-backed source)
        captured_at: When the artifact was captured
        reason: Capture classification (e.g. "failed_login", "sim_change")
        location: Optional capture location
    """

    id: str
    source_handle: str
    captured_at: datetime
    reason: str
    location: GeoLocation | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "source_handle": self.source_handle,
            "captured_at": _dump_time(self.captured_at),
            "reason": self.reason,
        }
        if self.location is not None:
            data["location"] = self.location.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ArtifactReference":
        location = data.get("location")
        return cls(
            id=str(data["id"]),
            source_handle=str(data["source_handle"]),
            captured_at=_load_time(data["captured_at"]),
            reason=str(data["reason"]),
            location=GeoLocation.from_dict(location) if location else None,
        )

    def upload_metadata(self) -> dict[str, Any]:
        """Metadata sent alongside the artifact bytes to the cloud store."""
        return {
            "id": self.id,
            "timestamp": _dump_time(self.captured_at),
            "reason": self.reason,
            "latitude": self.location.latitude if self.location else None,
            "longitude": self.location.longitude if self.location else None,
        }


@dataclass
class QueueRecord:
    """Durable unit of work tracking one artifact's delivery."""

    id: str
    artifact: ArtifactReference
    status: UploadStatus
    queued_at: datetime
    retry_count: int = 0
    max_retries: int = MAX_RETRIES
    last_attempt_at: datetime | None = None
    error_message: str | None = None
    result_url: str | None = None

    @property
    def is_terminal_failure(self) -> bool:
        """True once a failed record has used up its automatic retries."""
        return self.status == UploadStatus.FAILED and self.retry_count >= self.max_retries

    @property
    def has_retries_left(self) -> bool:
        return self.retry_count < self.max_retries

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "artifact": self.artifact.to_dict(),
            "status": self.status.value,
            "retry_count": self.retry_count,
            "max_retries": self.max_retries,
            "queued_at": _dump_time(self.queued_at),
            "last_attempt_at": _dump_time(self.last_attempt_at),
            "error_message": self.error_message,
            "result_url": self.result_url,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "QueueRecord":
        """Decode a persisted record.

        Raises:
            KeyError, TypeError, ValueError: If the document is malformed
        """
        status = UploadStatus.parse(data["status"])
        result_url = data.get("result_url")
        retry_count = int(data.get("retry_count", 0))
        max_retries = int(data.get("max_retries", MAX_RETRIES))
        if retry_count < 0 or retry_count > max_retries:
            raise ValueError(f"retry_count {retry_count} out of range")
        if (status == UploadStatus.COMPLETED) != bool(result_url):
            raise ValueError("result_url must be set exactly when status is completed")
        return cls(
            id=str(data["id"]),
            artifact=ArtifactReference.from_dict(data["artifact"]),
            status=status,
            queued_at=_load_time(data["queued_at"]),
            retry_count=retry_count,
            max_retries=max_retries,
            last_attempt_at=_load_time(data.get("last_attempt_at")),
            error_message=data.get("error_message"),
            result_url=result_url,
        )


@dataclass
class UploadResult:
    """Outcome of an immediate upload attempt (submit or manual retry)."""

    success: bool
    record: QueueRecord
    url: str | None = None
    error: str | None = None
    queued: bool = False


@dataclass
class PassSummary:
    """What a single processing pass did."""

    ran: bool = True
    online: bool = False
    attempted: int = 0
    completed: int = 0
    failed: int = 0
    deferred: int = 0
    record_ids: list[str] = field(default_factory=list)
