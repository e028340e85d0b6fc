"""Structured JSON logging for the evidence upload queue.

Provides audit-friendly logging with contextual fields for queue records,
upload attempts and notifications. Artifact bytes, message bodies and
credentials are never logged.

Usage:
    from evidence_sync.logging import setup_logging, log_upload_success

    setup_logging("INFO")
    logger = logging.getLogger(__name__)
    log_upload_success(logger, record.id, artifact.id, duration_ms)
"""

from __future__ import annotations

import logging
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path

from pythonjsonlogger.json import JsonFormatter

from evidence_sync import __version__

class EvidenceJsonFormatter(JsonFormatter):
    """JSON formatter that adds service context to all log records."""

    def __init__(self, *args, device_id: str | None = None, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.device_id = device_id

    def add_fields(
        self,
        log_record: dict,
        record: logging.LogRecord,
        message_dict: dict,
    ) -> None:
        """Add standard fields to every log record."""
        super().add_fields(log_record, record, message_dict)

        log_record["timestamp"] = self.formatTime(record)
        log_record["level"] = record.levelname
        log_record["logger"] = record.name
        log_record["service_version"] = __version__
        if self.device_id:
            log_record["device_id"] = self.device_id

        if "message" not in log_record and record.getMessage():
            log_record["message"] = record.getMessage()

    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:
        """Format time as ISO 8601."""
        dt = datetime.fromtimestamp(record.created, tz=timezone.utc)
        return dt.isoformat()


def setup_logging(
    level: str = "INFO",
    log_file: Path | None = None,
    device_id: str | None = None,
    max_bytes: int = 10_000_000,  # 10MB
    backup_count: int = 5,
) -> None:
    """Configure root logger with JSON formatting.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional path for rotating file handler
        device_id: Identifier of the protected device
        max_bytes: Max size per log file for rotation
        backup_count: Number of backup files to keep
    """
    formatter = EvidenceJsonFormatter(device_id=device_id)

    root_logger = logging.getLogger()
    root_logger.setLevel(level.upper())

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    # JSON to stderr for easy parsing
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        log_file = Path(log_file).expanduser()
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=max_bytes,
            backupCount=backup_count,
        )
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)


# --- Audit Event Functions ---


def log_record_enqueued(
    logger: logging.Logger,
    record_id: str,
    artifact_id: str,
    reason: str,
) -> None:
    """Log a new record entering the queue."""
    logger.info(
        "Record enqueued",
        extra={
            "event": "record_enqueued",
            "record_id": record_id,
            "artifact_id": artifact_id,
            "reason": reason,
        },
    )


def log_upload_success(
    logger: logging.Logger,
    record_id: str,
    artifact_id: str,
    duration_ms: float,
) -> None:
    """Log a successful upload.

    Args:
        logger: Logger instance
        record_id: Queue record identifier
        artifact_id: Artifact identifier
        duration_ms: Time spent resolving and uploading the artifact
    """
    logger.info(
        "Upload successful",
        extra={
            "event": "upload_success",
            "record_id": record_id,
            "artifact_id": artifact_id,
            "duration_ms": duration_ms,
        },
    )


def log_upload_failed(
    logger: logging.Logger,
    record_id: str,
    error: str,
    retry_count: int,
    terminal: bool,
) -> None:
    """Log a failed upload attempt.

    Args:
        logger: Logger instance
        record_id: Queue record identifier
        error: Error message (no artifact data)
        retry_count: Retry count after this failure
        terminal: Whether automatic retries are exhausted
    """
    logger.warning(
        "Upload failed",
        extra={
            "event": "upload_failed",
            "record_id": record_id,
            "error": error,
            "retry_count": retry_count,
            "terminal": terminal,
        },
    )


def log_record_state_change(
    logger: logging.Logger,
    record_id: str,
    old_status: str,
    new_status: str,
    trigger: str | None = None,
) -> None:
    """Log a record status transition."""
    extra = {
        "event": "record_state_change",
        "record_id": record_id,
        "old_status": old_status,
        "new_status": new_status,
    }
    if trigger:
        extra["trigger"] = trigger
    logger.info("Record state changed", extra=extra)


def log_notification_result(
    logger: logging.Logger,
    artifact_id: str,
    primary_sent: bool,
    fallback_sent: bool,
) -> None:
    """Log the outcome of a notification fan-out.

    Note: The message body and contact are deliberately not logged.
    """
    level = logging.INFO if (primary_sent or fallback_sent) else logging.WARNING
    logger.log(
        level,
        "Notification result",
        extra={
            "event": "notification_result",
            "artifact_id": artifact_id,
            "primary_sent": primary_sent,
            "fallback_sent": fallback_sent,
        },
    )
