"""Evidence Sync configuration settings using pydantic-settings."""

from functools import cached_property
from pathlib import Path
from typing import Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Configuration settings for the evidence upload queue.

    Settings are loaded from environment variables with the EVIDENCE_ prefix.
    For example, EVIDENCE_PROCESS_INTERVAL=60 sets process_interval to 60.
    """

    model_config = SettingsConfigDict(
        env_prefix="EVIDENCE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Queue storage
    data_dir: Path = Path("~/.local/share/evidence-sync")
    store_backend: Literal["json", "sqlite"] = "json"

    # Cloud upload
    upload_url: str = "http://localhost:8000/api/evidence/"
    upload_token: str | None = None
    simulate_uploads: bool = False
    simulated_base_url: str = "https://cloud.antitheft.app"
    request_timeout: float = 30.0

    # Connectivity (HTTP health URL wins over DNS lookup when set)
    connectivity_url: str | None = None
    connectivity_host: str = "google.com"
    connectivity_timeout: float = 5.0

    # Processing
    process_interval: int = 300  # 5 minutes between scheduled passes
    attempt_timeout: float = 120.0  # seconds per resolve+upload attempt

    # Notifications
    contacts_file: Path = Path("~/.config/evidence-sync/contacts.yaml")
    emergency_contact: str | None = None
    primary_webhook_url: str | None = None
    primary_webhook_token: str | None = None
    fallback_command: str | None = None  # e.g. "sms-send --to {contact} --text {message}"
    notification_timeout: float = 30.0  # seconds per channel delivery

    # Logging
    device_id: str | None = None  # included in every log line when set
    log_level: str = "INFO"
    log_file: Path | None = None

    @field_validator("process_interval")
    @classmethod
    def validate_process_interval(cls, v: int) -> int:
        """Ensure the processing interval is positive."""
        if v < 1:
            raise ValueError("process_interval must be at least 1 second")
        return v

    @field_validator(
        "attempt_timeout", "request_timeout", "connectivity_timeout", "notification_timeout"
    )
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        """Ensure timeouts are positive."""
        if v <= 0:
            raise ValueError("timeouts must be greater than 0")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Ensure log level is valid."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid_levels:
            raise ValueError(f"log_level must be one of {valid_levels}")
        return v.upper()

    @cached_property
    def data_path(self) -> Path:
        """Return expanded data directory path."""
        return self.data_dir.expanduser()

    @cached_property
    def contacts_path(self) -> Path:
        """Return expanded contacts file path."""
        return self.contacts_file.expanduser()
