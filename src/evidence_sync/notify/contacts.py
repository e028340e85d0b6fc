"""Contact directories supplying the emergency contact."""

import asyncio
import logging
from pathlib import Path
from typing import Protocol

import yaml

logger = logging.getLogger(__name__)


class ContactDirectory(Protocol):
    async def primary_contact(self) -> str | None:
        ...


class StaticContactDirectory:
    """A single fixed contact, typically taken from settings."""

    def __init__(self, contact: str | None) -> None:
        self.contact = contact.strip() if contact else None

    async def primary_contact(self) -> str | None:
        return self.contact or None


class YamlContactDirectory:
    """Reads the emergency contact from a YAML file.

    Expected layout:

        primary: "+15551234567"

    The file is re-read on every lookup so edits apply without a restart.
    If it is missing or unreadable, the default contact is used.
    """

    def __init__(self, path: Path, default: str | None = None) -> None:
        self.path = Path(path).expanduser()
        self.default = default

    def _load(self) -> str | None:
        if not self.path.exists():
            return self.default

        try:
            with open(self.path) as f:
                data = yaml.safe_load(f) or {}
        except (yaml.YAMLError, OSError) as e:
            logger.warning("Failed to load contacts from %s: %s", self.path, e)
            return self.default

        if not isinstance(data, dict):
            logger.warning("Ignoring malformed contacts file: %s", self.path)
            return self.default

        primary = data.get("primary")
        if primary is None:
            return self.default
        return str(primary).strip() or self.default

    async def primary_contact(self) -> str | None:
        return await asyncio.to_thread(self._load)
