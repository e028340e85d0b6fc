"""Artifact sources resolving a record's source handle to bytes."""

import asyncio
from pathlib import Path
from typing import Protocol

from evidence_sync.errors import ArtifactNotFoundError


class ArtifactSource(Protocol):
    """Resolves artifact payloads on demand."""

    async def resolve_bytes(self, source_handle: str) -> bytes:
        """Return the artifact bytes.

        Raises:
            ArtifactNotFoundError: If the artifact is missing or unreadable
        """
        ...


class FileArtifactSource:
    """Reads artifacts from the local filesystem.

    Source handles are file paths; relative paths are resolved against
    base_dir when one is given.
    """

    def __init__(self, base_dir: Path | None = None) -> None:
        self.base_dir = Path(base_dir).expanduser() if base_dir else None

    def path_for(self, source_handle: str) -> Path:
        path = Path(source_handle).expanduser()
        if not path.is_absolute() and self.base_dir is not None:
            path = self.base_dir / path
        return path

    async def resolve_bytes(self, source_handle: str) -> bytes:
        path = self.path_for(source_handle)
        try:
            data = await asyncio.to_thread(path.read_bytes)
        except FileNotFoundError:
            raise ArtifactNotFoundError(source_handle, "file does not exist") from None
        except OSError as e:
            raise ArtifactNotFoundError(source_handle, str(e)) from e

        if not data:
            raise ArtifactNotFoundError(source_handle, "file is empty")
        return data
