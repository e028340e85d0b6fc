"""Cloud uploaders accepting artifact bytes and returning a durable URL."""

import asyncio
import json
from datetime import datetime
from typing import Any, Protocol

import httpx

from evidence_sync import __version__
from evidence_sync.errors import UploadError


class CloudUploader(Protocol):
    """Stores an artifact remotely."""

    async def upload(self, data: bytes, metadata: dict[str, Any]) -> str:
        """Upload artifact bytes.

        Args:
            data: Raw artifact bytes (e.g. JPEG data)
            metadata: id, timestamp, reason, latitude, longitude

        Returns:
            URL at which the artifact can be viewed

        Raises:
            UploadError: If the upload did not produce a URL
        """
        ...


class HttpCloudUploader:
    """Multipart HTTP uploader for evidence photos.

    Uses httpx.AsyncClient for connection pooling. Performs exactly one
    request per call; retry and backoff belong to the queue processor.
    """

    def __init__(
        self,
        upload_url: str,
        token: str | None = None,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the uploader.

        Args:
            upload_url: Endpoint receiving the multipart upload
            token: Optional bearer token for the endpoint
            timeout: Request timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        self.upload_url = upload_url
        self.timeout = timeout

        headers = {"User-Agent": f"evidence-sync/{__version__}"}
        if token:
            headers["Authorization"] = f"Bearer {token}"

        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            headers=headers,
            transport=transport,
        )

    async def upload(self, data: bytes, metadata: dict[str, Any]) -> str:
        filename = f"{metadata.get('id', 'artifact')}.jpg"
        files = {"file": (filename, data, "image/jpeg")}
        form_data = {"metadata": json.dumps(metadata)}

        try:
            response = await self._client.post(self.upload_url, files=files, data=form_data)
        except httpx.ConnectError as e:
            raise UploadError(f"Connection error: {e}") from e
        except httpx.TimeoutException as e:
            raise UploadError(f"Timeout: {e}") from e
        except httpx.HTTPError as e:
            raise UploadError(f"HTTP error: {e}") from e

        if 400 <= response.status_code < 500:
            raise UploadError(
                f"Client error: {response.status_code} - {response.text}",
                status_code=response.status_code,
            )
        if response.status_code >= 300:
            raise UploadError(
                f"Server error: {response.status_code}",
                status_code=response.status_code,
            )

        try:
            url = response.json().get("url")
        except (json.JSONDecodeError, AttributeError):
            url = None

        if not url:
            raise UploadError("Upload returned no URL", status_code=response.status_code)
        return str(url)

    async def close(self) -> None:
        """Close the HTTP client and release resources."""
        await self._client.aclose()

    async def __aenter__(self) -> "HttpCloudUploader":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        await self.close()


class SimulatedCloudUploader:
    """Development uploader that fabricates URLs without any network I/O."""

    def __init__(self, base_url: str = "https://cloud.antitheft.app", delay: float = 0.5) -> None:
        self.base_url = base_url.rstrip("/")
        self.delay = delay

    async def upload(self, data: bytes, metadata: dict[str, Any]) -> str:
        if self.delay:
            await asyncio.sleep(self.delay)

        timestamp = metadata.get("timestamp")
        millis = int(datetime.fromisoformat(timestamp).timestamp() * 1000) if timestamp else 0
        return f"{self.base_url}/photos/{metadata['id']}?t={millis}"
