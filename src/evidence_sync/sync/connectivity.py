"""Network reachability checks gating queue processing."""

import asyncio
import logging
import socket
from typing import Protocol

import httpx

logger = logging.getLogger(__name__)


class ConnectivityOracle(Protocol):
    """Yes/no network reachability check."""

    async def is_reachable(self) -> bool:
        ...


class HttpConnectivityOracle:
    """Reachable when a GET against a health URL gets a non-5xx answer."""

    def __init__(
        self,
        url: str,
        timeout: float = 5.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.url = url
        self.timeout = timeout
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout))

    async def is_reachable(self) -> bool:
        try:
            response = await self._client.get(self.url, timeout=httpx.Timeout(self.timeout))
        except httpx.HTTPError as e:
            logger.debug("Connectivity check failed: url=%s, error=%s", self.url, e)
            return False
        return response.status_code < 500

    async def close(self) -> None:
        await self._client.aclose()


class DnsConnectivityOracle:
    """Reachable when a well-known host name resolves in time."""

    def __init__(self, host: str = "google.com", timeout: float = 5.0) -> None:
        self.host = host
        self.timeout = timeout

    async def is_reachable(self) -> bool:
        loop = asyncio.get_running_loop()
        try:
            addresses = await asyncio.wait_for(
                loop.getaddrinfo(self.host, 443, type=socket.SOCK_STREAM),
                timeout=self.timeout,
            )
        except (OSError, asyncio.TimeoutError) as e:
            logger.debug("Connectivity check failed: host=%s, error=%s", self.host, e)
            return False
        return bool(addresses)
