"""Notification channels delivering a text message to a contact."""

import asyncio
import logging
import shlex
from typing import Protocol

import httpx

from evidence_sync import __version__

logger = logging.getLogger(__name__)


class NotificationChannel(Protocol):
    """A single delivery route (messaging gateway, SMS, ...)."""

    name: str

    async def send(self, contact: str, message: str) -> bool:
        """Deliver message to contact.

        Returns:
            True if the channel accepted the message
        """
        ...


class WebhookChannel:
    """Posts {contact, message} as JSON to a messaging gateway."""

    def __init__(
        self,
        url: str,
        token: str | None = None,
        name: str = "webhook",
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.url = url
        self.name = name

        headers = {"User-Agent": f"evidence-sync/{__version__}"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            headers=headers,
            transport=transport,
        )

    async def send(self, contact: str, message: str) -> bool:
        try:
            response = await self._client.post(
                self.url,
                json={"contact": contact, "message": message},
            )
        except httpx.HTTPError as e:
            logger.warning("Webhook delivery failed: channel=%s, error=%s", self.name, e)
            return False

        if response.is_success:
            return True

        logger.warning(
            "Webhook delivery rejected: channel=%s, status=%d", self.name, response.status_code
        )
        return False

    async def close(self) -> None:
        await self._client.aclose()


async def _terminate(process: asyncio.subprocess.Process) -> None:
    if process.returncode is None:
        try:
            process.kill()
        except ProcessLookupError:
            pass
    await process.wait()


class CommandChannel:
    """Runs a local command (e.g. an SMS sender) for each message.

    The command is given as an argv template; the placeholders {contact}
    and {message} are substituted per argument, never through a shell.

    Example:
        CommandChannel("sms-send --to {contact} --text {message}")
    """

    def __init__(
        self, command: str | list[str], name: str = "command", timeout: float = 30.0
    ) -> None:
        self.argv = shlex.split(command) if isinstance(command, str) else list(command)
        if not self.argv:
            raise ValueError("command must not be empty")
        self.name = name
        self.timeout = timeout

    def build_argv(self, contact: str, message: str) -> list[str]:
        return [
            arg.replace("{contact}", contact).replace("{message}", message)
            for arg in self.argv
        ]

    async def send(self, contact: str, message: str) -> bool:
        try:
            process = await asyncio.create_subprocess_exec(
                *self.build_argv(contact, message),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            logger.warning("Command channel could not start: channel=%s, error=%s", self.name, e)
            return False

        try:
            _, stderr = await asyncio.wait_for(process.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "Command channel timed out: channel=%s, timeout=%ss", self.name, self.timeout
            )
            await _terminate(process)
            return False
        except asyncio.CancelledError:
            await _terminate(process)
            raise

        if process.returncode == 0:
            return True

        logger.warning(
            "Command channel failed: channel=%s, returncode=%s, stderr=%s",
            self.name,
            process.returncode,
            stderr.decode(errors="replace").strip() if stderr else None,
        )
        return False
