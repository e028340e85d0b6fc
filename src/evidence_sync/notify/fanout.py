"""Best-effort announcement of uploaded artifacts to the emergency contact."""

import logging
from datetime import datetime

from evidence_sync.logging import log_notification_result
from evidence_sync.models import ArtifactReference
from evidence_sync.notify.channels import NotificationChannel
from evidence_sync.notify.contacts import ContactDirectory

logger = logging.getLogger(__name__)

REASON_LABELS = {
    "failed_login": "Failed login attempt",
    "sim_change": "SIM card changed",
    "settings_access": "Settings access attempt",
    "file_manager_access": "File manager access attempt",
    "panic_mode": "Panic mode activated",
    "screen_unlock_failed": "Failed screen unlock",
}


def format_reason(reason: str) -> str:
    """Return the human-readable label for a capture reason."""
    return REASON_LABELS.get(reason, reason)


def format_timestamp(timestamp: datetime) -> str:
    return timestamp.strftime("%Y-%m-%d %H:%M:%S")


def format_share_message(url: str, artifact: ArtifactReference) -> str:
    """Build the alert text sent to the contact."""
    lines = [
        "INTRUDER PHOTO ALERT",
        "",
        f"Photo captured: {format_timestamp(artifact.captured_at)}",
        f"Reason: {format_reason(artifact.reason)}",
    ]
    if artifact.location is not None:
        lines.append(f"Location: {artifact.location.maps_link()}")
    lines.extend(["", f"View photo: {url}"])
    return "\n".join(lines) + "\n"


class NotificationFanout:
    """Sends the upload link over a primary and a fallback channel.

    Both configured channels are attempted independently; delivery counts
    as successful when either accepted the message. A channel that raises
    is treated as not having delivered.
    """

    def __init__(
        self,
        contacts: ContactDirectory,
        primary: NotificationChannel | None = None,
        fallback: NotificationChannel | None = None,
    ) -> None:
        self.contacts = contacts
        self.primary = primary
        self.fallback = fallback

    async def _try_send(
        self, channel: NotificationChannel | None, contact: str, message: str
    ) -> bool:
        if channel is None:
            return False
        try:
            return bool(await channel.send(contact, message))
        except Exception as e:
            logger.warning(
                "Notification channel error: channel=%s, error=%s",
                getattr(channel, "name", type(channel).__name__),
                e,
            )
            return False

    async def share(self, url: str, artifact: ArtifactReference) -> bool:
        """Announce an uploaded artifact.

        Args:
            url: Where the uploaded artifact can be viewed
            artifact: Artifact context for the message

        Returns:
            True if at least one channel delivered the message
        """
        contact = await self.contacts.primary_contact()
        if not contact:
            logger.warning("No emergency contact configured: artifact_id=%s", artifact.id)
            return False

        message = format_share_message(url, artifact)
        primary_sent = await self._try_send(self.primary, contact, message)
        fallback_sent = await self._try_send(self.fallback, contact, message)

        log_notification_result(logger, artifact.id, primary_sent, fallback_sent)
        return primary_sent or fallback_sent
