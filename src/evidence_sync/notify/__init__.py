"""Notification module for announcing uploaded evidence to a contact."""

from evidence_sync.notify.channels import CommandChannel, NotificationChannel, WebhookChannel
from evidence_sync.notify.contacts import (
    ContactDirectory,
    StaticContactDirectory,
    YamlContactDirectory,
)
from evidence_sync.notify.fanout import NotificationFanout, format_share_message

__all__ = [
    "CommandChannel",
    "ContactDirectory",
    "NotificationChannel",
    "NotificationFanout",
    "StaticContactDirectory",
    "WebhookChannel",
    "YamlContactDirectory",
    "format_share_message",
]
