"""Notification delivery package."""

from splitsmart.services.notifications.interface import (
    NotificationKind,
    NotificationSenderInterface,
    NotificationSendError,
    SendResult,
)
from splitsmart.services.notifications.http_sender import HttpNotificationSender
from splitsmart.services.notifications.retrying import RetryingNotificationSender

__all__ = [
    "HttpNotificationSender",
    "NotificationKind",
    "NotificationSenderInterface",
    "NotificationSendError",
    "RetryingNotificationSender",
    "SendResult",
]
