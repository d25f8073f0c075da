"""
Retrying Notification Sender

Wraps another sender with a fixed retry policy: up to `max_attempts`
tries, `retry_delay_seconds` apart. After the last failure the caller
gets a failed SendResult; nothing is retried later.
"""

from typing import Any, Optional

import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from splitsmart.config import NotificationSettings, get_settings
from splitsmart.services.notifications.interface import (
    NotificationKind,
    NotificationSenderInterface,
    NotificationSendError,
    SendResult,
)


logger = structlog.get_logger("splitsmart.notifications")


class RetryingNotificationSender(NotificationSenderInterface):
    """Never raises NotificationSendError; failures come back as results."""

    def __init__(
        self,
        sender: NotificationSenderInterface,
        settings: Optional[NotificationSettings] = None,
    ):
        settings = settings or get_settings().notifications
        self._sender = sender
        self._max_attempts = settings.max_attempts
        self._retry_delay = settings.retry_delay_seconds

    async def send(self, kind: NotificationKind, params: dict[str, Any]) -> SendResult:
        attempts = 0
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self._max_attempts),
                wait=wait_fixed(self._retry_delay),
                retry=retry_if_exception_type(NotificationSendError),
                reraise=True,
            ):
                with attempt:
                    attempts = attempt.retry_state.attempt_number
                    result = await self._sender.send(kind, params)
                    if not result.success:
                        raise NotificationSendError(result.error or "Delivery failed")
                    if attempts > 1:
                        logger.info(
                            "notification_delivered_after_retry",
                            kind=kind.value,
                            attempts=attempts,
                        )
        except NotificationSendError as e:
            logger.warning(
                "notification_failed",
                kind=kind.value,
                recipient=params.get("to"),
                attempts=attempts,
                error=str(e),
            )
            return SendResult(success=False, error=str(e), attempts=attempts)

        return result.model_copy(update={"attempts": attempts})
