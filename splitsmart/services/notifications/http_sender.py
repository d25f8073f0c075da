"""
HTTP Notification Sender

Posts notifications to a mail-delivery endpoint as JSON:

    {"kind": "payment_reminder", "params": {"to": "...", "amountOwed": "30.00", ...}}

The endpoint answers `{"success": true, "messageId": "..."}` or
`{"success": false, "error": "..."}`.
"""

from decimal import Decimal
from typing import Any, Optional

import httpx
from pydantic.alias_generators import to_camel

from splitsmart.config import NotificationSettings, get_settings
from splitsmart.services.notifications.interface import (
    NotificationKind,
    NotificationSenderInterface,
    NotificationSendError,
    SendResult,
)


def _wire_params(params: dict[str, Any]) -> dict[str, Any]:
    return {
        to_camel(key): str(value) if isinstance(value, Decimal) else value
        for key, value in params.items()
    }


class HttpNotificationSender(NotificationSenderInterface):
    """
    Single-attempt sender over httpx.

    Every failure is raised as NotificationSendError; wrap the sender in
    RetryingNotificationSender for retries.
    """

    def __init__(
        self,
        settings: Optional[NotificationSettings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._settings = settings or get_settings().notifications
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._settings.api_key:
            headers["Authorization"] = f"Bearer {self._settings.api_key}"
        return headers

    async def send(self, kind: NotificationKind, params: dict[str, Any]) -> SendResult:
        payload = {"kind": kind.value, "params": _wire_params(params)}
        try:
            async with httpx.AsyncClient(
                timeout=self._settings.timeout_seconds,
                transport=self._transport,
            ) as client:
                res = await client.post(
                    self._settings.endpoint_url,
                    json=payload,
                    headers=self._headers(),
                )
                res.raise_for_status()
                body = res.json()
        except httpx.HTTPStatusError as e:
            raise NotificationSendError(
                f"Notification endpoint returned {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise NotificationSendError(f"Notification request failed: {e}") from e
        except ValueError as e:
            raise NotificationSendError(f"Invalid response from notification endpoint: {e}") from e

        if not isinstance(body, dict) or not body.get("success", False):
            error = body.get("error") if isinstance(body, dict) else None
            raise NotificationSendError(error or "Notification endpoint reported failure")

        return SendResult(success=True, message_id=body.get("messageId"))
