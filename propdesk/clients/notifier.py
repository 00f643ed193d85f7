# propdesk/clients/notifier.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

import httpx

from ..config import settings


@dataclass(frozen=True)
class DeliveryResult:
    delivered: bool
    status_code: Optional[int] = None
    error: Optional[str] = None


class WebhookNotifier:
    """
    Pushes notifications to an outbound webhook. Delivery is best-effort:
    `deliver` reports failures in its result instead of raising.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        *,
        timeout: Optional[float] = None,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self.url = url if url is not None else settings.notification_webhook_url
        self.timeout = float(timeout if timeout is not None else settings.notification_timeout_seconds)
        self._client = client

    def enabled(self) -> bool:
        return bool(self.url)

    def _post(self, client: httpx.Client, payload: dict[str, Any]) -> httpx.Response:
        r = client.post(self.url, json=payload)
        r.raise_for_status()
        return r

    def deliver(self, payload: dict[str, Any]) -> DeliveryResult:
        if not self.url:
            return DeliveryResult(delivered=False, error="notification_webhook_url not set")
        try:
            if self._client is not None:
                r = self._post(self._client, payload)
            else:
                with httpx.Client(timeout=self.timeout) as client:
                    r = self._post(client, payload)
        except httpx.HTTPError as e:
            return DeliveryResult(delivered=False, error=f"{type(e).__name__}: {e}")
        return DeliveryResult(delivered=True, status_code=r.status_code)


def get_notifier() -> Optional[WebhookNotifier]:
    n = WebhookNotifier()
    return n if n.enabled() else None
