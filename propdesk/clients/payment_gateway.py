# propdesk/clients/payment_gateway.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Protocol

import httpx

from ..config import settings
from ..errors import ExternalOperationError


@dataclass(frozen=True)
class ChargeResult:
    reference: str
    amount: float
    raw: dict[str, Any]


class PaymentGateway(Protocol):
    def charge(self, *, amount: float, currency: str, description: str, method: str, source_token: Optional[str] = None) -> ChargeResult:
        """Charge `amount`; raise ExternalOperationError if the charge did not go through."""
        ...


class HttpPaymentGateway:
    """
    Opaque HTTP payment processor: POST {base}/charges, expects a JSON body
    with an `id` (or `reference`) on success.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self.base = (base_url if base_url is not None else settings.payment_gateway_url or "").rstrip("/")
        self.api_key = api_key if api_key is not None else settings.payment_gateway_api_key
        self.timeout = float(timeout if timeout is not None else settings.payment_timeout_seconds)
        self._client = client

    def enabled(self) -> bool:
        return bool(self.base)

    def _headers(self) -> dict[str, str]:
        if not self.api_key:
            return {}
        return {"Authorization": f"Bearer {self.api_key}"}

    def _send(self, client: httpx.Client, body: dict[str, Any]) -> dict[str, Any]:
        r = client.post(f"{self.base}/charges", json=body, headers=self._headers())
        r.raise_for_status()
        data = r.json()
        return data if isinstance(data, dict) else {"raw": data}

    def charge(self, *, amount: float, currency: str, description: str, method: str, source_token: Optional[str] = None) -> ChargeResult:
        if not self.base:
            raise ExternalOperationError("payment gateway is not configured", entity="Payment")

        body = {
            "amount": round(float(amount), 2),
            "currency": currency,
            "description": description,
            "method": method,
            "source": source_token,
        }
        try:
            if self._client is not None:
                data = self._send(self._client, body)
            else:
                with httpx.Client(timeout=self.timeout) as client:
                    data = self._send(client, body)
        except httpx.HTTPError as e:
            raise ExternalOperationError(f"payment gateway call failed: {type(e).__name__}: {e}", entity="Payment")
        except ValueError as e:
            raise ExternalOperationError(f"payment gateway returned malformed JSON: {e}", entity="Payment")

        if data.get("status") in ("failed", "declined"):
            raise ExternalOperationError(f"payment declined: {data.get('message') or data.get('status')}", entity="Payment")

        ref = data.get("id") or data.get("reference")
        if not ref:
            raise ExternalOperationError("payment gateway response carried no reference", entity="Payment")
        return ChargeResult(reference=str(ref), amount=float(amount), raw=data)


def get_payment_gateway() -> PaymentGateway:
    return HttpPaymentGateway()
