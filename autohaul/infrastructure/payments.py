"""
HTTP client for the payment collaborator.

Contract with the provider
--------------------------
``POST {base_url}/charges`` with JSON ``{amount, currency, metadata}`` and an
``Idempotency-Key`` header (the shipment id).  The provider answers:

* ``2xx`` + ``{"id", "status"}`` -- ``succeeded`` or ``processing``
* ``2xx`` with an unreadable body -- outcome unknown, reported as processing
* ``402`` + ``{"error": {"message"}}`` -- card declined
* anything else / network error -- ``ExternalDependencyError``
"""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from autohaul.domain.errors import ExternalDependencyError
from autohaul.domain.ports import ChargeStatus, PaymentGateway, PaymentOutcome

logger = logging.getLogger(__name__)


class HttpPaymentGateway(PaymentGateway):
    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        currency: str = "usd",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.currency = currency
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=self.timeout,
            transport=self._transport,
        )

    async def charge(
        self, amount_cents: int, idempotency_key: str, metadata: dict
    ) -> PaymentOutcome:
        payload = {
            "amount": amount_cents,
            "currency": self.currency,
            "metadata": {k: str(v) for k, v in metadata.items()},
        }
        try:
            async with self._client() as client:
                resp = await client.post(
                    "/charges",
                    json=payload,
                    headers={"Idempotency-Key": idempotency_key},
                )
        except httpx.HTTPError as exc:
            raise ExternalDependencyError(
                f"Payment provider unreachable: {exc}", dependency="payments"
            ) from exc

        if resp.status_code == 402:
            reason = _error_message(resp) or "Card declined"
            return PaymentOutcome(ChargeStatus.DECLINED, reason=reason)

        if resp.is_success:
            try:
                body = resp.json()
            except ValueError:
                body = None
            if not isinstance(body, dict):
                # The charge may have gone through; only a later lookup can tell
                logger.error(
                    "Unreadable charge response (%d) for key %s", resp.status_code, idempotency_key
                )
                return PaymentOutcome(
                    ChargeStatus.PROCESSING, metadata={"provider_status": "unknown"}
                )
            status = body.get("status")
            if status == "succeeded":
                return PaymentOutcome(ChargeStatus.SUCCEEDED, reference=body.get("id"))
            if status in ("processing", "requires_action", "requires_capture"):
                return PaymentOutcome(
                    ChargeStatus.PROCESSING,
                    reference=body.get("id"),
                    metadata={"provider_status": status},
                )
            logger.warning("Unexpected charge status %r for key %s", status, idempotency_key)
            return PaymentOutcome(
                ChargeStatus.DECLINED,
                reference=body.get("id"),
                reason=f"Unexpected payment status: {status}",
            )

        raise ExternalDependencyError(
            f"Payment provider error {resp.status_code}: {_error_message(resp)}",
            dependency="payments",
        )


def _error_message(resp: httpx.Response) -> Optional[str]:
    try:
        body = resp.json()
    except ValueError:
        return resp.text or None
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict):
        return error.get("message")
    return error
