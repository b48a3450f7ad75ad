from __future__ import annotations

import logging
from typing import Any

import httpx

from ...config import Settings
from ...core.errors import PaymentProviderError
from .gateway import BasePaymentGateway, PaymentToken

logger = logging.getLogger(__name__)

SNAP_SANDBOX_URL = "https://app.sandbox.midtrans.com/snap/v1/transactions"
SNAP_PRODUCTION_URL = "https://app.midtrans.com/snap/v1/transactions"
CORE_SANDBOX_URL = "https://api.sandbox.midtrans.com"
CORE_PRODUCTION_URL = "https://api.midtrans.com"


class MidtransGateway(BasePaymentGateway):
    """Midtrans Snap (token issuance) and Core API (status, cancel) client."""

    name = "midtrans"

    def __init__(self, settings: Settings, client: httpx.Client | None = None) -> None:
        super().__init__(settings)
        if not settings.midtrans_server_key:
            logger.warning("MIDTRANS_SERVER_KEY is not configured; gateway calls will be rejected")
        self._client = client or httpx.Client(timeout=settings.payment_http_timeout)

    @property
    def snap_url(self) -> str:
        return SNAP_PRODUCTION_URL if self.settings.midtrans_is_production else SNAP_SANDBOX_URL

    @property
    def core_url(self) -> str:
        return CORE_PRODUCTION_URL if self.settings.midtrans_is_production else CORE_SANDBOX_URL

    def _request(self, method: str, url: str, json: dict[str, Any] | None = None) -> dict[str, Any]:
        try:
            response = self._client.request(
                method,
                url,
                json=json,
                auth=(self.server_key, ""),
                headers={"Accept": "application/json"},
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.error(
                "Midtrans request rejected",
                extra={"url": url, "status_code": exc.response.status_code},
            )
            raise PaymentProviderError(
                f"Payment provider returned HTTP {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            logger.error("Midtrans request failed", extra={"url": url})
            raise PaymentProviderError("Payment provider is unreachable") from exc
        try:
            return response.json()
        except ValueError as exc:
            raise PaymentProviderError("Payment provider returned malformed JSON") from exc

    def create_token(
        self,
        order_id: str,
        amount: int,
        customer_details: dict[str, Any],
        line_items: list[dict[str, Any]],
    ) -> PaymentToken:
        app_url = self.settings.app_url.rstrip("/")
        parameters = {
            "transaction_details": {"order_id": order_id, "gross_amount": amount},
            "customer_details": customer_details,
            "item_details": line_items,
            "credit_card": {"secure": True},
            "callbacks": {
                "finish": f"{app_url}/payment/success",
                "error": f"{app_url}/payment/error",
                "pending": f"{app_url}/payment/pending",
            },
        }
        logger.info("Creating Midtrans transaction", extra={"order_id": order_id, "amount": amount})
        data = self._request("POST", self.snap_url, json=parameters)
        token = data.get("token")
        if not token:
            raise PaymentProviderError("Payment provider did not return a token")
        return PaymentToken(token=token, redirect_url=data.get("redirect_url"))

    def check_status(self, order_id: str) -> dict[str, Any]:
        return self._request("GET", f"{self.core_url}/v2/{order_id}/status")

    def cancel(self, order_id: str) -> dict[str, Any]:
        logger.info("Cancelling Midtrans transaction", extra={"order_id": order_id})
        return self._request("POST", f"{self.core_url}/v2/{order_id}/cancel")

    def close(self) -> None:
        self._client.close()
