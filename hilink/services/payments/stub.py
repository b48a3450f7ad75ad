from __future__ import annotations

import logging
import uuid
from typing import Any

from .gateway import BasePaymentGateway, PaymentToken

logger = logging.getLogger(__name__)


class StubGateway(BasePaymentGateway):
    """Local payment gateway that issues tokens without talking to anyone.

    Notifications are verified with the same signature scheme as the real
    gateway, so webhook handling can be exercised end to end in development.
    """

    name = "stub"

    def __init__(self, settings) -> None:
        super().__init__(settings)
        self.orders: dict[str, dict[str, Any]] = {}

    @property
    def server_key(self) -> str:
        return self.settings.midtrans_server_key or "stub-server-key"

    def create_token(
        self,
        order_id: str,
        amount: int,
        customer_details: dict[str, Any],
        line_items: list[dict[str, Any]],
    ) -> PaymentToken:
        token = uuid.uuid4().hex
        self.orders[order_id] = {
            "order_id": order_id,
            "gross_amount": amount,
            "item_details": line_items,
            "transaction_status": "pending",
        }
        logger.info("Stub payment token issued", extra={"order_id": order_id, "amount": amount})
        return PaymentToken(
            token=token,
            redirect_url=f"{self.settings.app_url.rstrip('/')}/payment/stub/{order_id}",
        )

    def check_status(self, order_id: str) -> dict[str, Any]:
        return self.orders.get(
            order_id, {"order_id": order_id, "transaction_status": "pending"}
        )

    def cancel(self, order_id: str) -> dict[str, Any]:
        order = self.orders.setdefault(order_id, {"order_id": order_id})
        order["transaction_status"] = "cancel"
        return {"order_id": order_id, "transaction_status": "cancel", "status_code": "200"}
