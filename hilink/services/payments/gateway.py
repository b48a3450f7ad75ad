from __future__ import annotations

import hashlib
import hmac
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any

from ...config import Settings
from ...core.errors import InvalidSignature, PaymentProviderError
from ...db.models import TransactionStatus

_SUCCESS_STATES = frozenset({"settlement", "capture"})
_FAILED_STATES = frozenset({"cancel", "expire", "failure"})


@dataclass(slots=True)
class PaymentToken:
    token: str
    redirect_url: str | None = None


@dataclass(slots=True)
class PaymentNotification:
    order_id: str
    transaction_status: str
    fraud_status: str | None
    status_code: str
    gross_amount: Decimal
    payment_status: TransactionStatus


def compute_signature(order_id: str, status_code: str, gross_amount: str, server_key: str) -> str:
    payload = f"{order_id}{status_code}{gross_amount}{server_key}"
    return hashlib.sha512(payload.encode("utf-8")).hexdigest()


def map_transaction_status(transaction_status: str | None) -> TransactionStatus:
    """Collapse a gateway transaction state into success / pending / failed."""

    normalized = (transaction_status or "").strip().lower()
    if normalized in _SUCCESS_STATES:
        return TransactionStatus.success
    if normalized in _FAILED_STATES:
        return TransactionStatus.failed
    return TransactionStatus.pending


class BasePaymentGateway(ABC):
    name: str = "base"

    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    @property
    def server_key(self) -> str:
        return self.settings.midtrans_server_key

    @abstractmethod
    def create_token(
        self,
        order_id: str,
        amount: int,
        customer_details: dict[str, Any],
        line_items: list[dict[str, Any]],
    ) -> PaymentToken:
        raise NotImplementedError

    @abstractmethod
    def check_status(self, order_id: str) -> dict[str, Any]:
        raise NotImplementedError

    @abstractmethod
    def cancel(self, order_id: str) -> dict[str, Any]:
        raise NotImplementedError

    def parse_webhook(self, data: dict[str, Any]) -> PaymentNotification:
        order_id = data.get("order_id")
        status_code = data.get("status_code")
        gross_amount = data.get("gross_amount")
        if not order_id or status_code is None or gross_amount is None:
            raise PaymentProviderError("Incomplete payment notification")
        expected = compute_signature(
            str(order_id), str(status_code), str(gross_amount), self.server_key
        )
        if not hmac.compare_digest(str(data.get("signature_key") or ""), expected):
            raise InvalidSignature("Invalid signature")
        try:
            amount = Decimal(str(gross_amount))
        except InvalidOperation as exc:
            raise PaymentProviderError("Invalid gross amount") from exc
        transaction_status = str(data.get("transaction_status") or "")
        return PaymentNotification(
            order_id=str(order_id),
            transaction_status=transaction_status,
            fraud_status=data.get("fraud_status"),
            status_code=str(status_code),
            gross_amount=amount,
            payment_status=map_transaction_status(transaction_status),
        )

    def close(self) -> None:
        return None


def get_gateway(settings: Settings) -> BasePaymentGateway:
    if settings.payment_provider == "stub":
        from .stub import StubGateway

        return StubGateway(settings)
    if settings.payment_provider == "midtrans":
        from .midtrans import MidtransGateway

        return MidtransGateway(settings)
    raise ValueError(f"Unsupported payment provider {settings.payment_provider}")
