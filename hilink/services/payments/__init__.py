from .gateway import (
    BasePaymentGateway,
    PaymentNotification,
    PaymentToken,
    compute_signature,
    get_gateway,
    map_transaction_status,
)
from .midtrans import MidtransGateway
from .stub import StubGateway

__all__ = [
    "BasePaymentGateway",
    "PaymentNotification",
    "PaymentToken",
    "compute_signature",
    "get_gateway",
    "map_transaction_status",
    "MidtransGateway",
    "StubGateway",
]
