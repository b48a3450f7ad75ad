from . import (
    booking_service,
    hold_service,
    inventory_ledger,
    payment_service,
    pricing,
)
__all__ = [
    "booking_service",
    "hold_service",
    "inventory_ledger",
    "payment_service",
    "pricing",
]
