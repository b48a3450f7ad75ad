"""Errors raised by the reservation, booking and payment services."""

from __future__ import annotations


class HilinkError(Exception):
    """Base class for all service-level errors."""


class NotFound(HilinkError):
    """A referenced trip, equipment, booking or payment does not exist."""


class ValidationError(HilinkError):
    """The request is malformed (non-positive quantity, participants, ...)."""


class InsufficientStock(HilinkError):
    """The requested hold quantity exceeds what is currently available."""

    def __init__(self, available: int, equipment_id: int | None = None) -> None:
        self.available = available
        self.equipment_id = equipment_id
        super().__init__(f"Only {available} units available")


class PaymentProviderError(HilinkError):
    """The payment gateway rejected a request or could not be reached."""


class InvalidSignature(PaymentProviderError):
    """A gateway notification carried a signature that does not verify."""


class PersistenceError(HilinkError):
    """A write to the underlying store failed."""


__all__ = [
    "HilinkError",
    "NotFound",
    "ValidationError",
    "InsufficientStock",
    "PaymentProviderError",
    "InvalidSignature",
    "PersistenceError",
]
