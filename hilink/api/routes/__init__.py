from . import (
    bookings,
    equipment,
    payments,
    misc,
)

__all__ = [
    "bookings",
    "equipment",
    "payments",
    "misc",
]
