from __future__ import annotations

import math
from collections.abc import Iterable
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..db import models

_SECONDS_PER_DAY = 24 * 60 * 60


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def calculate_duration_days(start: datetime, end: datetime) -> int:
    """Whole days between ``start`` and ``end``, rounded up, at least one."""

    seconds = (_as_utc(end) - _as_utc(start)).total_seconds()
    return max(1, math.ceil(seconds / _SECONDS_PER_DAY))


def calculate_total(
    price_per_person: Decimal,
    participants_count: int,
    lines: Iterable[tuple[Decimal, int]],
    duration_days: int,
) -> Decimal:
    """``price_per_person * participants + sum(price_per_day * qty * days)``."""

    trip_cost = Decimal(price_per_person) * participants_count
    equipment_cost = sum(
        (Decimal(price_per_day) * quantity * duration_days for price_per_day, quantity in lines),
        Decimal(0),
    )
    return trip_cost + equipment_cost


def recalculate_booking_total(db: Session, booking: models.Booking) -> Decimal:
    """Recompute a stored booking's total from its trip and equipment lines."""

    trip = db.get(models.Trip, booking.trip_id)
    lines = db.execute(
        select(models.Equipment.rental_price_per_day, models.EquipmentBooking.quantity)
        .join(models.Equipment, models.Equipment.id == models.EquipmentBooking.equipment_id)
        .where(models.EquipmentBooking.booking_id == booking.id)
    ).all()
    return calculate_total(
        trip.price_per_person,
        booking.participants_count,
        [(price, quantity) for price, quantity in lines],
        booking.duration_days,
    )


__all__ = ["calculate_duration_days", "calculate_total", "recalculate_booking_total"]
