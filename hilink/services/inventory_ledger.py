"""Real-time equipment availability.

Availability is never stored. It is aggregated on every read from three
sources:

* ``equipment.stock_quantity`` - the physical units owned,
* active holds - ``equipment_holds`` rows whose ``expires_at`` is still in the
  future (expired rows are simply ignored, no sweep is needed for
  correctness),
* confirmed consumption - ``equipment_bookings`` lines of bookings in the
  ``confirmed`` state.

``available = stock - held - booked``, clamped at zero.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ..core.errors import NotFound
from ..db import models

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class EquipmentAvailability:
    equipment_id: int
    name: str
    stock_quantity: int
    held_quantity: int
    booked_quantity: int

    @property
    def available_quantity(self) -> int:
        return max(0, self.stock_quantity - self.held_quantity - self.booked_quantity)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _held_quantity(db: Session, equipment_id: int, now: datetime) -> int:
    total = db.scalar(
        select(func.coalesce(func.sum(models.EquipmentHold.quantity), 0)).where(
            models.EquipmentHold.equipment_id == equipment_id,
            models.EquipmentHold.expires_at > now,
        )
    )
    return int(total or 0)


def _booked_quantity(db: Session, equipment_id: int) -> int:
    total = db.scalar(
        select(func.coalesce(func.sum(models.EquipmentBooking.quantity), 0))
        .join(models.Booking, models.Booking.id == models.EquipmentBooking.booking_id)
        .where(
            models.EquipmentBooking.equipment_id == equipment_id,
            models.Booking.status == models.BookingStatus.confirmed,
        )
    )
    return int(total or 0)


def reserved_quantity(db: Session, equipment_id: int, *, now: datetime | None = None) -> int:
    """Units taken by active holds plus confirmed booking lines."""

    now = now or _utc_now()
    return _held_quantity(db, equipment_id, now) + _booked_quantity(db, equipment_id)


def available_quantity(
    db: Session,
    equipment_id: int,
    requested_quantity: int = 0,
    *,
    now: datetime | None = None,
) -> int:
    """Return how many units of ``equipment_id`` can still be reserved.

    ``requested_quantity`` is advisory; it only shows up in the log line.
    Raises :class:`NotFound` when the equipment does not exist.
    """

    stock = db.scalar(
        select(models.Equipment.stock_quantity).where(models.Equipment.id == equipment_id)
    )
    if stock is None:
        raise NotFound("Equipment not found")
    reserved = reserved_quantity(db, equipment_id, now=now)
    available = max(0, int(stock) - reserved)
    logger.debug(
        "Equipment availability computed",
        extra={
            "equipment_id": equipment_id,
            "stock": stock,
            "reserved": reserved,
            "available": available,
            "requested": requested_quantity,
        },
    )
    return available


def availability_snapshot(
    db: Session,
    equipment_ids: Iterable[int] | None = None,
    *,
    now: datetime | None = None,
) -> list[EquipmentAvailability]:
    now = now or _utc_now()
    stmt = select(models.Equipment).where(models.Equipment.is_active.is_(True))
    ids = list(equipment_ids) if equipment_ids is not None else None
    if ids is not None:
        stmt = select(models.Equipment).where(models.Equipment.id.in_(ids))
    equipment = list(db.execute(stmt.order_by(models.Equipment.id)).scalars().all())
    if not equipment:
        return []
    found_ids = [item.id for item in equipment]

    held = dict(
        db.execute(
            select(
                models.EquipmentHold.equipment_id,
                func.sum(models.EquipmentHold.quantity),
            )
            .where(models.EquipmentHold.equipment_id.in_(found_ids))
            .where(models.EquipmentHold.expires_at > now)
            .group_by(models.EquipmentHold.equipment_id)
        ).all()
    )
    booked = dict(
        db.execute(
            select(
                models.EquipmentBooking.equipment_id,
                func.sum(models.EquipmentBooking.quantity),
            )
            .join(models.Booking, models.Booking.id == models.EquipmentBooking.booking_id)
            .where(models.EquipmentBooking.equipment_id.in_(found_ids))
            .where(models.Booking.status == models.BookingStatus.confirmed)
            .group_by(models.EquipmentBooking.equipment_id)
        ).all()
    )
    return [
        EquipmentAvailability(
            equipment_id=item.id,
            name=item.name,
            stock_quantity=int(item.stock_quantity),
            held_quantity=int(held.get(item.id, 0) or 0),
            booked_quantity=int(booked.get(item.id, 0) or 0),
        )
        for item in equipment
    ]


__all__ = [
    "EquipmentAvailability",
    "available_quantity",
    "availability_snapshot",
    "reserved_quantity",
]
