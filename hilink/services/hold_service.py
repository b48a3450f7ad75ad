from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy import Select, delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from ..core.constants import DEFAULT_HOLD_DURATION
from ..core.errors import InsufficientStock, NotFound, PersistenceError, ValidationError
from ..db import models
from . import inventory_ledger

logger = logging.getLogger(__name__)

DEFAULT_HOLD_MINUTES = int(DEFAULT_HOLD_DURATION.total_seconds() // 60)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def equipment_lock_query(equipment_id: int) -> Select:
    return select(models.Equipment.id).where(models.Equipment.id == equipment_id).with_for_update()


def reserve_locked(
    db: Session,
    *,
    equipment_id: int,
    quantity: int,
    owner_id: int,
    booking_id: int | None,
    duration_minutes: int,
    now: datetime,
) -> models.EquipmentHold:
    """Check availability and insert a hold inside the caller's transaction.

    The equipment row is locked first so that concurrent reservations of the
    same equipment run one after another; the lock is released when the
    surrounding transaction ends.
    """

    if quantity <= 0:
        raise ValidationError("Quantity must be positive")
    if duration_minutes <= 0:
        raise ValidationError("Hold duration must be positive")
    locked = db.execute(equipment_lock_query(equipment_id)).scalar_one_or_none()
    if locked is None:
        raise NotFound("Equipment not found")
    available = inventory_ledger.available_quantity(db, equipment_id, quantity, now=now)
    if available < quantity:
        raise InsufficientStock(available, equipment_id=equipment_id)
    hold = models.EquipmentHold(
        equipment_id=equipment_id,
        booking_id=booking_id,
        user_id=owner_id,
        quantity=quantity,
        expires_at=now + timedelta(minutes=duration_minutes),
        created_at=now,
    )
    db.add(hold)
    db.flush()
    return hold


def create_hold(
    db: Session,
    equipment_id: int,
    quantity: int,
    owner_id: int,
    booking_id: int | None = None,
    duration_minutes: int = DEFAULT_HOLD_MINUTES,
    *,
    now: datetime | None = None,
) -> models.EquipmentHold:
    now = now or _utc_now()
    transaction_ctx = db.begin_nested() if db.in_transaction() else db.begin()
    try:
        with transaction_ctx:
            if booking_id is not None:
                booking = db.get(models.Booking, booking_id)
                if booking is None or booking.user_id != owner_id:
                    raise NotFound("Booking not found")
            hold = reserve_locked(
                db,
                equipment_id=equipment_id,
                quantity=quantity,
                owner_id=owner_id,
                booking_id=booking_id,
                duration_minutes=duration_minutes,
                now=now,
            )
    except SQLAlchemyError as exc:
        logger.exception("Failed to create equipment hold", extra={"equipment_id": equipment_id})
        raise PersistenceError("Failed to create equipment hold") from exc
    if db.in_transaction():
        db.commit()
    logger.info(
        "Equipment hold created",
        extra={
            "hold_id": hold.id,
            "equipment_id": equipment_id,
            "user_id": owner_id,
            "quantity": quantity,
        },
    )
    return hold


def extend_hold(
    db: Session,
    hold_id: int,
    additional_minutes: int = DEFAULT_HOLD_MINUTES,
    *,
    now: datetime | None = None,
) -> bool:
    """Reset the hold to expire ``additional_minutes`` from now.

    Availability is not re-checked. Returns ``False`` for an unknown hold.
    """

    now = now or _utc_now()
    try:
        result = db.execute(
            update(models.EquipmentHold)
            .where(models.EquipmentHold.id == hold_id)
            .values(expires_at=now + timedelta(minutes=additional_minutes))
            .execution_options(synchronize_session=False)
        )
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Failed to extend equipment hold", extra={"hold_id": hold_id})
        return False
    return result.rowcount > 0


def release_hold(db: Session, hold_id: int) -> bool:
    try:
        result = db.execute(
            delete(models.EquipmentHold)
            .where(models.EquipmentHold.id == hold_id)
            .execution_options(synchronize_session=False)
        )
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Failed to release equipment hold", extra={"hold_id": hold_id})
        return False
    return result.rowcount > 0


def release_user_holds(db: Session, user_id: int, equipment_id: int | None = None) -> int:
    stmt = delete(models.EquipmentHold).where(models.EquipmentHold.user_id == user_id)
    if equipment_id is not None:
        stmt = stmt.where(models.EquipmentHold.equipment_id == equipment_id)
    try:
        result = db.execute(stmt.execution_options(synchronize_session=False))
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise PersistenceError("Failed to release holds") from exc
    return result.rowcount


def release_booking_holds(db: Session, booking_id: int) -> int:
    """Delete every hold attached to ``booking_id``, expired or not.

    Runs in the caller's transaction; the caller commits.
    """

    result = db.execute(
        delete(models.EquipmentHold)
        .where(models.EquipmentHold.booking_id == booking_id)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount


def user_active_holds(
    db: Session, user_id: int, *, now: datetime | None = None
) -> list[models.EquipmentHold]:
    now = now or _utc_now()
    stmt = (
        select(models.EquipmentHold)
        .options(selectinload(models.EquipmentHold.equipment))
        .where(models.EquipmentHold.user_id == user_id)
        .where(models.EquipmentHold.expires_at > now)
        .order_by(models.EquipmentHold.created_at.desc(), models.EquipmentHold.id.desc())
    )
    return list(db.execute(stmt).scalars().all())


def cleanup_expired_holds(
    db: Session,
    *,
    grace: timedelta = timedelta(0),
    now: datetime | None = None,
) -> int:
    """Delete holds that expired more than ``grace`` ago.

    Expired holds are already ignored by availability reads, so this only
    bounds table growth. Safe to run repeatedly.
    """

    cutoff = (now or _utc_now()) - grace
    result = db.execute(
        delete(models.EquipmentHold)
        .where(models.EquipmentHold.expires_at <= cutoff)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    if result.rowcount:
        logger.info("Expired equipment holds removed", extra={"count": result.rowcount})
    return result.rowcount


def is_hold_expired(expires_at: datetime, *, now: datetime | None = None) -> bool:
    return _as_utc(expires_at) <= (now or _utc_now())


def format_hold_expiration(expires_at: datetime, *, now: datetime | None = None) -> str:
    remaining = _as_utc(expires_at) - (now or _utc_now())
    minutes = int(remaining.total_seconds() // 60)
    if minutes <= 0:
        return "Expired"
    if minutes < 60:
        return f"{minutes} minutes remaining"
    hours, rest = divmod(minutes, 60)
    return f"{hours}h {rest}m remaining"


__all__ = [
    "DEFAULT_HOLD_MINUTES",
    "equipment_lock_query",
    "cleanup_expired_holds",
    "create_hold",
    "extend_hold",
    "format_hold_expiration",
    "is_hold_expired",
    "release_booking_holds",
    "release_hold",
    "release_user_holds",
    "reserve_locked",
    "user_active_holds",
]
