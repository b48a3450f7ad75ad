from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from ..core.constants import PAYMENT_TIMEOUT_REASON, PAYMENT_TOKEN_FAILED_REASON
from ..core.errors import (
    NotFound,
    PaymentProviderError,
    PersistenceError,
    ValidationError,
)
from ..db import models
from . import hold_service, payment_service
from .payments.gateway import BasePaymentGateway
from .pricing import calculate_duration_days, calculate_total

logger = logging.getLogger(__name__)

CANCELLABLE_STATUSES = (models.BookingStatus.pending, models.BookingStatus.confirmed)
_RELEASING_STATUSES = (
    models.BookingStatus.confirmed,
    models.BookingStatus.cancelled,
    models.BookingStatus.expired,
)


@dataclass(slots=True)
class BookingResult:
    booking_id: int
    payment_token: str
    payment_url: str | None
    order_id: str
    total_amount: Decimal
    status: str


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _merge_items(equipment_items: Iterable[Mapping[str, Any]]) -> dict[int, int]:
    merged: dict[int, int] = {}
    for item in equipment_items:
        quantity = int(item["quantity"])
        if quantity <= 0:
            raise ValidationError("Equipment quantity must be positive")
        equipment_id = int(item["equipment_id"])
        merged[equipment_id] = merged.get(equipment_id, 0) + quantity
    return merged


def _insert_booking(
    db: Session,
    *,
    trip_id: int,
    participants_count: int,
    items: dict[int, int],
    user_id: int,
    hold_minutes: int,
    now: datetime,
) -> models.Booking:
    trip = db.get(models.Trip, trip_id)
    if trip is None:
        raise NotFound("Trip not found")
    duration_days = calculate_duration_days(trip.start_date, trip.end_date)

    equipment_by_id = {
        equipment.id: equipment
        for equipment in db.execute(
            select(models.Equipment).where(models.Equipment.id.in_(list(items)))
        ).scalars()
    }
    missing = [equipment_id for equipment_id in items if equipment_id not in equipment_by_id]
    if missing:
        raise NotFound(f"Equipment {missing[0]} not found")

    total = calculate_total(
        trip.price_per_person,
        participants_count,
        [
            (equipment_by_id[equipment_id].rental_price_per_day, quantity)
            for equipment_id, quantity in sorted(items.items())
        ],
        duration_days,
    )
    booking = models.Booking(
        trip_id=trip.id,
        user_id=user_id,
        participants_count=participants_count,
        duration_days=duration_days,
        total_price=total,
        status=models.BookingStatus.pending,
        payment_status=models.PaymentStatus.pending,
        created_at=now,
        updated_at=now,
    )
    db.add(booking)
    db.flush()

    # equipment rows are locked in ascending id order
    for equipment_id, quantity in sorted(items.items()):
        db.add(
            models.EquipmentBooking(
                booking_id=booking.id,
                equipment_id=equipment_id,
                quantity=quantity,
            )
        )
        hold_service.reserve_locked(
            db,
            equipment_id=equipment_id,
            quantity=quantity,
            owner_id=user_id,
            booking_id=booking.id,
            duration_minutes=hold_minutes,
            now=now,
        )
    return booking


def _compensate(db: Session, booking_id: int) -> None:
    now = _utc_now()
    try:
        booking = db.get(models.Booking, booking_id, with_for_update=True, populate_existing=True)
        booking.status = models.BookingStatus.cancelled
        booking.cancellation_reason = PAYMENT_TOKEN_FAILED_REASON
        booking.cancelled_at = now
        booking.updated_at = now
        hold_service.release_booking_holds(db, booking_id)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception(
            "Failed to cancel booking after payment error", extra={"booking_id": booking_id}
        )
        raise PersistenceError("Failed to cancel booking") from exc


def create_booking(
    db: Session,
    gateway: BasePaymentGateway,
    *,
    trip_id: int,
    participants_count: int,
    equipment_items: Iterable[Mapping[str, Any]],
    customer_details: Mapping[str, Any],
    user_id: int,
    hold_minutes: int = hold_service.DEFAULT_HOLD_MINUTES,
) -> BookingResult:
    """Create a pending booking, hold its equipment and hand off to payment.

    The booking row, its equipment lines and every hold are written in one
    transaction; any failure leaves nothing behind. If the gateway then
    refuses to issue a token the booking is cancelled and its holds released
    before :class:`PaymentProviderError` is re-raised.
    """

    if participants_count <= 0:
        raise ValidationError("Participants count must be positive")
    items = _merge_items(equipment_items)
    now = _utc_now()

    transaction_ctx = db.begin_nested() if db.in_transaction() else db.begin()
    try:
        with transaction_ctx:
            booking = _insert_booking(
                db,
                trip_id=trip_id,
                participants_count=participants_count,
                items=items,
                user_id=user_id,
                hold_minutes=hold_minutes,
                now=now,
            )
    except SQLAlchemyError as exc:
        logger.exception("Failed to create booking", extra={"trip_id": trip_id, "user_id": user_id})
        raise PersistenceError("Failed to create booking") from exc
    if db.in_transaction():
        db.commit()
    logger.info(
        "Booking created",
        extra={
            "booking_id": booking.id,
            "trip_id": trip_id,
            "user_id": user_id,
            "total_price": str(booking.total_price),
        },
    )

    try:
        handoff = payment_service.request_payment_token(db, gateway, booking, customer_details)
    except (PaymentProviderError, PersistenceError):
        logger.exception("Payment token request failed", extra={"booking_id": booking.id})
        _compensate(db, booking.id)
        raise

    return BookingResult(
        booking_id=booking.id,
        payment_token=handoff.token,
        payment_url=handoff.redirect_url,
        order_id=handoff.order_id,
        total_amount=handoff.amount,
        status=models.BookingStatus.pending.value,
    )


def cancel_booking(
    db: Session,
    gateway: BasePaymentGateway,
    booking_id: int,
    user_id: int,
    reason: str | None = None,
) -> bool:
    """Cancel a booking owned by ``user_id``.

    Returns ``False`` when no pending or confirmed booking of that user
    matches. Holds are released and pending payments voided in the same
    commit; the gateway is told afterwards and failures there are queued for
    retry without undoing the cancellation.
    """

    now = _utc_now()
    try:
        booking = db.execute(
            select(models.Booking)
            .where(models.Booking.id == booking_id)
            .where(models.Booking.user_id == user_id)
            .where(models.Booking.status.in_(CANCELLABLE_STATUSES))
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if booking is None:
            db.rollback()
            return False
        booking.status = models.BookingStatus.cancelled
        booking.cancellation_reason = reason
        booking.cancelled_at = now
        booking.updated_at = now
        released = hold_service.release_booking_holds(db, booking_id)
        order_ids = payment_service.void_pending_transactions(db, booking)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Failed to cancel booking", extra={"booking_id": booking_id})
        raise PersistenceError("Failed to cancel booking") from exc
    delivered = payment_service.cancel_at_gateway(db, gateway, order_ids)
    logger.info(
        "Booking cancelled",
        extra={
            "booking_id": booking_id,
            "user_id": user_id,
            "released_holds": released,
            "voided_payments": len(order_ids),
            "gateway_cancelled": delivered,
        },
    )
    return True


def update_booking_status(
    db: Session,
    booking_id: int,
    status: models.BookingStatus,
    payment_status: models.PaymentStatus | None = None,
) -> bool:
    booking = db.get(models.Booking, booking_id)
    if booking is None:
        return False
    booking.status = status
    if payment_status is not None:
        booking.payment_status = payment_status
    booking.updated_at = _utc_now()
    try:
        if status in _RELEASING_STATUSES:
            hold_service.release_booking_holds(db, booking_id)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise PersistenceError("Failed to update booking status") from exc
    return True


def extend_booking_holds(
    db: Session,
    booking_id: int,
    additional_minutes: int = hold_service.DEFAULT_HOLD_MINUTES,
    *,
    now: datetime | None = None,
) -> bool:
    """Reset every hold of the booking to expire ``additional_minutes`` from now."""

    now = now or _utc_now()
    try:
        result = db.execute(
            update(models.EquipmentHold)
            .where(models.EquipmentHold.booking_id == booking_id)
            .values(expires_at=now + timedelta(minutes=additional_minutes))
            .execution_options(synchronize_session=False)
        )
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Failed to extend booking holds", extra={"booking_id": booking_id})
        return False
    return result.rowcount > 0


def get_booking(db: Session, booking_id: int, user_id: int | None = None) -> models.Booking:
    stmt = (
        select(models.Booking)
        .options(selectinload(models.Booking.equipment_lines))
        .where(models.Booking.id == booking_id)
    )
    if user_id is not None:
        stmt = stmt.where(models.Booking.user_id == user_id)
    booking = db.execute(stmt).scalar_one_or_none()
    if booking is None:
        raise NotFound("Booking not found")
    return booking


def list_user_bookings(db: Session, user_id: int, limit: int = 10) -> list[models.Booking]:
    stmt = (
        select(models.Booking)
        .options(selectinload(models.Booking.equipment_lines))
        .where(models.Booking.user_id == user_id)
        .order_by(models.Booking.created_at.desc(), models.Booking.id.desc())
        .limit(limit)
    )
    return list(db.execute(stmt).scalars().all())


def expire_stale_bookings(
    db: Session,
    gateway: BasePaymentGateway,
    *,
    timeout: timedelta,
    now: datetime | None = None,
) -> int:
    """Move unpaid pending bookings older than ``timeout`` to ``expired``."""

    now = now or _utc_now()
    cutoff = now - timeout
    stale = (
        db.execute(
            select(models.Booking)
            .where(models.Booking.status == models.BookingStatus.pending)
            .where(models.Booking.payment_status != models.PaymentStatus.paid)
            .where(models.Booking.created_at <= cutoff)
            .with_for_update(skip_locked=True)
            .execution_options(populate_existing=True)
        )
        .scalars()
        .all()
    )
    order_ids: list[str] = []
    for booking in stale:
        booking.status = models.BookingStatus.expired
        booking.cancellation_reason = PAYMENT_TIMEOUT_REASON
        booking.cancelled_at = now
        booking.updated_at = now
        hold_service.release_booking_holds(db, booking.id)
        order_ids.extend(payment_service.void_pending_transactions(db, booking))
    db.commit()
    if order_ids:
        payment_service.cancel_at_gateway(db, gateway, order_ids)
    if stale:
        logger.info(
            "Stale bookings expired",
            extra={"count": len(stale), "voided_payments": len(order_ids)},
        )
    return len(stale)


__all__ = [
    "BookingResult",
    "CANCELLABLE_STATUSES",
    "cancel_booking",
    "create_booking",
    "expire_stale_bookings",
    "extend_booking_holds",
    "get_booking",
    "list_user_bookings",
    "update_booking_status",
]
