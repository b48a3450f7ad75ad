from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from ..core.constants import ORDER_ID_PREFIX, PAYMENT_FAILED_REASON
from ..core.errors import NotFound, PaymentProviderError, PersistenceError, ValidationError
from ..db import models
from . import hold_service
from .payments.gateway import BasePaymentGateway, PaymentNotification
from .pricing import recalculate_booking_total

logger = logging.getLogger(__name__)

_ITEM_NAME_MAX_LENGTH = 50


@dataclass(slots=True)
class PaymentHandoff:
    token: str
    redirect_url: str | None
    order_id: str
    amount: Decimal


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_gateway_amount(amount: Decimal) -> int:
    return int(Decimal(amount).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def new_order_id(booking_id: int, now: datetime | None = None) -> str:
    now = now or _utc_now()
    return f"{ORDER_ID_PREFIX}-{booking_id}-{int(now.timestamp() * 1000)}"


def build_item_details(db: Session, booking: models.Booking) -> list[dict[str, Any]]:
    trip = db.get(models.Trip, booking.trip_id)
    items: list[dict[str, Any]] = [
        {
            "id": f"trip-{trip.id}",
            "name": trip.title[:_ITEM_NAME_MAX_LENGTH],
            "price": to_gateway_amount(trip.price_per_person),
            "quantity": booking.participants_count,
            "category": "trip",
        }
    ]
    lines = db.execute(
        select(models.EquipmentBooking)
        .options(selectinload(models.EquipmentBooking.equipment))
        .where(models.EquipmentBooking.booking_id == booking.id)
        .order_by(models.EquipmentBooking.id)
    ).scalars()
    for line in lines:
        equipment = line.equipment
        items.append(
            {
                "id": f"equipment-{equipment.id}",
                "name": equipment.name[:_ITEM_NAME_MAX_LENGTH],
                "price": to_gateway_amount(equipment.rental_price_per_day * booking.duration_days),
                "quantity": line.quantity,
                "category": "equipment",
            }
        )
    return items


def balance_line_items(items: list[dict[str, Any]], gross_amount: int) -> list[dict[str, Any]]:
    """Append an adjustment line so that the items add up to ``gross_amount``.

    Unit prices are rounded one by one, the gross amount once; the gateway
    rejects requests where the two disagree.
    """

    remainder = gross_amount - sum(item["price"] * item["quantity"] for item in items)
    if remainder:
        items.append(
            {
                "id": "rounding-adjustment",
                "name": "Rounding adjustment",
                "price": remainder,
                "quantity": 1,
                "category": "adjustment",
            }
        )
    return items


def request_payment_token(
    db: Session,
    gateway: BasePaymentGateway,
    booking: models.Booking,
    customer_details: Mapping[str, Any],
    *,
    now: datetime | None = None,
) -> PaymentHandoff:
    """Ask the gateway for a charge token and record the pending transaction."""

    if booking.payment_status == models.PaymentStatus.paid:
        raise ValidationError("Booking already paid")
    if booking.status != models.BookingStatus.pending:
        raise ValidationError("Booking is not awaiting payment")
    amount = recalculate_booking_total(db, booking)
    now = now or _utc_now()
    order_id = new_order_id(booking.id, now)
    while db.get(models.PaymentTransaction, order_id) is not None:
        now += timedelta(milliseconds=1)
        order_id = new_order_id(booking.id, now)
    gross_amount = to_gateway_amount(amount)
    line_items = balance_line_items(build_item_details(db, booking), gross_amount)
    token = gateway.create_token(
        order_id=order_id,
        amount=gross_amount,
        customer_details=dict(customer_details),
        line_items=line_items,
    )
    try:
        db.add(
            models.PaymentTransaction(
                id=order_id,
                booking_id=booking.id,
                amount=amount,
                status=models.TransactionStatus.pending,
                payment_method=gateway.name,
                redirect_url=token.redirect_url,
            )
        )
        booking.payment_status = models.PaymentStatus.processing
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Failed to record payment transaction", extra={"order_id": order_id})
        raise PersistenceError("Failed to create payment record") from exc
    logger.info(
        "Payment token issued",
        extra={"booking_id": booking.id, "order_id": order_id, "amount": str(amount)},
    )
    return PaymentHandoff(
        token=token.token,
        redirect_url=token.redirect_url,
        order_id=order_id,
        amount=amount,
    )


def _record_cancellation_intent(db: Session, order_id: str, error: Exception) -> None:
    db.add(
        models.PaymentCancellation(
            order_id=order_id,
            status=models.CancellationStatus.pending,
            attempts=1,
            last_error=str(error),
        )
    )


def void_pending_transactions(db: Session, booking: models.Booking) -> list[str]:
    """Mark every pending transaction of ``booking`` failed.

    An unpaid booking with voided attempts gets ``payment_status = failed``.
    Returns the voided order ids for :func:`cancel_at_gateway`. The caller
    commits.
    """

    transactions = (
        db.execute(
            select(models.PaymentTransaction)
            .where(models.PaymentTransaction.booking_id == booking.id)
            .where(models.PaymentTransaction.status == models.TransactionStatus.pending)
            .order_by(models.PaymentTransaction.created_at, models.PaymentTransaction.id)
            .with_for_update()
        )
        .scalars()
        .all()
    )
    now = _utc_now()
    for transaction in transactions:
        transaction.status = models.TransactionStatus.failed
        transaction.updated_at = now
    if transactions and booking.payment_status != models.PaymentStatus.paid:
        booking.payment_status = models.PaymentStatus.failed
    return [transaction.id for transaction in transactions]


def cancel_at_gateway(db: Session, gateway: BasePaymentGateway, order_ids: list[str]) -> int:
    """Cancel already-voided orders at the gateway; returns how many went through.

    Runs after the local state is committed. Failures are logged and queued in
    the cancellation outbox for :func:`retry_pending_cancellations`.
    """

    delivered = 0
    queued = False
    for order_id in order_ids:
        try:
            gateway.cancel(order_id)
        except PaymentProviderError as exc:
            logger.exception("Failed to cancel payment at gateway", extra={"order_id": order_id})
            _record_cancellation_intent(db, order_id, exc)
            queued = True
            continue
        delivered += 1
    if queued:
        try:
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            logger.exception(
                "Failed to queue payment cancellations", extra={"order_ids": order_ids}
            )
    return delivered


def _has_other_open_transaction(db: Session, booking_id: int, order_id: str) -> bool:
    other = db.scalar(
        select(models.PaymentTransaction.id)
        .where(models.PaymentTransaction.booking_id == booking_id)
        .where(models.PaymentTransaction.id != order_id)
        .where(models.PaymentTransaction.status == models.TransactionStatus.pending)
        .limit(1)
    )
    return other is not None


def _next_transaction_status(
    current: models.TransactionStatus, incoming: models.TransactionStatus
) -> models.TransactionStatus:
    """``success`` is final; ``failed`` only gives way to a late ``success``."""

    if current == models.TransactionStatus.success:
        return current
    if current == models.TransactionStatus.failed and incoming != models.TransactionStatus.success:
        return current
    return incoming


def apply_notification(
    db: Session, notification: PaymentNotification
) -> models.PaymentTransaction:
    booking_id = db.scalar(
        select(models.PaymentTransaction.booking_id).where(
            models.PaymentTransaction.id == notification.order_id
        )
    )
    if booking_id is None:
        raise NotFound("Payment transaction not found")
    # booking before transaction, the same order cancel_booking locks in
    booking = db.get(models.Booking, booking_id, with_for_update=True, populate_existing=True)
    transaction = db.get(
        models.PaymentTransaction,
        notification.order_id,
        with_for_update=True,
        populate_existing=True,
    )
    now = _utc_now()
    transaction.transaction_status = notification.transaction_status
    transaction.fraud_status = notification.fraud_status
    transaction.updated_at = now

    status = _next_transaction_status(transaction.status, notification.payment_status)
    if status != notification.payment_status:
        try:
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            raise PersistenceError("Failed to update payment transaction") from exc
        logger.info(
            "Out-of-order payment notification ignored",
            extra={
                "order_id": transaction.id,
                "transaction_status": notification.transaction_status,
                "stored_status": transaction.status.value,
            },
        )
        return transaction
    transaction.status = status

    if notification.payment_status == models.TransactionStatus.success:
        booking.payment_status = models.PaymentStatus.paid
        if booking.status == models.BookingStatus.pending:
            booking.status = models.BookingStatus.confirmed
            hold_service.release_booking_holds(db, booking.id)
        elif booking.status != models.BookingStatus.confirmed:
            logger.warning(
                "Payment succeeded for a booking that is no longer pending; refund required",
                extra={"booking_id": booking.id, "order_id": transaction.id},
            )
    elif notification.payment_status == models.TransactionStatus.failed:
        if booking.payment_status != models.PaymentStatus.paid and not _has_other_open_transaction(
            db, booking.id, transaction.id
        ):
            booking.payment_status = models.PaymentStatus.failed
            if booking.status == models.BookingStatus.pending:
                booking.status = models.BookingStatus.cancelled
                booking.cancellation_reason = PAYMENT_FAILED_REASON
                booking.cancelled_at = now
                hold_service.release_booking_holds(db, booking.id)
    elif booking.payment_status in (models.PaymentStatus.pending, models.PaymentStatus.processing):
        booking.payment_status = models.PaymentStatus.processing
    booking.updated_at = now
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise PersistenceError("Failed to update payment transaction") from exc
    logger.info(
        "Payment notification applied",
        extra={
            "order_id": transaction.id,
            "booking_id": booking.id,
            "transaction_status": notification.transaction_status,
            "booking_status": booking.status.value,
        },
    )
    return transaction


def get_payment_status(
    db: Session, gateway: BasePaymentGateway, order_id: str
) -> dict[str, Any]:
    transaction = db.get(models.PaymentTransaction, order_id)
    if transaction is None:
        raise NotFound("Payment transaction not found")
    note = None
    try:
        gateway_status = gateway.check_status(order_id)
    except PaymentProviderError:
        logger.exception("Failed to check payment status", extra={"order_id": order_id})
        note = "Status from database (gateway check failed)"
    else:
        latest = gateway_status.get("transaction_status")
        if latest and latest != transaction.transaction_status:
            transaction.transaction_status = latest
            transaction.fraud_status = gateway_status.get("fraud_status")
            transaction.updated_at = _utc_now()
            try:
                db.commit()
            except SQLAlchemyError:
                db.rollback()
                logger.exception("Failed to store payment status", extra={"order_id": order_id})
    booking = transaction.booking
    return {
        "order_id": transaction.id,
        "status": transaction.status.value,
        "transaction_status": transaction.transaction_status,
        "fraud_status": transaction.fraud_status,
        "amount": transaction.amount,
        "booking_id": booking.id,
        "booking_status": booking.status.value,
        "created_at": transaction.created_at,
        "updated_at": transaction.updated_at,
        "note": note,
    }


def retry_pending_cancellations(
    db: Session, gateway: BasePaymentGateway, *, max_attempts: int
) -> int:
    """Deliver queued gateway cancellations; returns how many went through."""

    pending = (
        db.execute(
            select(models.PaymentCancellation)
            .where(models.PaymentCancellation.status == models.CancellationStatus.pending)
            .order_by(models.PaymentCancellation.id)
        )
        .scalars()
        .all()
    )
    delivered = 0
    for intent in pending:
        try:
            gateway.cancel(intent.order_id)
        except PaymentProviderError as exc:
            intent.attempts += 1
            intent.last_error = str(exc)
            if intent.attempts >= max_attempts:
                intent.status = models.CancellationStatus.abandoned
                logger.error(
                    "Giving up on gateway cancellation",
                    extra={"order_id": intent.order_id, "attempts": intent.attempts},
                )
            continue
        intent.status = models.CancellationStatus.delivered
        delivered += 1
    db.commit()
    return delivered


__all__ = [
    "PaymentHandoff",
    "apply_notification",
    "build_item_details",
    "balance_line_items",
    "cancel_at_gateway",
    "get_payment_status",
    "new_order_id",
    "request_payment_token",
    "retry_pending_cancellations",
    "to_gateway_amount",
    "void_pending_transactions",
]
