from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from ...api import deps
from ...config import get_settings
from ...db.session import get_db
from ...db import models, schemas
from ...services import booking_service
from ...services.payments.gateway import BasePaymentGateway

router = APIRouter(prefix="/bookings", tags=["bookings"])


@router.post("", response_model=schemas.BookingCreated, status_code=status.HTTP_201_CREATED)
def create_booking(
    payload: schemas.BookingCreate,
    db: Session = Depends(get_db),
    gateway: BasePaymentGateway = Depends(deps.get_payment_gateway),
    user: models.User = Depends(deps.get_current_user),
):
    result = booking_service.create_booking(
        db,
        gateway,
        trip_id=payload.trip_id,
        participants_count=payload.participants_count,
        equipment_items=[item.model_dump() for item in payload.equipment_items],
        customer_details=payload.customer_details.model_dump(),
        user_id=user.id,
        hold_minutes=get_settings().hold_duration_minutes,
    )
    return schemas.BookingCreated(
        booking_id=result.booking_id,
        payment_token=result.payment_token,
        payment_url=result.payment_url,
        order_id=result.order_id,
        total_amount=result.total_amount,
        status=result.status,
    )


@router.get("", response_model=list[schemas.Booking])
def list_bookings(
    limit: int = 10,
    db: Session = Depends(get_db),
    user: models.User = Depends(deps.get_current_user),
):
    return booking_service.list_user_bookings(db, user.id, limit=limit)


@router.get("/{booking_id}", response_model=schemas.Booking)
def get_booking(
    booking_id: int,
    db: Session = Depends(get_db),
    user: models.User = Depends(deps.get_current_user),
):
    return booking_service.get_booking(db, booking_id, user_id=user.id)


@router.post("/{booking_id}/cancel")
def cancel_booking(
    booking_id: int,
    payload: schemas.BookingCancel,
    db: Session = Depends(get_db),
    gateway: BasePaymentGateway = Depends(deps.get_payment_gateway),
    user: models.User = Depends(deps.get_current_user),
):
    cancelled = booking_service.cancel_booking(
        db, gateway, booking_id, user.id, reason=payload.reason
    )
    if not cancelled:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Booking not found or cannot be cancelled",
        )
    return {"booking_id": booking_id, "status": models.BookingStatus.cancelled.value}


@router.post("/{booking_id}/extend-holds")
def extend_booking_holds(
    booking_id: int,
    payload: schemas.HoldExtend,
    db: Session = Depends(get_db),
    user: models.User = Depends(deps.get_current_user),
):
    booking_service.get_booking(db, booking_id, user_id=user.id)
    if not booking_service.extend_booking_holds(db, booking_id, payload.additional_minutes):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Booking has no holds")
    return {"booking_id": booking_id, "extended": True}
