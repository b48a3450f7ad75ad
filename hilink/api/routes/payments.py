from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from ...api import deps
from ...db.session import get_db
from ...db import models, schemas
from ...services import booking_service, payment_service
from ...services.payments.gateway import BasePaymentGateway

router = APIRouter(prefix="/payments", tags=["payments"])


@router.post("/token", response_model=schemas.PaymentTokenResponse)
def create_payment_token(
    payload: schemas.PaymentTokenRequest,
    db: Session = Depends(get_db),
    gateway: BasePaymentGateway = Depends(deps.get_payment_gateway),
    user: models.User = Depends(deps.get_current_user),
):
    booking = booking_service.get_booking(db, payload.booking_id, user_id=user.id)
    handoff = payment_service.request_payment_token(
        db, gateway, booking, payload.customer_details.model_dump()
    )
    return schemas.PaymentTokenResponse(
        token=handoff.token,
        redirect_url=handoff.redirect_url,
        order_id=handoff.order_id,
        amount=handoff.amount,
    )


@router.get("/{order_id}/status", response_model=schemas.PaymentStatusView)
def payment_status(
    order_id: str,
    db: Session = Depends(get_db),
    gateway: BasePaymentGateway = Depends(deps.get_payment_gateway),
    _: models.User = Depends(deps.get_current_user),
):
    return payment_service.get_payment_status(db, gateway, order_id)


@router.post("/webhook")
def payments_webhook(
    payload: dict,
    db: Session = Depends(get_db),
    gateway: BasePaymentGateway = Depends(deps.get_payment_gateway),
):
    notification = gateway.parse_webhook(payload)
    transaction = payment_service.apply_notification(db, notification)
    return {"status": "ok", "order_id": transaction.id}
