from datetime import datetime
from decimal import Decimal
from pydantic import BaseModel

from .booking import CustomerDetails


class PaymentTokenRequest(BaseModel):
    booking_id: int
    customer_details: CustomerDetails


class PaymentTokenResponse(BaseModel):
    token: str
    redirect_url: str | None = None
    order_id: str
    amount: Decimal


class PaymentStatusView(BaseModel):
    order_id: str
    status: str
    transaction_status: str | None = None
    fraud_status: str | None = None
    amount: Decimal
    booking_id: int
    booking_status: str
    created_at: datetime | None = None
    updated_at: datetime | None = None
    note: str | None = None
