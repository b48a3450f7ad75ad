from datetime import datetime
from decimal import Decimal
from pydantic import BaseModel, Field


class EquipmentItem(BaseModel):
    equipment_id: int
    quantity: int = Field(gt=0)


class CustomerDetails(BaseModel):
    first_name: str = Field(min_length=1)
    last_name: str = Field(min_length=1)
    email: str = Field(min_length=3, pattern=r"^[^@\s]+@[^@\s]+$")
    phone: str = Field(min_length=1)


class BookingCreate(BaseModel):
    trip_id: int
    participants_count: int = Field(gt=0)
    equipment_items: list[EquipmentItem] = Field(default_factory=list)
    customer_details: CustomerDetails


class BookingCreated(BaseModel):
    booking_id: int
    payment_token: str | None = None
    payment_url: str | None = None
    order_id: str | None = None
    total_amount: Decimal
    status: str


class BookingCancel(BaseModel):
    reason: str | None = None


class EquipmentLine(BaseModel):
    equipment_id: int
    quantity: int

    class Config:
        from_attributes = True


class Booking(BaseModel):
    id: int
    trip_id: int
    user_id: int
    participants_count: int
    duration_days: int
    total_price: Decimal
    status: str
    payment_status: str
    cancellation_reason: str | None = None
    created_at: datetime | None = None
    equipment_lines: list[EquipmentLine] = Field(default_factory=list)

    class Config:
        from_attributes = True
