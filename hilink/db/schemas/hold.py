from datetime import datetime
from pydantic import BaseModel, Field


class HoldCreate(BaseModel):
    equipment_id: int
    quantity: int = Field(gt=0)
    booking_id: int | None = None
    duration_minutes: int | None = Field(default=None, gt=0)


class HoldExtend(BaseModel):
    additional_minutes: int = Field(default=15, gt=0)


class Hold(BaseModel):
    id: int
    equipment_id: int
    booking_id: int | None = None
    user_id: int
    quantity: int
    expires_at: datetime
    created_at: datetime | None = None
    time_remaining: str | None = None

    class Config:
        from_attributes = True


class HoldReleaseResult(BaseModel):
    released: int
