from pydantic import BaseModel


class EquipmentAvailability(BaseModel):
    equipment_id: int
    name: str
    stock_quantity: int
    held_quantity: int
    booked_quantity: int
    available_quantity: int
