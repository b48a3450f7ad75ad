from .user import User
from .trip import Trip
from .equipment import Equipment
from .equipment_hold import EquipmentHold
from .booking import Booking, BookingStatus, PaymentStatus, EquipmentBooking
from .payment import (
    PaymentTransaction,
    TransactionStatus,
    PaymentCancellation,
    CancellationStatus,
)
