from .equipment import EquipmentAvailability
from .hold import Hold, HoldCreate, HoldExtend, HoldReleaseResult
from .booking import (
    Booking,
    BookingCancel,
    BookingCreate,
    BookingCreated,
    CustomerDetails,
    EquipmentItem,
    EquipmentLine,
)
from .payment import PaymentStatusView, PaymentTokenRequest, PaymentTokenResponse
