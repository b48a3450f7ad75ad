from datetime import datetime, timedelta, timezone

from hilink.core.errors import PaymentProviderError
from hilink.db import models
from hilink.services import booking_service, inventory_ledger
from hilink.services.payments import StubGateway

CUSTOMER = {
    "first_name": "Budi",
    "last_name": "Santoso",
    "email": "budi@example.com",
    "phone": "+628111111111",
}


class UnreachableCancelGateway(StubGateway):
    def cancel(self, order_id):
        raise PaymentProviderError("Payment provider is unreachable")


class SessionAwareGateway(StubGateway):
    def __init__(self, settings, session):
        super().__init__(settings)
        self.session = session
        self.in_transaction = []

    def cancel(self, order_id):
        self.in_transaction.append(self.session.in_transaction())
        return super().cancel(order_id)


def _book(db_session, gateway, trip, user, equipment, quantity=1):
    return booking_service.create_booking(
        db_session,
        gateway,
        trip_id=trip.id,
        participants_count=1,
        equipment_items=[{"equipment_id": equipment.id, "quantity": quantity}],
        customer_details=CUSTOMER,
        user_id=user.id,
    )


def test_cancel_by_other_user_is_rejected(
    db_session, gateway, make_user, make_trip, make_equipment
):
    owner = make_user()
    intruder = make_user()
    trip = make_trip()
    tent = make_equipment(stock=3)
    result = _book(db_session, gateway, trip, owner, tent)

    assert booking_service.cancel_booking(db_session, gateway, result.booking_id, intruder.id) is False

    booking = db_session.get(models.Booking, result.booking_id)
    assert booking.status == models.BookingStatus.pending
    assert db_session.query(models.EquipmentHold).count() == 1


def test_cancel_releases_holds_and_voids_payment(
    db_session, gateway, make_user, make_trip, make_equipment
):
    user = make_user()
    trip = make_trip()
    tent = make_equipment(stock=3)
    result = _book(db_session, gateway, trip, user, tent, quantity=3)
    assert inventory_ledger.available_quantity(db_session, tent.id) == 0

    assert booking_service.cancel_booking(
        db_session, gateway, result.booking_id, user.id, reason="changed plans"
    )

    db_session.expire_all()
    booking = db_session.get(models.Booking, result.booking_id)
    assert booking.status == models.BookingStatus.cancelled
    assert booking.cancellation_reason == "changed plans"
    assert booking.cancelled_at is not None
    assert booking.payment_status == models.PaymentStatus.failed
    assert db_session.query(models.EquipmentHold).filter_by(booking_id=booking.id).count() == 0
    assert inventory_ledger.available_quantity(db_session, tent.id) == 3
    transaction = db_session.get(models.PaymentTransaction, result.order_id)
    assert transaction.status == models.TransactionStatus.failed
    assert gateway.orders[result.order_id]["transaction_status"] == "cancel"
    assert db_session.query(models.PaymentCancellation).count() == 0


def test_cancel_twice_reports_failure(db_session, gateway, make_user, make_trip, make_equipment):
    user = make_user()
    trip = make_trip()
    tent = make_equipment(stock=3)
    result = _book(db_session, gateway, trip, user, tent)

    assert booking_service.cancel_booking(db_session, gateway, result.booking_id, user.id)
    assert booking_service.cancel_booking(db_session, gateway, result.booking_id, user.id) is False


def test_gateway_failure_does_not_block_cancellation(
    db_session, settings, make_user, make_trip, make_equipment
):
    user = make_user()
    trip = make_trip()
    tent = make_equipment(stock=3)
    gateway = UnreachableCancelGateway(settings)
    result = _book(db_session, gateway, trip, user, tent)

    assert booking_service.cancel_booking(db_session, gateway, result.booking_id, user.id)

    db_session.expire_all()
    booking = db_session.get(models.Booking, result.booking_id)
    assert booking.status == models.BookingStatus.cancelled
    assert db_session.query(models.EquipmentHold).count() == 0
    intent = db_session.query(models.PaymentCancellation).one()
    assert intent.order_id == result.order_id
    assert intent.status == models.CancellationStatus.pending
    assert intent.attempts == 1
    assert "unreachable" in intent.last_error


def test_cancel_confirmed_booking(db_session, gateway, make_user, make_trip, make_equipment):
    user = make_user()
    trip = make_trip()
    tent = make_equipment(stock=3)
    result = _book(db_session, gateway, trip, user, tent, quantity=2)
    booking_service.update_booking_status(
        db_session, result.booking_id, models.BookingStatus.confirmed, models.PaymentStatus.paid
    )
    assert inventory_ledger.available_quantity(db_session, tent.id) == 1

    assert booking_service.cancel_booking(db_session, gateway, result.booking_id, user.id)

    assert inventory_ledger.available_quantity(db_session, tent.id) == 3


def test_expire_stale_bookings(db_session, gateway, make_user, make_trip, make_equipment):
    user = make_user()
    trip = make_trip()
    tent = make_equipment(stock=3)
    stale = _book(db_session, gateway, trip, user, tent)
    fresh = _book(db_session, gateway, trip, user, tent)
    db_session.get(models.Booking, stale.booking_id).created_at = datetime.now(
        timezone.utc
    ) - timedelta(hours=2)
    db_session.commit()

    expired = booking_service.expire_stale_bookings(
        db_session, gateway, timeout=timedelta(hours=1)
    )

    assert expired == 1
    db_session.expire_all()
    assert db_session.get(models.Booking, stale.booking_id).status == models.BookingStatus.expired
    assert db_session.get(models.Booking, fresh.booking_id).status == models.BookingStatus.pending
    assert db_session.query(models.EquipmentHold).filter_by(booking_id=stale.booking_id).count() == 0
    assert (
        db_session.get(models.PaymentTransaction, stale.order_id).status
        == models.TransactionStatus.failed
    )
    assert booking_service.expire_stale_bookings(
        db_session, gateway, timeout=timedelta(hours=1)
    ) == 0


def test_gateway_cancel_runs_after_commit(
    db_session, settings, make_user, make_trip, make_equipment
):
    user = make_user()
    trip = make_trip()
    tent = make_equipment(stock=3)
    gateway = SessionAwareGateway(settings, db_session)
    result = _book(db_session, gateway, trip, user, tent)

    assert booking_service.cancel_booking(db_session, gateway, result.booking_id, user.id)

    assert gateway.in_transaction == [False]
    assert gateway.orders[result.order_id]["transaction_status"] == "cancel"


def test_expire_stale_bookings_marks_payment_failed(
    db_session, settings, make_user, make_trip, make_equipment
):
    user = make_user()
    trip = make_trip()
    tent = make_equipment(stock=3)
    gateway = SessionAwareGateway(settings, db_session)
    result = _book(db_session, gateway, trip, user, tent)

    assert booking_service.expire_stale_bookings(db_session, gateway, timeout=timedelta(0)) == 1

    assert gateway.in_transaction == [False]
    db_session.expire_all()
    booking = db_session.get(models.Booking, result.booking_id)
    assert booking.status == models.BookingStatus.expired
    assert booking.payment_status == models.PaymentStatus.failed
