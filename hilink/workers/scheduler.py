from datetime import timedelta
import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from ..config import Settings
from ..db.session import SessionLocal
from ..services import booking_service, hold_service, payment_service
from ..services.payments.gateway import BasePaymentGateway

logger = logging.getLogger(__name__)


def cleanup_holds(grace_minutes: int) -> int:
    with SessionLocal() as db:
        removed = hold_service.cleanup_expired_holds(db, grace=timedelta(minutes=grace_minutes))
    return removed


def expire_bookings(gateway: BasePaymentGateway, timeout_minutes: int) -> int:
    with SessionLocal() as db:
        expired = booking_service.expire_stale_bookings(
            db, gateway, timeout=timedelta(minutes=timeout_minutes)
        )
    return expired


def retry_cancellations(gateway: BasePaymentGateway, max_attempts: int) -> int:
    with SessionLocal() as db:
        delivered = payment_service.retry_pending_cancellations(
            db, gateway, max_attempts=max_attempts
        )
    if delivered:
        logger.info("Queued payment cancellations delivered", extra={"count": delivered})
    return delivered


def get_scheduler(settings: Settings, gateway: BasePaymentGateway) -> AsyncIOScheduler:
    scheduler = AsyncIOScheduler()
    scheduler.add_job(
        cleanup_holds,
        "interval",
        minutes=5,
        args=[settings.hold_cleanup_grace_minutes],
        id="cleanup_holds",
    )
    if settings.booking_expiry_enabled:
        scheduler.add_job(
            expire_bookings,
            "interval",
            minutes=1,
            args=[gateway, settings.booking_payment_timeout_minutes],
            id="expire_bookings",
        )
    scheduler.add_job(
        retry_cancellations,
        "interval",
        minutes=5,
        args=[gateway, settings.payment_cancel_max_attempts],
        id="retry_cancellations",
    )
    return scheduler
