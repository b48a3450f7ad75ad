from datetime import datetime
from decimal import Decimal
from enum import Enum as PyEnum
from sqlalchemy import DateTime, Enum, ForeignKey, Integer, Numeric, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship
from ..session import Base


class TransactionStatus(str, PyEnum):
    pending = "pending"
    success = "success"
    failed = "failed"


class CancellationStatus(str, PyEnum):
    pending = "pending"
    delivered = "delivered"
    abandoned = "abandoned"


class PaymentTransaction(Base):
    __tablename__ = "payment_transactions"

    # Gateway order id, e.g. HILINK-42-1718000000000
    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    booking_id: Mapped[int] = mapped_column(ForeignKey("bookings.id", ondelete="CASCADE"), index=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    status: Mapped[TransactionStatus] = mapped_column(
        Enum(TransactionStatus), default=TransactionStatus.pending
    )
    transaction_status: Mapped[str | None] = mapped_column(String(32))
    fraud_status: Mapped[str | None] = mapped_column(String(32))
    payment_method: Mapped[str] = mapped_column(String(32))
    redirect_url: Mapped[str | None] = mapped_column(String(512))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    booking = relationship("Booking", back_populates="payments")


class PaymentCancellation(Base):
    __tablename__ = "payment_cancellations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    order_id: Mapped[str] = mapped_column(String(64), index=True)
    status: Mapped[CancellationStatus] = mapped_column(
        Enum(CancellationStatus), default=CancellationStatus.pending
    )
    attempts: Mapped[int] = mapped_column(Integer, default=0)
    last_error: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
