from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("email", sa.String(length=255), nullable=False, unique=True),
        sa.Column("full_name", sa.String(length=255)),
        sa.Column("phone", sa.String(length=32)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "trips",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("destination", sa.String(length=255)),
        sa.Column("start_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("price_per_person", sa.Numeric(12, 2), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("end_date >= start_date", name="ck_trip_dates_ordered"),
    )

    op.create_table(
        "equipment",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("category", sa.String(length=64)),
        sa.Column("stock_quantity", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("rental_price_per_day", sa.Numeric(12, 2), nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("stock_quantity >= 0", name="ck_equipment_stock_non_negative"),
    )

    booking_status = postgresql.ENUM(
        "pending",
        "confirmed",
        "cancelled",
        "completed",
        "expired",
        name="bookingstatus",
        create_type=False,
    )
    booking_status.create(op.get_bind(), checkfirst=True)
    payment_status = postgresql.ENUM(
        "pending",
        "processing",
        "paid",
        "failed",
        "refunded",
        name="paymentstatus",
        create_type=False,
    )
    payment_status.create(op.get_bind(), checkfirst=True)

    op.create_table(
        "bookings",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("trip_id", sa.Integer(), sa.ForeignKey("trips.id"), index=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), index=True),
        sa.Column("participants_count", sa.Integer(), nullable=False),
        sa.Column("duration_days", sa.Integer(), nullable=False),
        sa.Column("total_price", sa.Numeric(12, 2), nullable=False),
        sa.Column("status", booking_status, server_default="pending"),
        sa.Column("payment_status", payment_status, server_default="pending"),
        sa.Column("cancellation_reason", sa.String(length=255)),
        sa.Column("cancelled_at", sa.DateTime(timezone=True)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("participants_count > 0", name="ck_booking_participants_positive"),
    )

    op.create_table(
        "equipment_bookings",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "booking_id", sa.Integer(), sa.ForeignKey("bookings.id", ondelete="CASCADE"), index=True
        ),
        sa.Column("equipment_id", sa.Integer(), sa.ForeignKey("equipment.id"), index=True),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.UniqueConstraint("booking_id", "equipment_id", name="uq_equipment_booking_line"),
        sa.CheckConstraint("quantity > 0", name="ck_equipment_booking_quantity_positive"),
    )

    op.create_table(
        "equipment_holds",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "equipment_id", sa.Integer(), sa.ForeignKey("equipment.id", ondelete="CASCADE"), index=True
        ),
        sa.Column(
            "booking_id", sa.Integer(), sa.ForeignKey("bookings.id", ondelete="CASCADE"), index=True
        ),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), index=True),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), index=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("quantity > 0", name="ck_equipment_hold_quantity_positive"),
    )

    transaction_status = postgresql.ENUM(
        "pending", "success", "failed", name="transactionstatus", create_type=False
    )
    transaction_status.create(op.get_bind(), checkfirst=True)
    cancellation_status = postgresql.ENUM(
        "pending", "delivered", "abandoned", name="cancellationstatus", create_type=False
    )
    cancellation_status.create(op.get_bind(), checkfirst=True)

    op.create_table(
        "payment_transactions",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column(
            "booking_id", sa.Integer(), sa.ForeignKey("bookings.id", ondelete="CASCADE"), index=True
        ),
        sa.Column("amount", sa.Numeric(12, 2)),
        sa.Column("status", transaction_status, server_default="pending"),
        sa.Column("transaction_status", sa.String(length=32)),
        sa.Column("fraud_status", sa.String(length=32)),
        sa.Column("payment_method", sa.String(length=32)),
        sa.Column("redirect_url", sa.String(length=512)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "payment_cancellations",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("order_id", sa.String(length=64), index=True),
        sa.Column("status", cancellation_status, server_default="pending"),
        sa.Column("attempts", sa.Integer(), server_default="0"),
        sa.Column("last_error", sa.Text()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )


def downgrade() -> None:
    op.drop_table("payment_cancellations")
    op.drop_table("payment_transactions")
    op.drop_table("equipment_holds")
    op.drop_table("equipment_bookings")
    op.drop_table("bookings")
    op.drop_table("equipment")
    op.drop_table("trips")
    op.drop_table("users")
    for enum_name in ("cancellationstatus", "transactionstatus", "paymentstatus", "bookingstatus"):
        postgresql.ENUM(name=enum_name).drop(op.get_bind(), checkfirst=True)
