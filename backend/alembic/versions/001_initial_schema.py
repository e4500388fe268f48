"""Initial schema: tours, customers, bookings with reconciliation constraints.

Revision ID: 001
Revises: None
Create Date: 2026-10-17
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Tours table (catalog is owned elsewhere; ids are opaque strings)
    op.create_table(
        "tours",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("image", sa.String(500), nullable=True),
        sa.Column("meeting_point", sa.String(500), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    # Customers table
    op.create_table(
        "customers",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("first_name", sa.String(100), nullable=False),
        sa.Column("last_name", sa.String(100), nullable=False),
        sa.Column("phone", sa.String(50), nullable=True),
        sa.Column("is_guest", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_customers_id", "customers", ["id"])
    # UNIQUE EMAIL: concurrent guest-account creators collide here and re-read.
    op.create_index("ix_customers_email", "customers", ["email"], unique=True)

    # Bookings table
    op.create_table(
        "bookings",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("booking_reference", sa.String(40), nullable=False),
        sa.Column("payment_id", sa.String(255), nullable=False),
        sa.Column("item_index", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("tour_id", sa.String(64), sa.ForeignKey("tours.id"), nullable=False),
        sa.Column("customer_id", sa.Integer(), sa.ForeignKey("customers.id"), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("time", sa.String(10), nullable=False),
        sa.Column("adult_guests", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("child_guests", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("infant_guests", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("subtotal", sa.Numeric(10, 2), nullable=True),
        sa.Column("service_fee", sa.Numeric(10, 2), nullable=True),
        sa.Column("tax", sa.Numeric(10, 2), nullable=True),
        sa.Column("total_price", sa.Numeric(10, 2), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False, server_default=sa.text("'USD'")),
        sa.Column("discount_code", sa.String(64), nullable=True),
        sa.Column("discount_amount", sa.Numeric(10, 2), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'Pending'")),
        sa.Column("payment_method", sa.String(20), nullable=False, server_default=sa.text("'card'")),
        sa.Column("selected_option", sa.JSON(), nullable=True),
        sa.Column("add_on_selections", sa.JSON(), nullable=True),
        sa.Column("hotel_pickup_details", sa.String(1000), nullable=True),
        sa.Column("hotel_pickup_location", sa.JSON(), nullable=True),
        sa.Column("special_requests", sa.String(1000), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        # One booking per paid cart line, whichever writer gets there first
        sa.UniqueConstraint("payment_id", "item_index", name="uq_booking_payment_item"),
        sa.CheckConstraint("adult_guests >= 0", name="check_booking_adults_non_negative"),
        sa.CheckConstraint("child_guests >= 0", name="check_booking_children_non_negative"),
        sa.CheckConstraint("infant_guests >= 0", name="check_booking_infants_non_negative"),
        sa.CheckConstraint("total_price >= 0", name="check_booking_total_non_negative"),
        sa.CheckConstraint(
            "status IN ('Pending', 'Confirmed', 'Cancelled', 'Refunded', 'PartialRefund')",
            name="check_booking_status",
        ),
    )
    op.create_index("ix_bookings_id", "bookings", ["id"])
    # UNIQUE REFERENCE: the deterministic reference is the idempotency key.
    op.create_index("ix_bookings_booking_reference", "bookings", ["booking_reference"], unique=True)
    # Resolver lookup: every delivery starts with "bookings for this payment".
    op.create_index("ix_bookings_payment_id", "bookings", ["payment_id"])
    op.create_index("ix_bookings_tour_id", "bookings", ["tour_id"])
    op.create_index("ix_bookings_customer_id", "bookings", ["customer_id"])
    op.create_index("ix_bookings_tour_date", "bookings", ["tour_id", "date"])


def downgrade() -> None:
    op.drop_table("bookings")
    op.drop_table("customers")
    op.drop_table("tours")
