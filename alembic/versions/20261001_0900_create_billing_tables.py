"""create billing tables

Revision ID: 20261001_0900
Revises: 
Create Date: 2026-10-01 09:00:00.000000
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = "20261001_0900"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "nomination_types",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("code", sa.String(length=50), nullable=False, unique=True),
        sa.Column("display_name", sa.String(length=100), nullable=False),
        sa.Column("price", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("back_rate", sa.Numeric(5, 2), nullable=False, server_default="0"),
        sa.Column("priority", sa.Integer(), nullable=False, server_default="999"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )

    op.create_table(
        "visits",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("session_code", sa.String(length=20), nullable=False, unique=True),
        sa.Column("primary_customer_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("check_in_at", sa.DateTime(), nullable=False),
        sa.Column("check_out_at", sa.DateTime(), nullable=True),
        sa.Column("guest_count", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("is_group_visit", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="active"),
        sa.Column("merged_into_visit_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("service_rate", sa.Numeric(4, 3), nullable=False, server_default="0.100"),
        sa.Column("tax_rate", sa.Numeric(4, 3), nullable=False, server_default="0.100"),
        sa.Column("subtotal", sa.Integer(), nullable=True),
        sa.Column("service_charge", sa.Integer(), nullable=True),
        sa.Column("tax_amount", sa.Integer(), nullable=True),
        sa.Column("total_amount", sa.Integer(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["merged_into_visit_id"], ["visits.id"]),
    )

    op.create_table(
        "table_segments",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("visit_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("table_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("started_at", sa.DateTime(), nullable=False),
        sa.Column("ended_at", sa.DateTime(), nullable=True),
        sa.Column("reason", sa.String(length=20), nullable=False, server_default="seat"),
        sa.ForeignKeyConstraint(["visit_id"], ["visits.id"]),
    )
    op.create_index("ix_table_segments_visit_id", "table_segments", ["visit_id"])
    op.create_index(
        "uq_table_segments_open_per_visit",
        "table_segments",
        ["visit_id"],
        unique=True,
        postgresql_where=sa.text("ended_at IS NULL"),
    )

    op.create_table(
        "cast_engagements",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("visit_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("cast_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("role", sa.String(length=20), nullable=False),
        sa.Column("nomination_type_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("started_at", sa.DateTime(), nullable=False),
        sa.Column("ended_at", sa.DateTime(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("fee_amount", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("back_percentage", sa.Numeric(5, 2), nullable=False, server_default="0"),
        sa.ForeignKeyConstraint(["visit_id"], ["visits.id"]),
        sa.ForeignKeyConstraint(["nomination_type_id"], ["nomination_types.id"]),
    )
    op.create_index("ix_cast_engagements_visit_id", "cast_engagements", ["visit_id"])
    op.create_index(
        "uq_cast_engagements_active",
        "cast_engagements",
        ["visit_id", "cast_id"],
        unique=True,
        postgresql_where=sa.text("is_active"),
    )

    op.create_table(
        "order_items",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("visit_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("product_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("item_code", sa.String(length=50), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("category", sa.String(length=30), nullable=False, server_default="drink"),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("unit_price", sa.Integer(), nullable=False),
        sa.Column("total_price", sa.Integer(), nullable=False),
        sa.Column("source", sa.String(length=20), nullable=False, server_default="order"),
        sa.Column("target_cast_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("ordered_at", sa.DateTime(), nullable=False),
        sa.Column("billed_at", sa.DateTime(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["visit_id"], ["visits.id"]),
    )
    op.create_index("ix_order_items_visit_id", "order_items", ["visit_id"])

    op.create_table(
        "bill_item_attributions",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("order_item_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("cast_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("attribution_percentage", sa.Numeric(5, 2), nullable=False),
        sa.Column("attribution_amount", sa.Integer(), nullable=False),
        sa.Column("attribution_type", sa.String(length=20), nullable=False),
        sa.Column("reason", sa.String(length=200), nullable=True),
        sa.Column("is_primary", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["order_item_id"], ["order_items.id"]),
        sa.UniqueConstraint("order_item_id", "cast_id", name="uq_bill_item_attributions_item_cast"),
    )
    op.create_index(
        "ix_bill_item_attributions_order_item_id", "bill_item_attributions", ["order_item_id"]
    )
    op.create_index("ix_bill_item_attributions_cast_id", "bill_item_attributions", ["cast_id"])

    op.create_table(
        "visit_guests",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("visit_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("customer_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("guest_name", sa.String(length=100), nullable=True),
        sa.Column("guest_phone", sa.String(length=20), nullable=True),
        sa.Column("guest_type", sa.String(length=20), nullable=False, server_default="companion"),
        sa.Column("seat_position", sa.Integer(), nullable=True),
        sa.Column("relationship_to_main", sa.String(length=100), nullable=True),
        sa.Column("is_primary_payer", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("individual_subtotal", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("individual_service_charge", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("individual_tax_amount", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("individual_total", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["visit_id"], ["visits.id"]),
    )
    op.create_index("ix_visit_guests_visit_id", "visit_guests", ["visit_id"])
    op.create_index(
        "uq_visit_guests_main",
        "visit_guests",
        ["visit_id"],
        unique=True,
        postgresql_where=sa.text("guest_type = 'main'"),
    )
    op.create_index(
        "uq_visit_guests_primary_payer",
        "visit_guests",
        ["visit_id"],
        unique=True,
        postgresql_where=sa.text("is_primary_payer"),
    )

    op.create_table(
        "guest_order_shares",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("order_item_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("visit_guest_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("quantity_for_guest", sa.Numeric(10, 2), nullable=False),
        sa.Column("amount_for_guest", sa.Integer(), nullable=False),
        sa.Column("is_shared_item", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("shared_percentage", sa.Numeric(5, 2), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["order_item_id"], ["order_items.id"]),
        sa.ForeignKeyConstraint(["visit_guest_id"], ["visit_guests.id"]),
        sa.UniqueConstraint(
            "order_item_id", "visit_guest_id", name="uq_guest_order_shares_item_guest"
        ),
    )
    op.create_index("ix_guest_order_shares_order_item_id", "guest_order_shares", ["order_item_id"])
    op.create_index("ix_guest_order_shares_visit_guest_id", "guest_order_shares", ["visit_guest_id"])


def downgrade() -> None:
    op.drop_table("guest_order_shares")
    op.drop_table("visit_guests")
    op.drop_table("bill_item_attributions")
    op.drop_table("order_items")
    op.drop_table("cast_engagements")
    op.drop_table("table_segments")
    op.drop_table("visits")
    op.drop_table("nomination_types")
