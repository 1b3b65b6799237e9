from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, List, Optional
import uuid

from sqlalchemy import Boolean, ForeignKey, Integer, Numeric, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from venue_billing.database import Base

if TYPE_CHECKING:
    from venue_billing.models.visit import Visit
    from venue_billing.models.guest import GuestOrderShare


class OrderItem(Base):
    """Billed line on a visit (drinks, seat time, fees...)."""

    __tablename__ = "order_items"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    visit_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("visits.id"), nullable=False, index=True
    )
    # Product catalog lives in the inventory service
    product_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), nullable=True)
    item_code: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    category: Mapped[str] = mapped_column(String(30), default="drink")  # seat, room, nomination, inhouse, house_fee, single_charge, drink, bottle, cast_drink, food

    quantity: Mapped[int] = mapped_column(Integer, default=1)
    unit_price: Mapped[int] = mapped_column(Integer, nullable=False)
    total_price: Mapped[int] = mapped_column(Integer, nullable=False)

    source: Mapped[str] = mapped_column(String(20), default="order")  # order, quote

    # Cast the line was ordered for (nomination fee, drink for a cast)
    target_cast_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), nullable=True)

    ordered_at: Mapped[datetime] = mapped_column(nullable=False)
    billed_at: Mapped[Optional[datetime]] = mapped_column(nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        default=datetime.utcnow, onupdate=datetime.utcnow
    )

    visit: Mapped["Visit"] = relationship("Visit", back_populates="order_items")
    attributions: Mapped[List["BillItemAttribution"]] = relationship(
        "BillItemAttribution", back_populates="order_item", cascade="all, delete-orphan"
    )
    guest_shares: Mapped[List["GuestOrderShare"]] = relationship(
        "GuestOrderShare", back_populates="order_item", cascade="all, delete-orphan"
    )

    @property
    def is_ordered(self) -> bool:
        """Ordered at the table, as opposed to written by an applied quote."""
        return self.source == "order"

    def __repr__(self) -> str:
        return f"<OrderItem(id={self.id}, code={self.item_code}, total={self.total_price})>"


class BillItemAttribution(Base):
    """Share of an order line's revenue credited to one cast."""

    __tablename__ = "bill_item_attributions"
    __table_args__ = (
        UniqueConstraint("order_item_id", "cast_id", name="uq_bill_item_attributions_item_cast"),
    )

    TYPES = {"nomination", "drink_for_cast", "time_share", "manual", "auto"}

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    order_item_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("order_items.id"), nullable=False, index=True
    )
    cast_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)

    attribution_percentage: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    attribution_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    attribution_type: Mapped[str] = mapped_column(String(20), nullable=False)
    reason: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    is_primary: Mapped[bool] = mapped_column(Boolean, default=False)

    created_at: Mapped[datetime] = mapped_column(default=datetime.utcnow)

    order_item: Mapped["OrderItem"] = relationship("OrderItem", back_populates="attributions")

    def __repr__(self) -> str:
        return (
            f"<BillItemAttribution(order_item_id={self.order_item_id}, cast_id={self.cast_id}, "
            f"pct={self.attribution_percentage}, amount={self.attribution_amount})>"
        )
