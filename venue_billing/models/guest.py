from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, List, Optional
import uuid

from sqlalchemy import Boolean, ForeignKey, Index, Integer, Numeric, String, UniqueConstraint, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from venue_billing.database import Base

if TYPE_CHECKING:
    from venue_billing.models.visit import Visit
    from venue_billing.models.order import OrderItem


class VisitGuest(Base):
    """A guest attending a visit, with a running individual bill."""

    __tablename__ = "visit_guests"
    __table_args__ = (
        Index(
            "uq_visit_guests_main",
            "visit_id",
            unique=True,
            postgresql_where=text("guest_type = 'main'"),
            sqlite_where=text("guest_type = 'main'"),
        ),
        Index(
            "uq_visit_guests_primary_payer",
            "visit_id",
            unique=True,
            postgresql_where=text("is_primary_payer"),
            sqlite_where=text("is_primary_payer = 1"),
        ),
    )

    GUEST_TYPES = {"main", "companion", "additional"}

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    visit_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("visits.id"), nullable=False, index=True
    )

    # Either an existing customer or an ad hoc name/phone
    customer_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), nullable=True)
    guest_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    guest_phone: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    guest_type: Mapped[str] = mapped_column(String(20), default="companion")  # main, companion, additional
    seat_position: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    relationship_to_main: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    is_primary_payer: Mapped[bool] = mapped_column(Boolean, default=False)

    # Running aggregates, updated incrementally on every share write
    individual_subtotal: Mapped[int] = mapped_column(Integer, default=0)
    individual_service_charge: Mapped[int] = mapped_column(Integer, default=0)
    individual_tax_amount: Mapped[int] = mapped_column(Integer, default=0)
    individual_total: Mapped[int] = mapped_column(Integer, default=0)

    created_at: Mapped[datetime] = mapped_column(default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        default=datetime.utcnow, onupdate=datetime.utcnow
    )

    visit: Mapped["Visit"] = relationship("Visit", back_populates="guests")
    order_shares: Mapped[List["GuestOrderShare"]] = relationship(
        "GuestOrderShare", back_populates="guest"
    )

    @property
    def display_name(self) -> str:
        return self.guest_name or (str(self.customer_id) if self.customer_id else "guest")

    def __repr__(self) -> str:
        return f"<VisitGuest(id={self.id}, type={self.guest_type}, payer={self.is_primary_payer})>"


class GuestOrderShare(Base):
    """Portion of an order line billed to one co-attending guest."""

    __tablename__ = "guest_order_shares"
    __table_args__ = (
        UniqueConstraint("order_item_id", "visit_guest_id", name="uq_guest_order_shares_item_guest"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    order_item_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("order_items.id"), nullable=False, index=True
    )
    visit_guest_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("visit_guests.id"), nullable=False, index=True
    )

    quantity_for_guest: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    amount_for_guest: Mapped[int] = mapped_column(Integer, nullable=False)
    is_shared_item: Mapped[bool] = mapped_column(Boolean, default=False)
    shared_percentage: Mapped[Optional[Decimal]] = mapped_column(Numeric(5, 2), nullable=True)

    created_at: Mapped[datetime] = mapped_column(default=datetime.utcnow)

    order_item: Mapped["OrderItem"] = relationship("OrderItem", back_populates="guest_shares")
    guest: Mapped["VisitGuest"] = relationship("VisitGuest", back_populates="order_shares")

    def __repr__(self) -> str:
        return f"<GuestOrderShare(order_item_id={self.order_item_id}, guest_id={self.visit_guest_id}, amount={self.amount_for_guest})>"
