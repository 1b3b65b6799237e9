from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, List, Optional
import uuid

from sqlalchemy import Boolean, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from venue_billing.database import Base

if TYPE_CHECKING:
    from venue_billing.models.table_segment import TableSegment
    from venue_billing.models.cast_engagement import CastEngagement
    from venue_billing.models.order import OrderItem
    from venue_billing.models.guest import VisitGuest


class Visit(Base):
    """One continuous guest stay from check-in to checkout."""

    __tablename__ = "visits"

    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    MERGED = "merged"
    TERMINAL_STATUSES = {COMPLETED, CANCELLED, MERGED}

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    session_code: Mapped[str] = mapped_column(String(20), nullable=False, unique=True)

    # Customer records live outside this service
    primary_customer_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), nullable=False
    )

    check_in_at: Mapped[datetime] = mapped_column(nullable=False)
    check_out_at: Mapped[Optional[datetime]] = mapped_column(nullable=True)
    guest_count: Mapped[int] = mapped_column(Integer, default=1)
    is_group_visit: Mapped[bool] = mapped_column(Boolean, default=False)
    status: Mapped[str] = mapped_column(String(20), default=ACTIVE)  # active, completed, cancelled, merged

    # Set when this visit was folded into another one
    merged_into_visit_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("visits.id"), nullable=True
    )

    # Rates used for per-guest running totals and applied quotes
    service_rate: Mapped[Decimal] = mapped_column(Numeric(4, 3), default=Decimal("0.100"))
    tax_rate: Mapped[Decimal] = mapped_column(Numeric(4, 3), default=Decimal("0.100"))

    # Snapshot of the last applied quote
    subtotal: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    service_charge: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    tax_amount: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    total_amount: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        default=datetime.utcnow, onupdate=datetime.utcnow
    )

    # Relationships
    table_segments: Mapped[List["TableSegment"]] = relationship(
        "TableSegment", back_populates="visit", order_by="TableSegment.started_at"
    )
    cast_engagements: Mapped[List["CastEngagement"]] = relationship(
        "CastEngagement", back_populates="visit", order_by="CastEngagement.started_at"
    )
    order_items: Mapped[List["OrderItem"]] = relationship(
        "OrderItem", back_populates="visit", cascade="all, delete-orphan"
    )
    guests: Mapped[List["VisitGuest"]] = relationship(
        "VisitGuest", back_populates="visit", cascade="all, delete-orphan"
    )

    @property
    def is_active(self) -> bool:
        return self.status == self.ACTIVE

    def __repr__(self) -> str:
        return f"<Visit(id={self.id}, code={self.session_code}, status={self.status})>"
