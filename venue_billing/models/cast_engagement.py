from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Optional
import uuid

from sqlalchemy import Boolean, ForeignKey, Index, Integer, Numeric, String, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from venue_billing.database import Base

if TYPE_CHECKING:
    from venue_billing.models.visit import Visit
    from venue_billing.models.nomination import NominationType


class CastEngagement(Base):
    """Interval a cast member attends a visit, with role and fee."""

    __tablename__ = "cast_engagements"
    __table_args__ = (
        # One active row per (visit, cast); authoritative under concurrent requests
        Index(
            "uq_cast_engagements_active",
            "visit_id",
            "cast_id",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active = 1"),
        ),
    )

    ROLES = {"primary", "inhouse", "help", "companion_out", "after"}

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    visit_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("visits.id"), nullable=False, index=True
    )
    # Cast profiles live in the staff service
    cast_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    role: Mapped[str] = mapped_column(String(20), nullable=False)
    nomination_type_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("nomination_types.id"), nullable=True
    )

    started_at: Mapped[datetime] = mapped_column(nullable=False)
    ended_at: Mapped[Optional[datetime]] = mapped_column(nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    fee_amount: Mapped[int] = mapped_column(Integer, default=0)
    back_percentage: Mapped[Decimal] = mapped_column(Numeric(5, 2), default=Decimal("0"))

    visit: Mapped["Visit"] = relationship("Visit", back_populates="cast_engagements")
    nomination_type: Mapped[Optional["NominationType"]] = relationship("NominationType")

    def was_active_at(self, moment: datetime) -> bool:
        """True if the engagement covered the given moment."""
        if self.started_at > moment:
            return False
        return self.ended_at is None or self.ended_at > moment

    def __repr__(self) -> str:
        return f"<CastEngagement(visit_id={self.visit_id}, cast_id={self.cast_id}, role={self.role}, active={self.is_active})>"
