from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Optional
import uuid

from sqlalchemy import ForeignKey, Index, String, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from venue_billing.database import Base

if TYPE_CHECKING:
    from venue_billing.models.visit import Visit


class TableSegment(Base):
    """Interval a visit occupies one table."""

    __tablename__ = "table_segments"
    __table_args__ = (
        # At most one open segment per visit
        Index(
            "uq_table_segments_open_per_visit",
            "visit_id",
            unique=True,
            postgresql_where=text("ended_at IS NULL"),
            sqlite_where=text("ended_at IS NULL"),
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    visit_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("visits.id"), nullable=False, index=True
    )
    # Tables are managed by the floor-plan service
    table_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)

    started_at: Mapped[datetime] = mapped_column(nullable=False)
    ended_at: Mapped[Optional[datetime]] = mapped_column(nullable=True)
    reason: Mapped[str] = mapped_column(String(20), default="seat")  # seat, move, repair

    visit: Mapped["Visit"] = relationship("Visit", back_populates="table_segments")

    @property
    def is_open(self) -> bool:
        return self.ended_at is None

    def __repr__(self) -> str:
        return f"<TableSegment(visit_id={self.visit_id}, table_id={self.table_id}, open={self.is_open})>"
