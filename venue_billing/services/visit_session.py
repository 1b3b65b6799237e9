"""Service for visit lifecycle, table segments and cast engagements."""
from __future__ import annotations

import logging
import secrets
import string
from datetime import datetime
from decimal import Decimal
from typing import Callable, Iterable, List, Optional, Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from venue_billing.config import Settings, get_settings
from venue_billing.errors import (
    DuplicateEngagementError,
    NotFoundError,
    StateTransitionError,
)
from venue_billing.models.cast_engagement import CastEngagement
from venue_billing.models.guest import VisitGuest
from venue_billing.models.table_segment import TableSegment
from venue_billing.models.visit import Visit
from venue_billing.services.nomination_catalog import NominationCatalog
from venue_billing.services.quote_engine import QuoteEngine

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

_CODE_ALPHABET = string.ascii_uppercase + string.digits


def generate_session_code(moment: datetime) -> str:
    """Session codes look like V20250108-7KQZ."""
    suffix = "".join(secrets.choice(_CODE_ALPHABET) for _ in range(4))
    return f"V{moment:%Y%m%d}-{suffix}"


class VisitSessionManager:
    """
    Tracks a visit's table history and cast engagements.

    Invariants kept here and backed by partial unique indexes:
    - a visit has at most one open table segment
    - a (visit, cast) pair has at most one active engagement

    Every mutating method is one transaction; a rejected call leaves
    nothing behind.
    """

    def __init__(
        self,
        session: AsyncSession,
        clock: Optional[Clock] = None,
        nomination_catalog: Optional[NominationCatalog] = None,
        settings: Optional[Settings] = None,
    ):
        self.session = session
        self.clock = clock or datetime.utcnow
        self.nomination_catalog = nomination_catalog or NominationCatalog(session)
        self.settings = settings or get_settings()

    # ------------------------------------------------------------------
    # Visit lifecycle
    # ------------------------------------------------------------------

    async def check_in(
        self,
        primary_customer_id: UUID,
        table_id: UUID,
        guest_count: int = 1,
        checked_in_at: Optional[datetime] = None,
        main_guest_name: Optional[str] = None,
        service_rate: Optional[float] = None,
        tax_rate: Optional[float] = None,
    ) -> Visit:
        """
        Start a visit: creates the visit, its first table segment and its
        main guest.
        """
        if guest_count < 1:
            raise ValueError("guest_count must be at least 1")

        now = checked_in_at or self.clock()
        visit = Visit(
            session_code=generate_session_code(now),
            primary_customer_id=primary_customer_id,
            check_in_at=now,
            guest_count=guest_count,
            is_group_visit=guest_count > 1,
            status=Visit.ACTIVE,
            service_rate=Decimal(str(
                self.settings.default_service_rate if service_rate is None else service_rate
            )),
            tax_rate=Decimal(str(
                self.settings.default_tax_rate if tax_rate is None else tax_rate
            )),
        )
        self.session.add(visit)
        await self.session.flush()

        self.session.add(
            TableSegment(visit_id=visit.id, table_id=table_id, started_at=now, reason="seat")
        )
        self.session.add(
            VisitGuest(
                visit_id=visit.id,
                customer_id=primary_customer_id,
                guest_name=main_guest_name,
                guest_type="main",
                seat_position=1,
                is_primary_payer=True,
            )
        )

        await self.session.commit()
        await self.session.refresh(visit)

        logger.info("Visit %s checked in at table %s", visit.session_code, table_id)
        return visit

    async def checkout(self, visit_id: UUID, checked_out_at: Optional[datetime] = None) -> Visit:
        """Complete a visit; closes its table segment and ends active engagements."""
        return await self._finish(visit_id, Visit.COMPLETED, checked_out_at)

    async def cancel(self, visit_id: UUID) -> Visit:
        """Cancel a visit; closes its table segment and ends active engagements."""
        return await self._finish(visit_id, Visit.CANCELLED, None)

    async def _finish(self, visit_id: UUID, status: str, moment: Optional[datetime]) -> Visit:
        visit = await self.get_active_visit(visit_id)
        now = moment or self.clock()

        await self._close_open_segments(visit.id, now)
        for engagement in await self.get_active_engagements(visit.id):
            self._end(engagement, now)

        visit.status = status
        visit.check_out_at = now

        await self.session.commit()
        await self.session.refresh(visit)

        logger.info("Visit %s is now %s", visit.session_code, status)
        return visit

    async def merge_sessions(
        self,
        primary_visit_id: UUID,
        secondary_visit_ids: Iterable[UUID],
    ) -> Visit:
        """
        Fold secondary visits into a primary one.

        Active engagements move to the primary visit. When the same cast is
        already active on the primary, the secondary engagement is ended
        instead of moved. Secondary segments are closed and the secondary
        visits are marked merged with a back-reference. Not reversible.
        """
        secondary_ids = list(dict.fromkeys(secondary_visit_ids))
        if not secondary_ids:
            raise ValueError("At least one visit to merge is required")
        if primary_visit_id in secondary_ids:
            raise ValueError("A visit cannot be merged into itself")

        primary = await self.get_active_visit(primary_visit_id)
        secondaries = [await self.get_active_visit(vid) for vid in secondary_ids]
        now = self.clock()

        active_casts = {e.cast_id for e in await self.get_active_engagements(primary.id)}

        for secondary in secondaries:
            for engagement in await self.get_active_engagements(secondary.id):
                if engagement.cast_id in active_casts:
                    self._end(engagement, now)
                else:
                    engagement.visit_id = primary.id
                    active_casts.add(engagement.cast_id)

            await self._close_open_segments(secondary.id, now)

            secondary.status = Visit.MERGED
            secondary.merged_into_visit_id = primary.id
            secondary.check_out_at = now
            primary.guest_count += secondary.guest_count

        primary.is_group_visit = True

        await self.session.commit()
        await self.session.refresh(primary)

        logger.info(
            "Merged %d visit(s) into %s", len(secondaries), primary.session_code
        )
        return primary

    # ------------------------------------------------------------------
    # Table segments
    # ------------------------------------------------------------------

    async def open_table_segment(
        self,
        visit_id: UUID,
        table_id: UUID,
        reason: str = "move",
    ) -> TableSegment:
        """
        Seat the visit at ``table_id``, closing the current segment in the
        same transaction.
        """
        visit = await self.get_active_visit(visit_id)
        now = self.clock()

        current = await self.get_open_segment(visit.id)
        if current is not None:
            if current.table_id == table_id:
                return current
            current.ended_at = now
            # close must reach the index before the new open row does
            await self.session.flush()

        segment = TableSegment(visit_id=visit.id, table_id=table_id, started_at=now, reason=reason)
        self.session.add(segment)

        try:
            await self.session.commit()
        except IntegrityError as exc:
            await self.session.rollback()
            logger.warning("Concurrent table move on visit %s rejected", visit_id)
            raise StateTransitionError(
                f"Visit {visit_id} was moved concurrently; reload and retry"
            ) from exc

        await self.session.refresh(segment)
        logger.info("Visit %s moved to table %s (%s)", visit.session_code, table_id, reason)
        return segment

    async def move_table(self, visit_id: UUID, to_table_id: UUID) -> TableSegment:
        return await self.open_table_segment(visit_id, to_table_id, reason="move")

    async def get_open_segment(self, visit_id: UUID) -> Optional[TableSegment]:
        """Current table segment of a visit, if any."""
        stmt = (
            select(TableSegment)
            .where(TableSegment.visit_id == visit_id)
            .where(TableSegment.ended_at.is_(None))
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_table_segments(self, visit_id: UUID) -> Sequence[TableSegment]:
        stmt = (
            select(TableSegment)
            .where(TableSegment.visit_id == visit_id)
            .order_by(TableSegment.started_at)
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def find_visits_without_open_segment(self) -> Sequence[Visit]:
        """Active visits left unseated by a failed move; repair with repair_open_segment."""
        has_open_segment = (
            select(TableSegment.id)
            .where(TableSegment.visit_id == Visit.id)
            .where(TableSegment.ended_at.is_(None))
            .exists()
        )
        stmt = (
            select(Visit)
            .where(Visit.status == Visit.ACTIVE)
            .where(~has_open_segment)
            .order_by(Visit.check_in_at)
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def repair_open_segment(self, visit_id: UUID, table_id: UUID) -> TableSegment:
        """Re-open a segment for a visit that has none. No-op if one is open."""
        current = await self.get_open_segment(visit_id)
        if current is not None:
            return current
        logger.warning("Repairing missing open segment for visit %s", visit_id)
        return await self.open_table_segment(visit_id, table_id, reason="repair")

    async def _close_open_segments(self, visit_id: UUID, moment: datetime) -> None:
        segment = await self.get_open_segment(visit_id)
        if segment is not None:
            segment.ended_at = moment

    # ------------------------------------------------------------------
    # Cast engagements
    # ------------------------------------------------------------------

    async def add_cast_engagement(
        self,
        visit_id: UUID,
        cast_id: UUID,
        role: str,
        nomination_type_code: Optional[str] = None,
        started_at: Optional[datetime] = None,
    ) -> CastEngagement:
        """
        Assign a cast to a visit.

        Raises DuplicateEngagementError if the cast is already active on the
        visit and ConfigurationError for an unknown nomination type.
        """
        if role not in CastEngagement.ROLES:
            raise ValueError(f"Unknown engagement role: {role}")

        visit = await self.get_active_visit(visit_id)

        existing = await self._get_active_engagement(visit.id, cast_id)
        if existing is not None:
            raise DuplicateEngagementError(visit.id, cast_id)

        engagement = CastEngagement(
            visit_id=visit.id,
            cast_id=cast_id,
            role=role,
            started_at=started_at or self.clock(),
            is_active=True,
            fee_amount=0,
            back_percentage=Decimal("0"),
        )

        if nomination_type_code:
            nomination_type = await self.nomination_catalog.get_by_code(nomination_type_code)
            engagement.nomination_type_id = nomination_type.id
            engagement.fee_amount = nomination_type.price
            engagement.back_percentage = nomination_type.back_rate

        self.session.add(engagement)

        try:
            await self.session.commit()
        except IntegrityError as exc:
            await self.session.rollback()
            logger.warning("Concurrent assignment of cast %s to visit %s rejected", cast_id, visit_id)
            raise DuplicateEngagementError(visit_id, cast_id) from exc

        await self.session.refresh(engagement)
        logger.info("Cast %s engaged on visit %s as %s", cast_id, visit.session_code, role)
        return engagement

    async def end_cast_engagement(
        self,
        engagement_id: UUID,
        ended_at: Optional[datetime] = None,
    ) -> CastEngagement:
        """End an engagement. Ended engagements are terminal."""
        engagement = await self.get_engagement(engagement_id)
        if not engagement.is_active:
            raise StateTransitionError(f"Engagement {engagement_id} has already ended")

        self._end(engagement, ended_at or self.clock())

        await self.session.commit()
        await self.session.refresh(engagement)

        logger.info("Engagement %s ended", engagement_id)
        return engagement

    async def get_engagement(self, engagement_id: UUID) -> CastEngagement:
        stmt = select(CastEngagement).where(CastEngagement.id == engagement_id)
        result = await self.session.execute(stmt)
        engagement = result.scalar_one_or_none()
        if engagement is None:
            raise NotFoundError(f"Engagement {engagement_id} not found")
        return engagement

    async def get_active_engagements(
        self,
        visit_id: UUID,
        at: Optional[datetime] = None,
    ) -> List[CastEngagement]:
        """
        Engagements on a visit that are active now, or that covered ``at``.

        Ordered by start time so callers get a stable cast order.
        """
        stmt = select(CastEngagement).where(CastEngagement.visit_id == visit_id)
        if at is None:
            stmt = stmt.where(CastEngagement.is_active == True)  # noqa: E712
        else:
            stmt = stmt.where(CastEngagement.started_at <= at)
        stmt = stmt.order_by(CastEngagement.started_at, CastEngagement.cast_id)

        result = await self.session.execute(stmt)
        engagements = list(result.scalars().all())
        if at is not None:
            engagements = [e for e in engagements if e.was_active_at(at)]
        return engagements

    async def _get_active_engagement(
        self, visit_id: UUID, cast_id: UUID
    ) -> Optional[CastEngagement]:
        stmt = (
            select(CastEngagement)
            .where(CastEngagement.visit_id == visit_id)
            .where(CastEngagement.cast_id == cast_id)
            .where(CastEngagement.is_active == True)  # noqa: E712
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    def _end(engagement: CastEngagement, moment: datetime) -> None:
        engagement.ended_at = moment
        engagement.is_active = False

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_visit(self, visit_id: UUID) -> Visit:
        stmt = select(Visit).where(Visit.id == visit_id)
        result = await self.session.execute(stmt)
        visit = result.scalar_one_or_none()
        if visit is None:
            raise NotFoundError(f"Visit {visit_id} not found")
        return visit

    async def get_active_visit(self, visit_id: UUID) -> Visit:
        """Get a visit, raising StateTransitionError unless it is active."""
        visit = await self.get_visit(visit_id)
        if not visit.is_active:
            raise StateTransitionError(f"Visit {visit_id} is {visit.status}")
        return visit

    async def get_session_details(self, visit_id: UUID) -> Visit:
        """Visit with segments, engagements and guests loaded."""
        stmt = (
            select(Visit)
            .where(Visit.id == visit_id)
            .options(
                selectinload(Visit.table_segments),
                selectinload(Visit.cast_engagements),
                selectinload(Visit.guests),
            )
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        visit = result.scalar_one_or_none()
        if visit is None:
            raise NotFoundError(f"Visit {visit_id} not found")
        return visit

    def stay_minutes(self, visit: Visit, until: Optional[datetime] = None) -> int:
        """Minutes from check-in to checkout, or to ``until``/now while active."""
        end = visit.check_out_at or until or self.clock()
        return QuoteEngine.stay_minutes(visit.check_in_at, end)
