"""Tests for VisitSessionManager."""
from __future__ import annotations

import re
from datetime import datetime
from uuid import uuid4

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from venue_billing.errors import (
    ConfigurationError,
    DuplicateEngagementError,
    NotFoundError,
    StateTransitionError,
)
from venue_billing.models import CastEngagement, TableSegment, Visit, VisitGuest
from venue_billing.services.visit_session import VisitSessionManager, generate_session_code

# Matches the clock fixture's start
OPENING_TIME = datetime(2026, 1, 10, 20, 0, 0)


async def count_open_segments(session: AsyncSession, visit_id) -> int:
    stmt = (
        select(func.count(TableSegment.id))
        .where(TableSegment.visit_id == visit_id)
        .where(TableSegment.ended_at.is_(None))
    )
    return (await session.execute(stmt)).scalar_one()


class TestCheckIn:
    """Tests for starting a visit."""

    async def test_creates_visit_segment_and_main_guest(
        self,
        db_session: AsyncSession,
        session_manager: VisitSessionManager,
    ):
        customer_id = uuid4()
        table_id = uuid4()

        visit = await session_manager.check_in(customer_id, table_id, guest_count=3)

        assert visit.status == Visit.ACTIVE
        assert visit.check_in_at == OPENING_TIME
        assert visit.is_group_visit is True
        assert re.match(r"^V20260110-[A-Z0-9]{4}$", visit.session_code)

        segment = await session_manager.get_open_segment(visit.id)
        assert segment.table_id == table_id
        assert segment.reason == "seat"

        result = await db_session.execute(select(VisitGuest).where(VisitGuest.visit_id == visit.id))
        guests = result.scalars().all()
        assert len(guests) == 1
        assert guests[0].guest_type == "main"
        assert guests[0].customer_id == customer_id
        assert guests[0].is_primary_payer is True

    async def test_uses_default_rates(self, sample_visit: Visit):
        assert float(sample_visit.service_rate) == pytest.approx(0.1)
        assert float(sample_visit.tax_rate) == pytest.approx(0.1)

    async def test_rejects_empty_party(self, session_manager: VisitSessionManager):
        with pytest.raises(ValueError, match="guest_count"):
            await session_manager.check_in(uuid4(), uuid4(), guest_count=0)

    def test_session_code_format(self):
        code = generate_session_code(OPENING_TIME)
        assert code.startswith("V20260110-")
        assert len(code) == len("V20260110-XXXX")


class TestTableSegments:
    """Tests for table moves and the one-open-segment invariant."""

    async def test_move_closes_previous_segment(
        self,
        db_session: AsyncSession,
        session_manager: VisitSessionManager,
        sample_visit: Visit,
        clock,
    ):
        clock.advance(minutes=45)
        new_table = uuid4()

        segment = await session_manager.move_table(sample_visit.id, new_table)

        assert segment.table_id == new_table
        assert segment.reason == "move"
        assert segment.started_at == clock()

        segments = await session_manager.get_table_segments(sample_visit.id)
        assert len(segments) == 2
        assert segments[0].ended_at == clock()
        assert await count_open_segments(db_session, sample_visit.id) == 1

    async def test_move_to_same_table_is_noop(
        self,
        session_manager: VisitSessionManager,
        sample_visit: Visit,
    ):
        current = await session_manager.get_open_segment(sample_visit.id)

        segment = await session_manager.move_table(sample_visit.id, current.table_id)

        assert segment.id == current.id
        assert len(await session_manager.get_table_segments(sample_visit.id)) == 1

    async def test_repeated_moves_keep_one_open_segment(
        self,
        db_session: AsyncSession,
        session_manager: VisitSessionManager,
        sample_visit: Visit,
        clock,
    ):
        for _ in range(3):
            clock.advance(minutes=10)
            await session_manager.move_table(sample_visit.id, uuid4())

        assert await count_open_segments(db_session, sample_visit.id) == 1
        assert len(await session_manager.get_table_segments(sample_visit.id)) == 4

    async def test_database_rejects_second_open_segment(
        self,
        db_session: AsyncSession,
        sample_visit: Visit,
    ):
        """The partial unique index holds even when the service is bypassed."""
        visit_id = sample_visit.id
        db_session.add(TableSegment(visit_id=visit_id, table_id=uuid4(), started_at=OPENING_TIME))

        with pytest.raises(IntegrityError):
            await db_session.commit()
        await db_session.rollback()

        assert await count_open_segments(db_session, visit_id) == 1

    async def test_move_rejected_for_closed_visit(
        self,
        session_manager: VisitSessionManager,
        sample_visit: Visit,
    ):
        await session_manager.checkout(sample_visit.id)

        with pytest.raises(StateTransitionError):
            await session_manager.move_table(sample_visit.id, uuid4())

    async def test_detect_and_repair_unseated_visit(
        self,
        db_session: AsyncSession,
        session_manager: VisitSessionManager,
        sample_visit: Visit,
        clock,
    ):
        """A visit left without an open segment is found and re-seated."""
        segment = await session_manager.get_open_segment(sample_visit.id)
        segment.ended_at = clock()
        await db_session.commit()

        unseated = await session_manager.find_visits_without_open_segment()
        assert [v.id for v in unseated] == [sample_visit.id]

        table_id = uuid4()
        repaired = await session_manager.repair_open_segment(sample_visit.id, table_id)

        assert repaired.reason == "repair"
        assert repaired.table_id == table_id
        assert await session_manager.find_visits_without_open_segment() == []

    async def test_repair_is_noop_when_seated(
        self,
        session_manager: VisitSessionManager,
        sample_visit: Visit,
    ):
        current = await session_manager.get_open_segment(sample_visit.id)
        repaired = await session_manager.repair_open_segment(sample_visit.id, uuid4())
        assert repaired.id == current.id


class TestCastEngagements:
    """Tests for assigning and releasing casts."""

    async def test_add_engagement(
        self,
        session_manager: VisitSessionManager,
        sample_visit: Visit,
        cast_ids,
    ):
        engagement = await session_manager.add_cast_engagement(sample_visit.id, cast_ids[0], "help")

        assert engagement.is_active is True
        assert engagement.started_at == OPENING_TIME
        assert engagement.fee_amount == 0
        assert engagement.nomination_type_id is None

    async def test_nomination_type_sets_fee_and_back(
        self,
        session_manager: VisitSessionManager,
        sample_visit: Visit,
        nomination_types,
        cast_ids,
    ):
        engagement = await session_manager.add_cast_engagement(
            sample_visit.id, cast_ids[0], "primary", nomination_type_code="MAIN"
        )

        assert engagement.nomination_type_id == nomination_types[0].id
        assert engagement.fee_amount == 3000
        assert float(engagement.back_percentage) == pytest.approx(50)

    async def test_unknown_nomination_type(
        self,
        session_manager: VisitSessionManager,
        sample_visit: Visit,
        nomination_types,
        cast_ids,
    ):
        with pytest.raises(ConfigurationError, match="NOPE"):
            await session_manager.add_cast_engagement(
                sample_visit.id, cast_ids[0], "primary", nomination_type_code="NOPE"
            )

    async def test_retired_nomination_type(
        self,
        session_manager: VisitSessionManager,
        sample_visit: Visit,
        nomination_types,
        cast_ids,
    ):
        with pytest.raises(ConfigurationError):
            await session_manager.add_cast_engagement(
                sample_visit.id, cast_ids[0], "primary", nomination_type_code="RETIRED"
            )

    async def test_unknown_role(
        self,
        session_manager: VisitSessionManager,
        sample_visit: Visit,
        cast_ids,
    ):
        with pytest.raises(ValueError, match="role"):
            await session_manager.add_cast_engagement(sample_visit.id, cast_ids[0], "bouncer")

    async def test_duplicate_active_engagement_rejected(
        self,
        db_session: AsyncSession,
        session_manager: VisitSessionManager,
        sample_visit: Visit,
        cast_ids,
    ):
        await session_manager.add_cast_engagement(sample_visit.id, cast_ids[0], "help")

        with pytest.raises(DuplicateEngagementError) as exc_info:
            await session_manager.add_cast_engagement(sample_visit.id, cast_ids[0], "inhouse")

        assert exc_info.value.cast_id == cast_ids[0]
        result = await db_session.execute(
            select(func.count(CastEngagement.id)).where(CastEngagement.visit_id == sample_visit.id)
        )
        assert result.scalar_one() == 1

    async def test_database_rejects_duplicate_active_engagement(
        self,
        db_session: AsyncSession,
        sample_visit: Visit,
        cast_ids,
    ):
        """Two racing inserts cannot both be active."""
        visit_id = sample_visit.id
        for _ in range(2):
            db_session.add(
                CastEngagement(
                    visit_id=visit_id,
                    cast_id=cast_ids[0],
                    role="help",
                    started_at=OPENING_TIME,
                    is_active=True,
                )
            )

        with pytest.raises(IntegrityError):
            await db_session.commit()
        await db_session.rollback()

    async def test_cast_can_return_after_ending(
        self,
        session_manager: VisitSessionManager,
        sample_visit: Visit,
        cast_ids,
        clock,
    ):
        first = await session_manager.add_cast_engagement(sample_visit.id, cast_ids[0], "help")
        clock.advance(minutes=20)
        await session_manager.end_cast_engagement(first.id)
        clock.advance(minutes=20)

        second = await session_manager.add_cast_engagement(sample_visit.id, cast_ids[0], "help")

        assert second.id != first.id
        assert second.is_active is True

    async def test_ending_twice_raises_and_leaves_row_unchanged(
        self,
        db_session: AsyncSession,
        session_manager: VisitSessionManager,
        sample_visit: Visit,
        cast_ids,
        clock,
    ):
        engagement = await session_manager.add_cast_engagement(sample_visit.id, cast_ids[0], "help")
        clock.advance(minutes=30)
        ended = await session_manager.end_cast_engagement(engagement.id)
        first_end = ended.ended_at

        clock.advance(minutes=30)
        with pytest.raises(StateTransitionError):
            await session_manager.end_cast_engagement(engagement.id)

        await db_session.refresh(engagement)
        assert engagement.is_active is False
        assert engagement.ended_at == first_end

    async def test_end_unknown_engagement(self, session_manager: VisitSessionManager):
        with pytest.raises(NotFoundError):
            await session_manager.end_cast_engagement(uuid4())

    async def test_active_engagements_at_a_moment(
        self,
        session_manager: VisitSessionManager,
        sample_visit: Visit,
        cast_ids,
        clock,
    ):
        early = await session_manager.add_cast_engagement(sample_visit.id, cast_ids[0], "help")
        clock.advance(minutes=30)
        late = await session_manager.add_cast_engagement(sample_visit.id, cast_ids[1], "help")
        clock.advance(minutes=30)
        await session_manager.end_cast_engagement(early.id)

        at_start = await session_manager.get_active_engagements(
            sample_visit.id, at=OPENING_TIME
        )
        at_forty = await session_manager.get_active_engagements(
            sample_visit.id, at=late.started_at
        )
        now = await session_manager.get_active_engagements(sample_visit.id)

        assert [e.id for e in at_start] == [early.id]
        assert [e.id for e in at_forty] == [early.id, late.id]
        assert [e.id for e in now] == [late.id]


class TestVisitLifecycle:
    """Tests for checkout, cancel and merge."""

    async def test_checkout_closes_everything(
        self,
        db_session: AsyncSession,
        session_manager: VisitSessionManager,
        sample_visit: Visit,
        cast_ids,
        clock,
    ):
        await session_manager.add_cast_engagement(sample_visit.id, cast_ids[0], "help")
        clock.advance(minutes=125)

        visit = await session_manager.checkout(sample_visit.id)

        assert visit.status == Visit.COMPLETED
        assert visit.check_out_at == clock()
        assert await count_open_segments(db_session, visit.id) == 0
        assert await session_manager.get_active_engagements(visit.id) == []
        assert session_manager.stay_minutes(visit) == 125

    async def test_checkout_twice_rejected(
        self,
        session_manager: VisitSessionManager,
        sample_visit: Visit,
    ):
        await session_manager.checkout(sample_visit.id)
        with pytest.raises(StateTransitionError):
            await session_manager.checkout(sample_visit.id)

    async def test_engagement_rejected_after_checkout(
        self,
        session_manager: VisitSessionManager,
        sample_visit: Visit,
        cast_ids,
    ):
        await session_manager.checkout(sample_visit.id)
        with pytest.raises(StateTransitionError):
            await session_manager.add_cast_engagement(sample_visit.id, cast_ids[0], "help")

    async def test_cancel(
        self,
        session_manager: VisitSessionManager,
        sample_visit: Visit,
    ):
        visit = await session_manager.cancel(sample_visit.id)
        assert visit.status == Visit.CANCELLED

    async def test_stay_minutes_while_active(
        self,
        session_manager: VisitSessionManager,
        sample_visit: Visit,
        clock,
    ):
        clock.advance(minutes=61, seconds=1)
        assert session_manager.stay_minutes(sample_visit) == 62

    async def test_unknown_visit(self, session_manager: VisitSessionManager):
        with pytest.raises(NotFoundError):
            await session_manager.get_visit(uuid4())

    async def test_session_details(
        self,
        session_manager: VisitSessionManager,
        sample_visit: Visit,
        cast_ids,
        clock,
    ):
        await session_manager.add_cast_engagement(sample_visit.id, cast_ids[0], "help")
        clock.advance(minutes=5)
        await session_manager.move_table(sample_visit.id, uuid4())

        visit = await session_manager.get_session_details(sample_visit.id)

        assert len(visit.table_segments) == 2
        assert len(visit.cast_engagements) == 1
        assert len(visit.guests) == 1


class TestMerge:
    """Tests for folding joined parties into one visit."""

    async def test_merge_moves_engagements_and_closes_secondary(
        self,
        db_session: AsyncSession,
        session_manager: VisitSessionManager,
        sample_visit: Visit,
        cast_ids,
        clock,
    ):
        secondary = await session_manager.check_in(uuid4(), uuid4(), guest_count=1)
        shared_cast, moved_cast = cast_ids[0], cast_ids[1]

        await session_manager.add_cast_engagement(sample_visit.id, shared_cast, "primary")
        duplicate = await session_manager.add_cast_engagement(secondary.id, shared_cast, "help")
        moved = await session_manager.add_cast_engagement(secondary.id, moved_cast, "help")
        clock.advance(minutes=40)

        primary = await session_manager.merge_sessions(sample_visit.id, [secondary.id])

        assert primary.guest_count == 3
        assert primary.is_group_visit is True

        active = await session_manager.get_active_engagements(primary.id)
        assert sorted(e.cast_id for e in active) == sorted([shared_cast, moved_cast])
        assert moved.visit_id == primary.id
        assert duplicate.is_active is False
        assert duplicate.visit_id == secondary.id

        merged = await session_manager.get_visit(secondary.id)
        assert merged.status == Visit.MERGED
        assert merged.merged_into_visit_id == primary.id
        assert merged.check_out_at == clock()
        assert await count_open_segments(db_session, secondary.id) == 0
        assert await count_open_segments(db_session, primary.id) == 1

    async def test_merge_into_itself_rejected(
        self,
        session_manager: VisitSessionManager,
        sample_visit: Visit,
    ):
        with pytest.raises(ValueError, match="itself"):
            await session_manager.merge_sessions(sample_visit.id, [sample_visit.id])

    async def test_merge_requires_targets(
        self,
        session_manager: VisitSessionManager,
        sample_visit: Visit,
    ):
        with pytest.raises(ValueError):
            await session_manager.merge_sessions(sample_visit.id, [])

    async def test_merged_visit_cannot_be_merged_again(
        self,
        session_manager: VisitSessionManager,
        sample_visit: Visit,
    ):
        secondary = await session_manager.check_in(uuid4(), uuid4())
        await session_manager.merge_sessions(sample_visit.id, [secondary.id])

        with pytest.raises(StateTransitionError):
            await session_manager.merge_sessions(sample_visit.id, [secondary.id])
