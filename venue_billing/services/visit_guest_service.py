"""Service for the guests attending a visit."""
from __future__ import annotations

import logging
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from venue_billing.errors import NotFoundError, StateTransitionError
from venue_billing.models.guest import VisitGuest
from venue_billing.models.visit import Visit

logger = logging.getLogger(__name__)


class VisitGuestService:
    """Guest list and primary-payer handling for a visit."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def add_guest(
        self,
        visit_id: UUID,
        customer_id: Optional[UUID] = None,
        guest_name: Optional[str] = None,
        guest_phone: Optional[str] = None,
        guest_type: str = "companion",
        seat_position: Optional[int] = None,
        relationship_to_main: Optional[str] = None,
    ) -> VisitGuest:
        """
        Add a co-attending guest.

        The main guest is created at check-in, so only companion and
        additional guests can be added here.
        """
        if guest_type not in VisitGuest.GUEST_TYPES - {"main"}:
            raise ValueError(f"Cannot add a guest of type {guest_type!r}")
        if customer_id is None and not guest_name:
            raise ValueError("A guest needs a customer reference or a name")

        visit = await self._get_visit(visit_id)
        if not visit.is_active:
            raise StateTransitionError(f"Visit {visit_id} is {visit.status}")

        guest = VisitGuest(
            visit_id=visit.id,
            customer_id=customer_id,
            guest_name=guest_name,
            guest_phone=guest_phone,
            guest_type=guest_type,
            seat_position=seat_position,
            relationship_to_main=relationship_to_main,
            is_primary_payer=False,
        )
        self.session.add(guest)
        await self.session.flush()

        guests = await self.list_guests(visit.id)
        visit.guest_count = max(visit.guest_count, len(guests))
        visit.is_group_visit = visit.guest_count > 1

        await self.session.commit()
        await self.session.refresh(guest)

        logger.info("Guest %s joined visit %s", guest.display_name, visit.session_code)
        return guest

    async def list_guests(self, visit_id: UUID) -> List[VisitGuest]:
        """Guests of a visit, main guest first, then by seat."""
        stmt = select(VisitGuest).where(VisitGuest.visit_id == visit_id)
        result = await self.session.execute(stmt)
        guests = list(result.scalars().all())
        guests.sort(
            key=lambda g: (
                g.guest_type != "main",
                g.seat_position if g.seat_position is not None else 999,
                g.created_at,
            )
        )
        return guests

    async def get_guest(self, guest_id: UUID) -> VisitGuest:
        stmt = select(VisitGuest).where(VisitGuest.id == guest_id)
        result = await self.session.execute(stmt)
        guest = result.scalar_one_or_none()
        if guest is None:
            raise NotFoundError(f"Guest {guest_id} not found")
        return guest

    async def set_primary_payer(self, guest_id: UUID) -> VisitGuest:
        """Make ``guest_id`` the visit's primary payer, clearing the previous one."""
        guest = await self.get_guest(guest_id)
        if guest.is_primary_payer:
            return guest

        stmt = (
            select(VisitGuest)
            .where(VisitGuest.visit_id == guest.visit_id)
            .where(VisitGuest.is_primary_payer == True)  # noqa: E712
        )
        result = await self.session.execute(stmt)
        for previous in result.scalars().all():
            previous.is_primary_payer = False
        # clear before set so the payer index never sees two rows
        await self.session.flush()

        guest.is_primary_payer = True
        await self.session.commit()
        await self.session.refresh(guest)

        logger.info("Guest %s is now primary payer of visit %s", guest.id, guest.visit_id)
        return guest

    async def _get_visit(self, visit_id: UUID) -> Visit:
        result = await self.session.execute(select(Visit).where(Visit.id == visit_id))
        visit = result.scalar_one_or_none()
        if visit is None:
            raise NotFoundError(f"Visit {visit_id} not found")
        return visit
