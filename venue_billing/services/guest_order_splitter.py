"""Service for splitting order lines across co-attending guests."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, List, Optional, Sequence
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from venue_billing.config import get_settings
from venue_billing.errors import (
    GuestAssignmentError,
    NotFoundError,
    SharePercentageError,
    StateTransitionError,
)
from venue_billing.models.guest import GuestOrderShare, VisitGuest
from venue_billing.models.order import OrderItem
from venue_billing.models.visit import Visit
from venue_billing.services.quote_engine import compute_service_tax
from venue_billing.services.rounding import (
    CENT,
    HUNDRED,
    allocate_amounts,
    quantize_percentage,
    settle_percentages,
    to_decimal,
)
from venue_billing.services.visit_guest_service import VisitGuestService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GuestShare:
    """Requested percentage of a shared line for one guest."""

    guest_id: UUID
    percentage: Decimal


@dataclass
class GuestBillSummary:
    """A guest's running bill."""

    guest_id: UUID
    display_name: str
    guest_type: str
    is_primary_payer: bool
    subtotal: int
    service_charge: int
    tax_amount: int
    total: int
    shares: List[GuestOrderShare] = field(default_factory=list)


class GuestOrderSplitter:
    """
    Allocates order lines to the guests who pay for them.

    A line is either assigned exclusively (by quantity) or shared by
    percentage. Each guest's subtotal, service, tax and total are kept as
    running aggregates and moved by the delta of every write; use
    ``recalculate_guest_totals`` to rebuild them from scratch.
    """

    def __init__(
        self,
        session: AsyncSession,
        guest_service: Optional[VisitGuestService] = None,
        tolerance: Optional[Decimal] = None,
    ):
        self.session = session
        self.guests = guest_service or VisitGuestService(session)
        if tolerance is None:
            tolerance = to_decimal(get_settings().percentage_tolerance)
        self.tolerance = tolerance

    async def assign_to_guest(
        self,
        order_item_id: UUID,
        guest_id: UUID,
        quantity: int,
        amount: Optional[int] = None,
    ) -> GuestOrderShare:
        """
        Assign ``quantity`` of a line exclusively to one guest.

        Amount defaults to unit price x quantity. Shared rows on the line are
        dropped first. Exclusive quantities across guests may not exceed the
        line's quantity.
        """
        item, visit = await self._get_item_and_visit(order_item_id)
        guest = await self.guests.get_guest(guest_id)
        if guest.visit_id != item.visit_id:
            raise GuestAssignmentError(f"Guest {guest_id} is not part of visit {item.visit_id}")
        if quantity < 1 or quantity > item.quantity:
            raise GuestAssignmentError(
                f"Quantity must be between 1 and {item.quantity} (got {quantity})"
            )
        if amount is None:
            amount = item.unit_price * quantity
        if amount < 0:
            raise GuestAssignmentError("Amount must not be negative")

        existing = await self._get_item_shares(item.id)
        shared = [s for s in existing if s.is_shared_item]
        exclusive = [s for s in existing if not s.is_shared_item]

        current: Optional[GuestOrderShare] = None
        assigned_elsewhere = 0
        for share in exclusive:
            if share.visit_guest_id == guest.id:
                current = share
            else:
                assigned_elsewhere += int(share.quantity_for_guest)

        if assigned_elsewhere + quantity > item.quantity:
            raise GuestAssignmentError(
                f"Only {item.quantity - assigned_elsewhere} of {item.quantity} left to assign"
            )

        deltas: Dict[UUID, int] = {}
        if shared:
            for share in shared:
                deltas[share.visit_guest_id] = deltas.get(share.visit_guest_id, 0) - share.amount_for_guest
                await self.session.delete(share)
            await self.session.flush()

        if current is None:
            current = GuestOrderShare(
                order_item_id=item.id,
                visit_guest_id=guest.id,
                quantity_for_guest=Decimal(quantity),
                amount_for_guest=amount,
                is_shared_item=False,
                shared_percentage=None,
            )
            self.session.add(current)
            deltas[guest.id] = deltas.get(guest.id, 0) + amount
        else:
            deltas[guest.id] = deltas.get(guest.id, 0) + amount - current.amount_for_guest
            current.quantity_for_guest = Decimal(quantity)
            current.amount_for_guest = amount

        await self._apply_deltas(visit, deltas)
        await self.session.commit()
        await self.session.refresh(current)

        logger.info("Item %s x%d assigned to guest %s", item.id, quantity, guest.id)
        return current

    async def create_shared_order(
        self,
        order_item_id: UUID,
        guest_shares: Sequence[GuestShare],
    ) -> List[GuestOrderShare]:
        """
        Share a line between guests by percentage.

        Percentages must sum to 100 within tolerance or SharePercentageError
        is raised before anything is written. Amounts add up to the line
        total exactly. Replaces every earlier share of the line.
        """
        if not guest_shares:
            raise SharePercentageError(Decimal("0"))

        percentages = [quantize_percentage(s.percentage) for s in guest_shares]
        for pct in percentages:
            if pct <= 0 or pct > HUNDRED:
                raise GuestAssignmentError("Each shared percentage must be above 0 and at most 100")
        total_pct = sum(percentages)
        if abs(total_pct - HUNDRED) > self.tolerance:
            logger.warning("Rejected guest split for item %s summing to %s", order_item_id, total_pct)
            raise SharePercentageError(total_pct)
        percentages = settle_percentages(percentages)

        guest_ids = [s.guest_id for s in guest_shares]
        if len(set(guest_ids)) != len(guest_ids):
            raise GuestAssignmentError("Each guest may appear only once per shared item")

        item, visit = await self._get_item_and_visit(order_item_id)
        visit_guest_ids = {g.id for g in await self.guests.list_guests(item.visit_id)}
        foreign = [gid for gid in guest_ids if gid not in visit_guest_ids]
        if foreign:
            raise GuestAssignmentError(
                f"Guest(s) {', '.join(str(g) for g in foreign)} not part of visit {item.visit_id}"
            )

        deltas: Dict[UUID, int] = {}
        for share in await self._get_item_shares(item.id):
            deltas[share.visit_guest_id] = deltas.get(share.visit_guest_id, 0) - share.amount_for_guest
            await self.session.delete(share)
        # old rows must be gone before the (item, guest) constraint sees new ones
        await self.session.flush()

        amounts = allocate_amounts(item.total_price, percentages)
        created = []
        for guest_id, pct, amount in zip(guest_ids, percentages, amounts):
            share = GuestOrderShare(
                order_item_id=item.id,
                visit_guest_id=guest_id,
                quantity_for_guest=(Decimal(item.quantity) * pct / HUNDRED).quantize(
                    CENT, rounding=ROUND_HALF_UP
                ),
                amount_for_guest=amount,
                is_shared_item=True,
                shared_percentage=pct,
            )
            self.session.add(share)
            created.append(share)
            deltas[guest_id] = deltas.get(guest_id, 0) + amount

        await self._apply_deltas(visit, deltas)
        await self.session.commit()
        for share in created:
            await self.session.refresh(share)

        logger.info("Item %s shared between %d guest(s)", item.id, len(created))
        return created

    async def remove_guest_share(self, share_id: UUID) -> None:
        """Delete one share row and take its amount off the guest's bill."""
        result = await self.session.execute(
            select(GuestOrderShare).where(GuestOrderShare.id == share_id)
        )
        share = result.scalar_one_or_none()
        if share is None:
            raise NotFoundError(f"Guest share {share_id} not found")

        _, visit = await self._get_item_and_visit(share.order_item_id)
        deltas = {share.visit_guest_id: -share.amount_for_guest}
        await self.session.delete(share)
        await self._apply_deltas(visit, deltas)
        await self.session.commit()

    async def drop_item_shares(self, order_item_id: UUID) -> None:
        """
        Remove every share of a line and reverse it out of guest totals.

        Does not commit; used by order corrections inside their transaction.
        """
        _, visit = await self._get_item_and_visit(order_item_id, allow_closed=True)
        deltas: Dict[UUID, int] = {}
        for share in await self._get_item_shares(order_item_id):
            deltas[share.visit_guest_id] = deltas.get(share.visit_guest_id, 0) - share.amount_for_guest
            await self.session.delete(share)
        await self._apply_deltas(visit, deltas)

    async def get_guest_summary(self, guest_id: UUID) -> GuestBillSummary:
        guest = await self.guests.get_guest(guest_id)
        shares = await self._get_guest_shares(guest.id)
        return self._summary(guest, shares)

    async def get_visit_guest_summaries(self, visit_id: UUID) -> List[GuestBillSummary]:
        summaries = []
        for guest in await self.guests.list_guests(visit_id):
            shares = await self._get_guest_shares(guest.id)
            summaries.append(self._summary(guest, shares))
        return summaries

    async def recalculate_guest_totals(self, guest_id: UUID) -> GuestBillSummary:
        """Rebuild a guest's running totals from their share rows."""
        guest = await self.guests.get_guest(guest_id)
        result = await self.session.execute(select(Visit).where(Visit.id == guest.visit_id))
        visit = result.scalar_one()

        stmt = select(func.coalesce(func.sum(GuestOrderShare.amount_for_guest), 0)).where(
            GuestOrderShare.visit_guest_id == guest.id
        )
        subtotal = int((await self.session.execute(stmt)).scalar_one())

        self._set_subtotal(guest, subtotal, visit)
        await self.session.commit()
        await self.session.refresh(guest)

        logger.info("Recalculated totals for guest %s: subtotal=%d", guest.id, subtotal)
        return await self.get_guest_summary(guest.id)

    async def _apply_deltas(self, visit: Visit, deltas: Dict[UUID, int]) -> None:
        deltas = {gid: d for gid, d in deltas.items() if d}
        if not deltas:
            return
        stmt = select(VisitGuest).where(VisitGuest.id.in_(list(deltas)))
        result = await self.session.execute(stmt)
        for guest in result.scalars().all():
            self._set_subtotal(guest, guest.individual_subtotal + deltas[guest.id], visit)

    @staticmethod
    def _set_subtotal(guest: VisitGuest, subtotal: int, visit: Visit) -> None:
        service, tax = compute_service_tax(subtotal, visit.service_rate, visit.tax_rate)
        guest.individual_subtotal = subtotal
        guest.individual_service_charge = service
        guest.individual_tax_amount = tax
        guest.individual_total = subtotal + service + tax

    @staticmethod
    def _summary(guest: VisitGuest, shares: List[GuestOrderShare]) -> GuestBillSummary:
        return GuestBillSummary(
            guest_id=guest.id,
            display_name=guest.display_name,
            guest_type=guest.guest_type,
            is_primary_payer=guest.is_primary_payer,
            subtotal=guest.individual_subtotal,
            service_charge=guest.individual_service_charge,
            tax_amount=guest.individual_tax_amount,
            total=guest.individual_total,
            shares=shares,
        )

    async def _get_item_and_visit(
        self, order_item_id: UUID, allow_closed: bool = False
    ) -> tuple[OrderItem, Visit]:
        stmt = (
            select(OrderItem, Visit)
            .join(Visit, Visit.id == OrderItem.visit_id)
            .where(OrderItem.id == order_item_id)
        )
        row = (await self.session.execute(stmt)).one_or_none()
        if row is None:
            raise NotFoundError(f"Order item {order_item_id} not found")
        item, visit = row
        if not allow_closed and visit.status == Visit.CANCELLED:
            raise StateTransitionError(f"Visit {visit.id} is cancelled")
        return item, visit

    async def _get_item_shares(self, order_item_id: UUID) -> List[GuestOrderShare]:
        stmt = select(GuestOrderShare).where(GuestOrderShare.order_item_id == order_item_id)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def _get_guest_shares(self, guest_id: UUID) -> List[GuestOrderShare]:
        stmt = (
            select(GuestOrderShare)
            .where(GuestOrderShare.visit_guest_id == guest_id)
            .order_by(GuestOrderShare.created_at)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
