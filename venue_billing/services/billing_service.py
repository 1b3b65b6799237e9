"""Service for visit order lines and quotes."""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Dict, List, Optional, Sequence
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from venue_billing.errors import NotFoundError, StateTransitionError
from venue_billing.models.cast_engagement import CastEngagement
from venue_billing.models.order import BillItemAttribution, OrderItem
from venue_billing.models.visit import Visit
from venue_billing.services.guest_order_splitter import GuestOrderSplitter
from venue_billing.services.pricing import SeatPricingTable, build_pricing_table
from venue_billing.services.quote_engine import Quote, QuoteEngine, QuoteInput
from venue_billing.services.visit_session import Clock, VisitSessionManager

logger = logging.getLogger(__name__)

# Quote line categories linked to engagements of this role when applied
FEE_ROLES = {"nomination": "primary", "inhouse": "inhouse"}


class BillingService:
    """Order lines of a visit, their corrections, and visit quotes."""

    def __init__(
        self,
        session: AsyncSession,
        pricing_table: Optional[SeatPricingTable] = None,
        clock: Optional[Clock] = None,
        session_manager: Optional[VisitSessionManager] = None,
    ):
        self.session = session
        self.clock = clock or datetime.utcnow
        self.quote_engine = QuoteEngine(pricing_table or build_pricing_table())
        self.sessions = session_manager or VisitSessionManager(session, clock=self.clock)
        self.splitter = GuestOrderSplitter(session)

    async def add_order_item(
        self,
        visit_id: UUID,
        item_code: str,
        name: str,
        unit_price: int,
        quantity: int = 1,
        category: str = "drink",
        target_cast_id: Optional[UUID] = None,
        product_id: Optional[UUID] = None,
        ordered_at: Optional[datetime] = None,
        notes: Optional[str] = None,
    ) -> OrderItem:
        """Add a line to an active visit."""
        if quantity < 1:
            raise ValueError("quantity must be at least 1")
        if unit_price < 0:
            raise ValueError("unit_price must not be negative")

        visit = await self.sessions.get_active_visit(visit_id)

        item = OrderItem(
            visit_id=visit.id,
            product_id=product_id,
            item_code=item_code,
            name=name,
            category=category,
            quantity=quantity,
            unit_price=unit_price,
            total_price=unit_price * quantity,
            target_cast_id=target_cast_id,
            source="order",
            ordered_at=ordered_at or self.clock(),
            notes=notes,
        )
        self.session.add(item)
        await self.session.commit()
        await self.session.refresh(item)
        return item

    async def get_order_item(self, order_item_id: UUID) -> OrderItem:
        result = await self.session.execute(select(OrderItem).where(OrderItem.id == order_item_id))
        item = result.scalar_one_or_none()
        if item is None:
            raise NotFoundError(f"Order item {order_item_id} not found")
        return item

    async def get_order_items(self, visit_id: UUID) -> Sequence[OrderItem]:
        stmt = (
            select(OrderItem)
            .where(OrderItem.visit_id == visit_id)
            .order_by(OrderItem.ordered_at, OrderItem.created_at)
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def correct_order_item(
        self,
        order_item_id: UUID,
        quantity: Optional[int] = None,
        unit_price: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> OrderItem:
        """
        Explicitly correct a line's quantity or price.

        The line's attribution set and guest shares no longer match its
        total, so both are removed in the same transaction and must be
        recomputed by the caller.
        """
        item = await self.get_order_item(order_item_id)
        visit = await self.sessions.get_visit(item.visit_id)
        if visit.status == Visit.CANCELLED:
            raise StateTransitionError(f"Visit {visit.id} is cancelled")
        if quantity is not None and quantity < 1:
            raise ValueError("quantity must be at least 1")
        if unit_price is not None and unit_price < 0:
            raise ValueError("unit_price must not be negative")

        if quantity is not None:
            item.quantity = quantity
        if unit_price is not None:
            item.unit_price = unit_price
        if notes is not None:
            item.notes = notes
        item.total_price = item.unit_price * item.quantity

        await self.session.execute(
            delete(BillItemAttribution).where(BillItemAttribution.order_item_id == item.id)
        )
        await self.splitter.drop_item_shares(item.id)

        await self.session.commit()
        await self.session.refresh(item)

        logger.warning(
            "Order item %s corrected to %d x %d; attribution and guest shares cleared",
            item.id, item.quantity, item.unit_price,
        )
        return item

    async def quote_visit(
        self,
        visit_id: UUID,
        plan_code: str,
        use_room: bool = False,
        nomination_count: Optional[int] = None,
        inhouse_count: Optional[int] = None,
        apply_house_fee: bool = False,
        apply_single_charge: bool = False,
        service_rate: Optional[float] = None,
        tax_rate: Optional[float] = None,
        end_at: Optional[datetime] = None,
    ) -> Quote:
        """
        Preview the quote for a visit from its current state.

        Stay runs from check-in to checkout, or to ``end_at``/now while
        active. Nomination and in-house counts default to the visit's
        primary and in-house engagements; the drink total is the sum of its
        ordered lines in any category. Nothing is written.
        """
        data = await self.build_quote_input(
            visit_id,
            plan_code,
            use_room=use_room,
            nomination_count=nomination_count,
            inhouse_count=inhouse_count,
            apply_house_fee=apply_house_fee,
            apply_single_charge=apply_single_charge,
            service_rate=service_rate,
            tax_rate=tax_rate,
            end_at=end_at,
        )
        return self.quote_engine.compute_quote(data)

    async def build_quote_input(
        self,
        visit_id: UUID,
        plan_code: str,
        use_room: bool = False,
        nomination_count: Optional[int] = None,
        inhouse_count: Optional[int] = None,
        apply_house_fee: bool = False,
        apply_single_charge: bool = False,
        service_rate: Optional[float] = None,
        tax_rate: Optional[float] = None,
        end_at: Optional[datetime] = None,
    ) -> QuoteInput:
        visit = await self._get_billable_visit(visit_id)
        engagements = await self._get_engagements(visit.id)

        if nomination_count is None:
            nomination_count = sum(1 for e in engagements if e.role == "primary")
        if inhouse_count is None:
            inhouse_count = sum(1 for e in engagements if e.role == "inhouse")

        # every table order counts, whatever its category; quote lines are excluded
        drink_total = sum(
            item.total_price
            for item in await self.get_order_items(visit.id)
            if item.is_ordered
        )

        return QuoteInput(
            plan_code=plan_code,
            start_at=visit.check_in_at,
            end_at=visit.check_out_at or end_at or self.clock(),
            use_room=use_room,
            nomination_count=nomination_count,
            inhouse_count=inhouse_count,
            apply_house_fee=apply_house_fee,
            apply_single_charge=apply_single_charge,
            drink_total=drink_total,
            service_rate=visit.service_rate if service_rate is None else service_rate,
            tax_rate=visit.tax_rate if tax_rate is None else tax_rate,
        )

    async def apply_quote(self, visit_id: UUID, quote: Quote) -> List[OrderItem]:
        """
        Persist a quote's non-drink lines as order items and snapshot its
        totals on the visit.

        Lines from a previously applied quote are replaced. Nomination and
        in-house lines are linked, in order, to the casts holding those
        roles so auto-attribution can credit them.
        """
        visit = await self._get_billable_visit(visit_id)
        now = self.clock()

        previous = await self.session.execute(
            select(OrderItem.id)
            .where(OrderItem.visit_id == visit.id)
            .where(OrderItem.source == "quote")
        )
        previous_ids = list(previous.scalars().all())
        if previous_ids:
            await self.session.execute(
                delete(BillItemAttribution).where(BillItemAttribution.order_item_id.in_(previous_ids))
            )
            for item_id in previous_ids:
                await self.splitter.drop_item_shares(item_id)
            await self.session.flush()
            await self.session.execute(delete(OrderItem).where(OrderItem.id.in_(previous_ids)))

        casts_by_role: Dict[str, List[UUID]] = {}
        for engagement in await self._get_engagements(visit.id):
            casts_by_role.setdefault(engagement.role, []).append(engagement.cast_id)
        used: Dict[str, int] = {}

        created = []
        for line in quote.to_order_lines():
            target_cast_id = None
            role = FEE_ROLES.get(line.category)
            if role is not None:
                index = used.get(role, 0)
                candidates = casts_by_role.get(role, [])
                if index < len(candidates):
                    target_cast_id = candidates[index]
                used[role] = index + 1

            item = OrderItem(
                visit_id=visit.id,
                item_code=line.code,
                name=line.label,
                category=line.category,
                quantity=line.quantity,
                unit_price=line.unit_price,
                total_price=line.amount,
                target_cast_id=target_cast_id,
                source="quote",
                ordered_at=now,
                billed_at=now,
            )
            self.session.add(item)
            created.append(item)

        visit.subtotal = quote.subtotal
        visit.service_charge = quote.service_amount
        visit.tax_amount = quote.tax_amount
        visit.total_amount = quote.total

        await self.session.commit()
        for item in created:
            await self.session.refresh(item)

        logger.info(
            "Quote applied to visit %s: %d line(s), total %d",
            visit.session_code, len(created), quote.total,
        )
        return created

    async def _get_billable_visit(self, visit_id: UUID) -> Visit:
        visit = await self.sessions.get_visit(visit_id)
        if visit.status in (Visit.CANCELLED, Visit.MERGED):
            raise StateTransitionError(f"Visit {visit_id} is {visit.status} and cannot be billed")
        return visit

    async def _get_engagements(self, visit_id: UUID) -> Sequence[CastEngagement]:
        stmt = (
            select(CastEngagement)
            .where(CastEngagement.visit_id == visit_id)
            .order_by(CastEngagement.started_at, CastEngagement.cast_id)
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()
