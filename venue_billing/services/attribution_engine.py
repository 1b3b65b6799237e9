"""Service for crediting order-line revenue to casts."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional, Sequence, Tuple
from uuid import UUID

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from venue_billing.config import get_settings
from venue_billing.errors import (
    AttributionImbalanceError,
    AttributionTargetError,
    NotFoundError,
    StateTransitionError,
)
from venue_billing.models.cast_engagement import CastEngagement
from venue_billing.models.order import BillItemAttribution, OrderItem
from venue_billing.models.visit import Visit
from venue_billing.services.rounding import (
    HUNDRED,
    allocate_amounts,
    normalize_weights,
    quantize_percentage,
    settle_percentages,
    to_decimal,
)
from venue_billing.services.visit_session import Clock, VisitSessionManager

logger = logging.getLogger(__name__)

NOMINATION_CATEGORIES = {"nomination", "inhouse"}
PRIMARY_THRESHOLD = Decimal("50")


@dataclass(frozen=True)
class AttributionShare:
    """Requested share of one order line for one cast."""

    cast_id: UUID
    percentage: Decimal
    reason: Optional[str] = None


class AttributionEngine:
    """
    Computes and stores per-cast revenue shares for a single order line.

    Two policies:
    - manual: caller-supplied percentages, validated to sum to 100
    - auto: nomination and cast drinks go 100% to their cast; anything else
      is split across casts engaged when the line was ordered, weighted by
      how long each had been engaged

    Amounts are rounded half-up per row and the rounding remainder is given
    to the largest share, so a set's amounts always add up to the line
    total. Writing a set replaces the line's previous set.
    """

    def __init__(
        self,
        session: AsyncSession,
        clock: Optional[Clock] = None,
        tolerance: Optional[Decimal] = None,
        session_manager: Optional[VisitSessionManager] = None,
    ):
        self.session = session
        self.clock = clock or datetime.utcnow
        if tolerance is None:
            tolerance = to_decimal(get_settings().percentage_tolerance)
        self.tolerance = tolerance
        self.sessions = session_manager or VisitSessionManager(session, clock=self.clock)

    async def set_manual_attribution(
        self,
        order_item_id: UUID,
        shares: Sequence[AttributionShare],
    ) -> List[BillItemAttribution]:
        """
        Replace the line's attribution set with caller-supplied percentages.

        Every cast must hold an active engagement on the line's visit. Raises
        AttributionImbalanceError when percentages do not sum to 100 within
        tolerance; nothing is written in that case.
        """
        item = await self._get_billable_item(order_item_id)
        if not shares:
            raise AttributionImbalanceError(Decimal("0"))

        percentages = [quantize_percentage(s.percentage) for s in shares]
        for share, pct in zip(shares, percentages):
            if pct < 0 or pct > HUNDRED:
                raise ValueError(f"Percentage for cast {share.cast_id} must be between 0 and 100")

        cast_ids = [s.cast_id for s in shares]
        if len(set(cast_ids)) != len(cast_ids):
            raise AttributionTargetError("Each cast may appear only once per order item")

        engaged = await self._active_cast_ids(item.visit_id)
        unknown = [cid for cid in cast_ids if cid not in engaged]
        if unknown:
            raise AttributionTargetError(
                f"Cast(s) {', '.join(str(c) for c in unknown)} not actively engaged on this visit"
            )

        total = sum(percentages)
        if abs(total - HUNDRED) > self.tolerance:
            logger.warning("Rejected attribution for item %s summing to %s", order_item_id, total)
            raise AttributionImbalanceError(total)
        percentages = settle_percentages(percentages)

        rows = [
            (share.cast_id, pct, "manual", share.reason)
            for share, pct in zip(shares, percentages)
        ]
        return await self._replace(item, rows)

    async def calculate_auto_attribution(self, order_item_id: UUID) -> List[BillItemAttribution]:
        """
        Recompute the line's attribution set automatically.

        Replaces any prior set. With no cast engaged at order time the set is
        cleared and an empty list returned.
        """
        item = await self._get_billable_item(order_item_id)

        if item.target_cast_id is not None:
            kind = "nomination" if item.category in NOMINATION_CATEGORIES else "drink_for_cast"
            rows = [(item.target_cast_id, HUNDRED, kind, f"{item.category} for cast")]
            return await self._replace(item, rows)

        engagements = await self.sessions.get_active_engagements(item.visit_id, at=item.ordered_at)
        weights = self.engagement_weights(engagements, item.ordered_at)
        if not weights:
            logger.info("No cast engaged when item %s was ordered; attribution cleared", item.id)
            return await self._replace(item, [])

        cast_ids = list(weights)
        time_weighted = any(w > 0 for w in weights.values())
        percentages = normalize_weights([weights[c] for c in cast_ids])
        kind = "time_share" if time_weighted else "auto"

        rows = [
            (cast_id, pct, kind, None)
            for cast_id, pct in zip(cast_ids, percentages)
            if pct > 0
        ]
        return await self._replace(item, rows)

    @staticmethod
    def engagement_weights(
        engagements: Sequence[CastEngagement],
        at: datetime,
    ) -> Dict[UUID, Decimal]:
        """Seconds each cast had been engaged up to ``at``, keyed in engagement order."""
        weights: Dict[UUID, Decimal] = {}
        for engagement in engagements:
            seconds = max(0.0, (at - engagement.started_at).total_seconds())
            weights[engagement.cast_id] = weights.get(engagement.cast_id, Decimal("0")) + to_decimal(seconds)
        return weights

    async def get_item_attributions(self, order_item_id: UUID) -> List[BillItemAttribution]:
        """Attribution rows for a line, largest share first."""
        stmt = (
            select(BillItemAttribution)
            .where(BillItemAttribution.order_item_id == order_item_id)
            .order_by(BillItemAttribution.attribution_percentage.desc(), BillItemAttribution.created_at)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def clear_attributions(self, order_item_id: UUID) -> None:
        await self.session.execute(
            delete(BillItemAttribution).where(BillItemAttribution.order_item_id == order_item_id)
        )
        await self.session.commit()

    async def get_cast_revenue(
        self,
        cast_id: UUID,
        start: datetime,
        end: datetime,
    ) -> int:
        """Total attributed amount for a cast over lines ordered in [start, end)."""
        stmt = (
            select(func.coalesce(func.sum(BillItemAttribution.attribution_amount), 0))
            .join(OrderItem, OrderItem.id == BillItemAttribution.order_item_id)
            .where(BillItemAttribution.cast_id == cast_id)
            .where(OrderItem.ordered_at >= start)
            .where(OrderItem.ordered_at < end)
        )
        result = await self.session.execute(stmt)
        return int(result.scalar_one())

    async def _replace(
        self,
        item: OrderItem,
        rows: Sequence[Tuple[UUID, Decimal, str, Optional[str]]],
    ) -> List[BillItemAttribution]:
        amounts = allocate_amounts(item.total_price, [pct for _, pct, _, _ in rows])

        await self.session.execute(
            delete(BillItemAttribution).where(BillItemAttribution.order_item_id == item.id)
        )
        created = []
        for (cast_id, pct, kind, reason), amount in zip(rows, amounts):
            attribution = BillItemAttribution(
                order_item_id=item.id,
                cast_id=cast_id,
                attribution_percentage=pct,
                attribution_amount=amount,
                attribution_type=kind,
                reason=reason,
                is_primary=pct >= PRIMARY_THRESHOLD,
            )
            self.session.add(attribution)
            created.append(attribution)

        await self.session.commit()
        for attribution in created:
            await self.session.refresh(attribution)

        logger.info("Attribution for item %s replaced with %d row(s)", item.id, len(created))
        return sorted(created, key=lambda a: a.attribution_percentage, reverse=True)

    async def _get_billable_item(self, order_item_id: UUID) -> OrderItem:
        stmt = (
            select(OrderItem, Visit.status)
            .join(Visit, Visit.id == OrderItem.visit_id)
            .where(OrderItem.id == order_item_id)
        )
        result = await self.session.execute(stmt)
        row = result.one_or_none()
        if row is None:
            raise NotFoundError(f"Order item {order_item_id} not found")
        item, visit_status = row
        if visit_status == Visit.CANCELLED:
            raise StateTransitionError(f"Visit {item.visit_id} is cancelled")
        return item

    async def _active_cast_ids(self, visit_id: UUID) -> set[UUID]:
        stmt = (
            select(CastEngagement.cast_id)
            .where(CastEngagement.visit_id == visit_id)
            .where(CastEngagement.is_active == True)  # noqa: E712
        )
        result = await self.session.execute(stmt)
        return set(result.scalars().all())
