"""
REST API endpoints for crediting order-line revenue to casts.
"""
from __future__ import annotations

from datetime import datetime
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from venue_billing.api.errors import to_http_error
from venue_billing.database import get_session
from venue_billing.errors import BillingError
from venue_billing.schemas.attribution import AttributionRead, ManualAttributionRequest
from venue_billing.schemas.common import to_naive_utc
from venue_billing.services.attribution_engine import AttributionEngine, AttributionShare

router = APIRouter(prefix="/api/v1", tags=["attributions"])


@router.get("/order-items/{order_item_id}/attributions", response_model=List[AttributionRead])
async def get_attributions(
    order_item_id: UUID,
    session: AsyncSession = Depends(get_session),
) -> List[AttributionRead]:
    """Get a line's attribution set, largest share first."""
    engine = AttributionEngine(session)
    rows = await engine.get_item_attributions(order_item_id)
    return [AttributionRead.model_validate(r) for r in rows]


@router.put("/order-items/{order_item_id}/attributions", response_model=List[AttributionRead])
async def set_manual_attributions(
    order_item_id: UUID,
    data: ManualAttributionRequest,
    session: AsyncSession = Depends(get_session),
) -> List[AttributionRead]:
    """
    Replace a line's attribution set with manual percentages.

    Percentages must sum to 100; otherwise nothing is saved.
    """
    engine = AttributionEngine(session)
    shares = [
        AttributionShare(cast_id=s.cast_id, percentage=s.percentage, reason=s.reason)
        for s in data.shares
    ]
    try:
        rows = await engine.set_manual_attribution(order_item_id, shares)
    except (BillingError, ValueError) as exc:
        raise to_http_error(exc)
    return [AttributionRead.model_validate(r) for r in rows]


@router.post("/order-items/{order_item_id}/attributions/auto", response_model=List[AttributionRead])
async def calculate_auto_attributions(
    order_item_id: UUID,
    session: AsyncSession = Depends(get_session),
) -> List[AttributionRead]:
    """Recompute a line's attribution set from the visit's engagements."""
    engine = AttributionEngine(session)
    try:
        rows = await engine.calculate_auto_attribution(order_item_id)
    except BillingError as exc:
        raise to_http_error(exc)
    return [AttributionRead.model_validate(r) for r in rows]


@router.get("/casts/{cast_id}/revenue")
async def get_cast_revenue(
    cast_id: UUID,
    start: datetime = Query(..., description="Start of period (inclusive)"),
    end: datetime = Query(..., description="End of period (exclusive)"),
    session: AsyncSession = Depends(get_session),
) -> dict:
    """Attributed revenue for a cast over a period, for payroll."""
    engine = AttributionEngine(session)
    revenue = await engine.get_cast_revenue(cast_id, to_naive_utc(start), to_naive_utc(end))
    return {
        "cast_id": str(cast_id),
        "start": start.isoformat(),
        "end": end.isoformat(),
        "revenue": revenue,
    }
