"""
REST API endpoints for visit sessions, table moves, cast engagements and order lines.
"""
from __future__ import annotations

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from venue_billing.api.errors import to_http_error
from venue_billing.database import get_session
from venue_billing.errors import BillingError
from venue_billing.schemas.visit import (
    EngagementCreate,
    EngagementEnd,
    EngagementRead,
    OrderItemCorrection,
    OrderItemCreate,
    OrderItemRead,
    TableMove,
    TableSegmentRead,
    VisitCheckout,
    VisitCreate,
    VisitDetailRead,
    VisitMerge,
    VisitRead,
)
from venue_billing.services.billing_service import BillingService
from venue_billing.services.visit_session import VisitSessionManager

router = APIRouter(prefix="/api/v1", tags=["visits"])


@router.post("/visits", response_model=VisitRead)
async def check_in(
    data: VisitCreate,
    session: AsyncSession = Depends(get_session),
) -> VisitRead:
    """Check a guest in: creates the visit, seats it and records the main guest."""
    manager = VisitSessionManager(session)
    try:
        visit = await manager.check_in(**data.model_dump())
    except (BillingError, ValueError) as exc:
        raise to_http_error(exc)
    return VisitRead.model_validate(visit)


@router.get("/visits/unseated", response_model=List[VisitRead])
async def list_unseated_visits(
    session: AsyncSession = Depends(get_session),
) -> List[VisitRead]:
    """Active visits with no open table segment (left by a failed move)."""
    manager = VisitSessionManager(session)
    visits = await manager.find_visits_without_open_segment()
    return [VisitRead.model_validate(v) for v in visits]


@router.get("/visits/{visit_id}", response_model=VisitDetailRead)
async def get_visit(
    visit_id: UUID,
    session: AsyncSession = Depends(get_session),
) -> VisitDetailRead:
    """Get a visit with its table history and cast engagements."""
    manager = VisitSessionManager(session)
    try:
        visit = await manager.get_session_details(visit_id)
    except BillingError as exc:
        raise to_http_error(exc)
    return VisitDetailRead.model_validate(visit)


@router.post("/visits/{visit_id}/move", response_model=TableSegmentRead)
async def move_table(
    visit_id: UUID,
    data: TableMove,
    session: AsyncSession = Depends(get_session),
) -> TableSegmentRead:
    """Move a visit to another table."""
    manager = VisitSessionManager(session)
    try:
        segment = await manager.move_table(visit_id, data.table_id)
    except (BillingError, ValueError) as exc:
        raise to_http_error(exc)
    return TableSegmentRead.model_validate(segment)


@router.post("/visits/{visit_id}/reseat", response_model=TableSegmentRead)
async def reseat_visit(
    visit_id: UUID,
    data: TableMove,
    session: AsyncSession = Depends(get_session),
) -> TableSegmentRead:
    """Re-open a table segment for a visit left without one."""
    manager = VisitSessionManager(session)
    try:
        segment = await manager.repair_open_segment(visit_id, data.table_id)
    except (BillingError, ValueError) as exc:
        raise to_http_error(exc)
    return TableSegmentRead.model_validate(segment)


@router.post("/visits/{visit_id}/checkout", response_model=VisitRead)
async def checkout_visit(
    visit_id: UUID,
    data: VisitCheckout,
    session: AsyncSession = Depends(get_session),
) -> VisitRead:
    """Complete a visit; closes its table and ends its engagements."""
    manager = VisitSessionManager(session)
    try:
        visit = await manager.checkout(visit_id, data.checked_out_at)
    except BillingError as exc:
        raise to_http_error(exc)
    return VisitRead.model_validate(visit)


@router.post("/visits/{visit_id}/cancel", response_model=VisitRead)
async def cancel_visit(
    visit_id: UUID,
    session: AsyncSession = Depends(get_session),
) -> VisitRead:
    """Cancel an active visit."""
    manager = VisitSessionManager(session)
    try:
        visit = await manager.cancel(visit_id)
    except BillingError as exc:
        raise to_http_error(exc)
    return VisitRead.model_validate(visit)


@router.post("/visits/{visit_id}/merge", response_model=VisitRead)
async def merge_visits(
    visit_id: UUID,
    data: VisitMerge,
    session: AsyncSession = Depends(get_session),
) -> VisitRead:
    """Fold other visits into this one (joined tables). Not reversible."""
    manager = VisitSessionManager(session)
    try:
        visit = await manager.merge_sessions(visit_id, data.secondary_visit_ids)
    except (BillingError, ValueError) as exc:
        raise to_http_error(exc)
    return VisitRead.model_validate(visit)


@router.get("/visits/{visit_id}/engagements", response_model=List[EngagementRead])
async def list_engagements(
    visit_id: UUID,
    active_only: bool = Query(True, description="Only show active engagements"),
    session: AsyncSession = Depends(get_session),
) -> List[EngagementRead]:
    """Get the cast engagements of a visit."""
    manager = VisitSessionManager(session)
    try:
        if active_only:
            engagements = await manager.get_active_engagements(visit_id)
        else:
            engagements = (await manager.get_session_details(visit_id)).cast_engagements
    except BillingError as exc:
        raise to_http_error(exc)
    return [EngagementRead.model_validate(e) for e in engagements]


@router.post("/visits/{visit_id}/engagements", response_model=EngagementRead)
async def add_engagement(
    visit_id: UUID,
    data: EngagementCreate,
    session: AsyncSession = Depends(get_session),
) -> EngagementRead:
    """
    Assign a cast to a visit.

    Returns 409 if the cast is already active on the visit.
    """
    manager = VisitSessionManager(session)
    try:
        engagement = await manager.add_cast_engagement(
            visit_id,
            data.cast_id,
            data.role.value,
            nomination_type_code=data.nomination_type_code,
            started_at=data.started_at,
        )
    except (BillingError, ValueError) as exc:
        raise to_http_error(exc)
    return EngagementRead.model_validate(engagement)


@router.post("/engagements/{engagement_id}/end", response_model=EngagementRead)
async def end_engagement(
    engagement_id: UUID,
    data: EngagementEnd,
    session: AsyncSession = Depends(get_session),
) -> EngagementRead:
    """End a cast engagement. Ended engagements cannot be reopened."""
    manager = VisitSessionManager(session)
    try:
        engagement = await manager.end_cast_engagement(engagement_id, data.ended_at)
    except BillingError as exc:
        raise to_http_error(exc)
    return EngagementRead.model_validate(engagement)


@router.get("/visits/{visit_id}/order-items", response_model=List[OrderItemRead])
async def list_order_items(
    visit_id: UUID,
    session: AsyncSession = Depends(get_session),
) -> List[OrderItemRead]:
    service = BillingService(session)
    items = await service.get_order_items(visit_id)
    return [OrderItemRead.model_validate(i) for i in items]


@router.post("/visits/{visit_id}/order-items", response_model=OrderItemRead)
async def add_order_item(
    visit_id: UUID,
    data: OrderItemCreate,
    session: AsyncSession = Depends(get_session),
) -> OrderItemRead:
    """Add a line to an active visit."""
    service = BillingService(session)
    try:
        item = await service.add_order_item(visit_id, **data.model_dump())
    except (BillingError, ValueError) as exc:
        raise to_http_error(exc)
    return OrderItemRead.model_validate(item)


@router.patch("/order-items/{order_item_id}", response_model=OrderItemRead)
async def correct_order_item(
    order_item_id: UUID,
    data: OrderItemCorrection,
    session: AsyncSession = Depends(get_session),
) -> OrderItemRead:
    """
    Correct a line's quantity or price.

    Clears the line's cast attribution and guest shares; recompute them
    afterwards.
    """
    service = BillingService(session)
    try:
        item = await service.correct_order_item(order_item_id, **data.model_dump(exclude_unset=True))
    except (BillingError, ValueError) as exc:
        raise to_http_error(exc)
    return OrderItemRead.model_validate(item)
