"""
REST API endpoints for multi-guest billing.
"""
from __future__ import annotations

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from venue_billing.api.errors import to_http_error
from venue_billing.database import get_session
from venue_billing.errors import BillingError
from venue_billing.schemas.guest import (
    GuestAssignment,
    GuestBillSummaryRead,
    GuestCreate,
    GuestOrderShareRead,
    SharedOrderRequest,
    VisitGuestRead,
)
from venue_billing.services.guest_order_splitter import GuestOrderSplitter, GuestShare
from venue_billing.services.visit_guest_service import VisitGuestService

router = APIRouter(prefix="/api/v1", tags=["guests"])


@router.get("/visits/{visit_id}/guests", response_model=List[VisitGuestRead])
async def list_guests(
    visit_id: UUID,
    session: AsyncSession = Depends(get_session),
) -> List[VisitGuestRead]:
    """Get a visit's guests, main guest first."""
    service = VisitGuestService(session)
    guests = await service.list_guests(visit_id)
    return [VisitGuestRead.model_validate(g) for g in guests]


@router.post("/visits/{visit_id}/guests", response_model=VisitGuestRead)
async def add_guest(
    visit_id: UUID,
    data: GuestCreate,
    session: AsyncSession = Depends(get_session),
) -> VisitGuestRead:
    """Add a companion or additional guest to a visit."""
    service = VisitGuestService(session)
    payload = data.model_dump()
    payload["guest_type"] = data.guest_type.value
    try:
        guest = await service.add_guest(visit_id, **payload)
    except (BillingError, ValueError) as exc:
        raise to_http_error(exc)
    return VisitGuestRead.model_validate(guest)


@router.post("/guests/{guest_id}/primary-payer", response_model=VisitGuestRead)
async def set_primary_payer(
    guest_id: UUID,
    session: AsyncSession = Depends(get_session),
) -> VisitGuestRead:
    """Make a guest the visit's primary payer."""
    service = VisitGuestService(session)
    try:
        guest = await service.set_primary_payer(guest_id)
    except BillingError as exc:
        raise to_http_error(exc)
    return VisitGuestRead.model_validate(guest)


@router.post("/order-items/{order_item_id}/guest-assignment", response_model=GuestOrderShareRead)
async def assign_to_guest(
    order_item_id: UUID,
    data: GuestAssignment,
    session: AsyncSession = Depends(get_session),
) -> GuestOrderShareRead:
    """Assign part of a line exclusively to one guest."""
    splitter = GuestOrderSplitter(session)
    try:
        share = await splitter.assign_to_guest(
            order_item_id, data.guest_id, data.quantity, data.amount
        )
    except (BillingError, ValueError) as exc:
        raise to_http_error(exc)
    return GuestOrderShareRead.model_validate(share)


@router.post("/order-items/{order_item_id}/guest-shares", response_model=List[GuestOrderShareRead])
async def share_between_guests(
    order_item_id: UUID,
    data: SharedOrderRequest,
    session: AsyncSession = Depends(get_session),
) -> List[GuestOrderShareRead]:
    """
    Share a line between guests by percentage.

    Percentages must sum to 100; otherwise nothing is saved.
    """
    splitter = GuestOrderSplitter(session)
    shares = [GuestShare(guest_id=s.guest_id, percentage=s.percentage) for s in data.shares]
    try:
        rows = await splitter.create_shared_order(order_item_id, shares)
    except (BillingError, ValueError) as exc:
        raise to_http_error(exc)
    return [GuestOrderShareRead.model_validate(r) for r in rows]


@router.delete("/guest-shares/{share_id}", status_code=204)
async def remove_guest_share(
    share_id: UUID,
    session: AsyncSession = Depends(get_session),
) -> None:
    splitter = GuestOrderSplitter(session)
    try:
        await splitter.remove_guest_share(share_id)
    except BillingError as exc:
        raise to_http_error(exc)


@router.get("/guests/{guest_id}/summary", response_model=GuestBillSummaryRead)
async def get_guest_summary(
    guest_id: UUID,
    session: AsyncSession = Depends(get_session),
) -> GuestBillSummaryRead:
    """Get a guest's running bill."""
    splitter = GuestOrderSplitter(session)
    try:
        summary = await splitter.get_guest_summary(guest_id)
    except BillingError as exc:
        raise to_http_error(exc)
    return GuestBillSummaryRead.model_validate(summary)


@router.post("/guests/{guest_id}/recalculate", response_model=GuestBillSummaryRead)
async def recalculate_guest(
    guest_id: UUID,
    session: AsyncSession = Depends(get_session),
) -> GuestBillSummaryRead:
    """Rebuild a guest's running totals from their share rows."""
    splitter = GuestOrderSplitter(session)
    try:
        summary = await splitter.recalculate_guest_totals(guest_id)
    except BillingError as exc:
        raise to_http_error(exc)
    return GuestBillSummaryRead.model_validate(summary)


@router.get("/visits/{visit_id}/guest-summaries", response_model=List[GuestBillSummaryRead])
async def get_visit_guest_summaries(
    visit_id: UUID,
    session: AsyncSession = Depends(get_session),
) -> List[GuestBillSummaryRead]:
    """Get every guest's running bill for a visit."""
    splitter = GuestOrderSplitter(session)
    summaries = await splitter.get_visit_guest_summaries(visit_id)
    return [GuestBillSummaryRead.model_validate(s) for s in summaries]
