"""
REST API endpoints for pricing plans and quotes.
"""
from __future__ import annotations

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from venue_billing.api.errors import to_http_error
from venue_billing.config import get_settings
from venue_billing.database import get_session
from venue_billing.errors import BillingError
from venue_billing.schemas.quote import (
    NominationTypeRead,
    QuotePreviewRequest,
    QuoteRead,
    SeatPlanRead,
    VisitQuoteRequest,
)
from venue_billing.schemas.visit import OrderItemRead
from venue_billing.services.billing_service import BillingService
from venue_billing.services.nomination_catalog import NominationCatalog
from venue_billing.services.pricing import build_pricing_table
from venue_billing.services.quote_engine import QuoteEngine, QuoteInput

router = APIRouter(prefix="/api/v1", tags=["quotes"])


@router.get("/pricing/plans", response_model=List[SeatPlanRead])
async def list_plans() -> List[SeatPlanRead]:
    """Get the seating plans and their rates."""
    table = build_pricing_table()
    return [SeatPlanRead.model_validate(table.get_plan(code)) for code in table.plan_codes()]


@router.get("/nomination-types", response_model=List[NominationTypeRead])
async def list_nomination_types(
    include_inactive: bool = False,
    session: AsyncSession = Depends(get_session),
) -> List[NominationTypeRead]:
    """Get the nomination types and their fees, by priority."""
    catalog = NominationCatalog(session)
    types = await catalog.list_types(include_inactive=include_inactive)
    return [NominationTypeRead.model_validate(t) for t in types]


@router.post("/quotes/preview", response_model=QuoteRead)
async def preview_quote(data: QuotePreviewRequest) -> QuoteRead:
    """
    Compute a quote without touching any visit.

    Safe to call on every keystroke of the preview form.
    """
    settings = get_settings()
    engine = QuoteEngine(build_pricing_table(settings))
    quote_input = QuoteInput(
        plan_code=data.plan_code,
        start_at=data.start_at,
        end_at=data.end_at,
        use_room=data.use_room,
        nomination_count=data.nomination_count,
        inhouse_count=data.inhouse_count,
        apply_house_fee=data.apply_house_fee,
        apply_single_charge=data.apply_single_charge,
        drink_total=data.drink_total,
        service_rate=settings.default_service_rate if data.service_rate is None else data.service_rate,
        tax_rate=settings.default_tax_rate if data.tax_rate is None else data.tax_rate,
    )
    try:
        quote = engine.compute_quote(quote_input)
    except (BillingError, ValueError) as exc:
        raise to_http_error(exc)
    return QuoteRead.model_validate(quote)


@router.post("/visits/{visit_id}/quote", response_model=QuoteRead)
async def quote_visit(
    visit_id: UUID,
    data: VisitQuoteRequest,
    session: AsyncSession = Depends(get_session),
) -> QuoteRead:
    """Preview a visit's quote from its current state. Nothing is saved."""
    service = BillingService(session)
    try:
        quote = await service.quote_visit(visit_id, **data.model_dump())
    except (BillingError, ValueError) as exc:
        raise to_http_error(exc)
    return QuoteRead.model_validate(quote)


@router.post("/visits/{visit_id}/quote/apply", response_model=List[OrderItemRead])
async def apply_visit_quote(
    visit_id: UUID,
    data: VisitQuoteRequest,
    session: AsyncSession = Depends(get_session),
) -> List[OrderItemRead]:
    """
    Quote a visit and persist the quote's lines as order items.

    Replaces the lines of any earlier applied quote.
    """
    service = BillingService(session)
    try:
        quote = await service.quote_visit(visit_id, **data.model_dump())
        items = await service.apply_quote(visit_id, quote)
    except (BillingError, ValueError) as exc:
        raise to_http_error(exc)
    return [OrderItemRead.model_validate(i) for i in items]
