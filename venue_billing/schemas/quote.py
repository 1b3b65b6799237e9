from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from venue_billing.schemas.common import UTCDatetime


class SeatPlanRead(BaseModel):
    """Schema for a seating plan's rate card."""

    model_config = ConfigDict(from_attributes=True)

    code: str
    unit_minutes: int
    unit_price: int
    minimum_units: int
    room_fee: int


class NominationTypeRead(BaseModel):
    """Schema for a nomination type and its fee."""

    model_config = ConfigDict(from_attributes=True)

    code: str
    display_name: str
    price: int
    back_rate: Decimal
    priority: int
    is_active: bool


class QuoteOptions(BaseModel):
    """Quote knobs shared by previews and visit quotes."""

    plan_code: str = Field(..., min_length=1, max_length=20)
    use_room: bool = False
    apply_house_fee: bool = False
    apply_single_charge: bool = False
    service_rate: Optional[float] = Field(None, ge=0, le=1)
    tax_rate: Optional[float] = Field(None, ge=0, le=1)


class QuotePreviewRequest(QuoteOptions):
    """Schema for a stand-alone quote preview."""

    start_at: UTCDatetime
    end_at: UTCDatetime
    nomination_count: int = Field(0, ge=0, le=50)
    inhouse_count: int = Field(0, ge=0, le=50)
    drink_total: int = Field(0, ge=0)


class VisitQuoteRequest(QuoteOptions):
    """Schema for quoting a visit; omitted counts come from its engagements."""

    nomination_count: Optional[int] = Field(None, ge=0, le=50)
    inhouse_count: Optional[int] = Field(None, ge=0, le=50)
    end_at: Optional[UTCDatetime] = None


class QuoteLineRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    code: str
    label: str
    category: str
    quantity: int
    unit_price: int
    amount: int


class QuoteRead(BaseModel):
    """Schema for a computed quote."""

    model_config = ConfigDict(from_attributes=True)

    plan_code: str
    stay_minutes: int
    billed_units: int
    lines: List[QuoteLineRead]
    subtotal: int
    service_amount: int
    tax_amount: int
    service_tax: int
    total: int
