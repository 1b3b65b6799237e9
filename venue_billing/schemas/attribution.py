from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class AttributionShareIn(BaseModel):
    """One cast's requested share of an order line."""

    cast_id: UUID
    percentage: Decimal = Field(..., ge=0, le=100, decimal_places=2)
    reason: Optional[str] = Field(None, max_length=200)


class ManualAttributionRequest(BaseModel):
    """Schema for replacing a line's attribution set by hand."""

    shares: List[AttributionShareIn] = Field(..., min_length=1)


class AttributionRead(BaseModel):
    """Schema for reading an attribution row."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    order_item_id: UUID
    cast_id: UUID
    attribution_percentage: Decimal
    attribution_amount: int
    attribution_type: str
    reason: Optional[str]
    is_primary: bool
    created_at: datetime
