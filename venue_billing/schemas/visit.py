from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from venue_billing.schemas.common import UTCDatetime


class EngagementRole(str, Enum):
    """Role of a cast on a visit."""

    PRIMARY = "primary"
    INHOUSE = "inhouse"
    HELP = "help"
    COMPANION_OUT = "companion_out"
    AFTER = "after"


class VisitCreate(BaseModel):
    """Schema for checking a guest in."""

    primary_customer_id: UUID
    table_id: UUID
    guest_count: int = Field(1, ge=1, le=50)
    checked_in_at: Optional[UTCDatetime] = None
    main_guest_name: Optional[str] = Field(None, max_length=100)
    service_rate: Optional[float] = Field(None, ge=0, le=1)
    tax_rate: Optional[float] = Field(None, ge=0, le=1)


class TableMove(BaseModel):
    """Schema for moving a visit to another table."""

    table_id: UUID


class VisitMerge(BaseModel):
    """Schema for folding other visits into this one."""

    secondary_visit_ids: List[UUID] = Field(..., min_length=1)


class VisitCheckout(BaseModel):
    checked_out_at: Optional[UTCDatetime] = None


class EngagementCreate(BaseModel):
    """Schema for assigning a cast to a visit."""

    cast_id: UUID
    role: EngagementRole
    nomination_type_code: Optional[str] = Field(None, max_length=50)
    started_at: Optional[UTCDatetime] = None


class EngagementEnd(BaseModel):
    ended_at: Optional[UTCDatetime] = None


class TableSegmentRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    visit_id: UUID
    table_id: UUID
    started_at: datetime
    ended_at: Optional[datetime]
    reason: str


class EngagementRead(BaseModel):
    """Schema for reading a cast engagement."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    visit_id: UUID
    cast_id: UUID
    role: str
    nomination_type_id: Optional[UUID]
    started_at: datetime
    ended_at: Optional[datetime]
    is_active: bool
    fee_amount: int
    back_percentage: Decimal


class VisitRead(BaseModel):
    """Schema for reading a visit."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    session_code: str
    primary_customer_id: UUID
    check_in_at: datetime
    check_out_at: Optional[datetime]
    guest_count: int
    is_group_visit: bool
    status: str
    merged_into_visit_id: Optional[UUID]
    service_rate: Decimal
    tax_rate: Decimal
    subtotal: Optional[int]
    service_charge: Optional[int]
    tax_amount: Optional[int]
    total_amount: Optional[int]


class VisitDetailRead(VisitRead):
    """Visit with its table history and engagements."""

    table_segments: List[TableSegmentRead]
    cast_engagements: List[EngagementRead]


class OrderItemCreate(BaseModel):
    """Schema for adding a line to a visit."""

    item_code: str = Field(..., min_length=1, max_length=50)
    name: str = Field(..., min_length=1, max_length=200)
    category: str = Field("drink", max_length=30)
    quantity: int = Field(1, ge=1)
    unit_price: int = Field(..., ge=0)
    target_cast_id: Optional[UUID] = None
    product_id: Optional[UUID] = None
    ordered_at: Optional[UTCDatetime] = None
    notes: Optional[str] = None


class OrderItemCorrection(BaseModel):
    """Schema for explicitly correcting a billed line."""

    quantity: Optional[int] = Field(None, ge=1)
    unit_price: Optional[int] = Field(None, ge=0)
    notes: Optional[str] = None


class OrderItemRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    visit_id: UUID
    product_id: Optional[UUID]
    item_code: str
    name: str
    category: str
    quantity: int
    unit_price: int
    total_price: int
    target_cast_id: Optional[UUID]
    source: str
    ordered_at: datetime
    billed_at: Optional[datetime]
