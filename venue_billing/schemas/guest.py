from __future__ import annotations

from decimal import Decimal
from enum import Enum
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator


class GuestType(str, Enum):
    COMPANION = "companion"
    ADDITIONAL = "additional"


class GuestCreate(BaseModel):
    """Schema for adding a co-attending guest."""

    customer_id: Optional[UUID] = None
    guest_name: Optional[str] = Field(None, max_length=100)
    guest_phone: Optional[str] = Field(None, max_length=20)
    guest_type: GuestType = GuestType.COMPANION
    seat_position: Optional[int] = Field(None, ge=1)
    relationship_to_main: Optional[str] = Field(None, max_length=100)

    @model_validator(mode="after")
    def require_identity(self) -> "GuestCreate":
        if self.customer_id is None and not self.guest_name:
            raise ValueError("customer_id or guest_name is required")
        return self


class VisitGuestRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    visit_id: UUID
    customer_id: Optional[UUID]
    guest_name: Optional[str]
    guest_type: str
    seat_position: Optional[int]
    relationship_to_main: Optional[str]
    is_primary_payer: bool
    individual_subtotal: int
    individual_service_charge: int
    individual_tax_amount: int
    individual_total: int


class GuestAssignment(BaseModel):
    """Schema for assigning part of a line to one guest."""

    guest_id: UUID
    quantity: int = Field(..., ge=1)
    amount: Optional[int] = Field(None, ge=0)


class GuestShareIn(BaseModel):
    guest_id: UUID
    percentage: Decimal = Field(..., gt=0, le=100, decimal_places=2)


class SharedOrderRequest(BaseModel):
    """Schema for sharing a line between guests by percentage."""

    shares: List[GuestShareIn] = Field(..., min_length=1)


class GuestOrderShareRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    order_item_id: UUID
    visit_guest_id: UUID
    quantity_for_guest: Decimal
    amount_for_guest: int
    is_shared_item: bool
    shared_percentage: Optional[Decimal]


class GuestBillSummaryRead(BaseModel):
    """Schema for a guest's running bill."""

    model_config = ConfigDict(from_attributes=True)

    guest_id: UUID
    display_name: str
    guest_type: str
    is_primary_payer: bool
    subtotal: int
    service_charge: int
    tax_amount: int
    total: int
    shares: List[GuestOrderShareRead]
