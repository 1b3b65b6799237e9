from venue_billing.schemas.quote import (
    NominationTypeRead,
    QuoteLineRead,
    QuotePreviewRequest,
    QuoteRead,
    SeatPlanRead,
    VisitQuoteRequest,
)
from venue_billing.schemas.visit import (
    EngagementCreate,
    EngagementEnd,
    EngagementRead,
    EngagementRole,
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
from venue_billing.schemas.attribution import (
    AttributionRead,
    AttributionShareIn,
    ManualAttributionRequest,
)
from venue_billing.schemas.guest import (
    GuestAssignment,
    GuestBillSummaryRead,
    GuestCreate,
    GuestOrderShareRead,
    GuestShareIn,
    GuestType,
    SharedOrderRequest,
    VisitGuestRead,
)

__all__ = [
    "NominationTypeRead",
    "QuoteLineRead",
    "QuotePreviewRequest",
    "QuoteRead",
    "SeatPlanRead",
    "VisitQuoteRequest",
    "EngagementCreate",
    "EngagementEnd",
    "EngagementRead",
    "EngagementRole",
    "OrderItemCorrection",
    "OrderItemCreate",
    "OrderItemRead",
    "TableMove",
    "TableSegmentRead",
    "VisitCheckout",
    "VisitCreate",
    "VisitDetailRead",
    "VisitMerge",
    "VisitRead",
    "AttributionRead",
    "AttributionShareIn",
    "ManualAttributionRequest",
    "GuestAssignment",
    "GuestBillSummaryRead",
    "GuestCreate",
    "GuestOrderShareRead",
    "GuestShareIn",
    "GuestType",
    "SharedOrderRequest",
    "VisitGuestRead",
]
