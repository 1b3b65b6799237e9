from venue_billing.models.nomination import NominationType
from venue_billing.models.visit import Visit
from venue_billing.models.table_segment import TableSegment
from venue_billing.models.cast_engagement import CastEngagement
from venue_billing.models.order import OrderItem, BillItemAttribution
from venue_billing.models.guest import VisitGuest, GuestOrderShare

__all__ = [
    "NominationType",
    "Visit",
    "TableSegment",
    "CastEngagement",
    "OrderItem",
    "BillItemAttribution",
    "VisitGuest",
    "GuestOrderShare",
]
