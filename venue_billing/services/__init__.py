# Pricing and quoting
from venue_billing.services.pricing import SeatPlan, FeeSchedule, SeatPricingTable, build_pricing_table
from venue_billing.services.quote_engine import QuoteEngine, QuoteInput, Quote, QuoteLine

# Stateful services
from venue_billing.services.nomination_catalog import NominationCatalog
from venue_billing.services.visit_session import VisitSessionManager
from venue_billing.services.attribution_engine import AttributionEngine, AttributionShare
from venue_billing.services.visit_guest_service import VisitGuestService
from venue_billing.services.guest_order_splitter import GuestOrderSplitter, GuestShare, GuestBillSummary
from venue_billing.services.billing_service import BillingService
