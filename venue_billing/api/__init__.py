# API routes
from venue_billing.api.quotes import router as quotes_router
from venue_billing.api.visits import router as visits_router
from venue_billing.api.attributions import router as attributions_router
from venue_billing.api.guests import router as guests_router


__all__ = [
    "quotes_router",
    "visits_router",
    "attributions_router",
    "guests_router",
]
