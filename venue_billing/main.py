from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from venue_billing.config import get_settings
from venue_billing.database import close_db, init_db

# Import all models to register them with Base BEFORE init_db
from venue_billing.models import (  # noqa: F401
    NominationType,
    Visit,
    TableSegment,
    CastEngagement,
    OrderItem,
    BillItemAttribution,
    VisitGuest,
    GuestOrderShare,
)

settings = get_settings()
LOGGER = logging.getLogger("venue-billing")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown events."""
    # create_all() is idempotent; migrations own the schema in production
    try:
        await init_db()
        LOGGER.info("Database initialized")
    except Exception as e:
        LOGGER.error("Database initialization failed: %s", e)
        raise

    yield

    await close_db()


app = FastAPI(
    title="Venue Billing Engine",
    description="Visit sessions, quotes, cast attribution and guest bill splitting",
    version="1.0.0",
    lifespan=lifespan,
)

if settings.is_development:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )
else:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


@app.get("/healthz")
async def health_check() -> dict:
    """Health check endpoint."""
    return {"status": "ok", "service": "venue-billing"}


@app.get("/")
async def root() -> dict:
    """Root endpoint with API information."""
    return {
        "name": "Venue Billing Engine",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/healthz",
    }


from venue_billing.api import (  # noqa: E402
    quotes_router,
    visits_router,
    attributions_router,
    guests_router,
)

app.include_router(quotes_router)
app.include_router(visits_router)
app.include_router(attributions_router)
app.include_router(guests_router)
