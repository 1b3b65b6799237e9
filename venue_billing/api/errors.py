"""Translate engine errors into HTTP responses at the API boundary."""
from __future__ import annotations

import logging

from fastapi import HTTPException

from venue_billing.errors import (
    BillingError,
    ConfigurationError,
    DuplicateEngagementError,
    NotFoundError,
    StateTransitionError,
)

logger = logging.getLogger(__name__)


def to_http_error(exc: Exception) -> HTTPException:
    """Map a BillingError (or plain ValueError) to an HTTPException."""
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, DuplicateEngagementError):
        return HTTPException(status_code=409, detail=f"Already assigned: {exc}")
    if isinstance(exc, StateTransitionError):
        return HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, ConfigurationError):
        logger.error("Configuration fault: %s", exc)
        return HTTPException(status_code=500, detail=str(exc))
    if isinstance(exc, BillingError):
        return HTTPException(status_code=422, detail=str(exc))
    return HTTPException(status_code=400, detail=str(exc))
