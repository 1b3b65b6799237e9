"""Service for nomination type lookups."""
from __future__ import annotations

import logging
from typing import Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from venue_billing.errors import ConfigurationError
from venue_billing.models.nomination import NominationType

logger = logging.getLogger(__name__)


class NominationCatalog:
    """Read access to the configured nomination types."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def list_types(self, include_inactive: bool = False) -> Sequence[NominationType]:
        """Nomination types ordered by priority, then display name."""
        stmt = select(NominationType).order_by(
            NominationType.priority, NominationType.display_name
        )
        if not include_inactive:
            stmt = stmt.where(NominationType.is_active == True)  # noqa: E712

        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def get_by_code(self, code: str) -> NominationType:
        """
        Get an active nomination type by code.

        Raises ConfigurationError when the code is unknown or retired.
        """
        stmt = select(NominationType).where(NominationType.code == code)
        result = await self.session.execute(stmt)
        nomination_type = result.scalar_one_or_none()

        if nomination_type is None or not nomination_type.is_active:
            logger.error("Unknown or inactive nomination type requested: %s", code)
            raise ConfigurationError(f"Unknown nomination type: {code}")

        return nomination_type
