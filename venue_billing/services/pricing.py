"""Seat rate schedule keyed by seating plan code."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from venue_billing.config import Settings, get_settings
from venue_billing.errors import ConfigurationError


@dataclass(frozen=True)
class SeatPlan:
    """Rate card for one seating plan."""

    code: str
    unit_minutes: int
    unit_price: int
    minimum_units: int = 1
    room_fee: int = 0  # 0 means the plan has no room surcharge

    @property
    def has_room_surcharge(self) -> bool:
        return self.room_fee > 0


@dataclass(frozen=True)
class FeeSchedule:
    """Fixed per-unit fees that are not tied to seat time."""

    nomination_fee: int = 1000
    inhouse_fee: int = 1000
    house_fee: int = 2000
    single_charge: int = 2000


DEFAULT_PLANS: List[SeatPlan] = [
    SeatPlan(code="BAR", unit_minutes=30, unit_price=1000, minimum_units=3),
    SeatPlan(code="COUNTER", unit_minutes=10, unit_price=1000, minimum_units=6),
    SeatPlan(code="VIP_A", unit_minutes=60, unit_price=6000, minimum_units=2, room_fee=10000),
    SeatPlan(code="VIP_B", unit_minutes=60, unit_price=6000, minimum_units=2, room_fee=20000),
]


@dataclass(frozen=True)
class SeatPricingTable:
    """Lookup of seating plans by code plus the fixed fee schedule."""

    plans: Dict[str, SeatPlan]
    fees: FeeSchedule = field(default_factory=FeeSchedule)

    @classmethod
    def from_plans(
        cls, plans: Iterable[SeatPlan], fees: Optional[FeeSchedule] = None
    ) -> "SeatPricingTable":
        plan_map: Dict[str, SeatPlan] = {}
        for plan in plans:
            if plan.unit_minutes <= 0:
                raise ConfigurationError(f"Plan {plan.code} must have a positive time unit")
            if plan.code in plan_map:
                raise ConfigurationError(f"Plan {plan.code} is defined twice")
            plan_map[plan.code] = plan
        return cls(plans=plan_map, fees=fees or FeeSchedule())

    def get_plan(self, code: str) -> SeatPlan:
        """Return the plan for ``code`` or raise ConfigurationError."""
        try:
            return self.plans[code]
        except KeyError:
            raise ConfigurationError(f"Unknown pricing plan: {code}") from None

    def plan_codes(self) -> List[str]:
        return list(self.plans)


def build_pricing_table(settings: Optional[Settings] = None) -> SeatPricingTable:
    """Default plans with fee amounts taken from settings."""
    settings = settings or get_settings()
    fees = FeeSchedule(
        nomination_fee=settings.nomination_fee,
        inhouse_fee=settings.inhouse_fee,
        house_fee=settings.house_fee,
        single_charge=settings.single_charge,
    )
    return SeatPricingTable.from_plans(DEFAULT_PLANS, fees)


DEFAULT_PRICING_TABLE = SeatPricingTable.from_plans(DEFAULT_PLANS)
