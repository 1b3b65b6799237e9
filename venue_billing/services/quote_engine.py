"""Pure visit quote calculation."""
from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Tuple, Union

from venue_billing.errors import InvalidQuoteInputError
from venue_billing.services.pricing import DEFAULT_PRICING_TABLE, SeatPricingTable
from venue_billing.services.rounding import round_half_up, to_decimal

Rate = Union[float, Decimal]


def compute_service_tax(subtotal: int, service_rate: Rate, tax_rate: Rate) -> Tuple[int, int]:
    """Service on the subtotal, tax on subtotal plus service, each rounded half-up once."""
    service_amount = round_half_up(subtotal * to_decimal(service_rate))
    tax_amount = round_half_up((subtotal + service_amount) * to_decimal(tax_rate))
    return service_amount, tax_amount


@dataclass(frozen=True)
class QuoteInput:
    """Everything needed to price a visit."""

    plan_code: str
    start_at: datetime
    end_at: datetime
    use_room: bool = False
    nomination_count: int = 0
    inhouse_count: int = 0
    apply_house_fee: bool = False
    apply_single_charge: bool = False
    drink_total: int = 0
    service_rate: Rate = 0.1
    tax_rate: Rate = 0.1


@dataclass(frozen=True)
class QuoteLine:
    """One itemized charge on a quote."""

    code: str
    label: str
    category: str
    quantity: int
    unit_price: int
    amount: int


@dataclass(frozen=True)
class Quote:
    """Itemized quote for a visit."""

    plan_code: str
    stay_minutes: int
    billed_units: int
    lines: Tuple[QuoteLine, ...]
    subtotal: int
    service_amount: int
    tax_amount: int
    service_tax: int
    total: int

    def line_total(self, category: str) -> int:
        return sum(line.amount for line in self.lines if line.category == category)

    def to_order_lines(self) -> List[QuoteLine]:
        """Lines to persist as order items; drinks are already order items."""
        return [line for line in self.lines if line.category != "drink"]


class QuoteEngine:
    """
    Turns visit parameters into an itemized quote.

    Seat time is billed in whole time units (partial units round up) with
    the plan's minimum floor. Service is charged on the subtotal and tax on
    subtotal plus service; each derived amount is rounded half-up once.

    The engine holds no state beyond its pricing table, so it is safe to
    call repeatedly for live previews.
    """

    def __init__(self, pricing_table: Optional[SeatPricingTable] = None):
        self.pricing_table = pricing_table or DEFAULT_PRICING_TABLE

    def compute_quote(self, data: QuoteInput) -> Quote:
        """Compute the quote for ``data``. Raises InvalidQuoteInputError or ConfigurationError."""
        service_rate = self._validate_rate("service_rate", data.service_rate)
        tax_rate = self._validate_rate("tax_rate", data.tax_rate)
        self._validate_amounts(data)

        plan = self.pricing_table.get_plan(data.plan_code)
        fees = self.pricing_table.fees

        stay_minutes = self.stay_minutes(data.start_at, data.end_at)
        billed_units = max(math.ceil(stay_minutes / plan.unit_minutes), plan.minimum_units)

        lines: List[QuoteLine] = [
            QuoteLine(
                code=f"SEAT_{plan.code}",
                label=f"{plan.code} seat ({plan.unit_minutes} min x {billed_units})",
                category="seat",
                quantity=billed_units,
                unit_price=plan.unit_price,
                amount=plan.unit_price * billed_units,
            )
        ]

        if data.use_room and plan.has_room_surcharge:
            lines.append(
                QuoteLine(
                    code=f"ROOM_{plan.code}",
                    label=f"{plan.code} room",
                    category="room",
                    quantity=1,
                    unit_price=plan.room_fee,
                    amount=plan.room_fee,
                )
            )

        # One line per nomination so each stays traceable to its cast
        for _ in range(data.nomination_count):
            lines.append(self._fee_line("NOMINATION", "Nomination", "nomination", fees.nomination_fee))
        for _ in range(data.inhouse_count):
            lines.append(self._fee_line("INHOUSE", "In-house nomination", "inhouse", fees.inhouse_fee))

        if data.apply_house_fee:
            lines.append(self._fee_line("HOUSE_FEE", "House fee", "house_fee", fees.house_fee))
        if data.apply_single_charge:
            lines.append(self._fee_line("SINGLE_CHARGE", "Single charge", "single_charge", fees.single_charge))

        lines.append(self._fee_line("DRINKS", "Drinks and orders", "drink", data.drink_total))

        subtotal = sum(line.amount for line in lines)
        service_amount, tax_amount = compute_service_tax(subtotal, service_rate, tax_rate)
        service_tax = service_amount + tax_amount

        return Quote(
            plan_code=plan.code,
            stay_minutes=stay_minutes,
            billed_units=billed_units,
            lines=tuple(lines),
            subtotal=subtotal,
            service_amount=service_amount,
            tax_amount=tax_amount,
            service_tax=service_tax,
            total=subtotal + service_tax,
        )

    @staticmethod
    def stay_minutes(start_at: datetime, end_at: datetime) -> int:
        """Whole minutes between start and end, partial minutes rounded up, never negative."""
        try:
            seconds = (end_at - start_at).total_seconds()
        except TypeError as exc:
            # naive vs aware datetimes
            raise InvalidQuoteInputError(f"Cannot compare visit timestamps: {exc}") from exc
        return max(0, math.ceil(seconds / 60))

    @staticmethod
    def _fee_line(code: str, label: str, category: str, amount: int) -> QuoteLine:
        return QuoteLine(
            code=code,
            label=label,
            category=category,
            quantity=1,
            unit_price=amount,
            amount=amount,
        )

    @staticmethod
    def _validate_rate(name: str, value: Rate) -> Decimal:
        try:
            rate = to_decimal(value)
        except (ArithmeticError, ValueError) as exc:
            raise InvalidQuoteInputError(f"{name} is not a number: {value!r}") from exc
        if not rate.is_finite() or rate < 0 or rate > 1:
            raise InvalidQuoteInputError(f"{name} must be between 0 and 1 (got {value})")
        return rate

    @staticmethod
    def _validate_amounts(data: QuoteInput) -> None:
        if data.drink_total < 0:
            raise InvalidQuoteInputError(f"drink_total must not be negative (got {data.drink_total})")
        if data.nomination_count < 0:
            raise InvalidQuoteInputError("nomination_count must not be negative")
        if data.inhouse_count < 0:
            raise InvalidQuoteInputError("inhouse_count must not be negative")
