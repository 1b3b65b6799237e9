"""Tests for GuestOrderSplitter and VisitGuestService."""
from __future__ import annotations

from decimal import Decimal
from uuid import uuid4

import pytest
import pytest_asyncio
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from venue_billing.errors import (
    GuestAssignmentError,
    NotFoundError,
    SharePercentageError,
    StateTransitionError,
)
from venue_billing.models import GuestOrderShare, OrderItem, Visit, VisitGuest
from venue_billing.services.billing_service import BillingService
from venue_billing.services.guest_order_splitter import GuestOrderSplitter, GuestShare
from venue_billing.services.visit_guest_service import VisitGuestService
from venue_billing.services.visit_session import VisitSessionManager


@pytest.fixture
def guest_service(db_session: AsyncSession) -> VisitGuestService:
    return VisitGuestService(db_session)


@pytest.fixture
def splitter(db_session: AsyncSession, guest_service: VisitGuestService) -> GuestOrderSplitter:
    return GuestOrderSplitter(db_session, guest_service=guest_service)


@pytest.fixture
def billing(db_session: AsyncSession, clock, session_manager: VisitSessionManager) -> BillingService:
    return BillingService(db_session, clock=clock, session_manager=session_manager)


@pytest_asyncio.fixture
async def guests(guest_service: VisitGuestService, sample_visit: Visit) -> list[VisitGuest]:
    """Main guest Tanaka plus companion Sato."""
    await guest_service.add_guest(sample_visit.id, guest_name="Sato", relationship_to_main="colleague")
    return await guest_service.list_guests(sample_visit.id)


async def add_item(billing: BillingService, visit: Visit, unit_price: int, quantity: int = 1) -> OrderItem:
    return await billing.add_order_item(
        visit.id, item_code="WINE", name="House wine", unit_price=unit_price, quantity=quantity
    )


async def count_shares(session: AsyncSession, order_item_id) -> int:
    stmt = select(func.count(GuestOrderShare.id)).where(GuestOrderShare.order_item_id == order_item_id)
    return (await session.execute(stmt)).scalar_one()


class TestVisitGuests:
    """Tests for the guest list."""

    async def test_main_guest_listed_first(self, guests):
        assert [g.guest_type for g in guests] == ["main", "companion"]
        assert guests[0].display_name == "Tanaka"
        assert guests[0].is_primary_payer is True
        assert guests[1].is_primary_payer is False

    async def test_guest_count_grows_with_party(
        self,
        guest_service: VisitGuestService,
        sample_visit: Visit,
        guests,
    ):
        """The party of two already counts Sato; a third guest raises the count."""
        assert sample_visit.guest_count == 2

        await guest_service.add_guest(sample_visit.id, customer_id=uuid4(), guest_type="additional")

        assert sample_visit.guest_count == 3
        assert sample_visit.is_group_visit is True

    async def test_guest_needs_identity(self, guest_service: VisitGuestService, sample_visit: Visit):
        with pytest.raises(ValueError, match="customer reference or a name"):
            await guest_service.add_guest(sample_visit.id)

    async def test_second_main_guest_rejected(self, guest_service: VisitGuestService, sample_visit: Visit):
        with pytest.raises(ValueError):
            await guest_service.add_guest(sample_visit.id, guest_name="Suzuki", guest_type="main")

    async def test_closed_visit_rejects_guests(
        self,
        guest_service: VisitGuestService,
        session_manager: VisitSessionManager,
        sample_visit: Visit,
    ):
        await session_manager.checkout(sample_visit.id)
        with pytest.raises(StateTransitionError):
            await guest_service.add_guest(sample_visit.id, guest_name="Late arrival")

    async def test_switch_primary_payer(
        self,
        db_session: AsyncSession,
        guest_service: VisitGuestService,
        sample_visit: Visit,
        guests,
    ):
        main, companion = guests

        await guest_service.set_primary_payer(companion.id)

        stmt = (
            select(VisitGuest.id)
            .where(VisitGuest.visit_id == sample_visit.id)
            .where(VisitGuest.is_primary_payer == True)  # noqa: E712
        )
        payers = (await db_session.execute(stmt)).scalars().all()
        assert payers == [companion.id]
        assert main.is_primary_payer is False

    async def test_unknown_guest(self, guest_service: VisitGuestService):
        with pytest.raises(NotFoundError):
            await guest_service.get_guest(uuid4())


class TestSharedOrders:
    """Tests for percentage-shared lines."""

    async def test_even_split_sums_to_total(
        self,
        splitter: GuestOrderSplitter,
        billing: BillingService,
        sample_visit: Visit,
        guests,
    ):
        item = await add_item(billing, sample_visit, 1001)

        shares = await splitter.create_shared_order(
            item.id, [GuestShare(g.id, Decimal("50")) for g in guests]
        )

        assert sum(s.amount_for_guest for s in shares) == 1001
        assert sum(s.shared_percentage for s in shares) == Decimal("100")
        assert all(s.is_shared_item for s in shares)
        assert [s.quantity_for_guest for s in shares] == [Decimal("0.50"), Decimal("0.50")]

    async def test_three_way_thirds_stored_as_hundred(
        self,
        guest_service: VisitGuestService,
        splitter: GuestOrderSplitter,
        billing: BillingService,
        sample_visit: Visit,
        guests,
    ):
        """33.33 x 3 is accepted within tolerance and stored as 33.34/33.33/33.33."""
        await guest_service.add_guest(sample_visit.id, guest_name="Suzuki")
        everyone = await guest_service.list_guests(sample_visit.id)
        item = await add_item(billing, sample_visit, 1000)

        shares = await splitter.create_shared_order(
            item.id, [GuestShare(g.id, Decimal("33.33")) for g in everyone]
        )

        assert sum(s.shared_percentage for s in shares) == Decimal("100")
        assert [s.shared_percentage for s in shares] == [
            Decimal("33.34"), Decimal("33.33"), Decimal("33.33"),
        ]
        assert [s.amount_for_guest for s in shares] == [334, 333, 333]

    async def test_running_totals_follow_shares(
        self,
        splitter: GuestOrderSplitter,
        billing: BillingService,
        sample_visit: Visit,
        guests,
    ):
        """A 1000 line split 50/50 puts 500 + 50 service + 55 tax on each guest."""
        item = await add_item(billing, sample_visit, 1000)

        await splitter.create_shared_order(item.id, [GuestShare(g.id, Decimal("50")) for g in guests])

        for guest in guests:
            assert guest.individual_subtotal == 500
            assert guest.individual_service_charge == 50
            assert guest.individual_tax_amount == 55
            assert guest.individual_total == 605

    async def test_bad_percentages_write_nothing(
        self,
        db_session: AsyncSession,
        splitter: GuestOrderSplitter,
        billing: BillingService,
        sample_visit: Visit,
        guests,
    ):
        item = await add_item(billing, sample_visit, 1000)

        with pytest.raises(SharePercentageError):
            await splitter.create_shared_order(
                item.id,
                [GuestShare(guests[0].id, Decimal("60")), GuestShare(guests[1].id, Decimal("30"))],
            )

        assert await count_shares(db_session, item.id) == 0
        assert guests[0].individual_subtotal == 0

    async def test_foreign_guest_rejected(
        self,
        session_manager: VisitSessionManager,
        guest_service: VisitGuestService,
        splitter: GuestOrderSplitter,
        billing: BillingService,
        sample_visit: Visit,
        guests,
    ):
        other_visit = await session_manager.check_in(uuid4(), uuid4())
        stranger = (await guest_service.list_guests(other_visit.id))[0]
        item = await add_item(billing, sample_visit, 1000)

        with pytest.raises(GuestAssignmentError, match="not part of visit"):
            await splitter.create_shared_order(
                item.id,
                [GuestShare(guests[0].id, Decimal("50")), GuestShare(stranger.id, Decimal("50"))],
            )

    async def test_resharing_replaces_previous_split(
        self,
        db_session: AsyncSession,
        splitter: GuestOrderSplitter,
        billing: BillingService,
        sample_visit: Visit,
        guests,
    ):
        item = await add_item(billing, sample_visit, 1000)
        await splitter.create_shared_order(item.id, [GuestShare(g.id, Decimal("50")) for g in guests])

        await splitter.create_shared_order(
            item.id,
            [GuestShare(guests[0].id, Decimal("25")), GuestShare(guests[1].id, Decimal("75"))],
        )

        assert await count_shares(db_session, item.id) == 2
        assert guests[0].individual_subtotal == 250
        assert guests[1].individual_subtotal == 750


class TestExclusiveAssignment:
    """Tests for assigning lines to a single guest by quantity."""

    async def test_assign_quantity(
        self,
        splitter: GuestOrderSplitter,
        billing: BillingService,
        sample_visit: Visit,
        guests,
    ):
        item = await add_item(billing, sample_visit, 1000, quantity=3)

        share = await splitter.assign_to_guest(item.id, guests[0].id, 2)

        assert share.is_shared_item is False
        assert share.amount_for_guest == 2000
        assert share.quantity_for_guest == Decimal("2")
        assert guests[0].individual_subtotal == 2000
        assert guests[0].individual_total == 2420

    async def test_cannot_over_assign(
        self,
        splitter: GuestOrderSplitter,
        billing: BillingService,
        sample_visit: Visit,
        guests,
    ):
        item = await add_item(billing, sample_visit, 1000, quantity=3)
        await splitter.assign_to_guest(item.id, guests[0].id, 2)

        with pytest.raises(GuestAssignmentError, match="Only 1 of 3"):
            await splitter.assign_to_guest(item.id, guests[1].id, 2)

        share = await splitter.assign_to_guest(item.id, guests[1].id, 1)
        assert share.amount_for_guest == 1000

    async def test_reassign_same_guest_updates_row(
        self,
        db_session: AsyncSession,
        splitter: GuestOrderSplitter,
        billing: BillingService,
        sample_visit: Visit,
        guests,
    ):
        item = await add_item(billing, sample_visit, 1000, quantity=3)
        await splitter.assign_to_guest(item.id, guests[0].id, 3)

        await splitter.assign_to_guest(item.id, guests[0].id, 1)

        assert await count_shares(db_session, item.id) == 1
        assert guests[0].individual_subtotal == 1000

    async def test_assignment_replaces_shared_rows(
        self,
        db_session: AsyncSession,
        splitter: GuestOrderSplitter,
        billing: BillingService,
        sample_visit: Visit,
        guests,
    ):
        item = await add_item(billing, sample_visit, 1000)
        await splitter.create_shared_order(item.id, [GuestShare(g.id, Decimal("50")) for g in guests])

        await splitter.assign_to_guest(item.id, guests[1].id, 1)

        assert await count_shares(db_session, item.id) == 1
        assert guests[0].individual_subtotal == 0
        assert guests[1].individual_subtotal == 1000

    async def test_invalid_quantity_writes_nothing(
        self,
        db_session: AsyncSession,
        splitter: GuestOrderSplitter,
        billing: BillingService,
        sample_visit: Visit,
        guests,
    ):
        item = await add_item(billing, sample_visit, 1000)
        await splitter.create_shared_order(item.id, [GuestShare(g.id, Decimal("50")) for g in guests])

        with pytest.raises(GuestAssignmentError):
            await splitter.assign_to_guest(item.id, guests[0].id, 5)

        assert await count_shares(db_session, item.id) == 2


class TestGuestTotals:
    """Tests for summaries and repair."""

    async def test_remove_share(
        self,
        splitter: GuestOrderSplitter,
        billing: BillingService,
        sample_visit: Visit,
        guests,
    ):
        item = await add_item(billing, sample_visit, 1000)
        share = await splitter.assign_to_guest(item.id, guests[1].id, 1)

        await splitter.remove_guest_share(share.id)

        assert guests[1].individual_subtotal == 0
        assert guests[1].individual_total == 0

    async def test_remove_unknown_share(self, splitter: GuestOrderSplitter):
        with pytest.raises(NotFoundError):
            await splitter.remove_guest_share(uuid4())

    async def test_recalculate_repairs_drift(
        self,
        db_session: AsyncSession,
        splitter: GuestOrderSplitter,
        billing: BillingService,
        sample_visit: Visit,
        guests,
    ):
        item = await add_item(billing, sample_visit, 2000)
        await splitter.assign_to_guest(item.id, guests[0].id, 1)
        guests[0].individual_subtotal = 99999
        await db_session.commit()

        summary = await splitter.recalculate_guest_totals(guests[0].id)

        assert summary.subtotal == 2000
        assert summary.service_charge == 200
        assert summary.tax_amount == 220
        assert summary.total == 2420

    async def test_visit_summaries(
        self,
        splitter: GuestOrderSplitter,
        billing: BillingService,
        sample_visit: Visit,
        guests,
    ):
        wine = await add_item(billing, sample_visit, 1000)
        snacks = await add_item(billing, sample_visit, 600)
        await splitter.assign_to_guest(wine.id, guests[0].id, 1)
        await splitter.create_shared_order(
            snacks.id, [GuestShare(g.id, Decimal("50")) for g in guests]
        )

        summaries = await splitter.get_visit_guest_summaries(sample_visit.id)

        assert [s.display_name for s in summaries] == ["Tanaka", "Sato"]
        assert [s.subtotal for s in summaries] == [1300, 300]
        assert len(summaries[0].shares) == 2
        assert summaries[0].is_primary_payer is True
