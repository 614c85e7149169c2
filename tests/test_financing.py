"""
Unit tests for the financing offer lifecycle.
"""
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from rocket_deliveries.core.financing import (
    FinancingStatus,
    FinancingTransitionError,
    advance,
    list_financings,
    mark_delivered,
)
from rocket_deliveries.database.models import Financing
from rocket_deliveries.integrations.stripe_client import StripeError, StripeErrorType
from tests.conftest import create_pilot


class TestAdvance:
    """Test suite for financing status transitions."""

    @pytest.mark.unit
    def test_forward_path(self) -> None:
        financing = Financing(status="undelivered")

        for status in (FinancingStatus.DELIVERED, FinancingStatus.ACCEPTED, FinancingStatus.COMPLETED):
            advance(financing, status)

        assert financing.status == "completed"

    @pytest.mark.unit
    @pytest.mark.parametrize("start", ["undelivered", "delivered", "accepted"])
    def test_expiry_from_open_states(self, start: str) -> None:
        financing = Financing(status=start)

        advance(financing, FinancingStatus.EXPIRED)

        assert financing.status == "expired"

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "start,target",
        [
            ("delivered", FinancingStatus.UNDELIVERED),
            ("undelivered", FinancingStatus.ACCEPTED),
            ("completed", FinancingStatus.EXPIRED),
            ("expired", FinancingStatus.DELIVERED),
        ],
    )
    def test_rejected_transitions(self, start: str, target: FinancingStatus) -> None:
        financing = Financing(status=start)

        with pytest.raises(FinancingTransitionError):
            advance(financing, target)

        assert financing.status == start


class TestMarkDelivered:
    """Test suite for mark_delivered."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_marks_offer_delivered(self, db: AsyncSession, stripe_client: AsyncMock) -> None:
        pilot = await create_pilot(db)
        financing = Financing(pilot_id=pilot.id, stripe_financing_id="financingoffer_123")
        db.add(financing)
        await db.commit()

        await mark_delivered(financing, db, stripe_client)

        await db.refresh(financing)
        assert financing.status == "delivered"
        stripe_client.mark_financing_offer_delivered.assert_awaited_once_with("financingoffer_123")

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_local_offer_skips_stripe(self, db: AsyncSession, stripe_client: AsyncMock) -> None:
        pilot = await create_pilot(db)
        financing = Financing(pilot_id=pilot.id)
        db.add(financing)
        await db.commit()

        await mark_delivered(financing, db, stripe_client)

        assert financing.status == "delivered"
        stripe_client.mark_financing_offer_delivered.assert_not_awaited()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_already_delivered(self, db: AsyncSession, stripe_client: AsyncMock) -> None:
        pilot = await create_pilot(db)
        financing = Financing(pilot_id=pilot.id, status="delivered")
        db.add(financing)
        await db.commit()

        with pytest.raises(FinancingTransitionError):
            await mark_delivered(financing, db, stripe_client)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_stripe_rejection_leaves_status(
        self, db: AsyncSession, stripe_client: AsyncMock
    ) -> None:
        pilot = await create_pilot(db)
        financing = Financing(pilot_id=pilot.id, stripe_financing_id="financingoffer_123")
        db.add(financing)
        await db.commit()
        stripe_client.mark_financing_offer_delivered.side_effect = StripeError(
            "No such offer", StripeErrorType.PERMANENT
        )

        with pytest.raises(StripeError):
            await mark_delivered(financing, db, stripe_client)

        assert financing.status == "undelivered"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_list_financings_only_own(self, db: AsyncSession) -> None:
        pilot = await create_pilot(db)
        other = await create_pilot(db, email="other@example.com", stripe_account_id="acct_other")
        db.add_all([Financing(pilot_id=pilot.id), Financing(pilot_id=other.id)])
        await db.commit()

        financings = await list_financings(pilot, db)

        assert len(financings) == 1
        assert financings[0].pilot_id == pilot.id
