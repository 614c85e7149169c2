"""
Unit tests for pilot verification checks.
"""
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from rocket_deliveries.core.verification import account_is_verified, check_pilot_verified
from rocket_deliveries.integrations.stripe_client import StripeError, StripeErrorType
from tests.conftest import create_pilot, make_account


class TestCheckPilotVerified:
    """Test suite for check_pilot_verified."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_already_verified_skips_stripe(
        self, db: AsyncSession, stripe_client: AsyncMock
    ) -> None:
        pilot = await create_pilot(db, stripe_verified=True)

        status = await check_pilot_verified(pilot, db, stripe_client)

        assert status.verified is True
        assert status.reason is None
        stripe_client.retrieve_account.assert_not_awaited()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_no_account_is_unverified(self, db: AsyncSession, stripe_client: AsyncMock) -> None:
        pilot = await create_pilot(db, stripe_account_id=None)

        status = await check_pilot_verified(pilot, db, stripe_client)

        assert status.verified is False
        stripe_client.retrieve_account.assert_not_awaited()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_details_not_submitted(self, db: AsyncSession, stripe_client: AsyncMock) -> None:
        pilot = await create_pilot(db)
        stripe_client.retrieve_account.return_value = make_account(details_submitted=False)

        status = await check_pilot_verified(pilot, db, stripe_client)

        assert status.verified is False
        assert status.reason is None
        assert pilot.stripe_verified is False

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_disabled_account_reports_reason(
        self, db: AsyncSession, stripe_client: AsyncMock
    ) -> None:
        pilot = await create_pilot(db)
        stripe_client.retrieve_account.return_value = make_account(
            disabled_reason="requirements.past_due"
        )

        status = await check_pilot_verified(pilot, db, stripe_client)

        assert status.verified is False
        assert status.reason == "requirements.past_due"
        assert pilot.stripe_verified is False

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_verified_account_persists_flag(
        self, db: AsyncSession, stripe_client: AsyncMock
    ) -> None:
        pilot = await create_pilot(db)
        stripe_client.retrieve_account.return_value = make_account()

        status = await check_pilot_verified(pilot, db, stripe_client)

        assert status.verified is True
        await db.refresh(pilot)
        assert pilot.stripe_verified is True
        stripe_client.retrieve_account.assert_awaited_once_with(pilot.stripe_account_id)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_stripe_errors_propagate(self, db: AsyncSession, stripe_client: AsyncMock) -> None:
        pilot = await create_pilot(db)
        stripe_client.retrieve_account.side_effect = StripeError(
            "No such account", StripeErrorType.PERMANENT
        )

        with pytest.raises(StripeError):
            await check_pilot_verified(pilot, db, stripe_client)


@pytest.mark.unit
def test_account_is_verified() -> None:
    assert account_is_verified(make_account())
    assert not account_is_verified(make_account(details_submitted=False))
    assert not account_is_verified(make_account(disabled_reason="rejected.fraud"))
