"""
Unit tests for database models.
"""
from datetime import timedelta

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from rocket_deliveries.database.models import (
    DEFAULT_PASSENGERS,
    Passenger,
    Pilot,
    Ride,
    utcnow,
)
from tests.conftest import create_pilot


class TestPilot:
    """Test suite for the Pilot model."""

    @pytest.mark.unit
    def test_password_is_hashed(self) -> None:
        """Test passwords are stored as a hash and validated against it."""
        pilot = Pilot(email="hash@example.com")
        pilot.set_password("secret123")

        assert pilot.password_hash != "secret123"
        assert pilot.validate_password("secret123")
        assert not pilot.validate_password("wrong-password")

    @pytest.mark.unit
    def test_switch_to_company_clears_individual_names(self) -> None:
        """Test changing type blanks the fields that no longer apply."""
        pilot = Pilot(type="individual", first_name="Ada", last_name="Lovelace")

        pilot.set_type("company")

        assert pilot.type == "company"
        assert pilot.first_name is None
        assert pilot.last_name is None

    @pytest.mark.unit
    def test_switch_to_individual_clears_business_name(self) -> None:
        pilot = Pilot(type="company", business_name="Rocket Rides LLC")

        pilot.set_type("individual")

        assert pilot.type == "individual"
        assert pilot.business_name is None

    @pytest.mark.unit
    def test_same_type_keeps_fields(self) -> None:
        pilot = Pilot(type="individual", first_name="Ada", last_name="Lovelace")

        pilot.set_type("individual")

        assert pilot.first_name == "Ada"

    @pytest.mark.unit
    def test_unknown_type_rejected(self) -> None:
        with pytest.raises(ValueError, match="Unknown pilot type"):
            Pilot(type="individual").set_type("robot")

    @pytest.mark.unit
    def test_display_name(self) -> None:
        assert Pilot(type="individual", first_name="Ada", last_name="Lovelace").display_name == "Ada Lovelace"
        assert Pilot(type="company", business_name="Rocket Rides LLC").display_name == "Rocket Rides LLC"

    @pytest.mark.unit
    def test_profile_complete(self) -> None:
        assert not Pilot(type="individual", first_name="Ada").profile_complete
        assert Pilot(type="individual", first_name="Ada", last_name="Lovelace").profile_complete
        assert not Pilot(type="company").profile_complete
        assert Pilot(type="company", business_name="Rocket Rides LLC").profile_complete

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_defaults_on_insert(self, db: AsyncSession) -> None:
        """Test a new pilot starts unverified with a creation time."""
        pilot = await create_pilot(db, stripe_account_id=None)

        assert pilot.stripe_verified is False
        assert pilot.country == "US"
        assert pilot.created is not None

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_list_recent_rides_last_week_newest_first(self, db: AsyncSession) -> None:
        """Test only rides from the past 7 days are listed, newest first."""
        pilot = await create_pilot(db)
        passenger = await Passenger.get_random(db)
        now = utcnow()
        old = Ride(pilot_id=pilot.id, passenger_id=passenger.id, amount=1000, created=now - timedelta(days=8))
        older = Ride(pilot_id=pilot.id, passenger_id=passenger.id, amount=2000, created=now - timedelta(days=2))
        newest = Ride(pilot_id=pilot.id, passenger_id=passenger.id, amount=3000, created=now)
        db.add_all([old, older, newest])
        await db.commit()

        rides = await pilot.list_recent_rides(db)

        assert [ride.amount for ride in rides] == [3000, 2000]
        assert rides[0].passenger.display_name == passenger.display_name

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_list_recent_rides_only_own(self, db: AsyncSession) -> None:
        pilot = await create_pilot(db)
        other = await create_pilot(db, email="other@example.com", stripe_account_id="acct_other")
        passenger = await Passenger.get_random(db)
        db.add(Ride(pilot_id=other.id, passenger_id=passenger.id, amount=1500))
        await db.commit()

        assert await pilot.list_recent_rides(db) == []


class TestPassenger:
    """Test suite for the Passenger model."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_get_random_seeds_empty_table(self, db: AsyncSession) -> None:
        """Test default passengers are inserted the first time one is needed."""
        passenger = await Passenger.get_random(db)
        await db.commit()

        count = (await db.execute(select(func.count(Passenger.id)))).scalar_one()
        assert count == len(DEFAULT_PASSENGERS)
        assert (passenger.first_name, passenger.last_name, passenger.email) in DEFAULT_PASSENGERS

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_get_random_does_not_reseed(self, db: AsyncSession) -> None:
        await Passenger.get_random(db)
        await Passenger.get_random(db)
        await db.commit()

        count = (await db.execute(select(func.count(Passenger.id)))).scalar_one()
        assert count == len(DEFAULT_PASSENGERS)


class TestRide:
    """Test suite for the Ride model."""

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "amount,pilot_share,fee",
        [(1000, 800, 200), (1234, 987, 247), (10000, 8000, 2000), (1001, 800, 201)],
    )
    def test_pilot_share_is_eighty_percent_rounded_down(
        self, amount: int, pilot_share: int, fee: int
    ) -> None:
        ride = Ride(amount=amount)

        assert ride.amount_for_pilot() == pilot_share
        assert ride.platform_fee() == fee
        assert ride.amount_for_pilot() + ride.platform_fee() == amount
