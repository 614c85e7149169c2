"""
Ride simulation.

A simulated ride picks a random passenger, stores the ride and charges it on
the platform with a transfer of the pilot's share to their connected account.
The ride is committed before the charge is attempted and is kept when the
charge fails; no compensating delete happens.
"""
import random
from typing import Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from rocket_deliveries.core.onboarding import connected_account_id
from rocket_deliveries.database.models import Passenger, Pilot, Ride
from rocket_deliveries.integrations.stripe_client import StripeClient, StripeError
from rocket_deliveries.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)

MIN_RIDE_AMOUNT = 1000
MAX_RIDE_AMOUNT = 10000

# Static tokens for Stripe test cards that trigger specific behaviors.
# Real payments must tokenize cards client-side with Stripe Elements or the mobile SDKs.
DEFAULT_TEST_SOURCE = "tok_visa"
TEST_SOURCES = {
    "immediate_balance": "tok_bypassPending",
    "payout_limit": "tok_visa_triggerTransferBlock",
}


class RideChargeError(Exception):
    """Raised when the charge for a saved ride fails."""

    def __init__(self, message: str, ride: Ride):
        super().__init__(message)
        self.ride = ride


def get_test_source(behavior: Optional[str] = None) -> str:
    """Test card token for the requested testing behavior."""
    return TEST_SOURCES.get(behavior or "", DEFAULT_TEST_SOURCE)


def random_ride_amount() -> int:
    """Random ride amount in cents, between $10 and $100 inclusive."""
    return random.randint(MIN_RIDE_AMOUNT, MAX_RIDE_AMOUNT)


async def simulate_ride(
    pilot: Pilot,
    db: AsyncSession,
    stripe_client: StripeClient,
    behavior: Optional[str] = None,
) -> Ride:
    """
    Create a test ride for the pilot and charge it.

    Args:
        pilot: Pilot receiving the ride
        db: Database session
        stripe_client: Stripe API client
        behavior: Optional testing behavior ('immediate_balance' or 'payout_limit')

    Returns:
        Ride: The saved ride with its charge ID

    Raises:
        AccountNotConnectedError: If the pilot has no connected account; nothing is saved
        RideChargeError: If the charge fails; the ride remains saved
    """
    destination = connected_account_id(pilot)
    passenger = await Passenger.get_random(db)
    ride = Ride(
        pilot_id=pilot.id,
        passenger_id=passenger.id,
        amount=random_ride_amount(),
    )
    db.add(ride)
    await db.commit()

    logger.info(
        "ride_created",
        ride_id=str(ride.id),
        pilot_id=str(pilot.id),
        amount=ride.amount,
        behavior=behavior,
    )

    try:
        charge = await stripe_client.create_charge(
            amount_cents=ride.amount,
            currency=ride.currency,
            source=get_test_source(behavior),
            destination=destination,
            transfer_amount_cents=ride.amount_for_pilot(),
        )
    except StripeError as e:
        logger.error("ride_charge_failed", ride_id=str(ride.id), error=str(e))
        metrics.record_ride("charge_failed", ride.amount)
        raise RideChargeError(f"Error charging ride: {e}", ride) from e

    ride.stripe_charge_id = charge.id
    await db.commit()
    metrics.record_ride("charged", ride.amount)
    return ride
