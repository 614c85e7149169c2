"""
Financing offer lifecycle.

Offers are created outside the app and only move forward:
undelivered -> delivered -> accepted -> completed. Any offer that has not
completed can expire.
"""
from enum import Enum
from typing import Dict, FrozenSet, List

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from rocket_deliveries.database.models import Financing, Pilot
from rocket_deliveries.integrations.stripe_client import StripeClient

logger = structlog.get_logger(__name__)


class FinancingStatus(str, Enum):
    UNDELIVERED = "undelivered"
    DELIVERED = "delivered"
    ACCEPTED = "accepted"
    COMPLETED = "completed"
    EXPIRED = "expired"


ALLOWED_TRANSITIONS: Dict[FinancingStatus, FrozenSet[FinancingStatus]] = {
    FinancingStatus.UNDELIVERED: frozenset({FinancingStatus.DELIVERED, FinancingStatus.EXPIRED}),
    FinancingStatus.DELIVERED: frozenset({FinancingStatus.ACCEPTED, FinancingStatus.EXPIRED}),
    FinancingStatus.ACCEPTED: frozenset({FinancingStatus.COMPLETED, FinancingStatus.EXPIRED}),
    FinancingStatus.COMPLETED: frozenset(),
    FinancingStatus.EXPIRED: frozenset(),
}


class FinancingTransitionError(Exception):
    """Raised for a status change the lifecycle does not allow."""

    pass


def advance(financing: Financing, status: FinancingStatus) -> None:
    """
    Move a financing offer to ``status``.

    Raises:
        FinancingTransitionError: If the transition is not allowed
    """
    current = FinancingStatus(financing.status)
    if status not in ALLOWED_TRANSITIONS[current]:
        raise FinancingTransitionError(
            f"Cannot move financing {financing.id} from {current.value} to {status.value}"
        )
    financing.status = status.value


async def list_financings(pilot: Pilot, db: AsyncSession) -> List[Financing]:
    result = await db.execute(
        select(Financing).where(Financing.pilot_id == pilot.id).order_by(Financing.created.desc())
    )
    return list(result.scalars().all())


async def mark_delivered(
    financing: Financing, db: AsyncSession, stripe_client: StripeClient
) -> Financing:
    """
    Record that the financing offer was shown to the pilot.

    Stripe is told first; the local status only changes once it accepts.

    Raises:
        FinancingTransitionError: If the offer is no longer undelivered
        StripeError: If Stripe rejects the update
    """
    if FinancingStatus(financing.status) is not FinancingStatus.UNDELIVERED:
        raise FinancingTransitionError(
            f"Financing {financing.id} is already {financing.status}"
        )

    if financing.stripe_financing_id:
        await stripe_client.mark_financing_offer_delivered(financing.stripe_financing_id)

    advance(financing, FinancingStatus.DELIVERED)
    await db.commit()
    logger.info("financing_marked_delivered", financing_id=str(financing.id))
    return financing
