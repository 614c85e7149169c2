"""Pilot verification status against the pilot's connected account."""
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from rocket_deliveries.database.models import Pilot

if TYPE_CHECKING:
    from rocket_deliveries.integrations.stripe_client import StripeClient

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class VerificationStatus:
    verified: bool
    reason: Optional[str] = None


def disabled_reason(account: Any) -> Optional[str]:
    requirements = getattr(account, "requirements", None)
    if requirements is None:
        return None
    return getattr(requirements, "disabled_reason", None)


def account_is_verified(account: Any) -> bool:
    """An account is verified once details are submitted and nothing disables it."""
    return bool(getattr(account, "details_submitted", False)) and not disabled_reason(account)


async def check_pilot_verified(
    pilot: Pilot, db: AsyncSession, stripe_client: "StripeClient"
) -> VerificationStatus:
    """
    Check whether Stripe has verified the pilot's connected account.

    A pilot already recorded as verified is never re-checked. When Stripe
    reports the account as verified the flag is persisted. Stripe errors
    propagate to the caller.

    Args:
        pilot: Pilot to check
        db: Database session used to persist a newly verified pilot
        stripe_client: Stripe API client

    Returns:
        VerificationStatus: Verified flag and the disabled reason, if any
    """
    if pilot.stripe_verified:
        return VerificationStatus(verified=True)

    if not pilot.stripe_account_id:
        return VerificationStatus(verified=False)

    account = await stripe_client.retrieve_account(pilot.stripe_account_id)

    if not getattr(account, "details_submitted", False):
        return VerificationStatus(verified=False)

    reason = disabled_reason(account)
    if reason:
        logger.info("pilot_verification_disabled", pilot_id=str(pilot.id), reason=reason)
        return VerificationStatus(verified=False, reason=reason)

    pilot.stripe_verified = True
    await db.commit()
    logger.info("pilot_verified", pilot_id=str(pilot.id), account_id=pilot.stripe_account_id)
    return VerificationStatus(verified=True)
