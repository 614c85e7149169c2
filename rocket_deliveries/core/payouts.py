"""Instant payouts of a pilot's available balance."""
from typing import Optional

import stripe
import structlog

from rocket_deliveries.core.onboarding import AccountNotConnectedError, connected_account_id
from rocket_deliveries.database.models import Pilot
from rocket_deliveries.integrations.stripe_client import StripeClient, StripeError
from rocket_deliveries.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)


async def payout_available_balance(
    pilot: Pilot, stripe_client: StripeClient
) -> Optional[stripe.Payout]:
    """
    Pay out the pilot's full available balance instantly.

    Only the first balance entry is used since rides are charged in a single
    currency. Failures are logged and swallowed; the caller cannot tell a
    failed payout from a successful one except through the balance.

    Args:
        pilot: Pilot requesting the payout
        stripe_client: Stripe API client

    Returns:
        Optional[stripe.Payout]: Created payout, or None on failure
    """
    try:
        account_id = connected_account_id(pilot)
    except AccountNotConnectedError as e:
        logger.warning("payout_without_connected_account", pilot_id=str(pilot.id), error=str(e))
        metrics.record_payout("failed")
        return None

    try:
        balance = await stripe_client.retrieve_balance(account_id)
        if not balance.available:
            logger.warning("payout_no_available_balance", pilot_id=str(pilot.id))
            metrics.record_payout("failed")
            return None
        available = balance.available[0]
        payout = await stripe_client.create_payout(account_id, available.amount, available.currency)
    except StripeError as e:
        logger.error("payout_failed", pilot_id=str(pilot.id), error=str(e))
        metrics.record_payout("failed")
        return None

    metrics.record_payout("created")
    return payout
