"""
Request-scoped dependencies.

Routes receive the signed-in pilot and the Stripe client as parameters
instead of reading them from ambient state.
"""
import uuid
from functools import lru_cache
from typing import Optional

import structlog
from fastapi import Depends, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from rocket_deliveries.database.connection import get_db
from rocket_deliveries.database.models import Pilot
from rocket_deliveries.integrations.stripe_client import StripeClient
from rocket_deliveries.integrations.webhook_handler import WebhookHandler

from .session import log_out, session_pilot_id

logger = structlog.get_logger(__name__)


class LoginRequired(Exception):
    """Raised when an anonymous request reaches a pilot-only route."""

    pass


class SignupIncomplete(Exception):
    """Raised when a pilot without a connected account reaches a route that needs one."""

    pass


class AuthenticationError(Exception):
    """Raised when login credentials are rejected."""

    pass


@lru_cache()
def get_stripe_client() -> StripeClient:
    return StripeClient()


@lru_cache()
def get_webhook_handler() -> WebhookHandler:
    return WebhookHandler()


async def get_optional_pilot(
    request: Request, db: AsyncSession = Depends(get_db)
) -> Optional[Pilot]:
    """Pilot stored in the session cookie, if any."""
    raw_id = session_pilot_id(request)
    if not raw_id:
        return None
    try:
        pilot_id = uuid.UUID(raw_id)
    except ValueError:
        log_out(request)
        return None
    pilot = await db.get(Pilot, pilot_id)
    if pilot is None:
        logger.warning("session_pilot_not_found", pilot_id=raw_id)
        log_out(request)
        return None
    # Every event logged for the rest of the request carries the pilot
    structlog.contextvars.bind_contextvars(pilot_id=str(pilot.id))
    return pilot


async def require_pilot(pilot: Optional[Pilot] = Depends(get_optional_pilot)) -> Pilot:
    """Signed-in pilot; anonymous requests are sent to the login page."""
    if pilot is None:
        raise LoginRequired()
    return pilot


async def require_connected_pilot(pilot: Pilot = Depends(require_pilot)) -> Pilot:
    """Signed-in pilot with a connected account; others are sent back to signup."""
    if not pilot.stripe_account_id:
        raise SignupIncomplete()
    return pilot


async def authenticate(db: AsyncSession, email: str, password: str) -> Pilot:
    """
    Check login credentials.

    Raises:
        AuthenticationError: With a message suitable for the login page
    """
    result = await db.execute(select(Pilot).where(Pilot.email == email.strip().lower()))
    pilot = result.scalar_one_or_none()
    if pilot is None:
        raise AuthenticationError("Unknown user")
    if not pilot.validate_password(password):
        raise AuthenticationError("Invalid password")
    return pilot
