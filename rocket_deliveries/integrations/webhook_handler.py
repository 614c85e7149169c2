"""
Stripe webhook handler with signature verification and event routing.

Implements:
- Webhook signature verification against the endpoint's signing secret
- Event type routing to registered handlers
- ``account.updated`` handling that records newly verified pilots
"""
from typing import Any, Awaitable, Callable, Dict, Optional

import stripe
import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from rocket_deliveries.core.verification import account_is_verified
from rocket_deliveries.database.models import Pilot
from rocket_deliveries.integrations.stripe_client import ACCOUNT_UPDATED
from rocket_deliveries.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)

EventHandler = Callable[[Any, AsyncSession], Awaitable[Dict[str, Any]]]


class WebhookError(Exception):
    """Raised when webhook verification or processing fails."""

    pass


class WebhookHandler:
    """
    Handles Stripe webhook events.

    Features:
    - Signature verification using the endpoint signing secret
    - Event type routing to appropriate handlers
    """

    def __init__(self) -> None:
        """Initialize webhook handler with the default handlers registered."""
        self.event_handlers: Dict[str, EventHandler] = {}
        self.register_handler(ACCOUNT_UPDATED, self.handle_account_updated)

    def register_handler(self, event_type: str, handler: EventHandler) -> None:
        """
        Register a handler for a specific event type.

        Args:
            event_type: Stripe event type (e.g., 'account.updated')
            handler: Async callable taking the event object and a db session
        """
        self.event_handlers[event_type] = handler
        logger.info("webhook_handler_registered", event_type=event_type)

    def verify_signature(
        self, payload: bytes, signature: Optional[str], secret: Optional[str]
    ) -> stripe.Event:
        """
        Verify webhook signature and construct event.

        Args:
            payload: Raw request body as bytes
            signature: Stripe-Signature header value
            secret: Webhook signing secret

        Returns:
            stripe.Event: Verified Stripe event

        Raises:
            WebhookError: If signature verification fails
        """
        if not secret:
            logger.error("webhook_secret_not_configured")
            raise WebhookError("No webhook signing secret configured")
        if not signature:
            raise WebhookError("Missing Stripe-Signature header")

        try:
            event = stripe.Webhook.construct_event(
                payload=payload,
                sig_header=signature,
                secret=secret,
            )
        except stripe.SignatureVerificationError as e:
            logger.error("webhook_signature_verification_failed", error=str(e))
            raise WebhookError(str(e)) from e
        except ValueError as e:
            logger.error("webhook_payload_invalid", error=str(e))
            raise WebhookError(f"Invalid payload: {e}") from e

        logger.info(
            "webhook_signature_verified",
            event_id=event.id,
            event_type=event.type,
        )
        return event

    async def process_event(self, event: stripe.Event, db: AsyncSession) -> Dict[str, Any]:
        """
        Route a verified event to its handler.

        Args:
            event: Verified Stripe event
            db: Database session for handlers

        Returns:
            Dict[str, Any]: Processing result

        Raises:
            WebhookError: If the handler fails
        """
        event_id = event.id
        event_type = event.type

        handler = self.event_handlers.get(event_type)
        if handler is None:
            logger.info("webhook_no_handler", event_id=event_id, event_type=event_type)
            metrics.record_webhook_event(event_type, "no_handler")
            return {
                "status": "no_handler",
                "event_id": event_id,
                "message": f"No handler registered for event type: {event_type}",
            }

        try:
            result = await handler(event.data.object, db)
        except Exception as e:
            logger.error(
                "webhook_event_processing_failed",
                event_id=event_id,
                event_type=event_type,
                error=str(e),
            )
            metrics.record_webhook_event(event_type, "failed")
            raise WebhookError(f"Failed to process event {event_id}: {e}") from e

        logger.info(
            "webhook_event_processed",
            event_id=event_id,
            event_type=event_type,
            result=result.get("status"),
        )
        metrics.record_webhook_event(event_type, "success")
        return {"status": "success", "event_id": event_id, "message": result.get("status")}

    async def handle_account_updated(self, account: Any, db: AsyncSession) -> Dict[str, Any]:
        """
        Handle account.updated: record pilots Stripe now reports as verified.

        A pilot counts as verified once the account has its details submitted,
        no ``requirements.disabled_reason`` and payouts enabled. This stands in
        for the retired account-level ``verification.status == "verified"`` field
        and matches the dashboard check apart from the payouts requirement.

        Args:
            account: Connected account object from the event
            db: Database session

        Returns:
            Dict[str, Any]: Handler result
        """
        account_id = account.id
        result = await db.execute(select(Pilot).where(Pilot.stripe_account_id == account_id))
        pilot = result.scalar_one_or_none()

        if pilot is None:
            logger.warning("webhook_unknown_pilot", account_id=account_id)
            return {"status": "unknown_account"}

        if pilot.stripe_verified:
            return {"status": "already_verified"}

        if account_is_verified(account) and getattr(account, "payouts_enabled", False):
            pilot.stripe_verified = True
            await db.commit()
            logger.info("webhook_pilot_verified", pilot_id=str(pilot.id), account_id=account_id)
            return {"status": "verified"}

        return {"status": "unchanged"}
