"""
Stripe API client for the Connect marketplace flows.

Implements:
- Custom connected account creation (and the company account opener)
- Account status, balance and onboarding links for a pilot's account
- Destination charges and instant payouts
- Webhook endpoint registration

Calls are made once: there is no retry, idempotency key or circuit breaker.
Every SDK error is classified and re-raised as ``StripeError``.
"""
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

import stripe
import structlog

from rocket_deliveries.config import Settings, get_settings
from rocket_deliveries.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)

ACCOUNT_UPDATED = "account.updated"


class StripeErrorType(Enum):
    """Classification of Stripe errors."""

    TRANSIENT = "transient"  # Network or Stripe-side failures
    PERMANENT = "permanent"  # Bad request, declined card, bad credentials
    RATE_LIMIT = "rate_limit"


class StripeError(Exception):
    """Base exception for Stripe-related errors."""

    def __init__(
        self,
        message: str,
        error_type: StripeErrorType,
        original_error: Optional[Exception] = None,
    ):
        """
        Initialize Stripe error.

        Args:
            message: Error message
            error_type: Classification of error
            original_error: Original Stripe exception
        """
        super().__init__(message)
        self.error_type = error_type
        self.original_error = original_error


class StripeClient:
    """
    Wrapper for the Stripe API used by the pilot routes.

    All methods are coroutines built on the SDK's async request methods.
    """

    def __init__(self, settings: Optional[Settings] = None) -> None:
        """Initialize Stripe client."""
        settings = settings or get_settings()
        stripe.api_key = settings.stripe_secret_key
        if settings.stripe_api_version:
            stripe.api_version = settings.stripe_api_version
        self.settings = settings

        logger.info(
            "stripe_client_initialized",
            api_version=stripe.api_version,
            test_mode=settings.is_test_mode,
        )

    @staticmethod
    def _classify_error(error: stripe.StripeError) -> StripeErrorType:
        """
        Classify Stripe error.

        Args:
            error: Stripe error

        Returns:
            StripeErrorType: Error classification
        """
        if isinstance(error, stripe.RateLimitError):
            return StripeErrorType.RATE_LIMIT
        elif isinstance(error, (stripe.APIConnectionError, stripe.APIError)):
            return StripeErrorType.TRANSIENT
        elif isinstance(
            error,
            (
                stripe.CardError,
                stripe.InvalidRequestError,
                stripe.AuthenticationError,
                stripe.PermissionError,
            ),
        ):
            return StripeErrorType.PERMANENT
        else:
            # Unknown errors are treated as transient
            return StripeErrorType.TRANSIENT

    def _handle_stripe_error(self, operation: str, error: stripe.StripeError) -> StripeError:
        """Log, count and wrap a Stripe SDK error."""
        error_type = self._classify_error(error)

        logger.error(
            "stripe_api_error",
            operation=operation,
            error_type=error_type.value,
            error_code=getattr(error, "code", None),
            error_message=str(error),
        )
        metrics.record_stripe_api_call(operation, "error")
        metrics.record_stripe_api_error(error_type.value)

        return StripeError(
            message=str(error),
            error_type=error_type,
            original_error=error,
        )

    async def _call(
        self, operation: str, func: Callable[..., Awaitable[Any]], *args: Any, **kwargs: Any
    ) -> Any:
        try:
            result = await func(*args, **kwargs)
        except stripe.StripeError as e:
            raise self._handle_stripe_error(operation, e) from e
        metrics.record_stripe_api_call(operation, "success")
        return result

    async def create_account(self, params: Dict[str, Any]) -> stripe.Account:
        """
        Create a custom connected account.

        Args:
            params: Account creation parameters

        Returns:
            stripe.Account: Created account

        Raises:
            StripeError: If account creation fails
        """
        logger.info(
            "creating_connected_account",
            business_type=params.get("business_type"),
            country=params.get("country"),
        )
        account = await self._call("create_account", stripe.Account.create_async, **params)
        logger.info("connected_account_created", account_id=account.id)
        return account

    async def create_person(self, account_id: str, params: Dict[str, Any]) -> stripe.Person:
        """Attach a person (e.g. the account opener) to a connected account."""
        logger.info("creating_account_person", account_id=account_id)
        return await self._call(
            "create_person", stripe.Account.create_person_async, account_id, **params
        )

    async def retrieve_account(self, account_id: str) -> stripe.Account:
        """Retrieve a connected account by ID."""
        logger.info("retrieving_connected_account", account_id=account_id)
        return await self._call("retrieve_account", stripe.Account.retrieve_async, account_id)

    async def create_account_link(
        self, account_id: str, refresh_url: str, return_url: str
    ) -> stripe.AccountLink:
        """
        Create a Connect Onboarding link collecting currently due requirements.

        Args:
            account_id: Connected account ID
            refresh_url: Where Stripe sends the pilot if the link expired
            return_url: Where Stripe sends the pilot after onboarding

        Returns:
            stripe.AccountLink: Link with a single-use ``url``
        """
        logger.info("creating_account_link", account_id=account_id)
        return await self._call(
            "create_account_link",
            stripe.AccountLink.create_async,
            account=account_id,
            type="account_onboarding",
            collection_options={"fields": "currently_due"},
            refresh_url=refresh_url,
            return_url=return_url,
        )

    async def retrieve_balance(self, account_id: str) -> stripe.Balance:
        """Retrieve the balance of a connected account."""
        return await self._call(
            "retrieve_balance", stripe.Balance.retrieve_async, stripe_account=account_id
        )

    async def create_charge(
        self,
        amount_cents: int,
        currency: str,
        source: str,
        destination: str,
        transfer_amount_cents: int,
    ) -> stripe.Charge:
        """
        Create a destination charge on the platform.

        Args:
            amount_cents: Amount charged to the passenger
            currency: Currency code (e.g., 'usd')
            source: Card token to charge
            destination: Connected account receiving the transfer
            transfer_amount_cents: Amount transferred to the connected account

        Returns:
            stripe.Charge: Created charge

        Raises:
            StripeError: If the charge fails
        """
        logger.info(
            "creating_charge",
            amount_cents=amount_cents,
            currency=currency,
            destination=destination,
            transfer_amount_cents=transfer_amount_cents,
        )
        charge = await self._call(
            "create_charge",
            stripe.Charge.create_async,
            source=source,
            amount=amount_cents,
            currency=currency,
            description=self.settings.app_name,
            statement_descriptor_suffix=self.settings.app_name[:22],
            transfer_data={
                "amount": transfer_amount_cents,
                "destination": destination,
            },
        )
        logger.info("charge_created", charge_id=charge.id, status=charge.status)
        return charge

    async def create_payout(
        self, account_id: str, amount_cents: int, currency: str
    ) -> stripe.Payout:
        """
        Create an instant payout from a connected account's balance.

        Args:
            account_id: Connected account ID
            amount_cents: Amount to pay out
            currency: Currency code

        Returns:
            stripe.Payout: Created payout

        Raises:
            StripeError: If payout creation fails
        """
        logger.info(
            "creating_payout",
            account_id=account_id,
            amount_cents=amount_cents,
            currency=currency,
        )
        payout = await self._call(
            "create_payout",
            stripe.Payout.create_async,
            amount=amount_cents,
            currency=currency,
            method="instant",
            statement_descriptor=self.settings.app_name,
            stripe_account=account_id,
        )
        logger.info("payout_created", payout_id=payout.id, status=payout.status)
        return payout

    async def mark_financing_offer_delivered(self, financing_offer_id: str) -> Any:
        """Tell Stripe Capital the financing offer has been shown to the pilot."""
        logger.info("marking_financing_offer_delivered", financing_offer_id=financing_offer_id)
        return await self._call(
            "mark_financing_offer_delivered",
            stripe.raw_request_async,
            "post",
            f"/v1/capital/financing_offers/{financing_offer_id}/mark_delivered",
        )

    async def register_webhook_endpoint(self, url: str) -> str:
        """
        (Re)register the Connect webhook endpoint for ``url``.

        An existing endpoint with the same URL is deleted first, since Stripe
        only reveals the signing secret when an endpoint is created.

        Args:
            url: Public URL of the webhook route

        Returns:
            str: Webhook signing secret for the new endpoint

        Raises:
            StripeError: If listing, deleting or creating fails
        """
        existing = await self._call("list_webhook_endpoints", stripe.WebhookEndpoint.list_async)
        for endpoint in existing.data:
            if endpoint.url == url:
                logger.info("deleting_webhook_endpoint", endpoint_id=endpoint.id, url=url)
                await self._call(
                    "delete_webhook_endpoint", stripe.WebhookEndpoint.delete_async, endpoint.id
                )

        created = await self._call(
            "create_webhook_endpoint",
            stripe.WebhookEndpoint.create_async,
            enabled_events=[ACCOUNT_UPDATED],
            connect=True,
            url=url,
        )
        logger.info("webhook_endpoint_registered", endpoint_id=created.id, url=url)
        return created.secret
