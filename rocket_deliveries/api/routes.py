"""
API routes for pilot onboarding, the dashboard, rides, Stripe flows and health.
"""
import uuid
from typing import Any, Dict, Optional

import structlog
from fastapi import APIRouter, Depends, Form, Header, HTTPException, Query, Request, Response, status
from fastapi.responses import HTMLResponse, PlainTextResponse, RedirectResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from rocket_deliveries.config import get_settings
from rocket_deliveries.core.financing import (
    FinancingTransitionError,
    list_financings,
    mark_delivered,
)
from rocket_deliveries.core.onboarding import (
    AccountSignup,
    apply_profile,
    create_connected_account,
    first_error_message,
    parse_profile,
)
from rocket_deliveries.core.payouts import payout_available_balance
from rocket_deliveries.core.rides import RideChargeError, simulate_ride
from rocket_deliveries.core.verification import check_pilot_verified
from rocket_deliveries.database.connection import get_db
from rocket_deliveries.database.models import Financing, Pilot
from rocket_deliveries.integrations.stripe_client import StripeClient, StripeError
from rocket_deliveries.integrations.webhook_handler import WebhookError, WebhookHandler
from rocket_deliveries.monitoring.metrics import metrics

from .dependencies import (
    AuthenticationError,
    authenticate,
    get_optional_pilot,
    get_stripe_client,
    get_webhook_handler,
    require_connected_pilot,
    require_pilot,
)
from .rendering import render
from .schemas import VerificationResponse, WebhookResponse
from .session import flash, log_in, log_out

logger = structlog.get_logger(__name__)

# Create routers
site_router = APIRouter(tags=["site"])
pilot_router = APIRouter(prefix="/pilots", tags=["pilots"])
stripe_router = APIRouter(prefix="/pilots/stripe", tags=["stripe"])
monitoring_router = APIRouter(tags=["monitoring"])


def _redirect(url: str) -> RedirectResponse:
    """Redirect a form POST to a page fetched with GET."""
    return RedirectResponse(url, status_code=status.HTTP_303_SEE_OTHER)


def signup_step(pilot: Optional[Pilot], done: bool = False) -> str:
    """Which signup step to show, based on how far the pilot has got."""
    if pilot is None:
        return "account"
    if done:
        return "done"
    if not pilot.profile_complete:
        return "profile"
    return "verification"


@site_router.get("/", response_class=HTMLResponse)
async def index(
    request: Request, pilot: Optional[Pilot] = Depends(get_optional_pilot)
) -> HTMLResponse:
    """Landing page."""
    return render(request, "index.html", pilot=pilot)


@pilot_router.get("/signup", response_class=HTMLResponse)
async def signup_form(
    request: Request,
    done: bool = False,
    pilot: Optional[Pilot] = Depends(get_optional_pilot),
) -> HTMLResponse:
    """Display the signup form on the step matching the pilot's progress."""
    return render(request, "signup.html", {"step": signup_step(pilot, done)}, pilot=pilot)


@pilot_router.post("/signup")
async def signup(
    request: Request,
    db: AsyncSession = Depends(get_db),
    stripe_client: StripeClient = Depends(get_stripe_client),
    pilot: Optional[Pilot] = Depends(get_optional_pilot),
) -> Response:
    """
    Create a pilot, or complete the signed-in pilot's profile.

    Anonymous requests create the pilot and start a session. Signed-in pilots
    submit their profile, which creates their connected account and sends
    them on to identity verification.
    """
    form = {key: value for key, value in (await request.form()).items() if isinstance(value, str)}
    if pilot is None:
        return await _create_pilot(request, db, form)
    return await _complete_profile(request, db, stripe_client, pilot, form)


async def _create_pilot(
    request: Request, db: AsyncSession, form: Dict[str, str]
) -> Response:
    try:
        account = AccountSignup(
            email=form.get("email", ""),
            password=form.get("password", ""),
            type=form.get("pilot_type") or "individual",
        )
    except ValidationError as e:
        logger.info("signup_validation_error", error=first_error_message(e))
        return render(
            request,
            "signup.html",
            {"step": "account", "error": first_error_message(e), "form": form},
            status_code=status.HTTP_400_BAD_REQUEST,
        )

    existing = await db.execute(select(Pilot.id).where(Pilot.email == account.email))
    if existing.first() is not None:
        return render(
            request,
            "signup.html",
            {"step": "account", "error": "That email address is already registered", "form": form},
            status_code=status.HTTP_400_BAD_REQUEST,
        )

    pilot = Pilot(email=account.email, type=account.type)
    pilot.set_password(account.password)
    db.add(pilot)
    await db.commit()

    log_in(request, pilot)
    logger.info("pilot_created", pilot_id=str(pilot.id), pilot_type=pilot.type)
    return _redirect("/pilots/signup")


async def _complete_profile(
    request: Request,
    db: AsyncSession,
    stripe_client: StripeClient,
    pilot: Pilot,
    form: Dict[str, str],
) -> Response:
    data: Dict[str, Any] = dict(form)
    data["type"] = form.get("pilot_type") or pilot.type
    try:
        profile = parse_profile(data)
    except ValidationError as e:
        return render(
            request,
            "signup.html",
            {"step": "profile", "error": first_error_message(e), "form": form},
            pilot=pilot,
            status_code=status.HTTP_400_BAD_REQUEST,
        )

    apply_profile(pilot, profile)

    if not pilot.stripe_account_id:
        try:
            pilot.stripe_account_id = await create_connected_account(
                profile, pilot.email, stripe_client
            )
        except StripeError as e:
            logger.error("connected_account_creation_failed", pilot_id=str(pilot.id), error=str(e))
            raise

    await db.commit()
    logger.info("pilot_profile_completed", pilot_id=str(pilot.id))
    return _redirect("/pilots/stripe/verify")


@pilot_router.get("/login", response_class=HTMLResponse)
async def login_form(request: Request) -> HTMLResponse:
    """Simple pilot login."""
    return render(request, "login.html")


@pilot_router.post("/login")
async def login(
    request: Request,
    email: str = Form(""),
    password: str = Form(""),
    db: AsyncSession = Depends(get_db),
) -> RedirectResponse:
    """Check credentials and start a session."""
    try:
        pilot = await authenticate(db, email, password)
    except AuthenticationError as e:
        logger.info("pilot_login_failed", reason=str(e))
        flash(request, str(e), "error")
        return _redirect("/pilots/login")

    log_in(request, pilot)
    logger.info("pilot_logged_in", pilot_id=str(pilot.id))
    return _redirect("/pilots/dashboard")


@pilot_router.get("/logout")
async def logout(request: Request) -> RedirectResponse:
    """Delete the pilot from the session."""
    log_out(request)
    return RedirectResponse("/", status_code=status.HTTP_302_FOUND)


@pilot_router.get("/dashboard", response_class=HTMLResponse)
async def dashboard(
    request: Request,
    show_banner: bool = Query(False, alias="showBanner"),
    pilot: Pilot = Depends(require_connected_pilot),
    db: AsyncSession = Depends(get_db),
    stripe_client: StripeClient = Depends(get_stripe_client),
) -> Response:
    """
    Show the pilot's balance, recent rides and verification status.

    Pilots who have not finished signing up are sent back to the signup flow.
    """
    balance = await stripe_client.retrieve_balance(pilot.stripe_account_id)
    rides = await pilot.list_recent_rides(db)
    verification = await check_pilot_verified(pilot, db, stripe_client)
    financings = await list_financings(pilot, db)

    # One balance entry per currency; rides are only charged in USD
    return render(
        request,
        "dashboard.html",
        {
            "balance_available": balance.available[0].amount if balance.available else 0,
            "balance_pending": balance.pending[0].amount if balance.pending else 0,
            "rides": rides,
            "rides_total_amount": sum(ride.amount_for_pilot() for ride in rides),
            "financings": financings,
            "show_banner": show_banner,
            "stripe_verified": verification.verified,
            "stripe_verified_reason": verification.reason,
        },
        pilot=pilot,
    )


@pilot_router.get("/verified", response_model=VerificationResponse)
async def verified(
    pilot: Pilot = Depends(require_pilot),
    db: AsyncSession = Depends(get_db),
    stripe_client: StripeClient = Depends(get_stripe_client),
) -> Dict[str, Any]:
    """Check whether Stripe has verified this pilot."""
    verification = await check_pilot_verified(pilot, db, stripe_client)
    return {
        "stripe_verified": verification.verified,
        "stripe_verified_reason": verification.reason,
    }


@pilot_router.post("/rides")
async def create_ride(
    immediate_balance: Optional[str] = Form(None),
    payout_limit: Optional[str] = Form(None),
    pilot: Pilot = Depends(require_connected_pilot),
    db: AsyncSession = Depends(get_db),
    stripe_client: StripeClient = Depends(get_stripe_client),
) -> Response:
    """Generate a test ride with sample data for the signed-in pilot."""
    behavior = None
    if immediate_balance:
        behavior = "immediate_balance"
    elif payout_limit:
        behavior = "payout_limit"

    try:
        await simulate_ride(pilot, db, stripe_client, behavior)
    except RideChargeError:
        return PlainTextResponse("Payment Required", status_code=status.HTTP_402_PAYMENT_REQUIRED)

    return _redirect("/pilots/dashboard")


@pilot_router.post("/financing/{financing_id}/delivered")
async def financing_delivered(
    financing_id: uuid.UUID,
    pilot: Pilot = Depends(require_pilot),
    db: AsyncSession = Depends(get_db),
    stripe_client: StripeClient = Depends(get_stripe_client),
) -> RedirectResponse:
    """Record that the pilot has been shown a financing offer."""
    result = await db.execute(
        select(Financing).where(Financing.id == financing_id, Financing.pilot_id == pilot.id)
    )
    financing = result.scalar_one_or_none()
    if financing is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Financing not found")

    try:
        await mark_delivered(financing, db, stripe_client)
    except FinancingTransitionError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except StripeError as e:
        logger.error("financing_mark_delivered_failed", financing_id=str(financing_id), error=str(e))

    return _redirect("/pilots/dashboard")


@stripe_router.get("/verify")
async def verify(
    pilot: Pilot = Depends(require_connected_pilot),
    stripe_client: StripeClient = Depends(get_stripe_client),
) -> RedirectResponse:
    """Redirect to Stripe's hosted Connect Onboarding to verify the pilot's identity."""
    settings = get_settings()
    try:
        account_link = await stripe_client.create_account_link(
            pilot.stripe_account_id,
            # Expired or rejected links come back here for a fresh one
            refresh_url=f"{settings.public_domain}/pilots/stripe/verify",
            return_url=f"{settings.public_domain}/pilots/dashboard?showBanner=true",
        )
    except StripeError as e:
        logger.error("account_link_creation_failed", pilot_id=str(pilot.id), error=str(e))
        return RedirectResponse("/pilots/dashboard", status_code=status.HTTP_302_FOUND)

    return RedirectResponse(account_link.url, status_code=status.HTTP_302_FOUND)


@stripe_router.post("/webhooks", response_model=WebhookResponse)
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None, alias="Stripe-Signature"),
    db: AsyncSession = Depends(get_db),
    webhook_handler: WebhookHandler = Depends(get_webhook_handler),
) -> Any:
    """
    Receive Connect events from Stripe.

    Once the signature checks out the response is always 200, since Stripe
    retries any other status.
    """
    payload = await request.body()
    secret = getattr(request.app.state, "webhook_secret", None)

    try:
        event = webhook_handler.verify_signature(payload, stripe_signature, secret)
    except WebhookError as e:
        metrics.record_webhook_signature_failure()
        return PlainTextResponse(f"Webhook error: {e}", status_code=status.HTTP_400_BAD_REQUEST)

    try:
        return await webhook_handler.process_event(event, db)
    except WebhookError as e:
        await db.rollback()
        logger.error("api_webhook_error", event_id=event.id, error=str(e))
        return {"status": "failed", "event_id": event.id, "message": str(e)}


@stripe_router.post("/payout")
async def payout(
    pilot: Pilot = Depends(require_connected_pilot),
    stripe_client: StripeClient = Depends(get_stripe_client),
) -> RedirectResponse:
    """Generate an instant payout with Stripe for the available balance."""
    await payout_available_balance(pilot, stripe_client)
    return _redirect("/pilots/dashboard")


@monitoring_router.get("/_ah/health", response_class=PlainTextResponse)
async def health() -> str:
    """Liveness check for the hosting platform."""
    return "ok"


@monitoring_router.get("/metrics", include_in_schema=False)
async def prometheus_metrics() -> Response:
    """Expose Prometheus metrics."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
