"""
Main FastAPI application.

Server-rendered pilot marketplace with:
- Signed cookie sessions
- Stripe webhook endpoint registration at startup
- Request ID tracking and structured logging
- Error pages, with tracebacks outside production only
"""
import time
import traceback
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator

import structlog
from fastapi import FastAPI, Request, Response, status
from fastapi.exception_handlers import http_exception_handler
from fastapi.responses import RedirectResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.sessions import SessionMiddleware

from rocket_deliveries.config import get_settings
from rocket_deliveries.database.connection import close_db, init_db
from rocket_deliveries.integrations.stripe_client import StripeError
from rocket_deliveries.monitoring.logging import setup_logging

from .dependencies import LoginRequired, SignupIncomplete, get_stripe_client
from .rendering import render
from .routes import monitoring_router, pilot_router, site_router, stripe_router

# Setup logging first
setup_logging()
logger = structlog.get_logger(__name__)


async def register_webhooks(app: FastAPI) -> None:
    """
    Register the webhook endpoint with Stripe and keep its signing secret.

    On failure the secret configured in settings (if any) stays in place,
    which is what forwarding with ``stripe listen`` relies on.
    """
    settings = get_settings()
    try:
        secret = await get_stripe_client().register_webhook_endpoint(settings.webhooks_url)
    except StripeError as e:
        logger.error("webhook_registration_failed", url=settings.webhooks_url, error=str(e))
        return
    app.state.webhook_secret = secret


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, Any]:
    """
    Application lifespan manager.

    Handles startup and shutdown events.
    """
    settings = get_settings()

    # Initialize database
    try:
        await init_db()
        logger.info("database_initialized")
    except Exception as e:
        logger.error("database_initialization_failed", error=str(e))
        raise

    if settings.register_webhooks:
        await register_webhooks(app)

    logger.info(
        "application_startup",
        app_name=settings.app_name,
        public_domain=settings.public_domain,
        env=settings.app_env,
        test_mode=settings.is_test_mode,
    )

    yield

    # Shutdown
    logger.info("application_shutdown")
    try:
        await close_db()
        logger.info("database_connections_closed")
    except Exception as e:
        logger.error("database_shutdown_error", error=str(e))


def create_app() -> FastAPI:
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        description="Delivery pilot onboarding, simulated rides and payouts on Stripe Connect.",
        version="0.1.0",
        lifespan=lifespan,
        docs_url="/docs" if not settings.is_production else None,
        redoc_url=None,
    )
    app.state.webhook_secret = settings.stripe_webhook_secret

    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.secret_key,
        session_cookie="rocket_session",
        max_age=settings.session_max_age,
        https_only=settings.is_production,
    )

    @app.middleware("http")
    async def add_request_id_middleware(request: Request, call_next: Any) -> Response:
        """
        Add request ID to all requests for tracing.

        Also adds timing information and structured logging context.
        """
        request_id = str(uuid.uuid4())
        start_time = time.time()

        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )

        try:
            response = await call_next(request)
            response.headers["X-Request-ID"] = request_id
            logger.info(
                "request_completed",
                status_code=response.status_code,
                duration_seconds=time.time() - start_time,
            )
            return response

        except Exception as e:
            logger.error(
                "request_failed",
                error=str(e),
                duration_seconds=time.time() - start_time,
            )
            raise

        finally:
            structlog.contextvars.clear_contextvars()

    @app.exception_handler(LoginRequired)
    async def login_required_handler(request: Request, exc: LoginRequired) -> Response:
        return RedirectResponse("/pilots/login", status_code=status.HTTP_302_FOUND)

    @app.exception_handler(SignupIncomplete)
    async def signup_incomplete_handler(request: Request, exc: SignupIncomplete) -> Response:
        # Form posts are redirected with 303 so the browser follows up with a GET
        code = status.HTTP_302_FOUND if request.method == "GET" else status.HTTP_303_SEE_OTHER
        return RedirectResponse("/pilots/signup", status_code=code)

    @app.exception_handler(StarletteHTTPException)
    async def not_found_handler(request: Request, exc: StarletteHTTPException) -> Response:
        if exc.status_code == status.HTTP_404_NOT_FOUND and request.method == "GET":
            return render(request, "404.html", status_code=status.HTTP_404_NOT_FOUND)
        return await http_exception_handler(request, exc)

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> Response:
        """
        Global exception handler for unhandled exceptions.
        """
        logger.error(
            "unhandled_exception",
            error=str(exc),
            error_type=type(exc).__name__,
            path=request.url.path,
        )
        details = None
        if not settings.is_production:
            details = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))

        return render(
            request,
            "error.html",
            {"message": str(exc) or type(exc).__name__, "details": details},
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    # Include routers
    app.include_router(site_router)
    app.include_router(pilot_router)
    app.include_router(stripe_router)
    app.include_router(monitoring_router)

    return app


app = create_app()


def run() -> None:
    """Start the server with uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "rocket_deliveries.api.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
