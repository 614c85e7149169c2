"""Stripe API client and webhook handling."""
from .stripe_client import StripeClient, StripeError, StripeErrorType
from .webhook_handler import WebhookError, WebhookHandler

__all__ = ["StripeClient", "StripeError", "StripeErrorType", "WebhookError", "WebhookHandler"]
