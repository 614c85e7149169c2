"""
Pydantic schemas for JSON responses.
"""
from typing import Optional

from pydantic import BaseModel, Field


class VerificationResponse(BaseModel):
    """Response schema for the pilot verification check."""

    stripe_verified: bool = Field(..., description="Whether Stripe has verified the pilot")
    stripe_verified_reason: Optional[str] = Field(
        default=None, description="Why the connected account is disabled, if it is"
    )

    model_config = {
        "json_schema_extra": {
            "examples": [
                {"stripe_verified": True, "stripe_verified_reason": None},
                {"stripe_verified": False, "stripe_verified_reason": "requirements.past_due"},
            ]
        }
    }


class WebhookResponse(BaseModel):
    """Response schema for webhook processing."""

    status: str = Field(..., description="Processing status")
    event_id: str = Field(..., description="Stripe event ID")
    message: Optional[str] = Field(default=None, description="Status message")
