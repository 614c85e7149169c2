"""
Pilot signup data and connected account creation.

Signup happens in two steps: an account step (email, password, pilot type)
then a profile step whose shape depends on the pilot type. Profiles are a
tagged union over ``individual`` and ``company`` validated when parsed.
"""
import re
from typing import Annotated, Any, Dict, Literal, Mapping, Optional, Union

import structlog
from pydantic import BaseModel, Field, TypeAdapter, ValidationError, field_validator

from rocket_deliveries.database.models import Pilot
from rocket_deliveries.integrations.stripe_client import StripeClient

logger = structlog.get_logger(__name__)

# Debit card attached as the payout method; a test token keeps the demo simple.
EXTERNAL_ACCOUNT_TOKEN = "tok_visa_debit"

# card_payments: connected accounts accept card payments directly
# transfers: the platform transfers funds to connected accounts
REQUESTED_CAPABILITIES = ("card_payments", "transfers")

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class AccountNotConnectedError(Exception):
    """Raised when money would move for a pilot who has no connected account yet."""

    pass


def connected_account_id(pilot: Pilot) -> str:
    """
    The pilot's connected account ID.

    Stripe treats a missing account as the platform itself, so callers that
    charge, read balances or pay out must never pass ``None`` along.

    Raises:
        AccountNotConnectedError: If the pilot has not finished signing up
    """
    if not pilot.stripe_account_id:
        raise AccountNotConnectedError(f"Pilot {pilot.id} has no connected account")
    return pilot.stripe_account_id


def _required(value: Optional[str], message: str) -> str:
    value = (value or "").strip()
    if not value:
        raise ValueError(message)
    return value


class AccountSignup(BaseModel):
    """First signup step: credentials and pilot type."""

    email: str = ""
    password: str = ""
    type: Literal["individual", "company"] = "individual"

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        v = _required(v, "Please enter your email address").lower()
        if not EMAIL_PATTERN.match(v):
            raise ValueError("Please enter a valid email address")
        return v

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        if not v:
            raise ValueError("Please enter a password")
        if len(v) < 6:
            raise ValueError("Your password must be at least 6 characters")
        return v


class _AddressFields(BaseModel):
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None
    country: str = "US"

    @field_validator("country")
    @classmethod
    def validate_country(cls, v: str) -> str:
        v = (v or "US").strip().upper()
        if len(v) != 2:
            raise ValueError("Country must be a 2-letter code")
        return v

    def stripe_address(self) -> Dict[str, Optional[str]]:
        return {
            "line1": self.address,
            "city": self.city,
            "country": self.country,
            "state": self.state,
            "postal_code": self.postal_code,
        }


class IndividualProfile(_AddressFields):
    type: Literal["individual"] = "individual"
    first_name: str = ""
    last_name: str = ""

    @field_validator("first_name")
    @classmethod
    def validate_first_name(cls, v: str) -> str:
        return _required(v, "Please enter your first name")

    @field_validator("last_name")
    @classmethod
    def validate_last_name(cls, v: str) -> str:
        return _required(v, "Please enter your last name")


class CompanyProfile(_AddressFields):
    type: Literal["company"] = "company"
    business_name: str = ""

    @field_validator("business_name")
    @classmethod
    def validate_business_name(cls, v: str) -> str:
        return _required(v, "Please enter your business name")


PilotProfile = Annotated[Union[IndividualProfile, CompanyProfile], Field(discriminator="type")]

_profile_adapter = TypeAdapter(PilotProfile)


def parse_profile(data: Mapping[str, Any]) -> Union[IndividualProfile, CompanyProfile]:
    """Validate profile form data into the variant selected by its ``type``."""
    return _profile_adapter.validate_python(dict(data))


def first_error_message(error: ValidationError) -> str:
    """Human readable message for the first validation error."""
    first = error.errors()[0]
    ctx_error = first.get("ctx", {}).get("error")
    if first["type"] == "value_error" and ctx_error is not None:
        return str(ctx_error)
    if first["type"] in ("literal_error", "union_tag_invalid"):
        return "Please choose whether you deliver as an individual or a company"
    return first["msg"]


def apply_profile(pilot: Pilot, profile: Union[IndividualProfile, CompanyProfile]) -> None:
    """Copy a validated profile onto the pilot record."""
    pilot.set_type(profile.type)
    if isinstance(profile, IndividualProfile):
        pilot.first_name = profile.first_name
        pilot.last_name = profile.last_name
    else:
        pilot.business_name = profile.business_name
    pilot.address = profile.address
    pilot.city = profile.city
    pilot.state = profile.state
    pilot.postal_code = profile.postal_code
    pilot.country = profile.country


def build_account_params(
    profile: Union[IndividualProfile, CompanyProfile], email: str
) -> Dict[str, Any]:
    """
    Build the parameters for creating a custom connected account.

    Args:
        profile: Validated pilot profile
        email: Pilot email address

    Returns:
        Dict[str, Any]: Account creation parameters
    """
    params: Dict[str, Any] = {
        "type": "custom",
        "business_type": profile.type,
        "country": profile.country,
        "email": email,
        "external_account": EXTERNAL_ACCOUNT_TOKEN,
        "capabilities": {name: {"requested": True} for name in REQUESTED_CAPABILITIES},
    }
    if isinstance(profile, IndividualProfile):
        params["individual"] = {
            "email": email,
            "first_name": profile.first_name,
            "last_name": profile.last_name,
            "address": profile.stripe_address(),
        }
    else:
        params["company"] = {
            "name": profile.business_name,
            "address": profile.stripe_address(),
        }
    return params


async def create_connected_account(
    profile: Union[IndividualProfile, CompanyProfile],
    email: str,
    stripe_client: StripeClient,
) -> str:
    """
    Create the pilot's custom connected account.

    Companies also get their account opener registered as a person on the
    account, identified by the pilot's email.

    Args:
        profile: Validated pilot profile
        email: Pilot email address
        stripe_client: Stripe API client

    Returns:
        str: Connected account ID

    Raises:
        StripeError: If Stripe rejects either request
    """
    account = await stripe_client.create_account(build_account_params(profile, email))

    if isinstance(profile, CompanyProfile):
        await stripe_client.create_person(
            account.id,
            {"email": email, "relationship": {"representative": True}},
        )
        logger.info("account_opener_created", account_id=account.id)

    return account.id
