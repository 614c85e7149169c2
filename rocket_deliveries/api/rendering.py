"""Jinja2 templates and the filters they use."""
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from fastapi import Request
from fastapi.responses import HTMLResponse
from fastapi.templating import Jinja2Templates

from rocket_deliveries.config import get_settings
from rocket_deliveries.database.models import Pilot

from .session import pop_flashes

templates_dir = Path(__file__).parent / "templates"
templates = Jinja2Templates(directory=str(templates_dir))


def format_amount(cents: Optional[int]) -> str:
    """Format minor units as dollars, e.g. 1234 -> '$12.34'."""
    return f"${(cents or 0) / 100:,.2f}"


def format_datetime(value: Optional[datetime]) -> str:
    if value is None:
        return ""
    return value.strftime("%b %d, %Y %H:%M")


templates.env.filters["amount"] = format_amount
templates.env.filters["datetime"] = format_datetime


def render(
    request: Request,
    name: str,
    context: Optional[Dict[str, Any]] = None,
    pilot: Optional[Pilot] = None,
    status_code: int = 200,
) -> HTMLResponse:
    """Render a template with the pilot, app name and pending flash messages."""
    settings = get_settings()
    page = {
        "pilot": pilot,
        "app_name": settings.app_name,
        "messages": pop_flashes(request),
    }
    page.update(context or {})
    return templates.TemplateResponse(request, name, page, status_code=status_code)
