"""Cookie session helpers: signed-in pilot and flash messages."""
from typing import List, Optional

from fastapi import Request

from rocket_deliveries.database.models import Pilot

PILOT_SESSION_KEY = "pilot_id"
FLASH_SESSION_KEY = "_flashes"


def log_in(request: Request, pilot: Pilot) -> None:
    request.session[PILOT_SESSION_KEY] = str(pilot.id)


def log_out(request: Request) -> None:
    request.session.clear()


def session_pilot_id(request: Request) -> Optional[str]:
    return request.session.get(PILOT_SESSION_KEY)


def flash(request: Request, message: str, category: str = "message") -> None:
    """Store a message to be shown on the next rendered page."""
    flashes = list(request.session.get(FLASH_SESSION_KEY, []))
    flashes.append([category, message])
    request.session[FLASH_SESSION_KEY] = flashes


def pop_flashes(request: Request, category: Optional[str] = None) -> List[str]:
    """Remove and return flashed messages, optionally only those of one category."""
    # Server error pages render outside the session middleware
    if "session" not in request.scope:
        return []
    flashes = request.session.get(FLASH_SESSION_KEY)
    if not flashes:
        return []
    taken = [message for cat, message in flashes if category is None or cat == category]
    remaining = [[cat, message] for cat, message in flashes if category is not None and cat != category]
    if remaining:
        request.session[FLASH_SESSION_KEY] = remaining
    else:
        request.session.pop(FLASH_SESSION_KEY, None)
    return taken
