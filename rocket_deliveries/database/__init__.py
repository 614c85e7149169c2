"""Database package for Rocket Deliveries."""
from .connection import close_db, get_db, get_session_factory, init_db
from .models import (
    Base,
    Financing,
    Passenger,
    Pilot,
    Ride,
)

__all__ = [
    "Base",
    "Financing",
    "Passenger",
    "Pilot",
    "Ride",
    "close_db",
    "get_db",
    "get_session_factory",
    "init_db",
]
