"""Configuration package for Rocket Deliveries."""
from .settings import get_settings, Settings

__all__ = ["Settings", "get_settings"]
