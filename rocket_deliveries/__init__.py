"""Rocket Deliveries: pilot onboarding, simulated rides and payouts on Stripe Connect."""

__version__ = "0.1.0"
