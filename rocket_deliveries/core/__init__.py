"""Pilot onboarding, verification, rides, payouts and financing."""
