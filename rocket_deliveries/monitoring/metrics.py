"""
Prometheus metrics for the marketplace.

Tracks:
- Stripe API calls and errors by operation
- Simulated rides by outcome and amount
- Payouts by outcome
- Webhook events by type and outcome
"""
from prometheus_client import Counter, Histogram

# Stripe API metrics
stripe_api_requests_total = Counter(
    "stripe_api_requests_total",
    "Total Stripe API requests",
    ["operation", "status"],  # operation: create_account, create_charge, etc.
)

stripe_api_errors_total = Counter(
    "stripe_api_errors_total",
    "Total Stripe API errors",
    ["error_type"],  # transient, permanent, rate_limit
)

# Ride metrics
rides_total = Counter(
    "rides_total",
    "Total simulated rides",
    ["status"],  # charged, charge_failed
)

ride_amount_cents = Histogram(
    "ride_amount_cents",
    "Simulated ride amounts in cents",
    buckets=(1000, 2000, 3000, 4000, 5000, 6000, 7000, 8000, 9000, 10000),
)

# Payout metrics
payouts_total = Counter(
    "payouts_total",
    "Total instant payout attempts",
    ["status"],  # created, failed
)

# Webhook metrics
webhook_events_total = Counter(
    "webhook_events_total",
    "Total verified webhook events",
    ["event_type", "status"],  # success, no_handler, failed
)

webhook_signature_failures_total = Counter(
    "webhook_signature_failures_total",
    "Webhook requests rejected by signature verification",
)


class MetricsCollector:
    """Helper class for collecting metrics."""

    @staticmethod
    def record_stripe_api_call(operation: str, status: str) -> None:
        """Record Stripe API call."""
        stripe_api_requests_total.labels(operation=operation, status=status).inc()

    @staticmethod
    def record_stripe_api_error(error_type: str) -> None:
        """Record Stripe API error."""
        stripe_api_errors_total.labels(error_type=error_type).inc()

    @staticmethod
    def record_ride(status: str, amount_cents: int) -> None:
        """Record a simulated ride."""
        rides_total.labels(status=status).inc()
        ride_amount_cents.observe(amount_cents)

    @staticmethod
    def record_payout(status: str) -> None:
        """Record a payout attempt."""
        payouts_total.labels(status=status).inc()

    @staticmethod
    def record_webhook_event(event_type: str, status: str) -> None:
        """Record webhook event processing."""
        webhook_events_total.labels(event_type=event_type, status=status).inc()

    @staticmethod
    def record_webhook_signature_failure() -> None:
        webhook_signature_failures_total.inc()


# Export singleton instance
metrics = MetricsCollector()
