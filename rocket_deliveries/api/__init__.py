"""Web application: pilot pages, Stripe endpoints and health checks."""
