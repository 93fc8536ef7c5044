"""Stripe client configuration and singleton."""

import logging
from typing import Any

import stripe

from edukart.core.config import get_settings

logger = logging.getLogger(__name__)


def configure_stripe() -> None:
    """Configure Stripe SDK with API key from settings.

    This should be called once at application startup.
    If Stripe keys are not configured, Stripe operations will fail with clear errors.
    """
    settings = get_settings()
    if settings.stripe_secret_key:
        stripe.api_key = settings.stripe_secret_key
        if settings.is_production and settings.is_stripe_test_mode:
            logger.warning("Stripe test keys configured in production. Payments will not be captured.")
    else:
        logger.warning("Stripe secret key not configured. Paid checkouts will not work.")


def get_stripe() -> stripe:
    """Get the configured Stripe module.

    Returns:
        stripe: The Stripe module with API key configured.

    Note:
        Stripe SDK uses module-level configuration, so this returns
        the stripe module itself. Ensure configure_stripe() has been
        called before using Stripe API calls.
    """
    return stripe


async def check_stripe_configuration() -> dict[str, Any]:
    """Check that the keys needed for paid checkouts are configured.

    Does not call the Stripe API; free checkouts keep working without keys.

    Returns:
        dict: Status with 'healthy' boolean and optional 'error' message.
    """
    settings = get_settings()
    missing = [
        name
        for name, value in (
            ("STRIPE_SECRET_KEY", settings.stripe_secret_key),
            ("STRIPE_PUBLISHABLE_KEY", settings.stripe_publishable_key),
            ("PAYMENT_SIGNATURE_SECRET", settings.payment_signature_secret),
        )
        if not value
    ]
    if missing:
        return {"healthy": False, "error": f"Missing configuration: {', '.join(missing)}"}
    return {"healthy": True}
