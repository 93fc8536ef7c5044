"""Payment session manager: starts checkouts and opens provider payment sessions."""

import logging
from typing import Any

import stripe

from edukart.core.config import get_settings
from edukart.core.errors import PaymentProviderError
from edukart.core.stripe import get_stripe
from edukart.core.supabase import get_supabase_client
from edukart.schemas.auth import UserContext
from edukart.schemas.checkout import (
    CartItem,
    FreeSettlement,
    OrderResponse,
    PaymentSession,
    PricingQuote,
)
from edukart.services.pricing_service import PricingService
from edukart.services.settlement_service import (
    SettlementService,
    agreed_coupon,
    cart_snapshot,
    to_minor_units,
)

logger = logging.getLogger(__name__)


class PaymentService:
    """Service for checkout initialization with Stripe PaymentIntents."""

    def __init__(
        self,
        pricing: PricingService | None = None,
        settlement: SettlementService | None = None,
    ) -> None:
        """Initialize payment service.

        Args:
            pricing: Optional pricing service for testing.
            settlement: Optional settlement service for testing.
        """
        self.client = get_supabase_client()
        self.stripe = get_stripe()
        self.settings = get_settings()
        self.pricing = pricing or PricingService()
        self.settlement = settlement or SettlementService(pricing=self.pricing)

    async def init_checkout(
        self,
        items: list[CartItem],
        coupon_code: str | None,
        user: UserContext,
        idempotency_key: str | None = None,
    ) -> tuple[PricingQuote, FreeSettlement | PaymentSession]:
        """Start a checkout for a cart.

        The quote is always recomputed here from the cart and coupon code.
        A zero total settles immediately without contacting Stripe; resubmitting
        a free checkout under the same idempotency key returns the first order.

        Args:
            items: Tagged cart items.
            coupon_code: Optional coupon code.
            user: The buyer.
            idempotency_key: Optional client key for free checkouts.

        Returns:
            Tuple of (quote, FreeSettlement or PaymentSession).

        Raises:
            EmptyCartError: If nothing in the cart can be priced.
            CouponError: If the coupon cannot be applied.
            PaymentProviderError: If Stripe is not configured or rejects the request.
            PartialSettlementError: If a free checkout settled only partly.
        """
        if idempotency_key:
            previous = await self.settlement.get_attempt_by_idempotency_key(user.user_id, idempotency_key)
            if previous is not None:
                logger.info("Replaying free checkout %s for idempotency key", previous["id"])
                quote = await self.pricing.build_settlement_quote(
                    previous["cart_snapshot"], agreed_coupon(previous)
                )
                order = await self.settlement.read_back(previous)
                return quote, FreeSettlement(order=OrderResponse.model_validate(order))

        quote = await self.pricing.build_quote(items, coupon_code, user_id=user.user_id, fresh=True)

        if quote.total <= 0:
            order = await self.settlement.settle_free(user, quote, idempotency_key=idempotency_key)
            return quote, FreeSettlement(order=OrderResponse.model_validate(order))

        return quote, await self.create_payment_session(quote, user)

    async def create_payment_session(self, quote: PricingQuote, user: UserContext) -> PaymentSession:
        """Persist a checkout attempt and open a Stripe PaymentIntent for it.

        Args:
            quote: Quote with a positive total.
            user: The buyer.

        Returns:
            PaymentSession: Descriptor for the client payment widget.
        """
        if not self.settings.stripe_secret_key:
            raise PaymentProviderError("Payments are not configured")

        amount = to_minor_units(quote.total)
        currency = self.settings.payment_currency

        attempt_data: dict[str, Any] = {
            "user_id": str(user.user_id),
            "cart_snapshot": cart_snapshot(quote),
            "coupon_code": quote.applied_coupon.code if quote.applied_coupon else None,
            "discount_amount": str(quote.discount_amount),
            "amount": amount,
            "currency": currency,
            "status": "QUOTED",
        }
        attempt = self.client.table("checkout_attempts").insert(attempt_data).execute().data[0]
        attempt_id = attempt["id"]

        try:
            intent = self.stripe.PaymentIntent.create(
                amount=amount,
                currency=currency,
                automatic_payment_methods={"enabled": True},
                metadata={
                    "attempt_id": str(attempt_id),
                    "user_id": str(user.user_id),
                },
                receipt_email=user.email,
                idempotency_key=f"checkout-attempt-{attempt_id}",
            )
        except stripe.StripeError as e:
            logger.error("Stripe rejected payment intent for attempt %s: %s", attempt_id, str(e))
            self.client.table("checkout_attempts").update({"status": "CANCELLED"}).eq(
                "id", attempt_id
            ).execute()
            raise PaymentProviderError() from e

        self.client.table("checkout_attempts").update(
            {"provider_order_id": intent.id, "status": "SESSION_CREATED"}
        ).eq("id", attempt_id).execute()

        logger.info(
            "Payment session %s created for attempt %s (%d %s)",
            intent.id,
            attempt_id,
            amount,
            currency,
        )

        return PaymentSession(
            internal_ref=str(attempt_id),
            provider_order_id=intent.id,
            amount=amount,
            currency=currency,
            provider_key=self.settings.stripe_publishable_key,
            client_secret=intent.client_secret,
        )
