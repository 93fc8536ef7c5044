"""Settlement engine: turns a verified (or free) checkout into orders exactly once.

Every paid settlement goes through the checkout attempt row. The first caller
to move an attempt from SESSION_CREATED to SETTLING is the only writer; every
other caller (client retry, duplicate tab, provider webhook) waits for that
writer and returns the same order or the same partial-settlement error.

Once the provider has captured a payment, settlement always ends in an order:
the discount agreed at checkout is honoured and the captured amount is what
gets allocated across the lines.
"""

import hashlib
import hmac
import logging
import secrets
import string
import time
from decimal import ROUND_HALF_UP, Decimal
from typing import Any
from uuid import UUID

import stripe
from postgrest.exceptions import APIError as PostgrestAPIError
from tenacity import retry, retry_if_result, stop_after_attempt, wait_fixed

from edukart.api.middleware.error_handler import AuthorizationError, NotFoundError
from edukart.core.config import get_settings
from edukart.core.errors import (
    CouponError,
    PartialSettlementError,
    PaymentPendingError,
    PaymentProviderError,
    SettlementInProgressError,
    VerificationError,
)
from edukart.core.stripe import get_stripe
from edukart.core.supabase import get_supabase_client
from edukart.models.order import (
    PROVIDER_SETTLEABLE_STATUSES,
    SETTLED_STATUSES,
    TERMINAL_FAILURE_STATUSES,
)
from edukart.schemas.auth import UserContext
from edukart.schemas.checkout import AppliedCoupon, PriceableLine, PricingQuote, ProductType
from edukart.schemas.coupon import CouponErrorReason
from edukart.services.email_service import EmailService
from edukart.services.fulfillment_service import FulfillmentService, LineAllocation
from edukart.services.order_service import OrderService
from edukart.services.pricing_service import PricingService

logger = logging.getLogger(__name__)

# Bounded wait for a concurrent writer to finish settling
SETTLEMENT_POLL_ATTEMPTS = 10
SETTLEMENT_POLL_INTERVAL_SECONDS = 0.5

ORDER_NUMBER_ALPHABET = string.ascii_uppercase + string.digits

UNIQUE_VIOLATION = "23505"


def sign_payment(provider_order_id: str, provider_payment_id: str, secret: str) -> str:
    """HMAC-SHA256 hex signature of "<order>|<payment>"."""
    message = f"{provider_order_id}|{provider_payment_id}".encode()
    return hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()


def verify_payment_signature(
    provider_order_id: str,
    provider_payment_id: str,
    signature: str,
    secret: str,
) -> bool:
    """Check a completion signature in constant time.

    Args:
        provider_order_id: Provider order ID from the callback.
        provider_payment_id: Provider payment ID from the callback.
        signature: Signature sent by the client.
        secret: Shared signing secret.

    Returns:
        bool: True only if the signature matches.
    """
    if not secret or not signature:
        return False
    expected = sign_payment(provider_order_id, provider_payment_id, secret)
    return hmac.compare_digest(expected, signature)


def to_minor_units(amount: Decimal) -> int:
    """Convert a major-unit amount (rupees) to minor units (paise)."""
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_minor_units(amount: int) -> Decimal:
    """Convert minor units (paise) back to rupees."""
    return (Decimal(amount) / 100).quantize(Decimal("0.01"))


def generate_order_number() -> str:
    """Generate an order number like ORD-1718000000000-AB12CD34E."""
    suffix = "".join(secrets.choice(ORDER_NUMBER_ALPHABET) for _ in range(9))
    return f"ORD-{int(time.time() * 1000)}-{suffix}"


def allocate_amounts(lines: list[PriceableLine], final_amount: Decimal) -> list[Decimal]:
    """Split the amount charged across lines in proportion to their price.

    Uses largest-remainder rounding to the paisa, so the allocations always
    sum to final_amount exactly. Free lines get 0, unless nothing in the
    order is chargeable any more, in which case the amount is split evenly.

    Args:
        lines: Priced lines of the order.
        final_amount: Amount actually charged.

    Returns:
        list[Decimal]: One allocation per line, in line order.
    """
    if not lines or final_amount <= 0:
        return [Decimal("0.00") for _ in lines]

    weights = [line.chargeable_amount for line in lines]
    base = sum(weights, Decimal("0"))
    if base <= 0:
        weights = [Decimal("1") for _ in lines]
        base = Decimal(len(lines))

    total_minor = to_minor_units(final_amount)
    exact = [weight * total_minor / base for weight in weights]
    allocated = [int(share) for share in exact]

    remainder = total_minor - sum(allocated)
    by_fraction = sorted(range(len(lines)), key=lambda i: exact[i] - allocated[i], reverse=True)
    for index in by_fraction:
        if remainder <= 0:
            break
        if weights[index] > 0:
            allocated[index] += 1
            remainder -= 1

    return [from_minor_units(minor) for minor in allocated]


def cart_snapshot(quote: PricingQuote) -> list[dict[str, Any]]:
    """Lines of a quote as stored on a checkout attempt."""
    return [
        {
            "product_type": line.product_type.value,
            "item_id": line.item_id,
            "title": line.title,
            "unit_price": str(line.unit_price),
            "is_free": line.is_free,
        }
        for line in quote.lines
    ]


def agreed_coupon(attempt: dict[str, Any]) -> AppliedCoupon | None:
    """Coupon and discount recorded on an attempt when its session was opened."""
    if not attempt.get("coupon_code"):
        return None
    return AppliedCoupon(
        code=attempt["coupon_code"],
        discount_amount=Decimal(str(attempt.get("discount_amount") or 0)),
    )


def _is_settling(attempt: dict[str, Any] | None) -> bool:
    return attempt is not None and attempt.get("status") == "SETTLING"


class SettlementService:
    """Settles checkouts into orders and sub-orders."""

    def __init__(
        self,
        pricing: PricingService | None = None,
        fulfillment: FulfillmentService | None = None,
        orders: OrderService | None = None,
        emails: EmailService | None = None,
    ) -> None:
        """Initialize settlement service.

        Args:
            pricing: Optional pricing service for testing.
            fulfillment: Optional fulfillment service for testing.
            orders: Optional order service for testing.
            emails: Optional email service for testing.
        """
        self.client = get_supabase_client()
        self.stripe = get_stripe()
        self.settings = get_settings()
        self.pricing = pricing or PricingService()
        self.fulfillment = fulfillment or FulfillmentService()
        self.orders = orders or OrderService()
        self.emails = emails or EmailService()

    # Attempt access

    async def get_attempt(self, attempt_id: str) -> dict[str, Any] | None:
        response = (
            self.client.table("checkout_attempts")
            .select("*")
            .eq("id", attempt_id)
            .maybe_single()
            .execute()
        )
        return response.data if response and response.data else None

    async def get_attempt_by_provider_order(self, provider_order_id: str) -> dict[str, Any] | None:
        response = (
            self.client.table("checkout_attempts")
            .select("*")
            .eq("provider_order_id", provider_order_id)
            .maybe_single()
            .execute()
        )
        return response.data if response and response.data else None

    async def get_attempt_by_idempotency_key(
        self, user_id: UUID | str, idempotency_key: str
    ) -> dict[str, Any] | None:
        """Get the live (not cancelled) checkout a client submitted under a key."""
        response = (
            self.client.table("checkout_attempts")
            .select("*")
            .eq("user_id", str(user_id))
            .eq("idempotency_key", idempotency_key)
            .neq("status", "CANCELLED")
            .maybe_single()
            .execute()
        )
        return response.data if response and response.data else None

    def _set_attempt_status(self, attempt_id: str, status: str) -> None:
        self.client.table("checkout_attempts").update({"status": status}).eq("id", attempt_id).execute()

    def _fail_verification(self, provider_order_id: str, user_id: UUID | str) -> None:
        (
            self.client.table("checkout_attempts")
            .update({"status": "VERIFICATION_FAILED"})
            .eq("provider_order_id", provider_order_id)
            .eq("user_id", str(user_id))
            .eq("status", "SESSION_CREATED")
            .execute()
        )

    def _claim(
        self,
        attempt_id: str,
        provider_payment_id: str | None,
        from_statuses: tuple[str, ...] = ("SESSION_CREATED",),
    ) -> bool:
        """Move an attempt to SETTLING from one of from_statuses.

        Returns:
            bool: True if this caller won the claim.
        """
        response = (
            self.client.table("checkout_attempts")
            .update({"status": "SETTLING", "provider_payment_id": provider_payment_id})
            .eq("id", attempt_id)
            .in_("status", list(from_statuses))
            .execute()
        )
        return bool(response.data)

    def _release_claim(self, attempt_id: str) -> None:
        (
            self.client.table("checkout_attempts")
            .update({"status": "SESSION_CREATED"})
            .eq("id", attempt_id)
            .eq("status", "SETTLING")
            .execute()
        )
        logger.info("Released settlement claim on attempt %s", attempt_id)

    @retry(
        retry=retry_if_result(_is_settling),
        stop=stop_after_attempt(SETTLEMENT_POLL_ATTEMPTS),
        wait=wait_fixed(SETTLEMENT_POLL_INTERVAL_SECONDS),
        retry_error_callback=lambda retry_state: retry_state.outcome.result(),
    )
    async def _wait_for_settlement(self, attempt_id: str) -> dict[str, Any] | None:
        return await self.get_attempt(attempt_id)

    # Free path

    async def settle_free(
        self,
        user: UserContext,
        quote: PricingQuote,
        idempotency_key: str | None = None,
    ) -> dict[str, Any]:
        """Settle a zero-total quote without contacting the payment provider.

        Args:
            user: The buyer.
            quote: A quote whose total is zero.
            idempotency_key: Client key; a resubmission returns the first order.

        Returns:
            dict: The settled order with its sub-orders.

        Raises:
            CouponError: If the coupon ran out while committing.
            PartialSettlementError: If some lines could not be settled.
        """
        attempt_data = {
            "user_id": str(user.user_id),
            "cart_snapshot": cart_snapshot(quote),
            "coupon_code": quote.applied_coupon.code if quote.applied_coupon else None,
            "discount_amount": str(quote.discount_amount),
            "amount": 0,
            "currency": self.settings.payment_currency,
            "idempotency_key": idempotency_key,
            "status": "SETTLING",
        }
        try:
            attempt = self.client.table("checkout_attempts").insert(attempt_data).execute().data[0]
        except PostgrestAPIError as e:
            if not idempotency_key or e.code != UNIQUE_VIOLATION:
                raise
            existing = await self.get_attempt_by_idempotency_key(user.user_id, idempotency_key)
            if existing is None:
                raise
            logger.info("Free checkout %s already submitted under this key", existing["id"])
            return await self.read_back(existing)

        try:
            order = self._commit(attempt["id"], str(user.user_id), quote)
        except Exception:
            self._set_attempt_status(attempt["id"], "CANCELLED")
            raise

        logger.info("Free checkout %s settled as order %s", attempt["id"], order["id"])
        return await self._fulfill_and_finish(
            attempt["id"],
            order,
            quote,
            amount=quote.total,
            free=True,
            final_status="FREE_SETTLED",
            notify_email=user.email,
        )

    # Paid path

    async def complete_payment(
        self,
        user: UserContext,
        provider_order_id: str,
        provider_payment_id: str | None = None,
        signature: str | None = None,
    ) -> dict[str, Any]:
        """Verify the client's completion callback and settle the payment.

        The provider is asked whether the payment intent was actually
        captured before anything is settled. A signature, when the client
        relays one, must match as well.

        Args:
            user: The buyer.
            provider_order_id: Provider order (PaymentIntent) ID.
            provider_payment_id: Provider payment (charge) ID, if the client has it.
            signature: Optional HMAC signature over both IDs.

        Returns:
            dict: The settled order.

        Raises:
            VerificationError: If the signature or the captured payment does not match.
            PaymentPendingError: If the provider has not captured the payment yet.
            PaymentProviderError: If the provider could not be reached.
        """
        if signature is not None and not verify_payment_signature(
            provider_order_id,
            provider_payment_id or "",
            signature,
            self.settings.payment_signature_secret,
        ):
            logger.warning("Payment signature mismatch for provider order %s", provider_order_id)
            self._fail_verification(provider_order_id, user.user_id)
            raise VerificationError()

        attempt = await self.get_attempt_by_provider_order(provider_order_id)
        if attempt is not None and attempt["status"] == "SESSION_CREATED":
            if attempt["user_id"] != str(user.user_id):
                raise AuthorizationError("This payment belongs to another user")
            provider_payment_id = self._confirm_capture(attempt, provider_payment_id)

        return await self.settle_verified_payment(
            provider_order_id,
            provider_payment_id,
            user_id=user.user_id,
            notify_email=user.email,
        )

    def _confirm_capture(self, attempt: dict[str, Any], provider_payment_id: str | None) -> str:
        """Ask Stripe whether the attempt's payment intent was captured.

        Returns:
            str: The provider's charge ID for the payment.

        Raises:
            PaymentProviderError: If Stripe could not be reached.
            PaymentPendingError: If the intent has not succeeded yet.
            VerificationError: If the amount or charge does not match the attempt.
        """
        provider_order_id = attempt["provider_order_id"]
        try:
            intent = self.stripe.PaymentIntent.retrieve(provider_order_id)
        except stripe.StripeError as e:
            logger.error("Could not retrieve payment intent %s: %s", provider_order_id, str(e))
            raise PaymentProviderError("Could not confirm payment, please retry") from e

        if intent.status != "succeeded":
            logger.info("Payment intent %s is %s, not settling yet", provider_order_id, intent.status)
            raise PaymentPendingError()

        charge_id = intent.latest_charge
        if intent.amount != attempt["amount"] or (provider_payment_id and provider_payment_id != charge_id):
            logger.warning(
                "Payment intent %s does not match attempt %s (amount %s, charge %s)",
                provider_order_id,
                attempt["id"],
                intent.amount,
                charge_id,
            )
            self._fail_verification(provider_order_id, attempt["user_id"])
            raise VerificationError("Payment does not match this checkout")

        return charge_id or provider_payment_id or provider_order_id

    async def settle_verified_payment(
        self,
        provider_order_id: str,
        provider_payment_id: str | None,
        user_id: UUID | str | None = None,
        notify_email: str | None = None,
        provider_confirmed: bool = False,
    ) -> dict[str, Any]:
        """Settle a payment the provider has confirmed. Idempotent.

        Args:
            provider_order_id: Provider order ID.
            provider_payment_id: Provider payment ID.
            user_id: Caller, checked against the attempt owner when given.
            notify_email: Where to send the confirmation email.
            provider_confirmed: The capture was reported by the provider itself;
                a cancelled or unverified attempt is settled anyway.

        Returns:
            dict: The settled order. Repeated calls return the same order.

        Raises:
            NotFoundError: If nothing is known about the provider order.
            AuthorizationError: If the attempt belongs to another user.
            VerificationError: If the attempt was cancelled or failed verification.
            SettlementInProgressError: If another caller is still settling.
            PartialSettlementError: If some lines could not be settled.
        """
        attempt = await self.get_attempt_by_provider_order(provider_order_id)
        if attempt is None:
            existing = await self.orders.get_order_by_provider_order(provider_order_id)
            if existing is None:
                raise NotFoundError("Unknown payment reference")
            if user_id is not None and existing["user_id"] != str(user_id):
                raise AuthorizationError("This payment belongs to another user")
            return existing

        if user_id is not None and attempt["user_id"] != str(user_id):
            raise AuthorizationError("This payment belongs to another user")

        claimable = PROVIDER_SETTLEABLE_STATUSES if provider_confirmed else ("SESSION_CREATED",)
        if attempt["status"] not in claimable:
            return await self.read_back(attempt)

        if not self._claim(attempt["id"], provider_payment_id, claimable):
            logger.info("Attempt %s already claimed, waiting for settlement", attempt["id"])
            return await self.read_back(attempt)

        if attempt["status"] != "SESSION_CREATED":
            logger.warning(
                "Provider captured payment %s for %s attempt %s, settling it",
                provider_order_id,
                attempt["status"].lower(),
                attempt["id"],
            )

        logger.info("Settling attempt %s (provider order %s)", attempt["id"], provider_order_id)
        captured = from_minor_units(attempt["amount"])
        try:
            quote = await self.pricing.build_settlement_quote(
                attempt["cart_snapshot"], agreed_coupon(attempt)
            )
            price_mismatch = to_minor_units(quote.total) != attempt["amount"]
            if price_mismatch:
                logger.warning(
                    "Attempt %s: captured %s but the cart now prices at %s",
                    attempt["id"],
                    captured,
                    quote.total,
                )
            order = self._commit(
                attempt["id"],
                attempt["user_id"],
                quote,
                final_amount=captured,
                price_mismatch=price_mismatch,
                provider_order_id=provider_order_id,
                provider_payment_id=provider_payment_id,
                enforce_coupon_limit=False,
            )
        except Exception:
            self._release_claim(attempt["id"])
            raise

        return await self._fulfill_and_finish(
            attempt["id"],
            order,
            quote,
            amount=captured,
            free=False,
            final_status="SETTLED",
            notify_email=notify_email,
        )

    async def read_back(self, attempt: dict[str, Any]) -> dict[str, Any]:
        """Return the outcome of an attempt someone else settled (or is settling)."""
        current = await self._wait_for_settlement(attempt["id"]) or attempt
        status = current["status"]

        if status in SETTLED_STATUSES:
            order = await self.orders.get_order(current["order_id"])
            if order is None:
                raise NotFoundError("Order not found")
            if status == "PARTIAL_SETTLEMENT":
                failures = await self.get_unresolved_failures(order["id"])
                if failures:
                    raise PartialSettlementError(order["id"], failures)
            return order

        if status in TERMINAL_FAILURE_STATUSES:
            raise VerificationError("This checkout can no longer be completed, please start a new checkout")

        if status == "QUOTED":
            raise VerificationError("Payment session was never created for this checkout")

        raise SettlementInProgressError()

    # Commit and fulfillment

    def _commit(
        self,
        attempt_id: str,
        user_id: str,
        quote: PricingQuote,
        final_amount: Decimal | None = None,
        price_mismatch: bool = False,
        provider_order_id: str | None = None,
        provider_payment_id: str | None = None,
        enforce_coupon_limit: bool = True,
    ) -> dict[str, Any]:
        """Insert the order, consume the coupon and link the attempt in one transaction.

        Raises:
            CouponError: If the coupon reached its usage limit meanwhile and
                the limit is enforced.
        """
        coupon_code = quote.applied_coupon.code if quote.applied_coupon else None
        order_data = {
            "order_number": generate_order_number(),
            "user_id": user_id,
            "coupon_code": coupon_code,
            "discount_amount": str(quote.discount_amount),
            "total_amount": str(quote.subtotal),
            "final_amount": str(quote.total if final_amount is None else final_amount),
            "price_mismatch": price_mismatch,
            "provider_order_id": provider_order_id,
            "provider_payment_id": provider_payment_id,
        }

        try:
            response = self.client.rpc(
                "commit_settlement",
                {
                    "p_attempt_id": attempt_id,
                    "p_order": order_data,
                    "p_coupon_code": coupon_code,
                    "p_enforce_coupon_limit": enforce_coupon_limit,
                },
            ).execute()
        except PostgrestAPIError as e:
            if "COUPON_LIMIT_REACHED" in str(e.message):
                raise CouponError(CouponErrorReason.LIMIT_REACHED) from e
            raise

        order = response.data[0] if isinstance(response.data, list) else response.data
        logger.info("Committed order %s for attempt %s", order["id"], attempt_id)
        return order

    async def _fulfill_and_finish(
        self,
        attempt_id: str,
        order: dict[str, Any],
        quote: PricingQuote,
        amount: Decimal,
        free: bool,
        final_status: str,
        notify_email: str | None = None,
    ) -> dict[str, Any]:
        amounts = allocate_amounts(quote.lines, amount)
        allocations = [
            LineAllocation(
                product_type=line.product_type,
                item_id=line.item_id,
                amount_paid=line_amount,
                payment_status="FREE" if free or (line.is_free and line_amount == 0) else "PAID",
            )
            for line, line_amount in zip(quote.lines, amounts)
        ]

        # The order exists from here on, so the attempt must leave SETTLING
        status = "PARTIAL_SETTLEMENT"
        try:
            failures = await self.fulfillment.fulfill(order["id"], order["user_id"], allocations)
            if not failures:
                status = final_status
        finally:
            self._set_attempt_status(attempt_id, status)

        settled = await self.orders.get_order(order["id"]) or order
        if notify_email:
            await self.emails.send_order_confirmation(notify_email, settled)

        if failures:
            raise PartialSettlementError(order["id"], failures)
        return settled

    # Follow-up of partial settlements

    async def get_unresolved_failures(self, order_id: str) -> list[dict[str, Any]]:
        response = (
            self.client.table("settlement_failures")
            .select("*")
            .eq("order_id", order_id)
            .eq("resolved", False)
            .execute()
        )
        return response.data or []

    async def retry_failed_lines(
        self, order_id: UUID | str, user: UserContext
    ) -> tuple[dict[str, Any], int, list[dict[str, Any]]]:
        """Re-attempt the lines of an order that failed to settle.

        Args:
            order_id: The partially settled order.
            user: The caller, who must own the order.

        Returns:
            Tuple of (order, number of lines resolved, lines still failing).

        Raises:
            NotFoundError: If the order does not exist.
            AuthorizationError: If the caller does not own the order.
        """
        order = await self.orders.get_order(order_id)
        if order is None:
            raise NotFoundError("Order not found")
        if order["user_id"] != str(user.user_id):
            raise AuthorizationError("You do not have access to this order")

        failures = await self.get_unresolved_failures(order["id"])
        if not failures:
            return order, 0, []

        resolved = 0
        still_failing: list[dict[str, Any]] = []
        for failure in failures:
            allocation = LineAllocation(
                product_type=ProductType(failure["product_type"]),
                item_id=failure["item_id"],
                amount_paid=Decimal(str(failure["amount_paid"])),
                payment_status=failure["payment_status"],
            )
            result = await self.fulfillment.fulfill(
                order["id"], order["user_id"], [allocation], record_failures=False
            )
            if result:
                still_failing.extend(result)
                continue

            self.client.table("settlement_failures").update({"resolved": True}).eq(
                "id", failure["id"]
            ).execute()
            resolved += 1

        if not still_failing:
            (
                self.client.table("checkout_attempts")
                .update({"status": "SETTLED"})
                .eq("order_id", order["id"])
                .eq("status", "PARTIAL_SETTLEMENT")
                .execute()
            )

        logger.info(
            "Retried settlement of order %s: %d resolved, %d still failing",
            order["id"],
            resolved,
            len(still_failing),
        )
        return await self.orders.get_order(order["id"]) or order, resolved, still_failing

    # Provider webhooks

    def verify_webhook_signature(self, payload: bytes, sig_header: str) -> dict[str, Any]:
        """Verify Stripe webhook signature and return event.

        Args:
            payload: Raw webhook payload bytes.
            sig_header: Stripe-Signature header value.

        Returns:
            dict: Verified Stripe event.

        Raises:
            ValueError: If signature is invalid or Stripe not configured.
        """
        if not self.settings.stripe_webhook_secret:
            raise ValueError("Stripe webhook secret is not configured. Please set STRIPE_WEBHOOK_SECRET environment variable.")

        try:
            return self.stripe.Webhook.construct_event(
                payload, sig_header, self.settings.stripe_webhook_secret
            )
        except stripe.SignatureVerificationError as e:
            logger.warning("Invalid webhook signature: %s", str(e))
            raise ValueError("Invalid webhook signature") from e

    async def handle_payment_succeeded(self, event: dict[str, Any]) -> dict[str, Any] | None:
        """Process payment_intent.succeeded by settling through the idempotent path.

        The event is signed by Stripe, so the capture is settled even if the
        attempt was closed by an earlier failure or a mismatched client callback.
        """
        intent = event["data"]["object"]
        provider_order_id = intent["id"]
        provider_payment_id = intent.get("latest_charge") or provider_order_id

        try:
            return await self.settle_verified_payment(
                provider_order_id, provider_payment_id, provider_confirmed=True
            )
        except PartialSettlementError as e:
            logger.warning(
                "Webhook settlement of %s is partial: order %s, %d failed line(s)",
                provider_order_id,
                e.order_id,
                len(e.failed_lines),
            )
            return None

    async def handle_payment_failed(self, event: dict[str, Any]) -> None:
        """Process payment_intent.payment_failed.

        A failed charge is not final: the buyer can retry with another payment
        method on the same intent, so the attempt stays open.
        """
        intent = event["data"]["object"]
        error = intent.get("last_payment_error") or {}
        logger.info(
            "Payment attempt on %s failed (%s), checkout stays open",
            intent["id"],
            error.get("code") or "unknown",
        )

    async def handle_payment_canceled(self, event: dict[str, Any]) -> None:
        """Process payment_intent.canceled for a still-open attempt."""
        intent = event["data"]["object"]
        response = (
            self.client.table("checkout_attempts")
            .update({"status": "CANCELLED"})
            .eq("provider_order_id", intent["id"])
            .eq("status", "SESSION_CREATED")
            .execute()
        )
        if response.data:
            logger.info("Checkout attempt for %s cancelled", intent["id"])
