"""Coupon directory lookups and coupon validation rules."""

import logging
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any
from uuid import UUID

from edukart.core.errors import CouponError
from edukart.core.supabase import get_supabase_client
from edukart.schemas.checkout import ALL_PRODUCTS_TAG
from edukart.schemas.coupon import Coupon, CouponErrorReason, DiscountType, TargetUserType

logger = logging.getLogger(__name__)


def calculate_discount(coupon: Coupon, subtotal: Decimal) -> Decimal:
    """Calculate the discount a coupon gives on a subtotal.

    Percentage discounts round half-up to whole currency units and are
    capped at max_discount. Fixed discounts are capped at the subtotal.
    The result never exceeds the subtotal.

    Args:
        coupon: The coupon to apply.
        subtotal: Cart subtotal.

    Returns:
        Decimal: Discount amount.
    """
    if coupon.discount_type == DiscountType.PERCENTAGE:
        discount = (subtotal * coupon.discount_value / Decimal("100")).quantize(
            Decimal("1"), rounding=ROUND_HALF_UP
        )
        if coupon.max_discount is not None:
            discount = min(discount, coupon.max_discount)
    else:
        discount = coupon.discount_value

    return max(Decimal("0"), min(discount, subtotal))


def validate_coupon(
    coupon: Coupon | None,
    subtotal: Decimal,
    applicability_tag: str,
    user_id: UUID | str | None = None,
    has_purchased_before: bool = False,
    now: datetime | None = None,
) -> Decimal:
    """Validate a coupon against a cart and return its discount.

    Checks run in a fixed order and the first failure wins: existence,
    active window, minimum amount, usage limit, user targeting, then
    product-type applicability.

    Args:
        coupon: Coupon from the directory, or None if the code is unknown.
        subtotal: Cart subtotal.
        applicability_tag: "ALL" for mixed carts, else the single product type.
        user_id: Caller ID, used for SPECIFIC_USER coupons.
        has_purchased_before: Whether the caller has a previous order (NEW_USER coupons).
        now: Evaluation time, defaults to the current UTC time.

    Returns:
        Decimal: Discount amount.

    Raises:
        CouponError: If the coupon cannot be applied.
    """
    if coupon is None:
        raise CouponError(CouponErrorReason.NOT_FOUND)

    now = now or datetime.now(timezone.utc)
    if not coupon.is_active or not (coupon.valid_from <= now <= coupon.valid_until):
        raise CouponError(CouponErrorReason.INACTIVE)

    if coupon.min_amount is not None and subtotal < coupon.min_amount:
        raise CouponError(
            CouponErrorReason.BELOW_MINIMUM,
            f"Minimum order amount is ₹{coupon.min_amount} to use this coupon",
        )

    if coupon.usage_limit is not None and coupon.used_count >= coupon.usage_limit:
        raise CouponError(CouponErrorReason.LIMIT_REACHED)

    if coupon.target_user_type == TargetUserType.NEW_USER and has_purchased_before:
        raise CouponError(CouponErrorReason.NOT_ELIGIBLE, "This coupon is only for first-time buyers")

    if coupon.target_user_type == TargetUserType.SPECIFIC_USER:
        targeted = {str(uid) for uid in coupon.target_user_ids or []}
        if user_id is None or str(user_id) not in targeted:
            raise CouponError(CouponErrorReason.NOT_ELIGIBLE)

    scope = coupon.applicable_to.upper()
    if scope != ALL_PRODUCTS_TAG and scope != applicability_tag:
        raise CouponError(CouponErrorReason.NOT_APPLICABLE)

    return calculate_discount(coupon, subtotal)


class CouponService:
    """Service for reading the coupon directory."""

    def __init__(self) -> None:
        """Initialize coupon service with the database client."""
        self.client = get_supabase_client()

    async def get_coupon_by_code(self, code: str) -> Coupon | None:
        """Look up a coupon by code (case-insensitive).

        Args:
            code: Coupon code as typed by the user.

        Returns:
            Coupon | None: The coupon or None if no coupon has this code.
        """
        response = (
            self.client.table("coupons")
            .select("*")
            .eq("code", code.strip().upper())
            .maybe_single()
            .execute()
        )
        data: dict[str, Any] | None = response.data if response and response.data else None
        return Coupon.model_validate(data) if data else None

    async def has_purchased_before(self, user_id: UUID | str) -> bool:
        """Check whether a user already has at least one order."""
        response = (
            self.client.table("orders")
            .select("id")
            .eq("user_id", str(user_id))
            .limit(1)
            .execute()
        )
        return bool(response.data)

    async def resolve_discount(
        self,
        code: str,
        subtotal: Decimal,
        applicability_tag: str,
        user_id: UUID | str | None = None,
    ) -> tuple[Coupon, Decimal]:
        """Fetch a coupon and validate it for a cart.

        Args:
            code: Coupon code.
            subtotal: Cart subtotal.
            applicability_tag: Applicability tag of the cart.
            user_id: Caller ID.

        Returns:
            Tuple of (coupon, discount amount).

        Raises:
            CouponError: If the coupon is unknown or cannot be applied.
        """
        coupon = await self.get_coupon_by_code(code)

        purchased_before = False
        if coupon and coupon.target_user_type == TargetUserType.NEW_USER and user_id is not None:
            purchased_before = await self.has_purchased_before(user_id)

        try:
            discount = validate_coupon(
                coupon,
                subtotal,
                applicability_tag,
                user_id=user_id,
                has_purchased_before=purchased_before,
            )
        except CouponError as e:
            logger.info("Coupon %s rejected: %s", code.upper(), e.reason.value)
            raise

        return coupon, discount
