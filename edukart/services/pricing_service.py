"""Pricing engine: turns a cart into a priced quote."""

import logging
from collections.abc import Iterable
from decimal import Decimal
from typing import Any
from uuid import UUID

from edukart.core.errors import EmptyCartError
from edukart.schemas.checkout import (
    ALL_PRODUCTS_TAG,
    AppliedCoupon,
    CartItem,
    PriceableLine,
    PricingQuote,
    ProductType,
)
from edukart.services.catalog_service import CatalogService
from edukart.services.coupon_service import CouponService

logger = logging.getLogger(__name__)


def applicability_tag(present_types: Iterable[ProductType]) -> str:
    """Scope a cart is checked against when applying a coupon.

    Args:
        present_types: Product types present in the cart.

    Returns:
        str: The product type when exactly one is present, otherwise "ALL".
    """
    types = set(present_types)
    if len(types) == 1:
        return next(iter(types)).value
    return ALL_PRODUCTS_TAG


class PricingService:
    """Stateless pricing engine over the catalog and coupon directory."""

    def __init__(
        self,
        catalog: CatalogService | None = None,
        coupons: CouponService | None = None,
    ) -> None:
        """Initialize pricing service.

        Args:
            catalog: Optional catalog service for testing.
            coupons: Optional coupon service for testing.
        """
        self.catalog = catalog or CatalogService()
        self.coupons = coupons or CouponService()

    async def price_lines(
        self,
        items: list[CartItem],
        fresh: bool = False,
        include_unavailable: bool = False,
    ) -> list[PriceableLine]:
        """Resolve cart items to priced lines, dropping unknown or retired items."""
        lines: list[PriceableLine] = []
        for item in items:
            line = await self.catalog.resolve_price(
                item.product_type,
                item.item_id,
                fresh=fresh,
                include_unavailable=include_unavailable,
            )
            if line is None:
                logger.info("Dropping unpurchasable %s item %s from cart", item.product_type.value, item.item_id)
                continue
            lines.append(line)
        return lines

    async def build_quote(
        self,
        items: list[CartItem],
        coupon_code: str | None = None,
        user_id: UUID | str | None = None,
        fresh: bool = False,
        include_unavailable: bool = False,
    ) -> PricingQuote:
        """Price a cart and apply an optional coupon.

        Args:
            items: Tagged cart items.
            coupon_code: Optional coupon code.
            user_id: Caller ID for coupon targeting.
            fresh: Bypass cached catalog prices.
            include_unavailable: Keep items that still exist but are no longer
                purchasable. Settlement re-prices a paid cart this way.

        Returns:
            PricingQuote: The priced quote.

        Raises:
            EmptyCartError: If no item in the cart can be priced.
            CouponError: If the coupon cannot be applied.
        """
        lines = await self.price_lines(items, fresh=fresh, include_unavailable=include_unavailable)
        if not lines:
            raise EmptyCartError()

        subtotal = sum((line.chargeable_amount for line in lines), Decimal("0"))

        applied_coupon = None
        if coupon_code and coupon_code.strip():
            tag = applicability_tag(line.product_type for line in lines)
            coupon, discount = await self.coupons.resolve_discount(
                coupon_code, subtotal, tag, user_id=user_id
            )
            applied_coupon = AppliedCoupon(code=coupon.code, discount_amount=discount)

        discount_amount = applied_coupon.discount_amount if applied_coupon else Decimal("0")
        total = max(Decimal("0"), subtotal - discount_amount)

        return PricingQuote(
            lines=lines,
            subtotal=subtotal,
            applied_coupon=applied_coupon,
            total=total,
        )

    async def build_settlement_quote(
        self,
        snapshot: list[dict[str, Any]],
        agreed_coupon: AppliedCoupon | None = None,
    ) -> PricingQuote:
        """Re-price a paid cart from its checkout snapshot.

        Catalog prices are read fresh, bypassing the cache. Items the catalog
        no longer knows are priced as quoted, so a paid line is never dropped.
        The coupon is not validated again: the discount agreed when the
        payment session was opened is honoured, capped at the subtotal.

        Args:
            snapshot: Cart snapshot stored on the checkout attempt.
            agreed_coupon: Coupon and discount recorded on the attempt.

        Returns:
            PricingQuote: The settlement-time quote.

        Raises:
            EmptyCartError: If no line can be priced at all.
        """
        lines: list[PriceableLine] = []
        for entry in snapshot:
            product_type = ProductType(entry["product_type"])
            line = await self.catalog.resolve_price(
                product_type, entry["item_id"], fresh=True, include_unavailable=True
            )
            if line is None and entry.get("unit_price") is not None:
                logger.warning(
                    "%s item %s is gone from the catalog, settling at its quoted price",
                    product_type.value,
                    entry["item_id"],
                )
                line = PriceableLine(
                    product_type=product_type,
                    item_id=entry["item_id"],
                    title=entry.get("title") or "",
                    unit_price=Decimal(str(entry["unit_price"])),
                    is_free=bool(entry.get("is_free")),
                )
            if line is None:
                logger.warning("Cannot price %s item %s at settlement", product_type.value, entry["item_id"])
                continue
            lines.append(line)

        if not lines:
            raise EmptyCartError()

        subtotal = sum((line.chargeable_amount for line in lines), Decimal("0"))
        applied_coupon = None
        if agreed_coupon is not None:
            applied_coupon = AppliedCoupon(
                code=agreed_coupon.code,
                discount_amount=min(agreed_coupon.discount_amount, subtotal),
            )

        discount_amount = applied_coupon.discount_amount if applied_coupon else Decimal("0")
        return PricingQuote(
            lines=lines,
            subtotal=subtotal,
            applied_coupon=applied_coupon,
            total=max(Decimal("0"), subtotal - discount_amount),
        )
