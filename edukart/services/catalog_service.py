"""Catalog price resolution with flash-sale overrides."""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from edukart.core.supabase import get_supabase_client
from edukart.schemas.checkout import PriceableLine, ProductType
from edukart.services.price_cache import PriceCache, get_price_cache

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CatalogSource:
    """Where a product type lives and when it is purchasable."""

    table: str
    available_column: str
    available_value: Any


CATALOG_SOURCES: dict[ProductType, CatalogSource] = {
    ProductType.EBOOK: CatalogSource("ebooks", "is_published", True),
    ProductType.WEBINAR: CatalogSource("webinars", "is_published", True),
    ProductType.MENTORSHIP: CatalogSource("live_mentorship_programs", "status", "PUBLISHED"),
    ProductType.COURSE: CatalogSource("courses", "is_published", True),
    ProductType.BUNDLE: CatalogSource("bundles", "is_published", True),
    ProductType.OFFLINE_BATCH: CatalogSource("offline_batches", "status", "OPEN"),
}


def to_decimal(value: Any) -> Decimal | None:
    """Convert a numeric column value to Decimal, keeping None."""
    if value is None:
        return None
    return Decimal(str(value))


def calculate_effective_price(
    price: Decimal,
    sale_price: Decimal | None,
    flash_sale_percent: Decimal | None = None,
) -> Decimal:
    """Calculate the price a buyer pays for one item.

    An active flash sale discounts the regular selling price (sale price when
    set, else base price) and rounds to whole currency units. Without a flash
    sale the sale price wins only when it undercuts the base price.

    Args:
        price: Base (list) price.
        sale_price: Optional regular sale price.
        flash_sale_percent: Discount percent of the active flash sale, if any.

    Returns:
        Decimal: Effective unit price.
    """
    selling_price = sale_price if sale_price and sale_price > 0 else price

    if flash_sale_percent and flash_sale_percent > 0:
        discounted = selling_price * (Decimal("100") - flash_sale_percent) / Decimal("100")
        return discounted.quantize(Decimal("1"), rounding=ROUND_HALF_UP)

    if sale_price and 0 < sale_price < price:
        return sale_price

    return price


class CatalogService:
    """Resolves cart items to priced lines (the Catalog Resolver)."""

    def __init__(self, cache: PriceCache | None = None) -> None:
        """Initialize catalog service.

        Args:
            cache: Optional price cache for testing.
        """
        self.client = get_supabase_client()
        self._cache = cache

    @property
    def cache(self) -> PriceCache:
        """Get price cache."""
        if self._cache is None:
            self._cache = get_price_cache()
        return self._cache

    async def resolve_price(
        self,
        product_type: ProductType,
        item_id: str,
        fresh: bool = False,
        include_unavailable: bool = False,
    ) -> PriceableLine | None:
        """Resolve one cart item to a priced line.

        Args:
            product_type: Product type of the item.
            item_id: Catalog ID (slot ID for guidance).
            fresh: Bypass the price cache.
            include_unavailable: Price items that exist but are no longer
                purchasable (booked slot, unpublished item). Used at settlement, where
                the payment is already captured and availability is enforced
                per line by fulfillment.

        Returns:
            PriceableLine | None: The priced line, or None when the item does not
            exist or is not currently purchasable.
        """
        if not fresh and not include_unavailable:
            hit, cached = self.cache.get(product_type, item_id)
            if hit:
                return cached

        if product_type == ProductType.GUIDANCE:
            line = await self._resolve_guidance_slot(item_id, include_unavailable)
        else:
            line = await self._resolve_item(product_type, item_id, include_unavailable)

        if not include_unavailable:
            self.cache.set(product_type, item_id, line)
        return line

    async def _resolve_item(
        self, product_type: ProductType, item_id: str, include_unavailable: bool = False
    ) -> PriceableLine | None:
        source = CATALOG_SOURCES[product_type]
        query = self.client.table(source.table).select("*").eq("id", item_id)
        if not include_unavailable:
            query = query.eq(source.available_column, source.available_value)
        response = query.maybe_single().execute()
        item = response.data if response and response.data else None
        if not item:
            return None

        is_free = bool(item.get("is_free")) or item.get("pricing_type") == "FREE"
        flash_percent = await self.get_active_flash_sale_percent(product_type, item_id)
        unit_price = calculate_effective_price(
            to_decimal(item.get("price")) or Decimal("0"),
            to_decimal(item.get("sale_price")),
            flash_percent,
        )

        return PriceableLine(
            product_type=product_type,
            item_id=item_id,
            title=item.get("title", ""),
            unit_price=unit_price,
            is_free=is_free,
        )

    async def _resolve_guidance_slot(
        self, slot_id: str, include_unavailable: bool = False
    ) -> PriceableLine | None:
        """Price a guidance slot from its parent guidance.

        Only AVAILABLE slots of ACTIVE guidances are purchasable. Flash sales
        target the guidance, not the slot.
        """
        slot_query = self.client.table("guidance_slots").select("*").eq("id", slot_id)
        if not include_unavailable:
            slot_query = slot_query.eq("status", "AVAILABLE")
        slot_response = slot_query.maybe_single().execute()
        slot = slot_response.data if slot_response and slot_response.data else None
        if not slot:
            return None

        guidance_query = self.client.table("guidances").select("*").eq("id", slot["guidance_id"])
        if not include_unavailable:
            guidance_query = guidance_query.eq("status", "ACTIVE")
        guidance_response = guidance_query.maybe_single().execute()
        guidance = guidance_response.data if guidance_response and guidance_response.data else None
        if not guidance:
            return None

        flash_percent = await self.get_active_flash_sale_percent(ProductType.GUIDANCE, guidance["id"])
        unit_price = calculate_effective_price(
            to_decimal(guidance.get("price")) or Decimal("0"),
            to_decimal(guidance.get("sale_price")),
            flash_percent,
        )

        return PriceableLine(
            product_type=ProductType.GUIDANCE,
            item_id=slot_id,
            title=guidance.get("title", ""),
            unit_price=unit_price,
            is_free=False,
        )

    async def get_active_flash_sale_percent(
        self, product_type: ProductType, reference_id: str
    ) -> Decimal | None:
        """Get the discount percent of the flash sale currently targeting an item.

        Args:
            product_type: Product type the flash sale is scoped to.
            reference_id: Item ID listed in the flash sale.

        Returns:
            Decimal | None: Discount percent, or None without an active flash sale.
        """
        now = datetime.now(timezone.utc).isoformat()
        response = (
            self.client.table("flash_sales")
            .select("*")
            .eq("type", product_type.value)
            .contains("reference_ids", [reference_id])
            .eq("is_active", True)
            .lte("start_date", now)
            .gte("end_date", now)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return to_decimal(response.data[0].get("discount_percent"))

    async def get_bundle_course_ids(self, bundle_id: str) -> list[str]:
        """List the courses a bundle grants access to."""
        response = (
            self.client.table("bundle_courses")
            .select("course_id")
            .eq("bundle_id", bundle_id)
            .execute()
        )
        return [row["course_id"] for row in response.data or []]
