"""Unit tests for catalog price resolution and the price cache."""

import time
from decimal import Decimal

import pytest

from edukart.schemas.checkout import PriceableLine, ProductType
from edukart.services.catalog_service import CatalogService, calculate_effective_price
from edukart.services.price_cache import PriceCache, PriceCacheConfig


class TestCalculateEffectivePrice:
    """Tests for flash sale / sale price / base price selection."""

    def test_base_price_without_sale(self) -> None:
        assert calculate_effective_price(Decimal("999"), None) == Decimal("999")

    def test_sale_price_when_lower(self) -> None:
        assert calculate_effective_price(Decimal("999"), Decimal("499")) == Decimal("499")

    def test_sale_price_ignored_when_not_lower(self) -> None:
        assert calculate_effective_price(Decimal("499"), Decimal("599")) == Decimal("499")

    def test_flash_sale_discounts_sale_price_and_rounds(self) -> None:
        # 499 * 0.75 = 374.25
        assert calculate_effective_price(Decimal("999"), Decimal("499"), Decimal("25")) == Decimal("374")

    def test_flash_sale_on_base_price(self) -> None:
        assert calculate_effective_price(Decimal("1000"), None, Decimal("10")) == Decimal("900")


class TestCatalogService:
    """Tests for CatalogService.resolve_price."""

    @pytest.mark.asyncio
    async def test_resolves_published_course(self, fake_db, seed) -> None:
        course = seed.item("courses", title="Python 101", price=1000, sale_price=800)

        line = await CatalogService().resolve_price(ProductType.COURSE, course["id"])

        assert line is not None
        assert line.title == "Python 101"
        assert line.unit_price == Decimal("800")
        assert line.is_free is False

    @pytest.mark.asyncio
    async def test_unpublished_item_is_not_purchasable(self, fake_db, seed) -> None:
        ebook = seed.item("ebooks", price=200, is_published=False)

        assert await CatalogService().resolve_price(ProductType.EBOOK, ebook["id"]) is None

    @pytest.mark.asyncio
    async def test_unknown_item(self, fake_db) -> None:
        assert await CatalogService().resolve_price(ProductType.WEBINAR, "missing") is None

    @pytest.mark.asyncio
    async def test_free_pricing_type_marks_line_free(self, fake_db, seed) -> None:
        mentorship = seed.item("live_mentorship_programs", price=5000, pricing_type="FREE")

        line = await CatalogService().resolve_price(ProductType.MENTORSHIP, mentorship["id"])

        assert line.is_free is True
        assert line.chargeable_amount == Decimal("0")

    @pytest.mark.asyncio
    async def test_closed_offline_batch_is_not_purchasable(self, fake_db, seed) -> None:
        batch = seed.item("offline_batches", price=15000, status="CLOSED")

        assert await CatalogService().resolve_price(ProductType.OFFLINE_BATCH, batch["id"]) is None

    @pytest.mark.asyncio
    async def test_flash_sale_applies_to_listed_item_only(self, fake_db, seed) -> None:
        on_sale = seed.item("webinars", price=400)
        regular = seed.item("webinars", price=400)
        seed.flash_sale("WEBINAR", [on_sale["id"]], 50)

        service = CatalogService()

        assert (await service.resolve_price(ProductType.WEBINAR, on_sale["id"])).unit_price == Decimal("200")
        assert (await service.resolve_price(ProductType.WEBINAR, regular["id"])).unit_price == Decimal("400")

    @pytest.mark.asyncio
    async def test_guidance_slot_priced_from_parent_guidance(self, fake_db, seed) -> None:
        slot = seed.guidance_slot(price=750)

        line = await CatalogService().resolve_price(ProductType.GUIDANCE, slot["id"])

        assert line.item_id == slot["id"]
        assert line.unit_price == Decimal("750")

    @pytest.mark.asyncio
    async def test_guidance_flash_sale_targets_guidance(self, fake_db, seed) -> None:
        slot = seed.guidance_slot(price=1000)
        seed.flash_sale("GUIDANCE", [slot["guidance_id"]], 20)

        line = await CatalogService().resolve_price(ProductType.GUIDANCE, slot["id"])

        assert line.unit_price == Decimal("800")

    @pytest.mark.asyncio
    async def test_booked_slot_is_not_purchasable(self, fake_db, seed) -> None:
        slot = seed.guidance_slot()
        slot_row = fake_db.rows("guidance_slots")[0]
        slot_row["status"] = "BOOKED"

        assert await CatalogService().resolve_price(ProductType.GUIDANCE, slot["id"]) is None

    @pytest.mark.asyncio
    async def test_booked_slot_priced_when_unavailable_included(self, fake_db, seed) -> None:
        slot = seed.guidance_slot(price=600)
        fake_db.rows("guidance_slots")[0]["status"] = "BOOKED"

        line = await CatalogService().resolve_price(
            ProductType.GUIDANCE, slot["id"], fresh=True, include_unavailable=True
        )

        assert line.unit_price == Decimal("600")

    @pytest.mark.asyncio
    async def test_cached_price_served_until_fresh_read(self, fake_db, seed) -> None:
        course = seed.item("courses", price=1000)
        service = CatalogService(cache=PriceCache())

        await service.resolve_price(ProductType.COURSE, course["id"])
        fake_db.rows("courses")[0]["price"] = 1200

        cached = await service.resolve_price(ProductType.COURSE, course["id"])
        fresh = await service.resolve_price(ProductType.COURSE, course["id"], fresh=True)

        assert cached.unit_price == Decimal("1000")
        assert fresh.unit_price == Decimal("1200")

    @pytest.mark.asyncio
    async def test_bundle_course_ids(self, fake_db) -> None:
        fake_db.insert("bundle_courses", {"bundle_id": "b-1", "course_id": "c-1"})
        fake_db.insert("bundle_courses", {"bundle_id": "b-1", "course_id": "c-2"})
        fake_db.insert("bundle_courses", {"bundle_id": "b-2", "course_id": "c-3"})

        assert await CatalogService().get_bundle_course_ids("b-1") == ["c-1", "c-2"]


class TestPriceCache:
    """Tests for the in-memory TTL cache."""

    def _line(self, item_id: str = "e-1") -> PriceableLine:
        return PriceableLine(product_type=ProductType.EBOOK, item_id=item_id, unit_price=Decimal("100"))

    def test_miss_then_hit(self) -> None:
        cache = PriceCache()

        assert cache.get(ProductType.EBOOK, "e-1") == (False, None)
        cache.set(ProductType.EBOOK, "e-1", self._line())

        hit, line = cache.get(ProductType.EBOOK, "e-1")
        assert hit is True
        assert line.unit_price == Decimal("100")

    def test_caches_unpurchasable_items(self) -> None:
        cache = PriceCache()
        cache.set(ProductType.EBOOK, "gone", None)

        assert cache.get(ProductType.EBOOK, "gone") == (True, None)

    def test_entries_expire(self) -> None:
        cache = PriceCache(PriceCacheConfig(ttl_seconds=0))
        cache.set(ProductType.EBOOK, "e-1", self._line())
        time.sleep(0.01)

        assert cache.get(ProductType.EBOOK, "e-1") == (False, None)
        assert cache.cleanup() == 0

    def test_evicts_when_full(self) -> None:
        cache = PriceCache(PriceCacheConfig(max_size=10))
        for i in range(25):
            cache.set(ProductType.EBOOK, f"e-{i}", self._line(f"e-{i}"))

        assert len(cache._cache) <= 10
        assert cache.get(ProductType.EBOOK, "e-24")[0] is True

    def test_clear(self) -> None:
        cache = PriceCache()
        cache.set(ProductType.EBOOK, "e-1", self._line())

        assert cache.clear() == 1
        assert cache.get(ProductType.EBOOK, "e-1") == (False, None)
