"""Per-product-type sub-order creation for settled orders."""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from edukart.core.supabase import get_supabase_client
from edukart.models.order import SUB_ORDER_TABLES
from edukart.schemas.checkout import ProductType
from edukart.services.catalog_service import CatalogService

logger = logging.getLogger(__name__)


class FulfillmentError(Exception):
    """A single line could not be turned into a sub-order."""


@dataclass(frozen=True)
class LineAllocation:
    """One line of a settled order and the share of the payment it carries."""

    product_type: ProductType
    item_id: str
    amount_paid: Decimal
    payment_status: str


class FulfillmentService:
    """Creates sub-orders (enrollments, bookings, purchases) line by line.

    Each line is settled independently: a failure on one line is recorded
    and reported, and never rolls back the lines that did settle.
    """

    def __init__(self, catalog: CatalogService | None = None) -> None:
        """Initialize fulfillment service.

        Args:
            catalog: Optional catalog service for testing.
        """
        self.client = get_supabase_client()
        self.catalog = catalog or CatalogService()

    async def fulfill(
        self,
        order_id: str,
        user_id: str,
        allocations: list[LineAllocation],
        record_failures: bool = True,
    ) -> list[dict[str, Any]]:
        """Create one sub-order per allocated line.

        Args:
            order_id: The settled order.
            user_id: The buyer.
            allocations: Lines with their share of the payment.
            record_failures: Persist failed lines to settlement_failures.

        Returns:
            list[dict]: Failed lines (product_type, item_id, amount_paid,
            payment_status, reason). Empty when everything settled.
        """
        failures: list[dict[str, Any]] = []

        for allocation in allocations:
            try:
                await self._fulfill_line(order_id, user_id, allocation)
            except FulfillmentError as e:
                reason = str(e)
                logger.warning(
                    "Order %s: %s %s not settled: %s",
                    order_id,
                    allocation.product_type.value,
                    allocation.item_id,
                    reason,
                )
            except Exception as e:
                reason = f"Could not record {allocation.product_type.value.lower()} order"
                logger.error(
                    "Order %s: error settling %s %s: %s",
                    order_id,
                    allocation.product_type.value,
                    allocation.item_id,
                    str(e),
                    exc_info=True,
                )
            else:
                continue

            failure = {
                "product_type": allocation.product_type.value,
                "item_id": allocation.item_id,
                "amount_paid": str(allocation.amount_paid),
                "payment_status": allocation.payment_status,
                "reason": reason,
            }
            failures.append(failure)

        if failures and record_failures:
            self.client.table("settlement_failures").insert(
                [{"order_id": order_id, "resolved": False, **failure} for failure in failures]
            ).execute()

        return failures

    async def _fulfill_line(self, order_id: str, user_id: str, allocation: LineAllocation) -> None:
        product_type = allocation.product_type

        if product_type == ProductType.GUIDANCE:
            await self._book_guidance_slot(order_id, user_id, allocation)
        elif product_type == ProductType.WEBINAR:
            await self._enroll_webinar(order_id, user_id, allocation)
        elif product_type == ProductType.OFFLINE_BATCH:
            await self._enroll_offline_batch(order_id, user_id, allocation)
        elif product_type == ProductType.BUNDLE:
            await self._enroll_bundle(order_id, user_id, allocation)
        elif product_type in (ProductType.COURSE, ProductType.MENTORSHIP):
            self._write_sub_order(order_id, user_id, allocation, upsert=True)
        else:
            self._write_sub_order(order_id, user_id, allocation)

    def _write_sub_order(
        self,
        order_id: str,
        user_id: str,
        allocation: LineAllocation,
        upsert: bool = False,
        on_conflict: str | None = None,
    ) -> dict[str, Any]:
        """Insert (or upsert, for enrollments) the sub-order row for a line.

        Upserts match on (item, user) unless on_conflict names other columns.
        """
        target = SUB_ORDER_TABLES[allocation.product_type]
        row = {
            "order_id": order_id,
            "user_id": user_id,
            target.item_column: allocation.item_id,
            "amount_paid": str(allocation.amount_paid),
            "payment_status": allocation.payment_status,
        }

        table = self.client.table(target.table)
        if upsert:
            response = table.upsert(row, on_conflict=on_conflict or f"{target.item_column},user_id").execute()
        else:
            response = table.insert(row).execute()

        if not response.data:
            raise FulfillmentError(f"{allocation.product_type.value} order was not recorded")
        return response.data[0]

    async def _book_guidance_slot(self, order_id: str, user_id: str, allocation: LineAllocation) -> None:
        """Book a 1:1 slot. Only one buyer can move a slot from AVAILABLE to BOOKED."""
        booked = (
            self.client.table("guidance_slots")
            .update({"status": "BOOKED"})
            .eq("id", allocation.item_id)
            .eq("status", "AVAILABLE")
            .execute()
        )
        if not booked.data:
            raise FulfillmentError("Guidance slot is no longer available")

        try:
            self._write_sub_order(order_id, user_id, allocation)
        except Exception:
            self.client.table("guidance_slots").update({"status": "AVAILABLE"}).eq(
                "id", allocation.item_id
            ).execute()
            raise

    async def _enroll_webinar(self, order_id: str, user_id: str, allocation: LineAllocation) -> None:
        webinar_response = (
            self.client.table("webinars")
            .select("id, max_seats")
            .eq("id", allocation.item_id)
            .maybe_single()
            .execute()
        )
        webinar = webinar_response.data if webinar_response and webinar_response.data else None
        if not webinar:
            raise FulfillmentError("Webinar no longer exists")

        max_seats = webinar.get("max_seats")
        if max_seats:
            enrolled = (
                self.client.table("webinar_orders")
                .select("id, user_id")
                .eq("webinar_id", allocation.item_id)
                .execute()
            )
            others = [row for row in enrolled.data or [] if row.get("user_id") != user_id]
            if len(others) >= max_seats:
                raise FulfillmentError("Webinar is full")

        self._write_sub_order(order_id, user_id, allocation, upsert=True)

    async def _enroll_offline_batch(self, order_id: str, user_id: str, allocation: LineAllocation) -> None:
        """Reserve a seat atomically, then record the batch order."""
        reserved = self.client.rpc(
            "reserve_offline_batch_seat", {"p_batch_id": allocation.item_id}
        ).execute()
        if not reserved.data:
            raise FulfillmentError("Offline batch has no seats left")

        try:
            self._write_sub_order(order_id, user_id, allocation)
        except Exception:
            self.client.rpc(
                "release_offline_batch_seat", {"p_batch_id": allocation.item_id}
            ).execute()
            raise

    async def _enroll_bundle(self, order_id: str, user_id: str, allocation: LineAllocation) -> None:
        """Record the bundle order and grant access to every course in it.

        A retried line reuses the bundle order written by the first attempt.
        """
        bundle_order = self._write_sub_order(
            order_id, user_id, allocation, upsert=True, on_conflict="order_id,bundle_id"
        )

        course_ids = await self.catalog.get_bundle_course_ids(allocation.item_id)
        if course_ids:
            self.client.table("bundle_course_access").upsert(
                [
                    {
                        "bundle_order_id": bundle_order["id"],
                        "user_id": user_id,
                        "course_id": course_id,
                    }
                    for course_id in course_ids
                ],
                on_conflict="user_id,course_id",
            ).execute()
