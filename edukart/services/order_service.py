"""Order read-side: orders with their per-type sub-orders."""

import logging
from typing import Any
from uuid import UUID

from edukart.core.supabase import get_supabase_client
from edukart.models.order import SUB_ORDER_TABLES

logger = logging.getLogger(__name__)


class OrderService:
    """Service for reading settled orders."""

    def __init__(self) -> None:
        """Initialize order service with the database client."""
        self.client = get_supabase_client()

    async def get_order(self, order_id: UUID | str) -> dict[str, Any] | None:
        """Get an order with all of its sub-orders.

        Args:
            order_id: The order's UUID.

        Returns:
            dict | None: The order with one list per product type, or None.
        """
        response = (
            self.client.table("orders")
            .select("*")
            .eq("id", str(order_id))
            .maybe_single()
            .execute()
        )
        order = response.data if response and response.data else None
        if not order:
            return None
        return self._with_sub_orders(order)

    async def get_order_by_provider_order(self, provider_order_id: str) -> dict[str, Any] | None:
        """Get the order settled for a provider order ID, if any."""
        response = (
            self.client.table("orders")
            .select("*")
            .eq("provider_order_id", provider_order_id)
            .maybe_single()
            .execute()
        )
        order = response.data if response and response.data else None
        if not order:
            return None
        return self._with_sub_orders(order)

    async def list_orders(self, user_id: UUID | str) -> list[dict[str, Any]]:
        """List a user's orders, newest first.

        Args:
            user_id: The buyer's UUID.

        Returns:
            list[dict]: Orders with sub-orders.
        """
        response = (
            self.client.table("orders")
            .select("*")
            .eq("user_id", str(user_id))
            .order("created_at", desc=True)
            .execute()
        )
        return [self._with_sub_orders(order) for order in response.data or []]

    def _with_sub_orders(self, order: dict[str, Any]) -> dict[str, Any]:
        result = dict(order)
        for product_type, target in SUB_ORDER_TABLES.items():
            response = (
                self.client.table(target.table)
                .select("*")
                .eq("order_id", order["id"])
                .execute()
            )
            result[target.collection] = [
                {
                    "id": row["id"],
                    "product_type": product_type.value,
                    "item_id": row[target.item_column],
                    "amount_paid": row.get("amount_paid", 0),
                    "payment_status": row.get("payment_status", "PAID"),
                }
                for row in response.data or []
            ]
        return result
