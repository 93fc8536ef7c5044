"""Order and checkout attempt type definitions for database operations."""

from datetime import datetime
from typing import Literal, NamedTuple, TypedDict

from edukart.schemas.checkout import ProductType

# Checkout attempt lifecycle, matching the checkout_attempt_status database enum
AttemptStatus = Literal[
    "QUOTED",
    "SESSION_CREATED",
    "SETTLING",
    "SETTLED",
    "FREE_SETTLED",
    "PARTIAL_SETTLEMENT",
    "VERIFICATION_FAILED",
    "CANCELLED",
]

# Statuses after which an attempt holds a settled order
SETTLED_STATUSES: frozenset[str] = frozenset({"SETTLED", "FREE_SETTLED", "PARTIAL_SETTLEMENT"})

# Statuses from which a client callback can never settle an attempt
TERMINAL_FAILURE_STATUSES: frozenset[str] = frozenset({"VERIFICATION_FAILED", "CANCELLED"})

# Statuses a provider-confirmed capture may still settle from
PROVIDER_SETTLEABLE_STATUSES: tuple[str, ...] = ("SESSION_CREATED", "CANCELLED", "VERIFICATION_FAILED")


class SubOrderTable(NamedTuple):
    """Where sub-orders of one product type are stored."""

    table: str
    item_column: str
    collection: str


SUB_ORDER_TABLES: dict[ProductType, SubOrderTable] = {
    ProductType.EBOOK: SubOrderTable("ebook_order_items", "ebook_id", "ebook_items"),
    ProductType.WEBINAR: SubOrderTable("webinar_orders", "webinar_id", "webinar_orders"),
    ProductType.GUIDANCE: SubOrderTable("guidance_orders", "slot_id", "guidance_orders"),
    ProductType.MENTORSHIP: SubOrderTable("mentorship_orders", "mentorship_id", "mentorship_orders"),
    ProductType.COURSE: SubOrderTable("course_orders", "course_id", "course_orders"),
    ProductType.BUNDLE: SubOrderTable("bundle_orders", "bundle_id", "bundle_orders"),
    ProductType.OFFLINE_BATCH: SubOrderTable("offline_batch_orders", "batch_id", "offline_batch_orders"),
}


class CartSnapshotItem(TypedDict):
    """One entry of the cart snapshot stored on a checkout attempt."""

    product_type: str
    item_id: str
    title: str
    unit_price: str
    is_free: bool


class CheckoutAttempt(TypedDict):
    """checkout_attempts table row.

    The internal reference binding a payment session to the user, the cart
    snapshot and the coupon agreed at checkout. Settlement re-prices from
    this row only and honours the discount recorded here.
    """

    id: str
    user_id: str
    cart_snapshot: list[CartSnapshotItem]
    coupon_code: str | None
    discount_amount: float
    amount: int
    currency: str
    provider_order_id: str | None
    provider_payment_id: str | None
    idempotency_key: str | None
    status: AttemptStatus
    order_id: str | None
    created_at: datetime
    updated_at: datetime


class Order(TypedDict):
    """orders table row."""

    id: str
    order_number: str
    user_id: str
    coupon_code: str | None
    discount_amount: float
    total_amount: float
    final_amount: float
    price_mismatch: bool
    provider_order_id: str | None
    provider_payment_id: str | None
    created_at: datetime


class SubOrderCreate(TypedDict, total=False):
    """Data written for one sub-order row (item column added per table)."""

    order_id: str
    user_id: str
    amount_paid: float
    payment_status: Literal["PAID", "FREE", "PENDING"]


class SettlementFailure(TypedDict):
    """settlement_failures table row, one per line that did not settle."""

    id: str
    order_id: str
    product_type: str
    item_id: str
    amount_paid: float
    payment_status: str
    reason: str
    resolved: bool
    created_at: datetime
