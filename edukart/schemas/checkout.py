"""Checkout, quote and order Pydantic schemas for API request/response models."""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ProductType(str, Enum):
    """Purchasable product types.

    The value doubles as the coupon applicability tag for carts that
    contain only that type.
    """

    EBOOK = "EBOOK"
    WEBINAR = "WEBINAR"
    GUIDANCE = "GUIDANCE"
    MENTORSHIP = "MENTORSHIP"
    COURSE = "COURSE"
    BUNDLE = "BUNDLE"
    OFFLINE_BATCH = "OFFLINE_BATCH"


# Applicability tag for carts mixing two or more product types
ALL_PRODUCTS_TAG = "ALL"

PaymentStatus = Literal["PAID", "FREE", "PENDING"]

# CartSelection field name -> product type, in display order
CART_FIELDS: dict[str, ProductType] = {
    "ebook_ids": ProductType.EBOOK,
    "webinar_ids": ProductType.WEBINAR,
    "guidance_slot_ids": ProductType.GUIDANCE,
    "mentorship_ids": ProductType.MENTORSHIP,
    "course_ids": ProductType.COURSE,
    "bundle_ids": ProductType.BUNDLE,
    "offline_batch_ids": ProductType.OFFLINE_BATCH,
}


class CartItem(BaseModel):
    """A single cart entry tagged with its product type."""

    model_config = ConfigDict(frozen=True)

    product_type: ProductType = Field(description="Product type")
    item_id: str = Field(min_length=1, description="Catalog item ID (slot ID for guidance)")


class CartSelection(BaseModel):
    """Client-held cart: one list of item IDs per product type."""

    model_config = ConfigDict(from_attributes=True)

    ebook_ids: list[str] = Field(default_factory=list, description="Ebook IDs")
    webinar_ids: list[str] = Field(default_factory=list, description="Webinar IDs")
    guidance_slot_ids: list[str] = Field(default_factory=list, description="Guidance slot IDs")
    mentorship_ids: list[str] = Field(default_factory=list, description="Live mentorship program IDs")
    course_ids: list[str] = Field(default_factory=list, description="Course IDs")
    bundle_ids: list[str] = Field(default_factory=list, description="Course bundle IDs")
    offline_batch_ids: list[str] = Field(default_factory=list, description="Offline batch IDs")

    @model_validator(mode="after")
    def check_ids_unique_across_types(self) -> "CartSelection":
        """Reject carts where the same ID is listed under two product types."""
        seen: dict[str, str] = {}
        for field_name in CART_FIELDS:
            for item_id in set(getattr(self, field_name)):
                if item_id in seen:
                    raise ValueError(
                        f"Item {item_id} appears in both {seen[item_id]} and {field_name}"
                    )
                seen[item_id] = field_name
        return self

    def to_items(self) -> list[CartItem]:
        """Flatten the selection into tagged cart items, dropping duplicates."""
        items: list[CartItem] = []
        for field_name, product_type in CART_FIELDS.items():
            for item_id in dict.fromkeys(getattr(self, field_name)):
                items.append(CartItem(product_type=product_type, item_id=item_id))
        return items


class PriceableLine(BaseModel):
    """One priced cart line resolved from the catalog."""

    model_config = ConfigDict(frozen=True)

    product_type: ProductType = Field(description="Product type")
    item_id: str = Field(description="Catalog item ID")
    title: str = Field(default="", description="Display title")
    unit_price: Decimal = Field(ge=0, description="Effective price (flash sale, sale or base price)")
    is_free: bool = Field(default=False, description="Free items contribute 0 to the subtotal")

    @property
    def chargeable_amount(self) -> Decimal:
        """Amount this line contributes to the subtotal."""
        return Decimal("0") if self.is_free else self.unit_price


class AppliedCoupon(BaseModel):
    """Coupon applied to a quote."""

    model_config = ConfigDict(frozen=True)

    code: str = Field(description="Coupon code")
    discount_amount: Decimal = Field(ge=0, description="Discount taken off the subtotal")


class PricingQuote(BaseModel):
    """Priced cart. Recomputed server-side on every checkout step."""

    model_config = ConfigDict(frozen=True)

    lines: list[PriceableLine] = Field(description="Priced lines, free lines included")
    subtotal: Decimal = Field(ge=0, description="Sum of non-free line prices")
    applied_coupon: AppliedCoupon | None = Field(default=None, description="Applied coupon, if any")
    total: Decimal = Field(ge=0, description="max(0, subtotal - discount)")

    @property
    def discount_amount(self) -> Decimal:
        """Discount taken by the applied coupon (0 without one)."""
        return self.applied_coupon.discount_amount if self.applied_coupon else Decimal("0")

    @property
    def present_types(self) -> set[ProductType]:
        """Product types present in the priced cart."""
        return {line.product_type for line in self.lines}


class CheckoutRequest(BaseModel):
    """Request body for POST /checkout/quote and POST /checkout/init."""

    model_config = ConfigDict(from_attributes=True)

    cart: CartSelection = Field(description="Cart selection")
    coupon_code: str | None = Field(default=None, max_length=64, description="Optional coupon code")


class PaymentSession(BaseModel):
    """Provider-hosted payment session descriptor for the payment widget."""

    model_config = ConfigDict(from_attributes=True)

    internal_ref: str = Field(description="Checkout attempt ID")
    provider_order_id: str = Field(description="Provider order (PaymentIntent) ID")
    amount: int = Field(gt=0, description="Amount in the currency's minor unit (paise)")
    currency: str = Field(description="ISO currency code")
    provider_key: str = Field(description="Publishable key for the payment widget")
    client_secret: str | None = Field(default=None, description="Client secret for confirming the payment")


class PaymentCompleteRequest(BaseModel):
    """Client callback after the payment widget reports success.

    Stripe confirms the payment server-side; payment ID and signature are
    only checked when the client relays them.
    """

    model_config = ConfigDict(from_attributes=True)

    provider_order_id: str = Field(min_length=1, description="Provider order ID")
    provider_payment_id: str | None = Field(default=None, min_length=1, description="Provider payment (charge) ID")
    signature: str | None = Field(
        default=None, min_length=1, description="HMAC-SHA256 signature of '<order>|<payment>'"
    )


class SubOrderResponse(BaseModel):
    """Per-product-type settlement record."""

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(description="Sub-order ID")
    product_type: ProductType = Field(description="Product type")
    item_id: str = Field(description="Catalog item ID")
    amount_paid: Decimal = Field(description="Share of the final amount paid for this line")
    payment_status: PaymentStatus = Field(description="PAID, FREE or PENDING")


class OrderResponse(BaseModel):
    """Schema for order API responses."""

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(description="Order unique identifier")
    order_number: str = Field(description="Human-readable order number")
    user_id: str = Field(description="Purchasing user ID")
    coupon_code: str | None = Field(default=None, description="Applied coupon code")
    discount_amount: Decimal = Field(description="Coupon discount")
    total_amount: Decimal = Field(description="Subtotal before discount")
    final_amount: Decimal = Field(description="Amount charged")
    price_mismatch: bool = Field(
        default=False, description="Catalog prices at settlement differ from the amount charged"
    )
    provider_order_id: str | None = Field(default=None, description="Provider order ID")
    provider_payment_id: str | None = Field(default=None, description="Provider payment ID")
    created_at: datetime | None = Field(default=None, description="Creation timestamp")
    ebook_items: list[SubOrderResponse] = Field(default_factory=list)
    webinar_orders: list[SubOrderResponse] = Field(default_factory=list)
    guidance_orders: list[SubOrderResponse] = Field(default_factory=list)
    mentorship_orders: list[SubOrderResponse] = Field(default_factory=list)
    course_orders: list[SubOrderResponse] = Field(default_factory=list)
    bundle_orders: list[SubOrderResponse] = Field(default_factory=list)
    offline_batch_orders: list[SubOrderResponse] = Field(default_factory=list)


class FreeSettlement(BaseModel):
    """Result of a zero-total checkout, settled without the payment provider."""

    model_config = ConfigDict(from_attributes=True)

    order: OrderResponse = Field(description="Settled order")


class CheckoutInitResponse(BaseModel):
    """Response for POST /checkout/init."""

    model_config = ConfigDict(from_attributes=True)

    is_free: bool = Field(description="True when the cart settled without payment")
    quote: PricingQuote = Field(description="Server-side quote the session was created for")
    payment_session: PaymentSession | None = Field(default=None, description="Session for paid checkouts")
    order: OrderResponse | None = Field(default=None, description="Settled order for free checkouts")


class OrderListResponse(BaseModel):
    """Schema for order list API responses."""

    model_config = ConfigDict(from_attributes=True)

    items: list[OrderResponse] = Field(description="List of orders")


class FailedLine(BaseModel):
    """A line that could not be settled."""

    model_config = ConfigDict(from_attributes=True)

    product_type: ProductType = Field(description="Product type")
    item_id: str = Field(description="Catalog item ID")
    reason: str = Field(description="Why the line failed to settle")


class RetrySettlementResponse(BaseModel):
    """Response for POST /orders/{order_id}/retry-settlement."""

    model_config = ConfigDict(from_attributes=True)

    order: OrderResponse = Field(description="Order after the retry")
    resolved: int = Field(description="Lines settled by this retry")
    failed_lines: list[FailedLine] = Field(default_factory=list, description="Lines still unsettled")
