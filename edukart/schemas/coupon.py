"""Coupon Pydantic schemas."""

from datetime import datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from edukart.schemas.checkout import CartSelection


class DiscountType(str, Enum):
    """How a coupon discount is computed."""

    PERCENTAGE = "PERCENTAGE"
    FIXED = "FIXED"


class TargetUserType(str, Enum):
    """Which callers may redeem a coupon."""

    ALL = "ALL"
    NEW_USER = "NEW_USER"
    SPECIFIC_USER = "SPECIFIC_USER"


class CouponErrorReason(str, Enum):
    """Why a coupon was rejected."""

    NOT_FOUND = "NOT_FOUND"
    INACTIVE = "INACTIVE"
    BELOW_MINIMUM = "BELOW_MINIMUM"
    LIMIT_REACHED = "LIMIT_REACHED"
    NOT_ELIGIBLE = "NOT_ELIGIBLE"
    NOT_APPLICABLE = "NOT_APPLICABLE"


class Coupon(BaseModel):
    """Coupon as stored in the coupons table."""

    model_config = ConfigDict(from_attributes=True, extra="ignore")

    id: str = Field(description="Coupon ID")
    code: str = Field(description="Upper-case coupon code")
    discount_type: DiscountType = Field(description="PERCENTAGE or FIXED")
    discount_value: Decimal = Field(gt=0, description="Percent (0-100] or fixed amount")
    min_amount: Decimal | None = Field(default=None, description="Minimum subtotal")
    max_discount: Decimal | None = Field(default=None, description="Cap for percentage discounts")
    valid_from: datetime = Field(description="Start of validity window")
    valid_until: datetime = Field(description="End of validity window")
    usage_limit: int | None = Field(default=None, description="Maximum redemptions")
    used_count: int = Field(default=0, ge=0, description="Redemptions so far")
    applicable_to: str = Field(default="ALL", description="ALL or a single product type")
    target_user_type: TargetUserType = Field(default=TargetUserType.ALL, description="Caller targeting")
    target_user_ids: list[str] | None = Field(default=None, description="Targeted user IDs")
    is_active: bool = Field(default=True, description="Admin on/off switch")


class CouponValidateRequest(BaseModel):
    """Request body for POST /coupons/validate."""

    model_config = ConfigDict(from_attributes=True)

    code: str = Field(min_length=1, max_length=64, description="Coupon code")
    cart: CartSelection = Field(description="Cart to validate the coupon against")


class CouponValidateResponse(BaseModel):
    """Discount preview for a coupon against a cart."""

    model_config = ConfigDict(from_attributes=True)

    code: str = Field(description="Coupon code")
    discount_type: DiscountType = Field(description="PERCENTAGE or FIXED")
    discount_value: Decimal = Field(description="Configured discount value")
    discount_amount: Decimal = Field(description="Discount for this cart")
    subtotal: Decimal = Field(description="Cart subtotal")
    final_amount: Decimal = Field(description="Total after discount")
