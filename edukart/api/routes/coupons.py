"""Coupon API routes."""

from fastapi import APIRouter

from edukart.api.deps import CurrentUser
from edukart.schemas.coupon import CouponValidateRequest, CouponValidateResponse
from edukart.services.pricing_service import PricingService

router = APIRouter(prefix="/coupons", tags=["coupons"])


@router.post(
    "/validate",
    response_model=CouponValidateResponse,
    summary="Validate a coupon",
    description="Checks a coupon against a cart and previews the discount. Does not consume the coupon.",
)
async def validate_coupon(data: CouponValidateRequest, user: CurrentUser) -> CouponValidateResponse:
    """Preview a coupon discount for a cart.

    Args:
        data: Coupon code and cart selection.
        user: The authenticated buyer.

    Returns:
        CouponValidateResponse: Discount preview.
    """
    service = PricingService()
    quote = await service.build_quote(data.cart.to_items(), data.code, user_id=user.user_id)
    coupon = await service.coupons.get_coupon_by_code(data.code)

    return CouponValidateResponse(
        code=coupon.code,
        discount_type=coupon.discount_type,
        discount_value=coupon.discount_value,
        discount_amount=quote.discount_amount,
        subtotal=quote.subtotal,
        final_amount=quote.total,
    )
