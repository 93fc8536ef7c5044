"""Checkout and settlement error taxonomy.

Every error here is an APIError, so the global error middleware renders it
as a standard ErrorResponse. Pricing errors (empty cart, coupon rejection)
are recoverable and shown inline. Verification failures end the checkout
attempt, while a payment the provider has not captured yet leaves it open.
Partial settlement means money was captured and some lines still
need follow-up; settled lines are never undone.
"""

from typing import Any

from fastapi import status

from edukart.api.middleware.error_handler import APIError
from edukart.schemas.coupon import CouponErrorReason

COUPON_ERROR_MESSAGES: dict[CouponErrorReason, str] = {
    CouponErrorReason.NOT_FOUND: "Invalid coupon code",
    CouponErrorReason.INACTIVE: "Coupon is inactive or expired",
    CouponErrorReason.BELOW_MINIMUM: "Cart total is below the coupon minimum",
    CouponErrorReason.LIMIT_REACHED: "Coupon usage limit exceeded",
    CouponErrorReason.NOT_ELIGIBLE: "You are not eligible for this coupon",
    CouponErrorReason.NOT_APPLICABLE: "Coupon not applicable to this cart",
}


class EmptyCartError(APIError):
    """Nothing in the cart could be priced."""

    def __init__(self, message: str = "Cart has no purchasable items") -> None:
        super().__init__(
            message=message,
            status_code=status.HTTP_400_BAD_REQUEST,
            error_type="empty_cart",
        )


class CouponError(APIError):
    """Coupon rejected for this cart or caller."""

    def __init__(self, reason: CouponErrorReason, message: str | None = None) -> None:
        self.reason = reason
        super().__init__(
            message=message or COUPON_ERROR_MESSAGES[reason],
            status_code=status.HTTP_400_BAD_REQUEST,
            error_type="coupon_error",
            details=[{"loc": ["coupon_code"], "msg": message or COUPON_ERROR_MESSAGES[reason], "type": reason.value}],
        )


class VerificationError(APIError):
    """Payment signature did not verify, or the attempt can no longer settle."""

    def __init__(self, message: str = "Invalid payment signature") -> None:
        super().__init__(
            message=message,
            status_code=status.HTTP_400_BAD_REQUEST,
            error_type="verification_failed",
        )


class PaymentPendingError(APIError):
    """The provider has not captured the payment yet; the checkout stays open."""

    def __init__(self, message: str = "Payment has not been completed yet") -> None:
        super().__init__(
            message=message,
            status_code=status.HTTP_409_CONFLICT,
            error_type="payment_pending",
        )


class SettlementInProgressError(APIError):
    """Another request is still settling the same payment."""

    def __init__(self, message: str = "Payment settlement is still in progress, retry shortly") -> None:
        super().__init__(
            message=message,
            status_code=status.HTTP_409_CONFLICT,
            error_type="settlement_in_progress",
        )


class PartialSettlementError(APIError):
    """Payment captured and order created, but some lines failed to settle.

    Attributes:
        order_id: The order that was created.
        failed_lines: One dict per failed line with product_type, item_id and reason.
    """

    def __init__(self, order_id: str, failed_lines: list[dict[str, Any]]) -> None:
        self.order_id = str(order_id)
        self.failed_lines = failed_lines
        super().__init__(
            message=f"Order {order_id} settled with {len(failed_lines)} failed line(s)",
            status_code=status.HTTP_409_CONFLICT,
            error_type="partial_settlement",
            details=[
                {
                    "loc": ["orders", self.order_id, line["product_type"], line["item_id"]],
                    "msg": line["reason"],
                    "type": "line_not_settled",
                }
                for line in failed_lines
            ],
        )


class PaymentProviderError(APIError):
    """The payment provider rejected or could not create a payment session."""

    def __init__(self, message: str = "Could not start payment, please try again") -> None:
        super().__init__(
            message=message,
            status_code=status.HTTP_502_BAD_GATEWAY,
            error_type="payment_provider_error",
        )
