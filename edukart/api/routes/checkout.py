"""Checkout and order API routes."""

import logging
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Header, status

from edukart.api.deps import CurrentUser
from edukart.api.middleware.error_handler import AuthorizationError, NotFoundError
from edukart.schemas.checkout import (
    CheckoutInitResponse,
    CheckoutRequest,
    FailedLine,
    FreeSettlement,
    OrderListResponse,
    OrderResponse,
    PaymentCompleteRequest,
    PricingQuote,
    RetrySettlementResponse,
)
from edukart.services.order_service import OrderService
from edukart.services.payment_service import PaymentService
from edukart.services.pricing_service import PricingService
from edukart.services.settlement_service import SettlementService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/checkout", tags=["checkout"])


@router.post(
    "/quote",
    response_model=PricingQuote,
    summary="Price a cart",
    description="Prices a cart with flash sales and an optional coupon. Unknown or unavailable items are dropped.",
)
async def quote_cart(data: CheckoutRequest, user: CurrentUser) -> PricingQuote:
    """Price the cart for display.

    Args:
        data: Cart selection and optional coupon code.
        user: The authenticated buyer.

    Returns:
        PricingQuote: Priced lines, subtotal, applied coupon and total.
    """
    service = PricingService()
    return await service.build_quote(data.cart.to_items(), data.coupon_code, user_id=user.user_id)


@router.post(
    "/init",
    response_model=CheckoutInitResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Start checkout",
    description=(
        "Re-prices the cart server-side. Free carts settle immediately; paid carts get a "
        "Stripe PaymentIntent session for the payment widget."
    ),
)
async def init_checkout(
    data: CheckoutRequest,
    user: CurrentUser,
    idempotency_key: Annotated[
        str | None,
        Header(alias="Idempotency-Key", max_length=128, description="Client key for free checkouts"),
    ] = None,
) -> CheckoutInitResponse:
    """Start a checkout for the cart.

    Args:
        data: Cart selection and optional coupon code.
        user: The authenticated buyer.
        idempotency_key: Resubmitting a free checkout with the same key returns the same order.

    Returns:
        CheckoutInitResponse: Either the settled free order or a payment session.
    """
    service = PaymentService()
    quote, result = await service.init_checkout(
        data.cart.to_items(), data.coupon_code, user, idempotency_key=idempotency_key
    )

    if isinstance(result, FreeSettlement):
        return CheckoutInitResponse(is_free=True, quote=quote, order=result.order)
    return CheckoutInitResponse(is_free=False, quote=quote, payment_session=result)


@router.post(
    "/complete",
    response_model=OrderResponse,
    summary="Complete payment",
    description=(
        "Confirms with Stripe that the payment was captured (and checks the signature when one "
        "is sent), then settles the order. Safe to call more than once: repeated calls return "
        "the same order."
    ),
)
async def complete_checkout(data: PaymentCompleteRequest, user: CurrentUser) -> OrderResponse:
    """Verify and settle a completed payment.

    Args:
        data: Provider order ID, and the payment ID and signature when the client has them.
        user: The authenticated buyer.

    Returns:
        OrderResponse: The settled order.
    """
    service = SettlementService()
    order = await service.complete_payment(
        user,
        data.provider_order_id,
        data.provider_payment_id,
        data.signature,
    )
    return OrderResponse.model_validate(order)


# Orders router - mounted separately at /orders
orders_router = APIRouter(prefix="/orders", tags=["orders"])


@orders_router.get(
    "",
    response_model=OrderListResponse,
    summary="List my orders",
    description="Returns all orders of the authenticated user, newest first.",
)
async def list_orders(user: CurrentUser) -> OrderListResponse:
    """List all orders for the current user."""
    service = OrderService()
    orders = await service.list_orders(user.user_id)
    return OrderListResponse(items=[OrderResponse.model_validate(order) for order in orders])


@orders_router.get(
    "/{order_id}",
    response_model=OrderResponse,
    summary="Get order by ID",
    description="Returns a single order with its sub-orders. Only accessible by the order owner.",
)
async def get_order(order_id: UUID, user: CurrentUser) -> OrderResponse:
    """Get a single order by ID.

    Args:
        order_id: The order's UUID.
        user: The authenticated user.

    Returns:
        OrderResponse: The order data.

    Raises:
        NotFoundError: 404 if order not found.
        AuthorizationError: 403 if not authorized to view this order.
    """
    service = OrderService()
    order = await service.get_order(order_id)
    if not order:
        raise NotFoundError("Order not found")
    if order["user_id"] != str(user.user_id):
        raise AuthorizationError("Not authorized to view this order")
    return OrderResponse.model_validate(order)


@orders_router.post(
    "/{order_id}/retry-settlement",
    response_model=RetrySettlementResponse,
    summary="Retry failed lines",
    description="Re-attempts the lines of a partially settled order that could not be fulfilled.",
)
async def retry_settlement(order_id: UUID, user: CurrentUser) -> RetrySettlementResponse:
    """Retry settlement of failed lines.

    Args:
        order_id: The partially settled order.
        user: The order owner.

    Returns:
        RetrySettlementResponse: Order after the retry and the lines still failing.
    """
    service = SettlementService()
    order, resolved, still_failing = await service.retry_failed_lines(order_id, user)
    return RetrySettlementResponse(
        order=OrderResponse.model_validate(order),
        resolved=resolved,
        failed_lines=[FailedLine.model_validate(line) for line in still_failing],
    )
