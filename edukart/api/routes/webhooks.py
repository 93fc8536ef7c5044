"""Webhook API routes for external service integrations."""

import logging

from fastapi import APIRouter, HTTPException, Request, status

from edukart.services.settlement_service import SettlementService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post(
    "/stripe",
    status_code=status.HTTP_200_OK,
    summary="Handle Stripe webhooks",
    description="Receives and processes Stripe webhook events. Requires valid signature.",
)
async def stripe_webhook(request: Request) -> dict[str, str]:
    """Handle Stripe webhook events.

    Handles:
    - payment_intent.succeeded: settles the checkout (same idempotent path as /checkout/complete)
    - payment_intent.payment_failed: logged, the buyer may still retry the same intent
    - payment_intent.canceled: cancels a still-open checkout

    Args:
        request: FastAPI request object for reading raw body and headers.

    Returns:
        dict: Acknowledgment message.

    Raises:
        HTTPException: 400 if signature is invalid.
    """
    payload = await request.body()

    sig_header = request.headers.get("stripe-signature")
    if not sig_header:
        logger.error("Missing Stripe-Signature header in webhook request")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing Stripe-Signature header",
        )

    service = SettlementService()

    try:
        event = service.verify_webhook_signature(payload, sig_header)
    except ValueError as e:
        logger.error("Invalid webhook signature: %s", str(e))
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid signature",
        ) from e

    event_type = event.get("type", "")
    logger.info("Processing Stripe webhook event: %s", event_type)

    if event_type == "payment_intent.succeeded":
        await service.handle_payment_succeeded(event)
        logger.info("Processed payment_intent.succeeded")

    elif event_type == "payment_intent.payment_failed":
        await service.handle_payment_failed(event)
        logger.info("Processed payment_intent.payment_failed")

    elif event_type == "payment_intent.canceled":
        await service.handle_payment_canceled(event)
        logger.info("Processed payment_intent.canceled")

    else:
        # Log unhandled events but return 200 to acknowledge receipt
        logger.debug("Unhandled webhook event type: %s", event_type)

    return {"status": "received"}
