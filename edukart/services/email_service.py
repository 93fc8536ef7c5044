"""Email service using Resend for transactional emails."""

import logging
from typing import Any

import resend

from edukart.core.config import get_settings
from edukart.models.order import SUB_ORDER_TABLES

logger = logging.getLogger(__name__)


class EmailService:
    """Service for sending transactional emails via Resend."""

    def __init__(self) -> None:
        """Initialize email service with Resend API key."""
        settings = get_settings()
        resend.api_key = settings.resend_api_key
        self.enabled = bool(settings.resend_api_key)
        self.from_email = settings.email_from_address
        self.frontend_url = settings.frontend_url

    async def send_order_confirmation(self, to_email: str, order: dict[str, Any]) -> dict[str, Any]:
        """Send an order confirmation email.

        Delivery is best effort: failures are logged and reported in the
        result, never raised, so a settled order is never affected.

        Args:
            to_email: Recipient email address.
            order: Settled order with its sub-order collections.

        Returns:
            dict: {"success": bool, "email_id" | "error": ...}.
        """
        if not self.enabled:
            logger.debug("Resend not configured, skipping confirmation for order %s", order.get("id"))
            return {"success": False, "error": "Email not configured"}

        order_url = f"{self.frontend_url}/orders/{order['id']}"
        order_number = order.get("order_number", order["id"])
        item_count = sum(len(order.get(target.collection) or []) for target in SUB_ORDER_TABLES.values())
        final_amount = order.get("final_amount", 0)

        html_content = f"""
<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <title>Order confirmed</title>
</head>
<body style="font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto; padding: 20px;">
    <div style="text-align: center; padding: 30px 0;">
        <h1 style="color: #4f46e5; margin-bottom: 10px;">Your order is confirmed</h1>
        <p style="font-size: 16px; color: #6b7280;">Order {order_number}</p>
    </div>

    <div style="background: #f9fafb; padding: 25px; border-radius: 10px; margin: 20px 0;">
        <p>{item_count} item(s) are now available in your library.</p>
        <p><strong>Amount paid:</strong> &#8377;{final_amount}</p>
    </div>

    <div style="text-align: center; margin: 30px 0;">
        <a href="{order_url}" style="background: #4f46e5; color: white; padding: 12px 28px; text-decoration: none; border-radius: 6px; font-weight: 600;">
            View order
        </a>
    </div>
</body>
</html>
"""

        text_content = f"""
Your order {order_number} is confirmed.

{item_count} item(s) are now available in your library.
Amount paid: Rs. {final_amount}

View your order: {order_url}
"""

        try:
            response = resend.Emails.send({
                "from": self.from_email,
                "to": [to_email],
                "subject": f"Order {order_number} confirmed",
                "html": html_content,
                "text": text_content,
            })

            logger.info("Order confirmation sent to %s, id: %s", to_email, response.get("id"))
            return {"success": True, "email_id": response.get("id")}

        except Exception as e:
            logger.error("Failed to send order confirmation to %s: %s", to_email, str(e))
            return {"success": False, "error": str(e)}
