"""Unit tests for checkout initialization and payment sessions."""

from decimal import Decimal
from unittest.mock import patch

import pytest
import stripe

from edukart.core.errors import PaymentProviderError
from edukart.schemas.checkout import CartSelection, FreeSettlement, PaymentSession
from edukart.services.payment_service import PaymentService
from edukart.services.settlement_service import SettlementService


class TestInitCheckout:
    """Tests for PaymentService.init_checkout."""

    @pytest.mark.asyncio
    async def test_paid_cart_opens_payment_session(self, fake_db, mock_stripe, seed, buyer) -> None:
        course = seed.item("courses", price=1000)
        ebook = seed.item("ebooks", price=300, is_free=True)
        seed.coupon("SAVE200", discount_value=200, min_amount=500)
        items = CartSelection(course_ids=[course["id"]], ebook_ids=[ebook["id"]]).to_items()

        quote, session = await PaymentService().init_checkout(items, "SAVE200", buyer)

        assert quote.total == Decimal("800")
        assert isinstance(session, PaymentSession)
        assert session.provider_order_id == "pi_test_1"
        assert session.amount == 80000
        assert session.currency == "inr"
        assert session.provider_key == "pk_test_stripe_publishable_key"
        assert session.client_secret == "pi_test_1_secret"

        attempt = fake_db.rows("checkout_attempts")[0]
        assert attempt["id"] == session.internal_ref
        assert attempt["status"] == "SESSION_CREATED"
        assert attempt["provider_order_id"] == "pi_test_1"
        assert attempt["amount"] == 80000
        assert attempt["coupon_code"] == "SAVE200"
        assert Decimal(attempt["discount_amount"]) == Decimal("200")
        snapshot = attempt["cart_snapshot"]
        assert [(entry["product_type"], entry["item_id"]) for entry in snapshot] == [
            ("EBOOK", ebook["id"]),
            ("COURSE", course["id"]),
        ]
        assert [Decimal(entry["unit_price"]) for entry in snapshot] == [Decimal("300"), Decimal("1000")]
        assert [entry["is_free"] for entry in snapshot] == [True, False]

        kwargs = mock_stripe.PaymentIntent.create.call_args.kwargs
        assert kwargs["amount"] == 80000
        assert kwargs["currency"] == "inr"
        assert kwargs["metadata"]["attempt_id"] == attempt["id"]
        assert kwargs["idempotency_key"] == f"checkout-attempt-{attempt['id']}"
        assert kwargs["receipt_email"] == "buyer@example.com"

    @pytest.mark.asyncio
    async def test_coupon_usage_not_counted_before_settlement(self, fake_db, mock_stripe, seed, buyer) -> None:
        course = seed.item("courses", price=1000)
        coupon = seed.coupon("SAVE200", discount_value=200)
        items = CartSelection(course_ids=[course["id"]]).to_items()

        await PaymentService().init_checkout(items, "SAVE200", buyer)

        assert coupon["used_count"] == 0
        assert fake_db.rows("orders") == []

    @pytest.mark.asyncio
    async def test_stripe_error_cancels_attempt(self, fake_db, mock_stripe, seed, buyer) -> None:
        course = seed.item("courses", price=1000)
        mock_stripe.PaymentIntent.create.side_effect = stripe.StripeError("card network down")
        items = CartSelection(course_ids=[course["id"]]).to_items()

        with pytest.raises(PaymentProviderError):
            await PaymentService().init_checkout(items, None, buyer)

        attempt = fake_db.rows("checkout_attempts")[0]
        assert attempt["status"] == "CANCELLED"
        assert attempt.get("provider_order_id") is None

    @pytest.mark.asyncio
    async def test_free_cart_settles_without_stripe(self, fake_db, mock_stripe, seed, buyer) -> None:
        ebook = seed.item("ebooks", price=300, is_free=True)
        webinar = seed.item("webinars", price=0)
        items = CartSelection(ebook_ids=[ebook["id"]], webinar_ids=[webinar["id"]]).to_items()

        quote, result = await PaymentService().init_checkout(items, None, buyer)

        assert quote.total == Decimal("0")
        assert isinstance(result, FreeSettlement)
        mock_stripe.PaymentIntent.create.assert_not_called()

        assert [row["payment_status"] for row in fake_db.rows("ebook_order_items")] == ["FREE"]
        assert [row["payment_status"] for row in fake_db.rows("webinar_orders")] == ["FREE"]
        assert result.order.final_amount == Decimal("0")
        assert fake_db.rows("checkout_attempts")[0]["status"] == "FREE_SETTLED"

    @pytest.mark.asyncio
    async def test_coupon_discounting_to_zero_is_free(self, fake_db, mock_stripe, seed, buyer) -> None:
        course = seed.item("courses", price=500)
        coupon = seed.coupon("FULL", discount_type="PERCENTAGE", discount_value=100)
        items = CartSelection(course_ids=[course["id"]]).to_items()

        _, result = await PaymentService().init_checkout(items, "FULL", buyer)

        assert isinstance(result, FreeSettlement)
        assert result.order.coupon_code == "FULL"
        assert result.order.course_orders[0].payment_status == "FREE"
        assert coupon["used_count"] == 1
        mock_stripe.PaymentIntent.create.assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_stripe_key(self, fake_db, mock_stripe, seed, buyer) -> None:
        course = seed.item("courses", price=1000)
        service = PaymentService()
        service.settings = service.settings.model_copy(update={"stripe_secret_key": ""})

        with pytest.raises(PaymentProviderError):
            await service.init_checkout(CartSelection(course_ids=[course["id"]]).to_items(), None, buyer)

        assert fake_db.rows("checkout_attempts") == []



class TestFreeCheckoutIdempotency:
    """Tests for resubmitted free checkouts."""

    @pytest.mark.asyncio
    async def test_resubmission_returns_first_order(self, fake_db, mock_stripe, seed, buyer) -> None:
        course = seed.item("courses", price=500)
        coupon = seed.coupon("FULL", discount_type="PERCENTAGE", discount_value=100, usage_limit=1)
        items = CartSelection(course_ids=[course["id"]]).to_items()
        service = PaymentService()

        _, first = await service.init_checkout(items, "FULL", buyer, idempotency_key="cart-42")
        quote, second = await service.init_checkout(items, "FULL", buyer, idempotency_key="cart-42")

        assert second.order.id == first.order.id
        assert quote.total == Decimal("0")
        assert quote.applied_coupon.code == "FULL"
        assert len(fake_db.rows("orders")) == 1
        assert len(fake_db.rows("course_orders")) == 1
        assert coupon["used_count"] == 1

    @pytest.mark.asyncio
    async def test_different_keys_settle_separately(self, fake_db, mock_stripe, seed, buyer) -> None:
        ebook = seed.item("ebooks", price=300, is_free=True)
        items = CartSelection(ebook_ids=[ebook["id"]]).to_items()
        service = PaymentService()

        _, first = await service.init_checkout(items, None, buyer, idempotency_key="a")
        _, second = await service.init_checkout(items, None, buyer, idempotency_key="b")

        assert first.order.id != second.order.id
        assert len(fake_db.rows("orders")) == 2

    @pytest.mark.asyncio
    async def test_cancelled_free_checkout_can_be_resubmitted(self, fake_db, mock_stripe, seed, buyer) -> None:
        ebook = seed.item("ebooks", price=300, is_free=True)
        items = CartSelection(ebook_ids=[ebook["id"]]).to_items()
        service = PaymentService()

        with patch.object(SettlementService, "_commit", side_effect=RuntimeError("connection reset")):
            with pytest.raises(RuntimeError):
                await service.init_checkout(items, None, buyer, idempotency_key="retry-me")
        assert fake_db.rows("checkout_attempts")[0]["status"] == "CANCELLED"

        _, result = await service.init_checkout(items, None, buyer, idempotency_key="retry-me")

        assert isinstance(result, FreeSettlement)
        assert len(fake_db.rows("orders")) == 1
