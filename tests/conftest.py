"""Pytest configuration and fixtures."""

import os
import time
import uuid
from collections.abc import Callable, Generator
from datetime import datetime, timedelta, timezone
from typing import Any
from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from postgrest.exceptions import APIError as PostgrestAPIError

# Set test environment variables before importing application modules
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("SUPABASE_URL", "https://test-project.supabase.co")
os.environ.setdefault("SUPABASE_SECRET_KEY", "test-secret-key")
os.environ.setdefault("SUPABASE_JWT_SECRET", "test-jwt-secret")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_stripe_secret_key")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test_webhook_secret")
os.environ.setdefault("STRIPE_PUBLISHABLE_KEY", "pk_test_stripe_publishable_key")
os.environ.setdefault("PAYMENT_SIGNATURE_SECRET", "test-payment-signature-secret")
os.environ.setdefault("RESEND_API_KEY", "")

TEST_USER_ID = "11111111-1111-4111-8111-111111111111"
OTHER_USER_ID = "22222222-2222-4222-8222-222222222222"

# Modules that look up the Supabase client at call time
SUPABASE_CLIENT_TARGETS = (
    "edukart.core.supabase.get_supabase_client",
    "edukart.services.catalog_service.get_supabase_client",
    "edukart.services.coupon_service.get_supabase_client",
    "edukart.services.fulfillment_service.get_supabase_client",
    "edukart.services.order_service.get_supabase_client",
    "edukart.services.payment_service.get_supabase_client",
    "edukart.services.settlement_service.get_supabase_client",
)


# In-memory PostgREST stand-in


class FakeResponse:
    """Mimics postgrest APIResponse."""

    def __init__(self, data: Any) -> None:
        self.data = data


class FakeQuery:
    """Chainable query over one in-memory table."""

    def __init__(self, db: "FakeSupabase", table: str) -> None:
        self.db = db
        self.table = table
        self.operation = "select"
        self.payload: Any = None
        self.on_conflict: str | None = None
        self.filters: list[Callable[[dict[str, Any]], bool]] = []
        self.order_by: tuple[str, bool] | None = None
        self.row_limit: int | None = None
        self.single = False

    def select(self, *columns: str, **kwargs: Any) -> "FakeQuery":
        return self

    def insert(self, rows: dict[str, Any] | list[dict[str, Any]]) -> "FakeQuery":
        self.operation = "insert"
        self.payload = rows
        return self

    def upsert(self, rows: dict[str, Any] | list[dict[str, Any]], on_conflict: str | None = None) -> "FakeQuery":
        self.operation = "upsert"
        self.payload = rows
        self.on_conflict = on_conflict
        return self

    def update(self, values: dict[str, Any]) -> "FakeQuery":
        self.operation = "update"
        self.payload = values
        return self

    def eq(self, column: str, value: Any) -> "FakeQuery":
        self.filters.append(lambda row: row.get(column) == value)
        return self

    def neq(self, column: str, value: Any) -> "FakeQuery":
        self.filters.append(lambda row: row.get(column) != value)
        return self

    def in_(self, column: str, values: list[Any]) -> "FakeQuery":
        self.filters.append(lambda row: row.get(column) in values)
        return self

    def contains(self, column: str, values: list[Any]) -> "FakeQuery":
        self.filters.append(lambda row: all(v in (row.get(column) or []) for v in values))
        return self

    def lte(self, column: str, value: Any) -> "FakeQuery":
        self.filters.append(lambda row: row.get(column) is not None and row[column] <= value)
        return self

    def gte(self, column: str, value: Any) -> "FakeQuery":
        self.filters.append(lambda row: row.get(column) is not None and row[column] >= value)
        return self

    def order(self, column: str, desc: bool = False) -> "FakeQuery":
        self.order_by = (column, desc)
        return self

    def limit(self, count: int) -> "FakeQuery":
        self.row_limit = count
        return self

    def maybe_single(self) -> "FakeQuery":
        self.single = True
        return self

    def _matching(self) -> list[dict[str, Any]]:
        return [row for row in self.db.rows(self.table) if all(f(row) for f in self.filters)]

    def execute(self) -> FakeResponse:
        failure = self.db.failures.get((self.table, self.operation))
        if failure is not None:
            raise failure

        if self.operation == "insert":
            rows = self.payload if isinstance(self.payload, list) else [self.payload]
            return FakeResponse([dict(self.db.insert(self.table, row)) for row in rows])

        if self.operation == "upsert":
            rows = self.payload if isinstance(self.payload, list) else [self.payload]
            return FakeResponse([dict(self.db.upsert(self.table, row, self.on_conflict)) for row in rows])

        if self.operation == "update":
            updated = []
            for row in self._matching():
                row.update(self.payload)
                updated.append(dict(row))
            return FakeResponse(updated)

        rows = [dict(row) for row in self._matching()]
        if self.order_by:
            column, desc = self.order_by
            rows.sort(key=lambda row: row.get(column) or "", reverse=desc)
        if self.row_limit is not None:
            rows = rows[: self.row_limit]
        if self.single:
            return FakeResponse(rows[0] if rows else None)
        return FakeResponse(rows)


class FakeRpc:
    def __init__(self, db: "FakeSupabase", name: str, params: dict[str, Any]) -> None:
        self.db = db
        self.name = name
        self.params = params

    def execute(self) -> FakeResponse:
        return FakeResponse(getattr(self.db, f"_rpc_{self.name}")(**self.params))


class FakeSupabase:
    """Minimal in-memory Supabase client covering the queries the services use.

    Also implements the SQL functions from supabase/migrations with the same
    guarantees (coupon guard, seat guard).
    """

    def __init__(self) -> None:
        self.tables: dict[str, list[dict[str, Any]]] = {}
        self.failures: dict[tuple[str, str], Exception] = {}
        self.rpc_calls: list[tuple[str, dict[str, Any]]] = []
        self._clock = 0

    def rows(self, table: str) -> list[dict[str, Any]]:
        return self.tables.setdefault(table, [])

    def _timestamp(self) -> str:
        self._clock += 1
        return (datetime(2026, 1, 1, tzinfo=timezone.utc) + timedelta(seconds=self._clock)).isoformat()

    def insert(self, table: str, row: dict[str, Any]) -> dict[str, Any]:
        stored = {"id": str(uuid.uuid4()), "created_at": self._timestamp(), **row}
        self.rows(table).append(stored)
        return stored

    def upsert(self, table: str, row: dict[str, Any], on_conflict: str | None) -> dict[str, Any]:
        keys = on_conflict.split(",") if on_conflict else ["id"]
        for existing in self.rows(table):
            if all(existing.get(key) == row.get(key) for key in keys):
                existing.update(row)
                return existing
        return self.insert(table, row)

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def rpc(self, name: str, params: dict[str, Any]) -> FakeRpc:
        self.rpc_calls.append((name, params))
        return FakeRpc(self, name, params)

    def _rpc_commit_settlement(
        self,
        p_attempt_id: str,
        p_order: dict[str, Any],
        p_coupon_code: str | None,
        p_enforce_coupon_limit: bool = True,
    ) -> dict[str, Any]:
        if p_coupon_code is not None:
            coupon = next((c for c in self.rows("coupons") if c["code"] == p_coupon_code), None)
            limit = coupon.get("usage_limit") if coupon else None
            exhausted = coupon is None or (limit is not None and coupon["used_count"] >= limit)
            if exhausted and p_enforce_coupon_limit:
                raise PostgrestAPIError({"message": "COUPON_LIMIT_REACHED", "code": "P0001"})
            if coupon is not None:
                coupon["used_count"] += 1

        order = self.insert("orders", dict(p_order))
        for attempt in self.rows("checkout_attempts"):
            if attempt["id"] == p_attempt_id:
                attempt["order_id"] = order["id"]
        return dict(order)

    def _rpc_reserve_offline_batch_seat(self, p_batch_id: str) -> bool:
        for batch in self.rows("offline_batches"):
            if batch["id"] == p_batch_id:
                max_seats = batch.get("max_seats")
                if max_seats is not None and batch.get("enrolled_count", 0) >= max_seats:
                    return False
                batch["enrolled_count"] = batch.get("enrolled_count", 0) + 1
                return True
        return False

    def _rpc_release_offline_batch_seat(self, p_batch_id: str) -> None:
        for batch in self.rows("offline_batches"):
            if batch["id"] == p_batch_id:
                batch["enrolled_count"] = max(batch.get("enrolled_count", 0) - 1, 0)
        return None


# Catalog seeding helpers


def _iso(delta_days: int) -> str:
    return (datetime.now(timezone.utc) + timedelta(days=delta_days)).isoformat()


class Seeder:
    """Seeds catalog, coupon and flash-sale rows into a FakeSupabase."""

    def __init__(self, db: FakeSupabase) -> None:
        self.db = db

    def item(self, table: str, **fields: Any) -> dict[str, Any]:
        """Insert a purchasable catalog item with sensible defaults."""
        defaults: dict[str, Any] = {"title": f"Test {table}", "price": 0, "sale_price": None, "is_free": False}
        if table == "live_mentorship_programs":
            defaults["status"] = "PUBLISHED"
        elif table == "offline_batches":
            defaults.update({"status": "OPEN", "max_seats": None, "enrolled_count": 0})
        else:
            defaults["is_published"] = True
        return self.db.insert(table, {**defaults, **fields})

    def guidance_slot(self, price: int = 500, **guidance_fields: Any) -> dict[str, Any]:
        """Insert an ACTIVE guidance with one AVAILABLE slot and return the slot."""
        guidance = self.db.insert(
            "guidances",
            {"title": "1:1 Guidance", "price": price, "sale_price": None, "status": "ACTIVE", **guidance_fields},
        )
        return self.db.insert("guidance_slots", {"guidance_id": guidance["id"], "status": "AVAILABLE"})

    def coupon(self, code: str, **fields: Any) -> dict[str, Any]:
        """Insert an active coupon valid around now."""
        defaults: dict[str, Any] = {
            "code": code,
            "discount_type": "FIXED",
            "discount_value": 100,
            "min_amount": None,
            "max_discount": None,
            "valid_from": _iso(-1),
            "valid_until": _iso(30),
            "usage_limit": None,
            "used_count": 0,
            "applicable_to": "ALL",
            "target_user_type": "ALL",
            "target_user_ids": None,
            "is_active": True,
        }
        return self.db.insert("coupons", {**defaults, **fields})

    def flash_sale(self, product_type: str, reference_ids: list[str], percent: int) -> dict[str, Any]:
        """Insert an active flash sale."""
        return self.db.insert(
            "flash_sales",
            {
                "type": product_type,
                "reference_ids": reference_ids,
                "discount_percent": percent,
                "is_active": True,
                "start_date": _iso(-1),
                "end_date": _iso(1),
            },
        )


# Fixtures


@pytest.fixture(scope="session")
def test_settings() -> Generator[Any, None, None]:
    """Provide test settings with cleared cache.

    Yields:
        Settings: Test configuration settings.
    """
    from edukart.core.config import get_settings

    get_settings.cache_clear()

    settings = get_settings()
    yield settings

    get_settings.cache_clear()


@pytest.fixture
def fake_db() -> Generator[FakeSupabase, None, None]:
    """Provide an in-memory Supabase client wired into every service.

    Each test also gets an empty price cache.

    Yields:
        FakeSupabase: The fake client.
    """
    from edukart.services.price_cache import PriceCache

    db = FakeSupabase()
    patches = [patch(target, return_value=db) for target in SUPABASE_CLIENT_TARGETS]
    patches.append(
        patch("edukart.services.catalog_service.get_price_cache", return_value=PriceCache())
    )
    for p in patches:
        p.start()
    try:
        yield db
    finally:
        for p in patches:
            p.stop()


@pytest.fixture
def mock_stripe() -> Generator[MagicMock, None, None]:
    """Provide a mocked Stripe module for payment and settlement services.

    PaymentIntent.create returns a new intent per call (pi_test_N, captured
    as charge ch_test_N). PaymentIntent.retrieve returns the same intent, so
    tests can change its status through mock.intents.

    Yields:
        MagicMock: Mocked Stripe module.
    """
    mock = MagicMock()
    intents: dict[str, MagicMock] = {}

    def create_intent(**kwargs: Any) -> MagicMock:
        n = len(intents) + 1
        intent = MagicMock()
        intent.id = f"pi_test_{n}"
        intent.client_secret = f"pi_test_{n}_secret"
        intent.amount = kwargs["amount"]
        intent.status = "succeeded"
        intent.latest_charge = f"ch_test_{n}"
        intents[intent.id] = intent
        return intent

    mock.intents = intents
    mock.PaymentIntent.create.side_effect = create_intent
    mock.PaymentIntent.retrieve.side_effect = lambda intent_id: intents[intent_id]

    with patch("edukart.services.payment_service.get_stripe", return_value=mock), \
         patch("edukart.services.settlement_service.get_stripe", return_value=mock):
        yield mock


def create_test_token(
    user_id: str = TEST_USER_ID,
    email: str | None = "buyer@example.com",
    expired: bool = False,
    secret: str = "test-jwt-secret",
) -> str:
    """Create an HS256 token the way Supabase issues them."""
    now = int(time.time())
    payload = {
        "sub": user_id,
        "email": email,
        "role": "authenticated",
        "aud": "authenticated",
        "iat": now - 10,
        "exp": now - 5 if expired else now + 3600,
    }
    return jwt.encode(payload, secret, algorithm="HS256")


@pytest.fixture
def auth_headers() -> dict[str, str]:
    """Authorization headers for the default test user."""
    return {"Authorization": f"Bearer {create_test_token()}"}


@pytest.fixture
def client(fake_db: FakeSupabase, mock_stripe: MagicMock) -> Generator[TestClient, None, None]:
    """Provide a test client for the FastAPI application.

    Args:
        fake_db: In-memory Supabase client.
        mock_stripe: Mocked Stripe module.

    Yields:
        TestClient: FastAPI test client.
    """
    from edukart.main import app

    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def seed(fake_db: FakeSupabase) -> Seeder:
    """Seeder bound to the fake database."""
    return Seeder(fake_db)


@pytest.fixture
def buyer() -> Any:
    """The default authenticated buyer."""
    from edukart.schemas.auth import UserContext

    return UserContext(user_id=uuid.UUID(TEST_USER_ID), email="buyer@example.com", role="authenticated")


@pytest.fixture
def make_token() -> Callable[..., str]:
    """Factory for test JWTs."""
    return create_test_token
