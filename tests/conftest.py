import hashlib
import hmac
import json
import time
from types import SimpleNamespace
from typing import Any

import pytest
import stripe
from fastapi import HTTPException
from fastapi.testclient import TestClient

from app.api.dependencies import get_billing_store, get_reconciler, get_stripe_gateway
from app.billing.reconciler import WebhookReconciler
from app.core.emailer import EmailSendError
from app.core.settings import get_settings
from app.core.stripe_gateway import StripeGateway
from app.core.supabase_jwt import VerifiedSupabaseAuth, verify_supabase_auth
from app.main import app

USER_ID = "11111111-1111-1111-1111-111111111111"
OTHER_USER_ID = "22222222-2222-2222-2222-222222222222"
LISTING_ID = "33333333-3333-3333-3333-333333333333"
OTHER_LISTING_ID = "44444444-4444-4444-4444-444444444444"
WEBHOOK_SECRET = "whsec_test_secret"


class FakeBillingStore:
    def __init__(self) -> None:
        self.users: dict[str, dict[str, Any]] = {}
        self.listings: dict[str, dict[str, Any]] = {}
        self.subscriptions: dict[str, dict[str, Any]] = {}
        self.writes: list[tuple[str, Any]] = []
        self.fail_with: HTTPException | None = None

    def add_user(self, user_id: str, email: str, stripe_customer_id: str | None = None) -> None:
        self.users[user_id] = {"id": user_id, "email": email, "stripe_customer_id": stripe_customer_id}

    def add_listing(self, listing_id: str, user_id: str, practice_name: str, is_featured: bool = False) -> None:
        self.listings[listing_id] = {
            "id": listing_id,
            "user_id": user_id,
            "practice_name": practice_name,
            "is_featured": is_featured,
        }

    def _check(self) -> None:
        if self.fail_with is not None:
            raise self.fail_with

    async def select_owned_listing(self, listing_id: str, user_id: str) -> dict[str, Any] | None:
        self._check()
        row = self.listings.get(listing_id)
        return dict(row) if row and row["user_id"] == user_id else None

    async def select_listing(self, listing_id: str) -> dict[str, Any] | None:
        self._check()
        row = self.listings.get(listing_id)
        return dict(row) if row else None

    async def select_user(self, user_id: str) -> dict[str, Any] | None:
        self._check()
        row = self.users.get(user_id)
        return dict(row) if row else None

    async def update_user_customer_id(self, user_id: str, customer_id: str) -> None:
        self._check()
        self.writes.append(("update_user_customer_id", (user_id, customer_id)))
        self.users.setdefault(user_id, {"id": user_id, "email": None})["stripe_customer_id"] = customer_id

    async def upsert_subscription(self, row: dict[str, Any]) -> None:
        self._check()
        self.writes.append(("upsert_subscription", dict(row)))
        key = row["stripe_subscription_id"]
        existing = self.subscriptions.get(key, {"created_at": f"2026-01-01T00:00:{len(self.subscriptions):02d}Z"})
        self.subscriptions[key] = {**existing, **row}

    async def select_subscription(self, stripe_subscription_id: str) -> dict[str, Any] | None:
        self._check()
        row = self.subscriptions.get(stripe_subscription_id)
        return dict(row) if row else None

    async def update_subscription(self, stripe_subscription_id: str, payload: dict[str, Any]) -> None:
        self._check()
        self.writes.append(("update_subscription", (stripe_subscription_id, dict(payload))))
        if stripe_subscription_id in self.subscriptions:
            self.subscriptions[stripe_subscription_id].update(payload)

    async def select_listing_subscription(self, listing_id: str) -> dict[str, Any] | None:
        self._check()
        rows = [row for row in self.subscriptions.values() if row.get("listing_id") == listing_id]
        rows.sort(key=lambda row: row.get("created_at") or "", reverse=True)
        return dict(rows[0]) if rows else None

    async def set_listing_featured(self, listing_id: str, featured: bool) -> None:
        self._check()
        self.writes.append(("set_listing_featured", (listing_id, featured)))
        if listing_id in self.listings:
            self.listings[listing_id]["is_featured"] = featured


class FakeStripeClient:
    """Stands in for ``stripe.StripeClient`` with the services the gateway touches."""

    def __init__(self) -> None:
        self.created_customers: list[dict[str, Any]] = []
        self.created_checkout_sessions: list[dict[str, Any]] = []
        self.created_portal_sessions: list[dict[str, Any]] = []
        self.subscriptions_by_id: dict[str, dict[str, Any]] = {}
        self.fail_with: Exception | None = None
        self.customers = SimpleNamespace(create=self._create_customer)
        self.checkout = SimpleNamespace(sessions=SimpleNamespace(create=self._create_checkout_session))
        self.subscriptions = SimpleNamespace(retrieve=self._retrieve_subscription)
        self.billing_portal = SimpleNamespace(sessions=SimpleNamespace(create=self._create_portal_session))

    def _check(self) -> None:
        if self.fail_with is not None:
            raise self.fail_with

    def _create_customer(self, params: dict[str, Any]) -> SimpleNamespace:
        self._check()
        self.created_customers.append(params)
        return SimpleNamespace(id=f"cus_test_{len(self.created_customers)}")

    def _create_checkout_session(self, params: dict[str, Any]) -> SimpleNamespace:
        self._check()
        self.created_checkout_sessions.append(params)
        number = len(self.created_checkout_sessions)
        return SimpleNamespace(id=f"cs_test_{number}", url=f"https://checkout.stripe.com/c/pay/cs_test_{number}")

    def _retrieve_subscription(self, subscription_id: str) -> SimpleNamespace:
        self._check()
        if subscription_id not in self.subscriptions_by_id:
            raise stripe.InvalidRequestError(f"No such subscription: '{subscription_id}'", "id")
        return SimpleNamespace(**self.subscriptions_by_id[subscription_id])

    def _create_portal_session(self, params: dict[str, Any]) -> SimpleNamespace:
        self._check()
        self.created_portal_sessions.append(params)
        return SimpleNamespace(url=f"https://billing.stripe.com/p/session/{params['customer']}")

    def add_subscription(
        self,
        subscription_id: str,
        *,
        status: str = "active",
        customer: str = "cus_test_1",
        cancel_at_period_end: bool = False,
    ) -> None:
        self.subscriptions_by_id[subscription_id] = {
            "id": subscription_id,
            "customer": customer,
            "status": status,
            "current_period_start": 1767225600,
            "current_period_end": 1769904000,
            "cancel_at_period_end": cancel_at_period_end,
        }


class FakeMailer:
    def __init__(self) -> None:
        self.sent: list[dict[str, str]] = []
        self.fail = False

    async def send(self, *, to: str, subject: str, html: str) -> None:
        if self.fail:
            raise EmailSendError("Failed to send notification email.")
        self.sent.append({"to": to, "subject": subject, "html": html})


@pytest.fixture
def fake_store() -> FakeBillingStore:
    store = FakeBillingStore()
    store.add_user(USER_ID, "owner@clinic.example.org")
    store.add_user(OTHER_USER_ID, "other@clinic.example.org")
    store.add_listing(LISTING_ID, USER_ID, "Hobart Wellbeing Clinic")
    store.add_listing(OTHER_LISTING_ID, OTHER_USER_ID, "Launceston Counselling")
    return store


@pytest.fixture
def fake_stripe() -> FakeStripeClient:
    return FakeStripeClient()


@pytest.fixture
def fake_mailer() -> FakeMailer:
    return FakeMailer()


@pytest.fixture
def gateway(fake_stripe: FakeStripeClient) -> StripeGateway:
    return StripeGateway(get_settings(), client=fake_stripe)


@pytest.fixture
def reconciler(fake_store: FakeBillingStore, gateway: StripeGateway, fake_mailer: FakeMailer) -> WebhookReconciler:
    return WebhookReconciler(
        store=fake_store,
        gateway=gateway,
        mailer=fake_mailer,
        dashboard_url=get_settings().dashboard_url,
    )


@pytest.fixture
def client(fake_store: FakeBillingStore, gateway: StripeGateway, reconciler: WebhookReconciler):
    app.dependency_overrides[get_billing_store] = lambda: fake_store
    app.dependency_overrides[get_stripe_gateway] = lambda: gateway
    app.dependency_overrides[get_reconciler] = lambda: reconciler
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def auth_as():
    def _set(user_id: str, email: str | None = None) -> None:
        claims: dict[str, Any] = {"sub": user_id}
        if email:
            claims["email"] = email
        app.dependency_overrides[verify_supabase_auth] = lambda: VerifiedSupabaseAuth(
            access_token="token-123",
            claims=claims,
        )

    return _set


@pytest.fixture
def sign_payload():
    def _sign(payload: bytes, *, secret: str = WEBHOOK_SECRET, timestamp: int | None = None) -> str:
        signed_at = int(time.time()) if timestamp is None else timestamp
        signed_payload = f"{signed_at}.".encode() + payload
        digest = hmac.new(secret.encode(), signed_payload, hashlib.sha256).hexdigest()
        return f"t={signed_at},v1={digest}"

    return _sign


@pytest.fixture
def make_event():
    def _make(event_type: str, obj: dict[str, Any], *, event_id: str = "evt_test_1") -> dict[str, Any]:
        return {"id": event_id, "object": "event", "type": event_type, "data": {"object": obj}}

    return _make


@pytest.fixture
def encode_event():
    def _encode(event: dict[str, Any]) -> bytes:
        return json.dumps(event, separators=(",", ":")).encode()

    return _encode
