"""
Pytest configuration and shared fakes for backend tests.

The reconciliation engine only talks to the outside world through
ReconciliationCapabilities, so tests wire in-memory users/subscriptions and a
scripted Stripe instead of MongoDB and the Stripe API.
"""
import hashlib
import hmac
import sys
import time
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

BACKEND_DIR = Path(__file__).resolve().parent.parent
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from models import SubscriptionRecord
from services.capabilities import ReconciliationCapabilities
from services.plan_registry import PlanRegistry

WEBHOOK_SECRET = "whsec_test_secret"
FIXED_NOW = datetime(2024, 1, 15, 12, 0, 0, tzinfo=timezone.utc)
PRODUCT_IDS = {
    "monthly": ["prod_monthly"],
    "quarterly": ["prod_quarterly"],
    "annual": ["prod_annual"],
}


def sign_payload(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp: int = None) -> str:
    """Build a Stripe-Signature header the way Stripe does (t=...,v1=hmac_sha256)."""
    timestamp = int(time.time()) if timestamp is None else timestamp
    signed = f"{timestamp}.".encode("utf-8") + payload
    digest = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


class InMemorySubscriptionStore:
    """users (insertion order) + subscriptions keyed by company_id.

    upsert_subscription applies the same operators the Mongo store sends:
    $set fields, $max updated_at, $setOnInsert company_id/created_at.
    """

    def __init__(self, users=None):
        self.users = list(users or [])
        self.subscriptions = {}
        self.writes = []

    async def find_company_id_by_email(self, email):
        for user in self.users:
            if user.get("email") == email:
                return user.get("company_id") or None
        return None

    async def upsert_subscription(self, company_id, fields, now):
        self.writes.append((company_id, dict(fields), now))
        doc = self.subscriptions.get(company_id)
        if doc is None:
            doc = {"company_id": company_id, "created_at": now}
            self.subscriptions[company_id] = doc
        doc.update(fields)
        if doc.get("updated_at") is None or now > doc["updated_at"]:
            doc["updated_at"] = now

    def record(self, company_id) -> SubscriptionRecord:
        return SubscriptionRecord.model_validate(self.subscriptions[company_id])


class FakeStripe:
    """Scripted Stripe lookups. Each method is an AsyncMock so tests can assert calls
    or swap in a side_effect that raises CollaboratorUnavailable."""

    def __init__(self):
        self.line_items = {}
        self.customers = {}
        self.subscriptions = {}
        self.list_line_items = AsyncMock(side_effect=lambda sid: list(self.line_items.get(sid, [])))
        self.retrieve_customer = AsyncMock(side_effect=lambda cid: dict(self.customers.get(cid, {})))
        self.retrieve_subscription = AsyncMock(side_effect=lambda sid: dict(self.subscriptions.get(sid, {})))


def make_capabilities(store: InMemorySubscriptionStore, stripe_api: FakeStripe) -> ReconciliationCapabilities:
    return ReconciliationCapabilities(
        lookup_entity=store.find_company_id_by_email,
        upsert_subscription=store.upsert_subscription,
        fetch_line_items=stripe_api.list_line_items,
        fetch_customer=stripe_api.retrieve_customer,
        fetch_subscription=stripe_api.retrieve_subscription,
    )


@pytest.fixture
def store():
    return InMemorySubscriptionStore(users=[{"email": "a@b.com", "company_id": "co-1"}])


@pytest.fixture
def stripe_api():
    return FakeStripe()


@pytest.fixture
def capabilities(store, stripe_api):
    return make_capabilities(store, stripe_api)


@pytest.fixture
def plans():
    return PlanRegistry(PRODUCT_IDS)


@pytest.fixture
def clock():
    return lambda: FIXED_NOW
