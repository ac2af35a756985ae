import hashlib
import hmac
import time
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Dict, Optional
from unittest.mock import MagicMock

import pytest

from billing.catalog import CatalogCache
from billing.records import SubscriptionRecord
from billing.stripe_client import StripeGateway
from billing.tiers import BillingPeriod, TierDefinition

NOW = datetime(2024, 1, 31, 12, 0, tzinfo=timezone.utc)
WEBHOOK_SECRET = "whsec_test_secret"


def sign_payload(payload: str, secret: str = WEBHOOK_SECRET, timestamp: Optional[int] = None) -> str:
    """Build a ``Stripe-Signature`` header the same way Stripe does."""

    timestamp = int(time.time()) if timestamp is None else timestamp
    signed = f"{timestamp}.{payload}".encode("utf-8")
    signature = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


class FixedClock:
    def __init__(self, now: datetime = NOW):
        self.current = now

    def now(self) -> datetime:
        return self.current


@dataclass
class FakePrincipal:
    id: int
    email: Optional[str] = None


class FakePrincipalAccessor:
    def __init__(self, principal: Optional[FakePrincipal] = None):
        self.principal = principal

    def current(self):
        return self.principal


class FakeRequestContext:
    def __init__(self, base_url: str = "https://app.example.com", query: Optional[Dict[str, str]] = None):
        self._base_url = base_url
        self.query = query or {}

    def base_url(self) -> str:
        return self._base_url

    def query_param(self, name: str) -> Optional[str]:
        return self.query.get(name)


class InMemorySubscriptionStore:
    """Keeps copies so callers cannot mutate stored state behind the store's back."""

    def __init__(self):
        self.rows: Dict[int, SubscriptionRecord] = {}
        self._next_id = 1

    def _find(self, predicate) -> Optional[SubscriptionRecord]:
        for record in self.rows.values():
            if predicate(record):
                return replace(record)
        return None

    def get_by_user(self, user_id):
        return self._find(lambda record: record.user_id == str(user_id))

    def get_by_session(self, payment_session_id):
        return self._find(lambda record: record.payment_session_id == payment_session_id)

    def get_by_provider_subscription(self, provider_subscription_id):
        return self._find(lambda record: record.provider_subscription_id == provider_subscription_id)

    def create(self, record: SubscriptionRecord) -> SubscriptionRecord:
        stored = replace(record, id=self._next_id)
        self._next_id += 1
        self.rows[stored.id] = stored
        return replace(stored)

    def update(self, record: SubscriptionRecord) -> SubscriptionRecord:
        if record.id not in self.rows:
            raise LookupError(record.id)
        self.rows[record.id] = replace(record)
        return replace(record)


class MemoryCatalogStorage:
    def __init__(self, content: Optional[str] = None):
        self.content = content
        self.writes = 0

    def exists(self) -> bool:
        return self.content is not None

    def read(self) -> str:
        if self.content is None:
            raise FileNotFoundError("catalog")
        return self.content

    def write(self, content: str) -> None:
        self.writes += 1
        self.content = content


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def principal():
    return FakePrincipal(id=7, email="ada@example.com")


@pytest.fixture
def principals(principal):
    return FakePrincipalAccessor(principal)


@pytest.fixture
def request_context():
    return FakeRequestContext()


@pytest.fixture
def store():
    return InMemorySubscriptionStore()


@pytest.fixture
def gateway():
    gateway = MagicMock(spec=StripeGateway)
    gateway.create_checkout_session.side_effect = lambda params: {
        "id": "cs_test_1",
        "url": "https://checkout.stripe.com/c/pay/cs_test_1",
        "status": "open",
        "payment_status": "unpaid",
        "mode": params["mode"],
        "metadata": params.get("metadata", {}),
    }
    return gateway


@pytest.fixture
def tiers():
    definitions = [
        TierDefinition(
            id="price_basic_monthly",
            name="Basic",
            currency="usd",
            billing_period=BillingPeriod.MONTHLY,
            unit_amount=999,
            trial_days=14,
        ),
        TierDefinition(
            id="price_basic_yearly",
            name="Basic",
            currency="usd",
            billing_period=BillingPeriod.YEARLY,
            unit_amount=9900,
        ),
        TierDefinition(
            id="price_pro_monthly",
            name="Pro",
            currency="usd",
            billing_period=BillingPeriod.MONTHLY,
            unit_amount=2999,
        ),
        TierDefinition(
            id="price_setup",
            name="Setup",
            currency="usd",
            billing_period=BillingPeriod.NONE,
            unit_amount=5000,
        ),
    ]
    return {tier.id: tier for tier in definitions}


@pytest.fixture
def catalog(tiers):
    return CatalogCache(product="prod_test", tiers=tiers)
