from __future__ import annotations

import hashlib
import hmac
import json
import time
from types import SimpleNamespace
from typing import Dict, List

import pytest
import stripe

from backend.app.billing import (
    ExpandedCustomer,
    ProviderUnavailableError,
    SubscriptionNotFoundError,
    SyncEventKind,
    UninitializedGatewayError,
    WebhookSignatureError,
    normalize_event,
)
from backend.app.billing.stripe_gateway import StripeProviderGateway

API_KEY = "sk_test_123"
WEBHOOK_SECRET = "whsec_test_secret"


class _FakeSubscriptions:
    def __init__(self) -> None:
        self.objects: Dict[str, stripe.StripeObject] = {}
        self.error: Exception | None = None

    def retrieve(self, subscription_id: str):
        if self.error is not None:
            raise self.error
        if subscription_id not in self.objects:
            raise stripe.InvalidRequestError(
                f"No such subscription: '{subscription_id}'",
                "id",
                code="resource_missing",
            )
        return self.objects[subscription_id]


class _FakeCustomers:
    def __init__(self) -> None:
        self.created: List[dict] = []

    def create(self, params=None):
        self.created.append(params)
        return SimpleNamespace(id=f"cus_{len(self.created)}")


class _FakeAccounts:
    def __init__(self) -> None:
        self.objects: Dict[str, stripe.StripeObject] = {}

    def list(self, params=None):
        return SimpleNamespace(auto_paging_iter=lambda: iter(self.objects.values()))

    def retrieve(self, account_id: str):
        if account_id not in self.objects:
            raise stripe.InvalidRequestError(
                f"No such account: '{account_id}'",
                "account",
                code="resource_missing",
            )
        return self.objects[account_id]


@pytest.fixture
def fake_client():
    return SimpleNamespace(
        v1=SimpleNamespace(
            subscriptions=_FakeSubscriptions(),
            customers=_FakeCustomers(),
            accounts=_FakeAccounts(),
        )
    )


@pytest.fixture
def gateway(fake_client) -> StripeProviderGateway:
    return StripeProviderGateway(fake_client, webhook_secret=WEBHOOK_SECRET)


def _signed(payload: bytes, secret: str = WEBHOOK_SECRET) -> str:
    timestamp = int(time.time())
    signed_payload = f"{timestamp}.{payload.decode('utf-8')}".encode("utf-8")
    signature = hmac.new(secret.encode("utf-8"), signed_payload, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def test_fetch_subscription_parses_provider_object(gateway, fake_client):
    fake_client.v1.subscriptions.objects["sub_1"] = stripe.Subscription.construct_from(
        {
            "id": "sub_1",
            "object": "subscription",
            "status": "active",
            "customer": {"id": "cus_1", "object": "customer"},
            "current_period_start": 1700000000,
            "current_period_end": 1702592000,
            "metadata": {"plan": "pro"},
        },
        API_KEY,
    )

    raw = gateway.fetch_subscription("sub_1")

    assert raw.id == "sub_1"
    assert raw.customer == ExpandedCustomer(id="cus_1", deleted=False)
    assert raw.metadata == {"plan": "pro"}


def test_fetch_missing_subscription_raises_not_found(gateway):
    with pytest.raises(SubscriptionNotFoundError):
        gateway.fetch_subscription("sub_missing")


def test_transport_errors_become_provider_unavailable(gateway, fake_client):
    fake_client.v1.subscriptions.error = stripe.APIConnectionError("network down")

    with pytest.raises(ProviderUnavailableError):
        gateway.fetch_subscription("sub_1")


def test_create_customer_returns_provider_id(gateway, fake_client):
    customer_id = gateway.create_customer("alice@example.com")

    assert customer_id == "cus_1"
    assert fake_client.v1.customers.created == [{"email": "alice@example.com"}]


def test_connected_accounts_are_summarized(gateway, fake_client):
    fake_client.v1.accounts.objects["acct_1"] = stripe.Account.construct_from(
        {
            "id": "acct_1",
            "email": "payee@example.com",
            "country": "FR",
            "charges_enabled": True,
            "payouts_enabled": False,
            "details_submitted": True,
        },
        API_KEY,
    )

    (account,) = gateway.list_connected_accounts()

    assert account.id == "acct_1"
    assert account.country == "FR"
    assert account.charges_enabled is True
    assert gateway.get_connected_account("acct_1") == account
    assert gateway.get_connected_account("acct_missing") is None


def test_missing_client_is_rejected():
    with pytest.raises(UninitializedGatewayError):
        StripeProviderGateway(None)


def test_verify_webhook_accepts_valid_signature(gateway):
    payload = json.dumps(
        {
            "id": "evt_1",
            "object": "event",
            "type": "customer.subscription.created",
            "data": {"object": {"id": "sub_1", "object": "subscription", "status": "active"}},
        }
    ).encode("utf-8")

    event = gateway.verify_webhook(payload, _signed(payload))

    assert event["id"] == "evt_1"
    assert event["type"] == "customer.subscription.created"
    assert event["object"]["id"] == "sub_1"


def test_verified_webhook_normalizes_into_sync_event(gateway):
    payload = json.dumps(
        {
            "id": "evt_2",
            "object": "event",
            "type": "customer.subscription.created",
            "data": {
                "object": {
                    "id": "sub_1",
                    "object": "subscription",
                    "status": "active",
                    "customer": "cus_1",
                    "items": {
                        "object": "list",
                        "data": [
                            {
                                "id": "si_1",
                                "object": "subscription_item",
                                "current_period_start": 1700000000,
                                "current_period_end": 1702592000,
                                "price": {"id": "price_1", "object": "price"},
                            }
                        ],
                    },
                }
            },
        }
    ).encode("utf-8")

    raw_event = gateway.verify_webhook(payload, _signed(payload))
    event = normalize_event(event_id=raw_event["id"], provider_type=raw_event["type"], data_object=raw_event["object"])

    assert isinstance(raw_event["object"], dict)
    assert event.kind == SyncEventKind.CREATED
    assert event.payload.id == "sub_1"
    assert event.payload.current_period_start == 1700000000
    assert event.payload.price_ids == ["price_1"]


def test_verify_webhook_rejects_bad_signature(gateway):
    payload = b'{"id": "evt_1", "object": "event", "type": "customer.subscription.created", "data": {"object": {}}}'

    with pytest.raises(WebhookSignatureError):
        gateway.verify_webhook(payload, _signed(payload, secret="whsec_other"))


def test_verify_webhook_requires_secret(fake_client):
    gateway = StripeProviderGateway(fake_client)

    with pytest.raises(UninitializedGatewayError):
        gateway.verify_webhook(b"{}", "t=1,v1=abc")
