"""Application wiring for the subscription sync service."""
from __future__ import annotations

import logging
from functools import lru_cache
from threading import Lock
from typing import Dict, List, Optional
from uuid import uuid4

from ..billing import (
    BillingRepository,
    ConnectedAccount,
    IdentityStore,
    ProviderGateway,
    RawSubscription,
    SubscriptionNotFoundError,
    SubscriptionSyncService,
)
from ..billing.config import BillingConfig, load_billing_config
from ..billing.memory import InMemoryBillingRepository, InMemoryIdentityStore
from ..billing.repository import PostgresBillingRepository, PostgresIdentityStore
from ..billing.stripe_gateway import StripeProviderGateway


logger = logging.getLogger("billing")


class LocalSandboxProviderGateway(ProviderGateway):
    """Minimal provider implementation for local development and tests."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._subscriptions: Dict[str, RawSubscription] = {}
        self._accounts: Dict[str, ConnectedAccount] = {}

    def register_subscription(self, subscription: RawSubscription) -> None:
        with self._lock:
            self._subscriptions[subscription.id] = subscription

    def register_connected_account(self, account: ConnectedAccount) -> None:
        with self._lock:
            self._accounts[account.id] = account

    def fetch_subscription(self, subscription_id: str) -> RawSubscription:
        with self._lock:
            subscription = self._subscriptions.get(subscription_id)
        if subscription is None:
            raise SubscriptionNotFoundError(
                f"Subscription {subscription_id} not found at provider",
                detail={"subscription_id": subscription_id},
            )
        return subscription

    def create_customer(self, email: str) -> str:
        customer_id = f"cus_{uuid4().hex[:14]}"
        logger.info("Sandbox customer %s created for %s", customer_id, email)
        return customer_id

    def list_connected_accounts(self) -> List[ConnectedAccount]:
        with self._lock:
            return list(self._accounts.values())

    def get_connected_account(self, account_id: str) -> Optional[ConnectedAccount]:
        with self._lock:
            return self._accounts.get(account_id)


def build_gateway(config: BillingConfig) -> ProviderGateway:
    if config.provider_name == "stripe":
        return StripeProviderGateway.from_config(config)
    return LocalSandboxProviderGateway()


def build_stores(config: BillingConfig) -> tuple[BillingRepository, IdentityStore]:
    if config.storage == "memory":
        return InMemoryBillingRepository(), InMemoryIdentityStore()
    return PostgresBillingRepository(), PostgresIdentityStore()


def build_sync_service(config: BillingConfig) -> SubscriptionSyncService:
    repository, identity_store = build_stores(config)
    gateway = build_gateway(config)
    logger.info(
        "Billing sync configured provider=%s storage=%s",
        config.provider_name,
        config.storage,
    )
    return SubscriptionSyncService(
        repository=repository,
        gateway=gateway,
        identity_store=identity_store,
    )


@lru_cache(maxsize=1)
def get_billing_config() -> BillingConfig:
    return load_billing_config()


@lru_cache(maxsize=1)
def get_billing_sync_service() -> SubscriptionSyncService:
    return build_sync_service(get_billing_config())


__all__ = [
    "LocalSandboxProviderGateway",
    "build_gateway",
    "build_stores",
    "build_sync_service",
    "get_billing_config",
    "get_billing_sync_service",
]
