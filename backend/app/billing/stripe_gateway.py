"""Stripe implementation of :class:`~backend.app.billing.service.ProviderGateway`.

All Stripe calls go through one explicitly constructed ``StripeClient``
owned by the composition root. SDK errors are translated into billing
domain errors so callers never handle ``stripe`` exceptions directly.
"""
from __future__ import annotations

import logging
import time
from typing import Any, Dict, List, Mapping, Optional

import stripe

from .config import BillingConfig
from .exceptions import (
    BillingSyncError,
    ProviderUnavailableError,
    SubscriptionNotFoundError,
    UninitializedGatewayError,
    WebhookSignatureError,
)
from .models import ConnectedAccount, RawSubscription

logger = logging.getLogger(__name__)

RESOURCE_MISSING = "resource_missing"


class StripeProviderGateway:
    """Fetches subscriptions, customers and connected accounts from Stripe."""

    def __init__(
        self,
        client: Any,
        *,
        webhook_secret: Optional[str] = None,
    ) -> None:
        if client is None:
            raise UninitializedGatewayError("Stripe client is not initialized.")
        self._client = client
        self._webhook_secret = webhook_secret

    @classmethod
    def from_config(cls, config: BillingConfig) -> "StripeProviderGateway":
        if not config.stripe_secret_key:
            raise UninitializedGatewayError("Stripe secret key is not set in configuration.")
        client = stripe.StripeClient(
            config.stripe_secret_key,
            max_network_retries=config.stripe_max_retries,
            http_client=stripe.RequestsClient(timeout=config.stripe_api_timeout_seconds),
        )
        return cls(client, webhook_secret=config.stripe_webhook_secret)

    def fetch_subscription(self, subscription_id: str) -> RawSubscription:
        log_context = {"operation": "fetch_subscription", "subscription_id": subscription_id}
        start_time = time.monotonic()
        try:
            subscription = self._client.v1.subscriptions.retrieve(subscription_id)
        except stripe.InvalidRequestError as exc:
            if exc.code == RESOURCE_MISSING:
                raise SubscriptionNotFoundError(
                    f"Subscription {subscription_id} not found at provider",
                    detail={"subscription_id": subscription_id},
                ) from exc
            raise self._translate_error(exc, log_context, start_time) from exc
        except stripe.StripeError as exc:
            raise self._translate_error(exc, log_context, start_time) from exc

        logger.debug(
            "Stripe operation completed",
            extra={**log_context, "duration_ms": _elapsed_ms(start_time)},
        )
        return RawSubscription.from_provider(_as_dict(subscription))

    def create_customer(self, email: str) -> str:
        log_context = {"operation": "create_customer"}
        start_time = time.monotonic()
        try:
            customer = self._client.v1.customers.create(params={"email": email})
        except stripe.StripeError as exc:
            raise self._translate_error(exc, log_context, start_time) from exc

        logger.info(
            "Created Stripe customer %s",
            customer.id,
            extra={**log_context, "duration_ms": _elapsed_ms(start_time)},
        )
        return customer.id

    def list_connected_accounts(self) -> List[ConnectedAccount]:
        log_context = {"operation": "list_connected_accounts"}
        start_time = time.monotonic()
        try:
            accounts = self._client.v1.accounts.list(params={"limit": 100})
            return [_to_connected_account(_as_dict(account)) for account in accounts.auto_paging_iter()]
        except stripe.StripeError as exc:
            raise self._translate_error(exc, log_context, start_time) from exc

    def get_connected_account(self, account_id: str) -> Optional[ConnectedAccount]:
        log_context = {"operation": "get_connected_account", "account_id": account_id}
        start_time = time.monotonic()
        try:
            account = self._client.v1.accounts.retrieve(account_id)
        except stripe.InvalidRequestError as exc:
            if exc.code == RESOURCE_MISSING:
                return None
            raise self._translate_error(exc, log_context, start_time) from exc
        except stripe.StripeError as exc:
            raise self._translate_error(exc, log_context, start_time) from exc
        return _to_connected_account(_as_dict(account))

    def verify_webhook(self, payload: bytes, signature: str) -> Dict[str, Any]:
        """Verify a webhook signature and return the event as a mapping."""

        if not self._webhook_secret:
            raise UninitializedGatewayError("Stripe webhook secret is not set in configuration.")
        try:
            event = stripe.Webhook.construct_event(payload, signature, self._webhook_secret)
        except stripe.SignatureVerificationError as exc:
            raise WebhookSignatureError("Invalid webhook signature", detail={"reason": str(exc)}) from exc
        except ValueError as exc:
            raise WebhookSignatureError("Invalid webhook payload", detail={"reason": str(exc)}) from exc
        return {
            "id": event["id"],
            "type": event["type"],
            "object": _as_dict(event["data"]["object"]),
        }

    def _translate_error(
        self,
        error: Exception,
        log_context: Dict[str, Any],
        start_time: float,
    ) -> BillingSyncError:
        log_context = {**log_context, "duration_ms": _elapsed_ms(start_time)}

        if isinstance(error, stripe.AuthenticationError):
            logger.critical("Stripe authentication failed - check API key", extra=log_context)
            return ProviderUnavailableError("Stripe authentication failed")
        if isinstance(error, stripe.RateLimitError):
            logger.warning("Rate limited by Stripe", extra=log_context)
            return ProviderUnavailableError("Stripe rate limit exceeded. Please retry.")
        if isinstance(error, stripe.APIConnectionError):
            logger.error("Connection error to Stripe", extra=log_context, exc_info=True)
            return ProviderUnavailableError("Could not connect to Stripe. Please retry.")

        logger.error(
            "Stripe API error: %s",
            error,
            extra={**log_context, "stripe_code": getattr(error, "code", None)},
        )
        return ProviderUnavailableError(f"Stripe error: {error}")


def _as_dict(obj: Any) -> Dict[str, Any]:
    if isinstance(obj, stripe.StripeObject):
        return obj.to_dict()
    return dict(obj)


def _to_connected_account(account: Mapping[str, Any]) -> ConnectedAccount:
    return ConnectedAccount(
        id=str(account["id"]),
        email=account.get("email"),
        country=account.get("country"),
        charges_enabled=bool(account.get("charges_enabled", False)),
        payouts_enabled=bool(account.get("payouts_enabled", False)),
        details_submitted=bool(account.get("details_submitted", False)),
    )


def _elapsed_ms(start_time: float) -> float:
    return (time.monotonic() - start_time) * 1000


__all__ = ["StripeProviderGateway"]
