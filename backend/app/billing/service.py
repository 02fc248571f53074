"""Core service synchronizing provider subscription events with internal records."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol, Sequence

from .exceptions import BillingSyncError, InvalidSubscriptionPayloadError, SubscriptionRecordNotFoundError
from .identity import IdentityMap, IdentityStore
from .models import (
    ConnectedAccount,
    IdentityKind,
    IdentityMapping,
    RawSubscription,
    Subscription,
    SyncEvent,
    SyncEventKind,
    SyncOutcome,
)
from .translator import SubscriptionTranslator

logger = logging.getLogger("billing")


PROVIDER_EVENT_KINDS: Dict[str, SyncEventKind] = {
    "customer.subscription.created": SyncEventKind.CREATED,
    "customer.subscription.updated": SyncEventKind.UPDATED,
    "customer.subscription.deleted": SyncEventKind.DELETED,
}


class ProviderGateway(Protocol):
    """External payment provider integration."""

    def fetch_subscription(self, subscription_id: str) -> RawSubscription:
        """Return the provider subscription or raise ``SubscriptionNotFoundError``."""

    def create_customer(self, email: str) -> str:
        """Create a provider customer and return its id."""

    def list_connected_accounts(self) -> Sequence[ConnectedAccount]:
        """Return the connected accounts registered with the provider."""

    def get_connected_account(self, account_id: str) -> Optional[ConnectedAccount]:
        """Return a connected account, or ``None`` when the provider has none."""


class BillingRepository(Protocol):
    """Persistence operations required by the sync service.

    ``add_subscriptions`` stores the whole batch or nothing, and rejects any
    record whose ``external_id`` is already stored.
    """

    def add_subscriptions(self, subscriptions: Sequence[Subscription]) -> None:
        ...

    def remove_subscription(self, internal_id: str) -> None:
        ...

    def find_by_external_id(self, external_id: str) -> Optional[Subscription]:
        ...


def normalize_event(
    *,
    event_id: str,
    provider_type: str,
    data_object: Optional[Mapping[str, Any]],
    received_at: Optional[datetime] = None,
) -> SyncEvent:
    """Map a raw provider event onto a :class:`SyncEvent`."""

    kind = PROVIDER_EVENT_KINDS.get(provider_type, SyncEventKind.OTHER)
    payload: Optional[RawSubscription] = None
    if kind != SyncEventKind.OTHER:
        if not isinstance(data_object, Mapping) or not data_object.get("id"):
            raise InvalidSubscriptionPayloadError(
                f"Event {event_id} carries no subscription object",
                detail={"event_id": event_id, "event_type": provider_type},
            )
        try:
            payload = RawSubscription.from_provider(data_object)
        except (TypeError, ValueError) as exc:
            raise InvalidSubscriptionPayloadError(
                f"Event {event_id} carries a malformed subscription object: {exc}",
                detail={"event_id": event_id, "event_type": provider_type},
            ) from exc

    values: Dict[str, Any] = {"event_id": event_id, "kind": kind, "provider_type": provider_type, "payload": payload}
    if received_at is not None:
        values["received_at"] = received_at
    return SyncEvent(**values)


@dataclass
class SubscriptionSyncService:
    """Registers and unregisters subscriptions in response to provider events.

    Each event is processed on its own; the service keeps no queue or
    deduplication state between events.
    """

    repository: BillingRepository
    gateway: ProviderGateway
    identity_store: IdentityStore
    translator: SubscriptionTranslator = field(default_factory=SubscriptionTranslator)
    customers: IdentityMap = field(init=False)
    connected_accounts: IdentityMap = field(init=False)

    def __post_init__(self) -> None:
        self.customers = IdentityMap(self.identity_store, IdentityKind.CUSTOMER)
        self.connected_accounts = IdentityMap(self.identity_store, IdentityKind.CONNECTED_ACCOUNT)

    def handle_event(self, event: SyncEvent) -> SyncOutcome:
        """Apply one provider event, logging and dropping any failure."""

        subscription_id = event.payload.id if event.payload else None
        log_context = {
            "event_id": event.event_id,
            "event_kind": event.kind.value,
            "event_type": event.provider_type,
            "subscription_id": subscription_id,
        }
        try:
            if event.kind == SyncEventKind.CREATED:
                self.register_subscription(_require_subscription_id(event))
            elif event.kind == SyncEventKind.DELETED:
                self.unregister_subscription(_require_subscription_id(event))
            elif event.kind == SyncEventKind.UPDATED:
                logger.info("Subscription update for %s left unapplied", subscription_id, extra=log_context)
                return SyncOutcome.IGNORED
            else:
                logger.info("Unhandled event type %s", event.provider_type, extra=log_context)
                return SyncOutcome.IGNORED
        except Exception as exc:
            logger.error(
                "Error handling %s event %s for subscription %s: %s",
                event.kind.value,
                event.event_id,
                subscription_id,
                exc,
                exc_info=True,
                extra=log_context,
            )
            return SyncOutcome.FAILED
        return SyncOutcome.APPLIED

    def register_subscription(self, subscription_id: str) -> Subscription:
        formatted = self.format_subscription(subscription_id)
        batch: List[Subscription] = [formatted]
        self.repository.add_subscriptions(batch)
        logger.info(
            "Registered subscription %s for participant %s",
            subscription_id,
            formatted.participant,
            extra={"subscription_id": subscription_id, "participant": formatted.participant},
        )
        return formatted

    def unregister_subscription(self, subscription_id: str) -> Subscription:
        record = self.repository.find_by_external_id(subscription_id)
        if record is None or not record.internal_id:
            raise SubscriptionRecordNotFoundError(
                f"Subscription with external id {subscription_id} not found in the database.",
                detail={"subscription_id": subscription_id},
            )
        self.repository.remove_subscription(record.internal_id)
        logger.info(
            "Unregistered subscription %s (record %s)",
            subscription_id,
            record.internal_id,
            extra={"subscription_id": subscription_id},
        )
        return record

    def format_subscription(self, subscription_id: str) -> Subscription:
        """Fetch a provider subscription and translate it without storing it."""

        raw = self.gateway.fetch_subscription(subscription_id)
        return self.translator.translate(raw, self.customers.resolve_participant)

    def connect(self, email: str, *, participant: Optional[str] = None) -> str:
        """Create a provider customer, optionally linking it to a participant."""

        customer_id = self.gateway.create_customer(email)
        if participant is not None:
            try:
                self.link_participant_to_customer(participant, customer_id)
            except BillingSyncError:
                logger.error(
                    "Provider customer %s was created but could not be linked to participant %s",
                    customer_id,
                    participant,
                    extra={"customer_id": customer_id, "participant": participant},
                )
                raise
        return customer_id

    def link_participant_to_customer(self, participant: str, customer_id: str) -> IdentityMapping:
        return self._propagate(
            lambda: self.customers.link(participant, customer_id),
            "linking participant %s to customer %s",
            participant,
            customer_id,
        )

    def link_participant_to_connected_account(self, participant: str, account_id: str) -> IdentityMapping:
        return self._propagate(
            lambda: self.connected_accounts.link(participant, account_id),
            "linking participant %s to connected account %s",
            participant,
            account_id,
        )

    def unlink_participant_from_customer(self, customer_id: str) -> IdentityMapping:
        return self._propagate(
            lambda: self.customers.unlink(customer_id),
            "unlinking customer %s",
            customer_id,
        )

    def unlink_participant_from_connected_account(self, account_id: str) -> IdentityMapping:
        return self._propagate(
            lambda: self.connected_accounts.unlink(account_id),
            "unlinking connected account %s",
            account_id,
        )

    def list_connected_accounts(self) -> List[ConnectedAccount]:
        return [self._with_participant(account) for account in self.gateway.list_connected_accounts()]

    def get_connected_account(self, account_id: str) -> Optional[ConnectedAccount]:
        account = self.gateway.get_connected_account(account_id)
        return self._with_participant(account) if account else None

    def get_connected_account_by_participant(self, participant: str) -> Optional[ConnectedAccount]:
        mappings = self.connected_accounts.find_by_participant(participant)
        if not mappings:
            return None
        account = self.gateway.get_connected_account(mappings[0].external_id)
        return account.model_copy(update={"participant": participant}) if account else None

    def _with_participant(self, account: ConnectedAccount) -> ConnectedAccount:
        mapping = self.identity_store.get(IdentityKind.CONNECTED_ACCOUNT, account.id)
        if mapping is None:
            return account
        return account.model_copy(update={"participant": mapping.participant})

    def _propagate(self, operation: Callable[[], IdentityMapping], action: str, *args: Any) -> IdentityMapping:
        try:
            return operation()
        except Exception as exc:
            logger.error("Error " + action + ": %s", *args, exc)
            raise


def _require_subscription_id(event: SyncEvent) -> str:
    if event.payload is None:
        raise InvalidSubscriptionPayloadError(
            f"Event {event.event_id} carries no subscription object",
            detail={"event_id": event.event_id},
        )
    return event.payload.id


__all__ = [
    "BillingRepository",
    "PROVIDER_EVENT_KINDS",
    "ProviderGateway",
    "SubscriptionSyncService",
    "normalize_event",
]
