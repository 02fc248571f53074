"""Conversion of provider subscriptions into internal subscription records."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, Optional, Protocol

from .exceptions import CustomerDeletedError, InvalidSubscriptionPayloadError, UnresolvableCustomerError
from .models import (
    CustomerId,
    ExpandedCustomer,
    RawSubscription,
    Subscription,
    SubscriptionDetail,
    SubscriptionType,
)

ParticipantResolver = Callable[[str], str]

ACTIVE_STATUS = "active"


class SubscriptionClassifier(Protocol):
    """Decides which :class:`SubscriptionType` a provider subscription is."""

    def classify(self, raw: RawSubscription) -> SubscriptionType:
        ...


class FixedSubscriptionClassifier:
    """Classifier returning the same type for every subscription.

    The rule mapping plan or price metadata to a subscription type is not
    defined yet; inject a real classifier once it is.
    """

    def __init__(self, subscription_type: SubscriptionType = SubscriptionType.PAY_AMOUNT) -> None:
        self.subscription_type = subscription_type

    def classify(self, raw: RawSubscription) -> SubscriptionType:
        return self.subscription_type


class SubscriptionTranslator:
    """Builds :class:`Subscription` records from :class:`RawSubscription` objects."""

    def __init__(self, classifier: Optional[SubscriptionClassifier] = None) -> None:
        self._classifier = classifier or FixedSubscriptionClassifier()

    def translate(self, raw: RawSubscription, resolve_participant: ParticipantResolver) -> Subscription:
        participant = self._resolve_participant(raw, resolve_participant)
        if raw.current_period_start is None:
            raise InvalidSubscriptionPayloadError(
                f"Subscription {raw.id} has no current period start",
                detail={"subscription_id": raw.id},
            )

        details = SubscriptionDetail(
            start_date=_from_epoch(raw.current_period_start),
            end_date=_from_epoch(raw.current_period_end) if raw.current_period_end is not None else None,
        )
        # resource linking waits on the product catalog integration
        return Subscription(
            external_id=raw.id,
            is_active=raw.status == ACTIVE_STATUS,
            participant=participant,
            subscription_type=self._classifier.classify(raw),
            resource=None,
            resources=[],
            details=details,
        )

    def _resolve_participant(self, raw: RawSubscription, resolve_participant: ParticipantResolver) -> str:
        customer = raw.customer
        if isinstance(customer, CustomerId):
            return resolve_participant(customer.id)
        if isinstance(customer, ExpandedCustomer):
            if customer.deleted:
                raise CustomerDeletedError(
                    "Customer has been deleted",
                    detail={"subscription_id": raw.id, "customer_id": customer.id},
                )
            return resolve_participant(customer.id)
        raise UnresolvableCustomerError(
            "Unable to retrieve customer ID",
            detail={"subscription_id": raw.id},
        )


def _from_epoch(value: int) -> datetime:
    return datetime.fromtimestamp(value, tz=timezone.utc)


__all__ = [
    "FixedSubscriptionClassifier",
    "ParticipantResolver",
    "SubscriptionClassifier",
    "SubscriptionTranslator",
]
