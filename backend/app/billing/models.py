"""Domain models for subscription synchronization."""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class SubscriptionType(str, Enum):
    """How a subscription's validity is measured."""

    LIMIT_DATE = "limitDate"
    PAY_AMOUNT = "payAmount"
    USAGE_COUNT = "usageCount"


class IdentityKind(str, Enum):
    """External identity kinds a participant can be mapped to."""

    CUSTOMER = "customer"
    CONNECTED_ACCOUNT = "connected_account"


class SyncEventKind(str, Enum):
    """Normalized provider lifecycle events handled by the sync service."""

    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"
    OTHER = "other"


class SyncOutcome(str, Enum):
    """Result of processing one provider event."""

    APPLIED = "applied"
    IGNORED = "ignored"
    FAILED = "failed"


class IdentityMapping(BaseModel):
    """Link between an internal participant and one external identity."""

    kind: IdentityKind
    participant: str = Field(min_length=1)
    external_id: str = Field(min_length=1)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(frozen=True)


class SubscriptionDetail(BaseModel):
    """Validity window and counters of a subscription.

    Only the field matching the subscription's :class:`SubscriptionType` is
    meaningful; the other two are left unset.
    """

    limit_date: Optional[datetime] = None
    pay_amount: Optional[float] = Field(default=None, gt=0)
    usage_count: Optional[int] = Field(default=None, ge=0)
    start_date: datetime
    end_date: Optional[datetime] = None

    model_config = ConfigDict(frozen=True)


class Subscription(BaseModel):
    """Internal subscription record owned by the billing repository."""

    internal_id: Optional[str] = None
    external_id: Optional[str] = None
    is_active: bool
    participant: str
    subscription_type: SubscriptionType
    resource: Optional[str] = None
    resources: List[str] = Field(default_factory=list)
    details: SubscriptionDetail

    model_config = ConfigDict(frozen=True)


class CustomerId(BaseModel):
    """Customer reference given as a bare provider id."""

    type: Literal["id"] = "id"
    id: str


class ExpandedCustomer(BaseModel):
    """Customer reference expanded into a provider object."""

    type: Literal["expanded"] = "expanded"
    id: str
    deleted: bool = False


CustomerRef = Annotated[Union[CustomerId, ExpandedCustomer], Field(discriminator="type")]


def parse_customer_ref(value: object) -> Optional[Union[CustomerId, ExpandedCustomer]]:
    """Interpret the provider's polymorphic ``customer`` field."""

    if isinstance(value, str) and value:
        return CustomerId(id=value)
    if isinstance(value, Mapping):
        customer_id = value.get("id")
        if isinstance(customer_id, str) and customer_id:
            return ExpandedCustomer(id=customer_id, deleted=bool(value.get("deleted", False)))
    return None


class RawSubscription(BaseModel):
    """Provider-side subscription, prior to translation."""

    id: str
    status: str
    customer: Optional[CustomerRef] = None
    current_period_start: Optional[int] = None
    current_period_end: Optional[int] = None
    metadata: Dict[str, str] = Field(default_factory=dict)
    price_ids: List[str] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True)

    @classmethod
    def from_provider(cls, payload: Mapping[str, Any]) -> "RawSubscription":
        """Build a raw subscription from a provider JSON object.

        Newer provider API versions report the billing period on each
        subscription item instead of the subscription itself, so the first
        item is used as a fallback.
        """

        items = _item_list(payload.get("items"))
        first_item = items[0] if items else {}
        period_start = payload.get("current_period_start") or first_item.get("current_period_start")
        period_end = payload.get("current_period_end") or first_item.get("current_period_end")

        price_ids: List[str] = []
        for item in items:
            price = item.get("price")
            if isinstance(price, Mapping) and price.get("id"):
                price_ids.append(str(price["id"]))
            elif isinstance(price, str):
                price_ids.append(price)

        metadata = payload.get("metadata")
        return cls(
            id=str(payload["id"]),
            status=str(payload.get("status", "")),
            customer=parse_customer_ref(payload.get("customer")),
            current_period_start=int(period_start) if period_start is not None else None,
            current_period_end=int(period_end) if period_end is not None else None,
            metadata={str(k): str(v) for k, v in metadata.items()} if isinstance(metadata, Mapping) else {},
            price_ids=price_ids,
        )


def _item_list(value: object) -> List[Mapping[str, Any]]:
    if isinstance(value, Mapping):
        value = value.get("data")
    if isinstance(value, list):
        return [item for item in value if isinstance(item, Mapping)]
    return []


class SyncEvent(BaseModel):
    """Provider lifecycle event normalized for the sync service."""

    event_id: str
    kind: SyncEventKind
    provider_type: str
    payload: Optional[RawSubscription] = None
    received_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(frozen=True)


class ConnectedAccount(BaseModel):
    """Provider connected (payout) account summary."""

    id: str
    email: Optional[str] = None
    country: Optional[str] = None
    charges_enabled: bool = False
    payouts_enabled: bool = False
    details_submitted: bool = False
    participant: Optional[str] = None

    model_config = ConfigDict(frozen=True)
