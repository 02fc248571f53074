"""API schemas for billing endpoints."""
from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..billing import ConnectedAccount, IdentityKind, IdentityMapping, Subscription, SubscriptionType


class SubscriptionDetailResponse(BaseModel):
    limit_date: Optional[datetime] = Field(alias="limitDate", default=None)
    pay_amount: Optional[float] = Field(alias="payAmount", default=None)
    usage_count: Optional[int] = Field(alias="usageCount", default=None)
    start_date: datetime = Field(alias="startDate")
    end_date: Optional[datetime] = Field(alias="endDate", default=None)

    model_config = ConfigDict(populate_by_name=True)


class SubscriptionResponse(BaseModel):
    internal_id: Optional[str] = Field(alias="id", default=None)
    external_id: Optional[str] = Field(alias="externalId", default=None)
    is_active: bool = Field(alias="isActive")
    participant: str
    subscription_type: SubscriptionType = Field(alias="subscriptionType")
    resource: Optional[str] = None
    resources: List[str] = Field(default_factory=list)
    details: SubscriptionDetailResponse

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_subscription(cls, subscription: Subscription) -> "SubscriptionResponse":
        return cls(
            internal_id=subscription.internal_id,
            external_id=subscription.external_id,
            is_active=subscription.is_active,
            participant=subscription.participant,
            subscription_type=subscription.subscription_type,
            resource=subscription.resource,
            resources=list(subscription.resources),
            details=SubscriptionDetailResponse(**subscription.details.model_dump()),
        )


class CustomerCreateRequest(BaseModel):
    email: str = Field(min_length=3)
    participant: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True)


class CustomerCreateResponse(BaseModel):
    customer_id: str = Field(alias="customerId")
    participant: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True)


class LinkRequest(BaseModel):
    participant: str = Field(min_length=1)
    external_id: str = Field(alias="externalId", min_length=1)

    model_config = ConfigDict(populate_by_name=True)


class LinkResponse(BaseModel):
    kind: IdentityKind
    participant: str
    external_id: str = Field(alias="externalId")
    created_at: datetime = Field(alias="createdAt")

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_mapping(cls, mapping: IdentityMapping) -> "LinkResponse":
        return cls(
            kind=mapping.kind,
            participant=mapping.participant,
            external_id=mapping.external_id,
            created_at=mapping.created_at,
        )


class ConnectedAccountResponse(BaseModel):
    id: str
    email: Optional[str] = None
    country: Optional[str] = None
    charges_enabled: bool = Field(alias="chargesEnabled", default=False)
    payouts_enabled: bool = Field(alias="payoutsEnabled", default=False)
    details_submitted: bool = Field(alias="detailsSubmitted", default=False)
    participant: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_account(cls, account: ConnectedAccount) -> "ConnectedAccountResponse":
        return cls(**account.model_dump())


class ConnectedAccountListResponse(BaseModel):
    accounts: List[ConnectedAccountResponse]

    model_config = ConfigDict(populate_by_name=True)


class BillingWebhookPayload(BaseModel):
    id: str
    type: str
    data: Dict[str, object]
    created: Optional[int] = None

    model_config = ConfigDict(populate_by_name=True)
