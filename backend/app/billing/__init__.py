"""Billing package synchronizing provider subscriptions with internal records."""

from .exceptions import (
    AlreadyLinkedError,
    BillingSyncError,
    CustomerDeletedError,
    DuplicateSubscriptionError,
    InvalidSubscriptionPayloadError,
    MappingNotFoundError,
    NotFoundError,
    ProviderUnavailableError,
    SubscriptionNotFoundError,
    SubscriptionRecordNotFoundError,
    UninitializedGatewayError,
    UnresolvableCustomerError,
    WebhookSignatureError,
)
from .identity import IdentityMap, IdentityStore
from .models import (
    ConnectedAccount,
    CustomerId,
    ExpandedCustomer,
    IdentityKind,
    IdentityMapping,
    RawSubscription,
    Subscription,
    SubscriptionDetail,
    SubscriptionType,
    SyncEvent,
    SyncEventKind,
    SyncOutcome,
)
from .service import (
    BillingRepository,
    ProviderGateway,
    SubscriptionSyncService,
    normalize_event,
)
from .translator import FixedSubscriptionClassifier, SubscriptionClassifier, SubscriptionTranslator

__all__ = [
    "AlreadyLinkedError",
    "BillingRepository",
    "BillingSyncError",
    "ConnectedAccount",
    "CustomerDeletedError",
    "CustomerId",
    "DuplicateSubscriptionError",
    "ExpandedCustomer",
    "FixedSubscriptionClassifier",
    "IdentityKind",
    "IdentityMap",
    "IdentityMapping",
    "IdentityStore",
    "InvalidSubscriptionPayloadError",
    "MappingNotFoundError",
    "NotFoundError",
    "ProviderGateway",
    "ProviderUnavailableError",
    "RawSubscription",
    "Subscription",
    "SubscriptionClassifier",
    "SubscriptionDetail",
    "SubscriptionNotFoundError",
    "SubscriptionRecordNotFoundError",
    "SubscriptionSyncService",
    "SubscriptionTranslator",
    "SubscriptionType",
    "SyncEvent",
    "SyncEventKind",
    "SyncOutcome",
    "UninitializedGatewayError",
    "UnresolvableCustomerError",
    "WebhookSignatureError",
    "normalize_event",
]
