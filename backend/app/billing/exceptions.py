"""Domain errors raised by the subscription synchronization core."""
from __future__ import annotations

from typing import Any, Dict, Mapping, Optional

from fastapi import HTTPException, status


class BillingSyncError(Exception):
    """Base class for actionable billing errors surfaced to callers."""

    code = "billing_error"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, *, detail: Optional[Mapping[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail: Dict[str, Any] = dict(detail or {})

    @property
    def payload(self) -> Mapping[str, Any]:
        """Serialized representation suitable for JSON responses."""

        base_detail: Dict[str, Any] = {"error": self.code, "message": self.message}
        base_detail.update(self.detail)
        return base_detail

    def to_http_exception(self) -> HTTPException:
        """Convert the domain error into a FastAPI HTTPException."""

        return HTTPException(status_code=self.status_code, detail=dict(self.payload))


class NotFoundError(BillingSyncError, LookupError):
    code = "not_found"
    status_code = status.HTTP_404_NOT_FOUND


class MappingNotFoundError(NotFoundError):
    """No identity mapping exists for an external id."""

    code = "mapping_not_found"


class SubscriptionNotFoundError(NotFoundError):
    """The provider has no subscription with the requested id."""

    code = "subscription_not_found"


class SubscriptionRecordNotFoundError(NotFoundError):
    """No internal subscription record matches the external id."""

    code = "subscription_record_not_found"


class AlreadyLinkedError(BillingSyncError):
    """An identity mapping already exists for the external id."""

    code = "already_linked"
    status_code = status.HTTP_409_CONFLICT


class DuplicateSubscriptionError(BillingSyncError):
    """A subscription record with the same external id is already stored."""

    code = "duplicate_subscription"
    status_code = status.HTTP_409_CONFLICT


class UnresolvableCustomerError(BillingSyncError):
    code = "unresolvable_customer"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class CustomerDeletedError(BillingSyncError):
    code = "customer_deleted"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class InvalidSubscriptionPayloadError(BillingSyncError):
    code = "invalid_subscription_payload"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class UninitializedGatewayError(BillingSyncError):
    """Provider gateway could not be constructed from configuration."""

    code = "uninitialized_gateway"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class ProviderUnavailableError(BillingSyncError):
    code = "provider_unavailable"
    status_code = status.HTTP_502_BAD_GATEWAY


class WebhookSignatureError(BillingSyncError):
    code = "invalid_webhook_signature"
    status_code = status.HTTP_400_BAD_REQUEST


__all__ = [
    "AlreadyLinkedError",
    "BillingSyncError",
    "CustomerDeletedError",
    "DuplicateSubscriptionError",
    "InvalidSubscriptionPayloadError",
    "MappingNotFoundError",
    "NotFoundError",
    "ProviderUnavailableError",
    "SubscriptionNotFoundError",
    "SubscriptionRecordNotFoundError",
    "UninitializedGatewayError",
    "UnresolvableCustomerError",
    "WebhookSignatureError",
]
