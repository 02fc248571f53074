"""API routes exposing subscription sync and account linking."""
from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, Request, Response, status
from pydantic import ValidationError
from starlette.concurrency import run_in_threadpool

from ..billing import BillingSyncError, normalize_event
from ..billing.stripe_gateway import StripeProviderGateway
from ..schemas.billing import (
    BillingWebhookPayload,
    ConnectedAccountListResponse,
    ConnectedAccountResponse,
    CustomerCreateRequest,
    CustomerCreateResponse,
    LinkRequest,
    LinkResponse,
    SubscriptionResponse,
)
from ..services.billing import get_billing_sync_service

logger = logging.getLogger("billing")

router = APIRouter(prefix="/api/billing", tags=["billing"])


@router.post("/webhook", status_code=status.HTTP_204_NO_CONTENT)
async def receive_webhook(request: Request) -> Response:
    service = get_billing_sync_service()
    body = await request.body()

    if isinstance(service.gateway, StripeProviderGateway):
        signature = request.headers.get("Stripe-Signature", "")
        if not signature:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing signature")
        try:
            raw_event = service.gateway.verify_webhook(body, signature)
        except BillingSyncError as exc:
            logger.warning("Webhook signature verification failed: %s", exc.message)
            raise exc.to_http_exception() from exc
    else:
        try:
            payload = BillingWebhookPayload.model_validate_json(body)
        except ValidationError as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid webhook payload") from exc
        raw_event = {"id": payload.id, "type": payload.type, "object": payload.data.get("object")}

    try:
        event = normalize_event(
            event_id=raw_event["id"],
            provider_type=raw_event["type"],
            data_object=raw_event["object"],
        )
    except BillingSyncError as exc:
        logger.error(
            "Dropping malformed webhook event %s: %s",
            raw_event["id"],
            exc.message,
            extra={"event_id": raw_event["id"], "event_type": raw_event["type"]},
        )
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    await run_in_threadpool(service.handle_event, event)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/customers", response_model=CustomerCreateResponse, status_code=status.HTTP_201_CREATED)
def create_customer(payload: CustomerCreateRequest) -> CustomerCreateResponse:
    service = get_billing_sync_service()
    try:
        customer_id = service.connect(payload.email, participant=payload.participant)
    except BillingSyncError as exc:
        raise exc.to_http_exception() from exc
    return CustomerCreateResponse(customer_id=customer_id, participant=payload.participant)


@router.post("/links/customers", response_model=LinkResponse, status_code=status.HTTP_201_CREATED)
def link_customer(payload: LinkRequest) -> LinkResponse:
    service = get_billing_sync_service()
    try:
        mapping = service.link_participant_to_customer(payload.participant, payload.external_id)
    except BillingSyncError as exc:
        raise exc.to_http_exception() from exc
    return LinkResponse.from_mapping(mapping)


@router.delete("/links/customers/{external_id}", status_code=status.HTTP_204_NO_CONTENT)
def unlink_customer(external_id: str) -> Response:
    service = get_billing_sync_service()
    try:
        service.unlink_participant_from_customer(external_id)
    except BillingSyncError as exc:
        raise exc.to_http_exception() from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/links/connected-accounts", response_model=LinkResponse, status_code=status.HTTP_201_CREATED)
def link_connected_account(payload: LinkRequest) -> LinkResponse:
    service = get_billing_sync_service()
    try:
        mapping = service.link_participant_to_connected_account(payload.participant, payload.external_id)
    except BillingSyncError as exc:
        raise exc.to_http_exception() from exc
    return LinkResponse.from_mapping(mapping)


@router.delete("/links/connected-accounts/{external_id}", status_code=status.HTTP_204_NO_CONTENT)
def unlink_connected_account(external_id: str) -> Response:
    service = get_billing_sync_service()
    try:
        service.unlink_participant_from_connected_account(external_id)
    except BillingSyncError as exc:
        raise exc.to_http_exception() from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/subscriptions/{external_id}/formatted", response_model=SubscriptionResponse)
def format_subscription(external_id: str) -> SubscriptionResponse:
    service = get_billing_sync_service()
    try:
        subscription = service.format_subscription(external_id)
    except BillingSyncError as exc:
        raise exc.to_http_exception() from exc
    return SubscriptionResponse.from_subscription(subscription)


@router.get("/connected-accounts", response_model=ConnectedAccountListResponse)
def list_connected_accounts() -> ConnectedAccountListResponse:
    service = get_billing_sync_service()
    try:
        accounts = service.list_connected_accounts()
    except BillingSyncError as exc:
        raise exc.to_http_exception() from exc
    return ConnectedAccountListResponse(accounts=[ConnectedAccountResponse.from_account(a) for a in accounts])


@router.get("/connected-accounts/participant/{participant}", response_model=ConnectedAccountResponse)
def get_connected_account_by_participant(participant: str) -> ConnectedAccountResponse:
    service = get_billing_sync_service()
    try:
        account = service.get_connected_account_by_participant(participant)
    except BillingSyncError as exc:
        raise exc.to_http_exception() from exc
    if account is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Connected account not found.")
    return ConnectedAccountResponse.from_account(account)


@router.get("/connected-accounts/{account_id}", response_model=ConnectedAccountResponse)
def get_connected_account(account_id: str) -> ConnectedAccountResponse:
    service = get_billing_sync_service()
    try:
        account = service.get_connected_account(account_id)
    except BillingSyncError as exc:
        raise exc.to_http_exception() from exc
    if account is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Connected account not found.")
    return ConnectedAccountResponse.from_account(account)
