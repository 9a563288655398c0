"""Subscription management endpoints."""

from __future__ import annotations

import logging

import httpx
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from ytrelay.core.http import get_http_client
from ytrelay.db.session import get_session
from ytrelay.schema.subscription import (
    DispatchResponse,
    SubscribeRequest,
    SubscribeResponse,
    SubscriptionListResponse,
    SubscriptionRecordResponse,
    SubscriptionStatusResponse,
    UnsubscribeRequest,
    UnsubscribeResponse,
    WebhookTestRequest,
)
from ytrelay.services import subscription_store as store
from ytrelay.services.channel_resolver import is_valid_webhook_url
from ytrelay.services.errors import (
    StoreWriteError,
    SubscriptionError,
    SubscriptionNotFoundError,
)
from ytrelay.services.notification_forwarder import send_test_notification
from ytrelay.services.subscription_service import subscribe_channels, unsubscribe_channels
from ytrelay.services.subscription_status import subscription_status

logger = logging.getLogger(__name__)

router = APIRouter(tags=["subscriptions"])


def to_http_error(exc: SubscriptionError) -> HTTPException:
    """Map a service error onto the HTTP status its category calls for."""

    if isinstance(exc, SubscriptionNotFoundError):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(exc, StoreWriteError):
        code = status.HTTP_500_INTERNAL_SERVER_ERROR
    else:
        code = status.HTTP_400_BAD_REQUEST
    return HTTPException(status_code=code, detail=exc.to_detail())


@router.post("/subscribe", response_model=SubscribeResponse)
async def subscribe(
    payload: SubscribeRequest,
    session: AsyncSession = Depends(get_session),
    client: httpx.AsyncClient = Depends(get_http_client),
) -> SubscribeResponse:
    """Subscribe a webhook URL to YouTube channel uploads."""

    try:
        outcome = await subscribe_channels(
            session, client, channel_ids=payload.channel_ids, webhook_url=payload.webhook_url
        )
    except SubscriptionError as exc:
        logger.info("Subscribe request rejected", extra={"webhook_url": payload.webhook_url, "reason": exc.message})
        raise to_http_error(exc) from exc
    return SubscribeResponse.model_validate(outcome)


@router.post("/unsubscribe", response_model=UnsubscribeResponse)
async def unsubscribe(
    payload: UnsubscribeRequest,
    session: AsyncSession = Depends(get_session),
    client: httpx.AsyncClient = Depends(get_http_client),
) -> UnsubscribeResponse:
    """Remove channels, or every channel, from a webhook's subscription."""

    try:
        outcome = await unsubscribe_channels(
            session,
            client,
            webhook_url=payload.webhook_url,
            channel_ids=payload.channel_ids,
            all_channels=payload.all_channels,
        )
    except SubscriptionError as exc:
        logger.info("Unsubscribe request rejected", extra={"webhook_url": payload.webhook_url, "reason": exc.message})
        raise to_http_error(exc) from exc
    return UnsubscribeResponse.model_validate(outcome)


@router.get("/subscription-status", response_model=SubscriptionStatusResponse)
async def get_subscription_status(
    webhook_url: str = Query(..., min_length=1),
    session: AsyncSession = Depends(get_session),
    client: httpx.AsyncClient = Depends(get_http_client),
) -> SubscriptionStatusResponse:
    try:
        report = await subscription_status(session, client, webhook_url=webhook_url)
    except SubscriptionError as exc:
        raise to_http_error(exc) from exc
    return SubscriptionStatusResponse.model_validate(report)


@router.get("/subscriptions", response_model=SubscriptionListResponse)
async def list_all_subscriptions(session: AsyncSession = Depends(get_session)) -> SubscriptionListResponse:
    records = await store.list_subscriptions(session)
    return SubscriptionListResponse(
        subscriptions=[SubscriptionRecordResponse.model_validate(record) for record in records]
    )


@router.delete("/subscriptions")
async def clear_all_subscriptions(session: AsyncSession = Depends(get_session)) -> dict[str, object]:
    """Drop every stored subscription without contacting the hub."""

    if not await store.clear_subscriptions(session):
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"success": False, "message": "Failed to clear subscriptions"},
        )
    logger.warning("All subscriptions cleared")
    return {"success": True, "message": "All subscriptions have been cleared"}


@router.post("/test-webhook", response_model=DispatchResponse)
async def send_test_webhook(
    payload: WebhookTestRequest,
    client: httpx.AsyncClient = Depends(get_http_client),
) -> DispatchResponse:
    """Send a sample notification to a webhook URL."""

    if not is_valid_webhook_url(payload.webhook_url):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"success": False, "message": "Please provide a valid webhook URL"},
        )
    result = await send_test_notification(client, payload.webhook_url)
    if not result.success:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail={
                "success": False,
                "message": "Failed to send test notification",
                "status_code": result.status_code,
                "error": result.error,
            },
        )
    return DispatchResponse.model_validate(result)
