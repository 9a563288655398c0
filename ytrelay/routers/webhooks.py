"""WebSub callback handlers (one callback URL per subscription record)."""

from __future__ import annotations

import logging

import httpx
from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from fastapi.responses import PlainTextResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ytrelay.core.http import get_http_client
from ytrelay.db.session import get_session
from ytrelay.routers.subscriptions import to_http_error
from ytrelay.schema.subscription import ForwardResponse
from ytrelay.services.errors import SubscriptionError
from ytrelay.services.notification_forwarder import forward_notification, verify_subscription
from ytrelay.services.youtube_notifications import WebhookParseError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/websub", tags=["websub"])


@router.get("/{user_key}", response_class=PlainTextResponse)
async def verify_webhook(
    user_key: str,
    hub_mode: str | None = Query(None, alias="hub.mode"),
    hub_topic: str | None = Query(None, alias="hub.topic"),
    hub_challenge: str | None = Query(None, alias="hub.challenge"),
    hub_lease_seconds: int | None = Query(None, alias="hub.lease_seconds"),
    session: AsyncSession = Depends(get_session),
) -> PlainTextResponse:
    """Respond to WebSub hub verification challenge."""

    logger.info(
        "WebSub verification",
        extra={"user_key": user_key, "mode": hub_mode, "topic": hub_topic, "lease_seconds": hub_lease_seconds},
    )
    try:
        challenge = await verify_subscription(
            session, user_key=user_key, mode=hub_mode, topic=hub_topic, challenge=hub_challenge
        )
    except SubscriptionError as exc:
        raise to_http_error(exc) from exc
    return PlainTextResponse(content=challenge, status_code=status.HTTP_200_OK)


@router.post("/{user_key}", response_model=ForwardResponse)
async def receive_notification(
    user_key: str,
    request: Request,
    session: AsyncSession = Depends(get_session),
    client: httpx.AsyncClient = Depends(get_http_client),
) -> ForwardResponse | Response:
    """Forward a published-video notification to the subscriber's webhook(s)."""

    payload = await request.body()
    logger.info("Received WebSub notification", extra={"user_key": user_key, "payload_length": len(payload)})

    if not payload:
        logger.info("Empty WebSub payload")
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    try:
        outcome = await forward_notification(session, client, user_key=user_key, body=payload)
    except WebhookParseError as exc:
        logger.warning("Invalid WebSub payload", exc_info=exc)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"success": False, "message": "Failed to parse YouTube notification"},
        ) from exc
    except SubscriptionError as exc:
        raise to_http_error(exc) from exc

    if outcome is None:
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    logger.info(
        "Processed WebSub notification",
        extra={
            "user_key": user_key,
            "video_id": outcome.video_id,
            "primary_success": outcome.primary.success,
            "counterpart_success": outcome.counterpart.success if outcome.counterpart else None,
        },
    )
    return ForwardResponse.model_validate(outcome)
