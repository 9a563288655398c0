"""Relays hub notifications to the webhook that owns the callback."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from ytrelay.core.config import settings
from ytrelay.schema.notification import ChannelInfo, VideoInfo, WebhookPayload
from ytrelay.services import subscription_store as store
from ytrelay.services.channel_resolver import channel_id_from_topic
from ytrelay.services.errors import SubscriptionNotFoundError, VerificationError
from ytrelay.services.webhook_urls import mirror_target
from ytrelay.services.youtube_notifications import VideoEntry, parse_video_entry

logger = logging.getLogger(__name__)

USER_AGENT = "ytrelay/0.1"

SAMPLE_PAYLOAD = WebhookPayload(
    video=VideoInfo(
        id="yrYmQDh2rM8",
        title="real notification",
        url="https://www.youtube.com/watch?v=yrYmQDh2rM8",
        published_at="2025-03-01T16:59:59+00:00",
        updated_at="2025-03-01T17:00:00.310119404+00:00",
    ),
    channel=ChannelInfo(id="UC1PsYPhJWpgcM88C4txYp1Q", name="Crazy Clones AI"),
    timestamp=datetime(2025, 3, 1, 17, 0, 3, 982000, tzinfo=timezone.utc),
)


@dataclass(slots=True)
class DispatchResult:
    """Outcome of one POST to a client webhook."""

    webhook_url: str
    success: bool
    status_code: int | None = None
    error: str | None = None


@dataclass(slots=True)
class ForwardOutcome:
    user_key: str
    video_id: str
    channel_id: str
    title: str | None
    channel_mismatch: bool
    primary: DispatchResult
    counterpart: DispatchResult | None = None


async def verify_subscription(
    session: AsyncSession,
    *,
    user_key: str,
    mode: str | None,
    topic: str | None,
    challenge: str | None,
) -> str:
    """Return the challenge to echo back for a hub verification request.

    With ``settings.verify_topics`` enabled the topic must name a channel held
    by the record that owns ``user_key``.
    """

    if not mode or not topic or not challenge:
        raise VerificationError()

    if settings.verify_topics:
        record = await store.find_by_user_key(session, user_key)
        channel_id = channel_id_from_topic(topic)
        if record is None or channel_id not in record.channel_ids:
            logger.warning(
                "Rejecting verification for untracked topic",
                extra={"user_key": user_key, "mode": mode, "topic": topic},
            )
            raise VerificationError("Verification topic is not tracked for this user key")

    logger.info("Accepting WebSub verification", extra={"user_key": user_key, "mode": mode, "topic": topic})
    return challenge


def build_webhook_payload(entry: VideoEntry, *, dispatched_at: datetime | None = None) -> WebhookPayload:
    return WebhookPayload(
        video=VideoInfo(
            id=entry.video_id,
            title=entry.title,
            url=entry.link,
            published_at=entry.published,
            updated_at=entry.updated,
        ),
        channel=ChannelInfo(id=entry.channel_id, name=entry.author),
        timestamp=dispatched_at or datetime.now(timezone.utc),
    )


async def dispatch(client: httpx.AsyncClient, webhook_url: str, payload: WebhookPayload) -> DispatchResult:
    """POST ``payload`` to ``webhook_url``; failures are returned, never raised."""

    try:
        response = await client.post(
            webhook_url,
            json=payload.model_dump(mode="json"),
            headers={"User-Agent": USER_AGENT},
            timeout=settings.http_timeout_seconds,
        )
        response.raise_for_status()
    except httpx.HTTPStatusError as exc:
        logger.warning("Webhook responded with an error", extra={"webhook_url": webhook_url, "error": str(exc)})
        return DispatchResult(
            webhook_url=webhook_url, success=False, status_code=exc.response.status_code, error=str(exc)
        )
    except httpx.HTTPError as exc:
        logger.warning("Failed to reach webhook", extra={"webhook_url": webhook_url, "error": str(exc)})
        return DispatchResult(webhook_url=webhook_url, success=False, error=str(exc))

    logger.info("Forwarded notification", extra={"webhook_url": webhook_url, "status_code": response.status_code})
    return DispatchResult(webhook_url=webhook_url, success=True, status_code=response.status_code)


async def forward_notification(
    session: AsyncSession,
    client: httpx.AsyncClient,
    *,
    user_key: str,
    body: bytes,
) -> ForwardOutcome | None:
    """Parse a publish notification and relay it to the owning webhook and its counterpart.

    Returns None when the feed carries no video entry (e.g. deletions only).
    Raises ``WebhookParseError`` for malformed bodies and
    :class:`SubscriptionNotFoundError` for unknown user keys.
    """

    entry = parse_video_entry(body)
    if entry is None:
        logger.info("No actionable entries in WebSub payload", extra={"user_key": user_key})
        return None

    record = await store.find_by_user_key(session, user_key)
    if record is None:
        logger.error("No subscription found for user key", extra={"user_key": user_key})
        raise SubscriptionNotFoundError(user_key=user_key)

    channel_mismatch = entry.channel_id not in record.channel_ids
    if channel_mismatch:
        logger.warning(
            "Notification channel is not in the subscription; forwarding anyway",
            extra={"user_key": user_key, "channel_id": entry.channel_id},
        )

    payload = build_webhook_payload(entry)
    targets = [record.webhook_url]
    counterpart_url = mirror_target(record.webhook_url)
    if counterpart_url:
        targets.append(counterpart_url)

    results = await asyncio.gather(*(dispatch(client, url, payload) for url in targets))

    return ForwardOutcome(
        user_key=user_key,
        video_id=entry.video_id,
        channel_id=entry.channel_id,
        title=entry.title,
        channel_mismatch=channel_mismatch,
        primary=results[0],
        counterpart=results[1] if counterpart_url else None,
    )


async def send_test_notification(client: httpx.AsyncClient, webhook_url: str) -> DispatchResult:
    """POST the sample payload to ``webhook_url`` so callers can check their endpoint."""

    return await dispatch(client, webhook_url, SAMPLE_PAYLOAD)
