"""Helpers to interact with YouTube's WebSub (PubSubHubbub) hub."""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Iterable

import httpx

from ytrelay.core.config import settings
from ytrelay.services.channel_resolver import channel_feed_url

logger = logging.getLogger(__name__)

NO_SUBSCRIPTION_MARKER = "No subscription was found"


def _field_pattern(label: str) -> re.Pattern[str]:
    return re.compile(rf"{label}</dt>\s*<dd>\s*([^<]+?)\s*</dd>", re.IGNORECASE)


_STATE_RE = _field_pattern("State")
_EXPIRATION_RE = _field_pattern("Expiration time")
_LAST_VERIFICATION_RE = _field_pattern("Last successful verification")
_LAST_SUBSCRIBE_RE = _field_pattern("Last subscribe request")
_VERIFICATION_ERROR_RE = _field_pattern("Last verification error")


@dataclass(slots=True)
class WebSubSubscription:
    """Represents a WebSub subscription request."""

    callback_url: str
    topic_url: str
    mode: str = "subscribe"
    verify: str = "sync"
    lease_seconds: int | None = None

    def to_form(self) -> dict[str, str]:
        """Convert the subscription details into form payload."""

        payload: dict[str, str] = {
            "hub.callback": self.callback_url,
            "hub.mode": self.mode,
            "hub.topic": self.topic_url,
            "hub.verify": self.verify,
        }
        if self.lease_seconds is not None:
            payload["hub.lease_seconds"] = str(self.lease_seconds)
        return payload


@dataclass(slots=True)
class HubResult:
    """Outcome of a single subscribe/unsubscribe call."""

    channel_id: str
    success: bool
    callback_url: str
    status_code: int | None = None
    error: str | None = None


@dataclass(slots=True)
class ChannelStatus:
    """Subscription details scraped from the hub's status page."""

    channel_id: str
    state: str
    expiration: str | None = None
    last_verification: str | None = None
    last_subscribe: str | None = None
    verification_error: str | None = None
    error: str | None = None

    @property
    def is_subscribed(self) -> bool:
        return self.state == "verified"


def callback_url_for(user_key: str) -> str:
    """Return the callback URL the hub calls for a given subscription record."""

    return f"{settings.public_base_url}{settings.callback_path}/{user_key}"


async def _send(client: httpx.AsyncClient, request: WebSubSubscription, channel_id: str) -> HubResult:
    try:
        response = await client.post(
            settings.hub_url, data=request.to_form(), timeout=settings.http_timeout_seconds
        )
        response.raise_for_status()
    except httpx.HTTPStatusError as exc:
        logger.warning(
            "WebSub %s rejected for channel %s",
            request.mode,
            channel_id,
            extra={"status_code": exc.response.status_code, "callback_url": request.callback_url},
        )
        return HubResult(
            channel_id=channel_id,
            success=False,
            callback_url=request.callback_url,
            status_code=exc.response.status_code,
            error=str(exc),
        )
    except httpx.HTTPError as exc:
        logger.warning("WebSub %s failed for channel %s: %s", request.mode, channel_id, exc)
        return HubResult(channel_id=channel_id, success=False, callback_url=request.callback_url, error=str(exc))

    logger.info(
        "WebSub %s accepted for channel %s",
        request.mode,
        channel_id,
        extra={"status_code": response.status_code, "callback_url": request.callback_url},
    )
    return HubResult(
        channel_id=channel_id,
        success=True,
        callback_url=request.callback_url,
        status_code=response.status_code,
    )


async def subscribe(
    client: httpx.AsyncClient,
    *,
    channel_id: str,
    callback_url: str,
    lease_seconds: int | None = None,
) -> HubResult:
    """Submit a synchronous-verify subscribe request for a channel's feed."""

    request = WebSubSubscription(
        callback_url=callback_url,
        topic_url=channel_feed_url(channel_id),
        lease_seconds=lease_seconds if lease_seconds is not None else settings.lease_seconds,
    )
    return await _send(client, request, channel_id)


async def unsubscribe(client: httpx.AsyncClient, *, channel_id: str, callback_url: str) -> HubResult:
    """Cancel an existing WebSub subscription."""

    request = WebSubSubscription(
        callback_url=callback_url,
        topic_url=channel_feed_url(channel_id),
        mode="unsubscribe",
    )
    return await _send(client, request, channel_id)


async def subscribe_many(
    client: httpx.AsyncClient,
    *,
    channel_ids: Iterable[str],
    callback_url: str,
    lease_seconds: int | None = None,
) -> list[HubResult]:
    """Subscribe every channel concurrently; one result per channel, in input order."""

    tasks = [
        subscribe(client, channel_id=channel_id, callback_url=callback_url, lease_seconds=lease_seconds)
        for channel_id in channel_ids
    ]
    if not tasks:
        return []
    return list(await asyncio.gather(*tasks))


async def unsubscribe_many(
    client: httpx.AsyncClient,
    *,
    channel_ids: Iterable[str],
    callback_url: str,
) -> list[HubResult]:
    tasks = [unsubscribe(client, channel_id=channel_id, callback_url=callback_url) for channel_id in channel_ids]
    if not tasks:
        return []
    return list(await asyncio.gather(*tasks))


def parse_status_page(html: str, channel_id: str) -> ChannelStatus:
    """Extract the labelled fields from the hub's subscription-details page."""

    if NO_SUBSCRIPTION_MARKER in html:
        return ChannelStatus(
            channel_id=channel_id,
            state="not found",
            expiration="n/a",
            last_verification="n/a",
            last_subscribe="n/a",
        )

    def _find(pattern: re.Pattern[str]) -> str | None:
        match = pattern.search(html)
        return match.group(1).strip() if match else None

    verification_error = _find(_VERIFICATION_ERROR_RE)
    if verification_error == "n/a":
        verification_error = None

    return ChannelStatus(
        channel_id=channel_id,
        state=_find(_STATE_RE) or "unknown",
        expiration=_find(_EXPIRATION_RE) or "unknown",
        last_verification=_find(_LAST_VERIFICATION_RE) or "unknown",
        last_subscribe=_find(_LAST_SUBSCRIBE_RE) or "unknown",
        verification_error=verification_error,
    )


async def fetch_status(client: httpx.AsyncClient, *, channel_id: str, callback_url: str) -> ChannelStatus:
    """Query the hub for the state of one channel subscription."""

    params = {"hub.callback": callback_url, "hub.topic": channel_feed_url(channel_id)}
    try:
        response = await client.get(settings.hub_status_url, params=params, timeout=settings.http_timeout_seconds)
        response.raise_for_status()
    except httpx.HTTPError as exc:
        logger.warning("Failed to fetch WebSub status for channel %s: %s", channel_id, exc)
        return ChannelStatus(channel_id=channel_id, state="error", error=str(exc))

    return parse_status_page(response.text, channel_id)


async def fetch_status_many(
    client: httpx.AsyncClient,
    *,
    channel_ids: Iterable[str],
    callback_url: str,
) -> list[ChannelStatus]:
    tasks = [fetch_status(client, channel_id=channel_id, callback_url=callback_url) for channel_id in channel_ids]
    if not tasks:
        return []
    return list(await asyncio.gather(*tasks))
