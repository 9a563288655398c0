"""Hub-side status reporting for stored subscriptions."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from ytrelay.services import subscription_store as store
from ytrelay.services.errors import SubscriptionNotFoundError
from ytrelay.services.subscription_store import SubscriptionRecord
from ytrelay.services.webhook_urls import mirror_target
from ytrelay.services.websub import ChannelStatus, callback_url_for, fetch_status_many

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class WebhookStatus:
    webhook_url: str
    user_key: str
    callback_url: str
    overall_status: str
    channels: list[ChannelStatus] = field(default_factory=list)


@dataclass(slots=True)
class SubscriptionStatusReport:
    primary: WebhookStatus
    related: WebhookStatus | None = None


def overall_status(channels: list[ChannelStatus]) -> str:
    if channels and all(channel.is_subscribed for channel in channels):
        return "all verified"
    if any(channel.is_subscribed for channel in channels):
        return "partially verified"
    return "none verified"


async def webhook_status(client: httpx.AsyncClient, record: SubscriptionRecord) -> WebhookStatus:
    callback_url = callback_url_for(record.user_key)
    channels = await fetch_status_many(client, channel_ids=record.channel_ids, callback_url=callback_url)
    return WebhookStatus(
        webhook_url=record.webhook_url,
        user_key=record.user_key,
        callback_url=callback_url,
        overall_status=overall_status(channels),
        channels=channels,
    )


async def subscription_status(
    session: AsyncSession,
    client: httpx.AsyncClient,
    *,
    webhook_url: str,
) -> SubscriptionStatusReport:
    """Status of the record for ``webhook_url`` plus its counterpart's record, if any."""

    record = await store.find_by_webhook(session, webhook_url)
    if record is None:
        raise SubscriptionNotFoundError(webhook_url=webhook_url)

    report = SubscriptionStatusReport(primary=await webhook_status(client, record))

    counterpart_url = mirror_target(webhook_url)
    if counterpart_url:
        related = await store.find_by_webhook(session, counterpart_url)
        if related is None:
            logger.info("No related subscription for counterpart", extra={"webhook_url": counterpart_url})
        else:
            report.related = await webhook_status(client, related)
    return report
