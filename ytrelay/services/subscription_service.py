"""Reconciliation of requested channel subscriptions against stored records.

A subscribe call merges the requested channels into the record for the webhook
URL (creating it on first use) and then asks the hub to subscribe every
requested channel: channels new to the record are subscribed for the first time,
channels already present are re-subscribed, which is how leases get renewed.
Unsubscribe removes channels and drops the record once it is empty.

When mirroring is enabled, a subscribe against an n8n-style ``webhook-test`` URL
is repeated independently for the ``webhook`` counterpart, and an unsubscribe is
repeated for the counterpart in either direction. A failure on the counterpart
never changes the primary outcome.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from ytrelay.services import subscription_store as store
from ytrelay.services.channel_resolver import dedupe_channel_ids, invalid_channel_ids, is_valid_webhook_url
from ytrelay.services.errors import (
    InvalidChannelIdsError,
    InvalidWebhookUrlError,
    NoChannelsSpecifiedError,
    NoMatchingChannelsError,
    StoreWriteError,
    SubscriptionNotFoundError,
)
from ytrelay.services.subscription_store import SubscriptionRecord
from ytrelay.services.webhook_urls import mirror_target
from ytrelay.services.websub import HubResult, callback_url_for, subscribe_many, unsubscribe_many

logger = logging.getLogger(__name__)

MSG_SUBSCRIBED = "Subscribed successfully"
MSG_UPDATED_AND_RENEWED = "Subscription updated with new channels and existing channels resubscribed"
MSG_UPDATED = "Subscription updated successfully"
MSG_RENEWED = "All channels have been resubscribed"
MSG_UNSUBSCRIBED_SOME = "Unsubscribed from specified channels"
MSG_UNSUBSCRIBED_ALL = "Unsubscribed from all channels and removed subscription"


@dataclass(slots=True)
class SubscribeOutcome:
    success: bool
    webhook_url: str
    message: str
    user_key: str | None = None
    created: bool = False
    channel_ids: list[str] = field(default_factory=list)
    newly_subscribed_channels: list[str] = field(default_factory=list)
    resubscribed_channels: list[str] = field(default_factory=list)
    subscription_results: list[HubResult] = field(default_factory=list)
    resubscription_results: list[HubResult] = field(default_factory=list)
    dual: SubscribeOutcome | None = None

    @property
    def failed_channels(self) -> list[str]:
        """Channels whose hub call failed; reported as warnings."""

        return [
            result.channel_id
            for result in (*self.subscription_results, *self.resubscription_results)
            if not result.success
        ]


@dataclass(slots=True)
class UnsubscribeOutcome:
    success: bool
    webhook_url: str
    message: str
    user_key: str | None = None
    removed: bool = False
    unsubscribed_channels: list[str] = field(default_factory=list)
    remaining_channels: list[str] = field(default_factory=list)
    unsubscription_results: list[HubResult] = field(default_factory=list)
    dual: UnsubscribeOutcome | None = None

    @property
    def failed_channels(self) -> list[str]:
        return [result.channel_id for result in self.unsubscription_results if not result.success]


def _subscribe_message(existed: bool, new: Sequence[str], renewed: Sequence[str]) -> str:
    if not existed:
        return MSG_SUBSCRIBED
    if new and renewed:
        return MSG_UPDATED_AND_RENEWED
    if new:
        return MSG_UPDATED
    return MSG_RENEWED


def _validate_webhook_url(webhook_url: str) -> None:
    if not is_valid_webhook_url(webhook_url):
        raise InvalidWebhookUrlError(webhook_url)


def _validate_channel_ids(channel_ids: Sequence[str]) -> None:
    invalid = invalid_channel_ids(channel_ids)
    if invalid:
        raise InvalidChannelIdsError(invalid)


async def reconcile_subscription(
    session: AsyncSession,
    client: httpx.AsyncClient,
    *,
    channel_ids: Sequence[str],
    webhook_url: str,
) -> SubscribeOutcome:
    """Merge ``channel_ids`` into the record for ``webhook_url`` and (re)subscribe them at the hub.

    Raises :class:`StoreWriteError` when the record cannot be persisted. Hub
    failures are reported per channel on the outcome and are not fatal.
    """

    requested = dedupe_channel_ids(channel_ids)
    existing = await store.find_by_webhook(session, webhook_url)
    now = datetime.now(timezone.utc)

    if existing is None:
        record = SubscriptionRecord(
            user_key=store.generate_user_key(webhook_url),
            webhook_url=webhook_url,
            channel_ids=list(requested),
            timestamp=now,
            created_at=now,
        )
        newly_subscribed, resubscribed = list(requested), []
        logger.info("Creating subscription", extra={"webhook_url": webhook_url, "user_key": record.user_key})
        saved = await store.add_subscription(session, record)
    else:
        record = existing
        current = set(existing.channel_ids)
        newly_subscribed = [channel_id for channel_id in requested if channel_id not in current]
        resubscribed = [channel_id for channel_id in requested if channel_id in current]
        record.channel_ids = dedupe_channel_ids([*existing.channel_ids, *newly_subscribed])
        record.timestamp = now
        logger.info(
            "Updating subscription",
            extra={"webhook_url": webhook_url, "user_key": record.user_key, "new_channels": newly_subscribed},
        )
        saved = await store.update_subscription(session, record.user_key, record)

    if not saved:
        logger.error("Failed to save/update subscription", extra={"webhook_url": webhook_url})
        raise StoreWriteError(webhook_url)

    callback_url = callback_url_for(record.user_key)
    subscription_results, resubscription_results = await asyncio.gather(
        subscribe_many(client, channel_ids=newly_subscribed, callback_url=callback_url),
        subscribe_many(client, channel_ids=resubscribed, callback_url=callback_url),
    )

    outcome = SubscribeOutcome(
        success=True,
        webhook_url=webhook_url,
        message=_subscribe_message(existing is not None, newly_subscribed, resubscribed),
        user_key=record.user_key,
        created=existing is None,
        channel_ids=list(record.channel_ids),
        newly_subscribed_channels=newly_subscribed,
        resubscribed_channels=resubscribed,
        subscription_results=subscription_results,
        resubscription_results=resubscription_results,
    )
    if outcome.failed_channels:
        logger.warning(
            "Some hub subscriptions failed",
            extra={"webhook_url": webhook_url, "failed_channels": outcome.failed_channels},
        )
    return outcome


async def subscribe_channels(
    session: AsyncSession,
    client: httpx.AsyncClient,
    *,
    channel_ids: Sequence[str],
    webhook_url: str,
) -> SubscribeOutcome:
    """Validate a subscribe request, reconcile it, and mirror it onto the production URL."""

    if not channel_ids:
        raise NoChannelsSpecifiedError("channel_ids must be a non-empty list of YouTube channel IDs")
    _validate_channel_ids(channel_ids)
    _validate_webhook_url(webhook_url)

    outcome = await reconcile_subscription(session, client, channel_ids=channel_ids, webhook_url=webhook_url)

    production_url = mirror_target(webhook_url, production_only=True)
    if production_url:
        logger.info("Mirroring subscription to production webhook", extra={"webhook_url": production_url})
        try:
            outcome.dual = await reconcile_subscription(
                session, client, channel_ids=channel_ids, webhook_url=production_url
            )
        except StoreWriteError as exc:
            outcome.dual = SubscribeOutcome(success=False, webhook_url=production_url, message=exc.message)
    return outcome


async def _apply_unsubscribe(
    session: AsyncSession,
    client: httpx.AsyncClient,
    record: SubscriptionRecord,
    channel_ids: Sequence[str],
) -> UnsubscribeOutcome:
    results = await unsubscribe_many(
        client, channel_ids=channel_ids, callback_url=callback_url_for(record.user_key)
    )
    removing = set(channel_ids)
    remaining = [channel_id for channel_id in record.channel_ids if channel_id not in removing]

    if remaining:
        record.channel_ids = remaining
        record.timestamp = datetime.now(timezone.utc)
        saved = await store.update_subscription(session, record.user_key, record)
        message = MSG_UNSUBSCRIBED_SOME
    else:
        logger.info("Removing subscription; no channels remain", extra={"webhook_url": record.webhook_url})
        saved = await store.delete_subscription(session, record.user_key)
        message = MSG_UNSUBSCRIBED_ALL

    if not saved:
        logger.error("Failed to update/remove subscription", extra={"webhook_url": record.webhook_url})
        raise StoreWriteError(record.webhook_url)

    outcome = UnsubscribeOutcome(
        success=True,
        webhook_url=record.webhook_url,
        message=message,
        user_key=record.user_key,
        removed=not remaining,
        unsubscribed_channels=list(channel_ids),
        remaining_channels=remaining,
        unsubscription_results=results,
    )
    if outcome.failed_channels:
        logger.warning(
            "Some hub unsubscriptions failed",
            extra={"webhook_url": record.webhook_url, "failed_channels": outcome.failed_channels},
        )
    return outcome


async def unsubscribe_channels(
    session: AsyncSession,
    client: httpx.AsyncClient,
    *,
    webhook_url: str,
    channel_ids: Sequence[str] | None = None,
    all_channels: bool = False,
) -> UnsubscribeOutcome:
    """Remove channels (or every channel) from the record for ``webhook_url``."""

    _validate_webhook_url(webhook_url)
    if not all_channels:
        if not channel_ids:
            raise NoChannelsSpecifiedError()
        _validate_channel_ids(channel_ids)

    record = await store.find_by_webhook(session, webhook_url)
    if record is None:
        raise SubscriptionNotFoundError(webhook_url=webhook_url)

    if all_channels:
        to_remove = list(record.channel_ids)
    else:
        requested = dedupe_channel_ids(channel_ids or [])
        to_remove = [channel_id for channel_id in requested if channel_id in record.channel_ids]
        if not to_remove:
            raise NoMatchingChannelsError(
                webhook_url=webhook_url, requested=requested, subscribed=record.channel_ids
            )

    outcome = await _apply_unsubscribe(session, client, record, to_remove)

    counterpart_url = mirror_target(webhook_url)
    if counterpart_url:
        counterpart = await store.find_by_webhook(session, counterpart_url)
        overlap = [channel_id for channel_id in to_remove if counterpart and channel_id in counterpart.channel_ids]
        if counterpart is None or not overlap:
            logger.info("No counterpart channels to unsubscribe", extra={"webhook_url": counterpart_url})
        else:
            try:
                outcome.dual = await _apply_unsubscribe(session, client, counterpart, overlap)
            except StoreWriteError as exc:
                outcome.dual = UnsubscribeOutcome(
                    success=False,
                    webhook_url=counterpart_url,
                    message=exc.message,
                    user_key=counterpart.user_key,
                    unsubscribed_channels=overlap,
                )
    return outcome


async def renew_subscriptions(session: AsyncSession, client: httpx.AsyncClient) -> dict[str, list[HubResult]]:
    """Re-issue hub subscribe calls for every stored channel; the store is left untouched."""

    records = await store.list_subscriptions(session)
    batches = await asyncio.gather(
        *(
            subscribe_many(client, channel_ids=record.channel_ids, callback_url=callback_url_for(record.user_key))
            for record in records
        )
    )
    renewed: dict[str, list[HubResult]] = {}
    for record, results in zip(records, batches):
        renewed[record.user_key] = results
        failed = [result.channel_id for result in results if not result.success]
        if failed:
            logger.warning(
                "Lease renewal failed for some channels",
                extra={"webhook_url": record.webhook_url, "failed_channels": failed},
            )
    return renewed
