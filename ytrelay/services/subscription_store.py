"""Persistence for webhook subscription records.

Each record lives in its own row keyed by ``user_key`` with a unique index on
``webhook_url``. Updates are compare-and-swap on ``version`` so two writers that
read the same snapshot cannot silently overwrite each other; the loser gets
``False`` back, the same as an update against a missing key.
"""

from __future__ import annotations

import hashlib
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ytrelay.db.models import Subscription

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class SubscriptionRecord:
    """Detached view of a stored subscription."""

    user_key: str
    webhook_url: str
    channel_ids: list[str]
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    version: int = 1
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


def generate_user_key(webhook_url: str) -> str:
    """Derive the stable callback key for a webhook URL (first 16 hex chars of its MD5)."""

    return hashlib.md5(webhook_url.encode("utf-8")).hexdigest()[:16]


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes for timezone-aware columns.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _to_record(row: Subscription) -> SubscriptionRecord:
    return SubscriptionRecord(
        user_key=row.user_key,
        webhook_url=row.webhook_url,
        channel_ids=list(row.channel_ids or []),
        timestamp=_as_utc(row.updated_at),
        version=row.version,
        created_at=_as_utc(row.created_at),
    )


def _to_row(record: SubscriptionRecord) -> Subscription:
    return Subscription(
        user_key=record.user_key,
        webhook_url=record.webhook_url,
        channel_ids=list(record.channel_ids),
        version=record.version,
        created_at=record.created_at,
        updated_at=record.timestamp,
    )


async def _commit(session: AsyncSession) -> None:
    # Records are handed out detached, so nothing should linger in the identity map.
    await session.commit()
    session.expunge_all()


async def _rollback(session: AsyncSession) -> None:
    await session.rollback()
    session.expunge_all()


async def list_subscriptions(session: AsyncSession) -> list[SubscriptionRecord]:
    """Return all records in creation order."""

    stmt = (
        select(Subscription)
        .order_by(Subscription.created_at, Subscription.user_key)
        .execution_options(populate_existing=True)
    )
    rows = await session.scalars(stmt)
    return [_to_record(row) for row in rows]


async def find_by_webhook(session: AsyncSession, webhook_url: str) -> SubscriptionRecord | None:
    stmt = (
        select(Subscription)
        .where(Subscription.webhook_url == webhook_url)
        .execution_options(populate_existing=True)
    )
    row = await session.scalar(stmt)
    return _to_record(row) if row else None


async def find_by_user_key(session: AsyncSession, user_key: str) -> SubscriptionRecord | None:
    row = await session.get(Subscription, user_key, populate_existing=True)
    return _to_record(row) if row else None


async def save_subscriptions(session: AsyncSession, records: Sequence[SubscriptionRecord]) -> bool:
    """Replace the whole collection with ``records``."""

    try:
        session.expunge_all()
        await session.execute(delete(Subscription).execution_options(synchronize_session=False))
        session.add_all([_to_row(record) for record in records])
        await _commit(session)
    except SQLAlchemyError:
        await _rollback(session)
        logger.exception("Failed to save subscriptions", extra={"count": len(records)})
        return False
    return True


async def add_subscription(session: AsyncSession, record: SubscriptionRecord) -> bool:
    try:
        session.add(_to_row(record))
        await _commit(session)
    except SQLAlchemyError:
        await _rollback(session)
        logger.exception(
            "Failed to add subscription",
            extra={"user_key": record.user_key, "webhook_url": record.webhook_url},
        )
        return False
    return True


async def update_subscription(session: AsyncSession, user_key: str, record: SubscriptionRecord) -> bool:
    """Overwrite the record stored under ``user_key`` if it is still at ``record.version``.

    On success ``record.version`` is advanced to the stored version.
    """

    stmt = (
        update(Subscription)
        .where(Subscription.user_key == user_key, Subscription.version == record.version)
        .values(
            webhook_url=record.webhook_url,
            channel_ids=list(record.channel_ids),
            updated_at=record.timestamp,
            version=Subscription.version + 1,
        )
        .execution_options(synchronize_session=False)
    )
    try:
        result = await session.execute(stmt)
        if result.rowcount != 1:
            await _rollback(session)
            logger.error(
                "Subscription update rejected (missing or concurrently modified)",
                extra={"user_key": user_key, "expected_version": record.version},
            )
            return False
        await _commit(session)
    except SQLAlchemyError:
        await _rollback(session)
        logger.exception("Failed to update subscription", extra={"user_key": user_key})
        return False
    record.version += 1
    return True


async def delete_subscription(session: AsyncSession, user_key: str) -> bool:
    stmt = delete(Subscription).where(Subscription.user_key == user_key).execution_options(synchronize_session=False)
    try:
        result = await session.execute(stmt)
        if result.rowcount != 1:
            await _rollback(session)
            logger.error("Subscription to delete was not found", extra={"user_key": user_key})
            return False
        await _commit(session)
    except SQLAlchemyError:
        await _rollback(session)
        logger.exception("Failed to delete subscription", extra={"user_key": user_key})
        return False
    return True


async def clear_subscriptions(session: AsyncSession) -> bool:
    """Remove every stored record."""

    return await save_subscriptions(session, [])
