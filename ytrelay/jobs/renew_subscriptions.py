"""Re-subscribe every stored channel so hub leases do not lapse."""

from __future__ import annotations

import asyncio
import logging

import httpx

from ytrelay.core.config import settings
from ytrelay.db.session import SessionLocal
from ytrelay.services.subscription_service import renew_subscriptions


async def renew_all() -> int:
    """Renew all leases; returns the number of failed hub calls."""

    async with SessionLocal() as session, httpx.AsyncClient(timeout=settings.http_timeout_seconds) as client:
        renewed = await renew_subscriptions(session, client)

    failures = 0
    for user_key, results in renewed.items():
        failed = [result.channel_id for result in results if not result.success]
        failures += len(failed)
        print(f"{user_key}: renewed {len(results) - len(failed)}/{len(results)} channels")
    return failures


if __name__ == "__main__":
    import sys

    logging.basicConfig(level=settings.log_level)
    sys.exit(1 if asyncio.run(renew_all()) else 0)
