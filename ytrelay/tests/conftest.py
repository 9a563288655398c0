"""Shared fixtures: an in-memory database and a fake hub/webhook network."""

from __future__ import annotations

import json
import uuid
from urllib.parse import parse_qs

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from ytrelay.core.config import settings
from ytrelay.db.models import Base

HUB_HOST = "pubsubhubbub.appspot.com"

VERIFIED_PAGE = """
<html><body><dl>
  <dt>State</dt> <dd>verified</dd>
  <dt>Expiration time</dt> <dd>2025-03-11T16:59:59Z</dd>
  <dt>Last successful verification</dt> <dd>2025-03-01T16:59:59Z</dd>
  <dt>Last subscribe request</dt> <dd>2025-03-01T16:59:58Z</dd>
  <dt>Last verification error</dt> <dd>n/a</dd>
</dl></body></html>
"""


def _memory_db_url() -> str:
    return f"sqlite+aiosqlite:///file:ytrelay_{uuid.uuid4().hex}?mode=memory&cache=shared"


@pytest_asyncio.fixture
async def session() -> AsyncSession:
    engine = create_async_engine(_memory_db_url(), future=True, connect_args={"uri": True})
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    SessionLocal = async_sessionmaker(engine, expire_on_commit=False)
    async with SessionLocal() as session:
        yield session
        await session.rollback()

    await engine.dispose()


class FakeNetwork:
    """Stands in for the WebSub hub and every client webhook."""

    def __init__(self) -> None:
        self.hub_calls: list[dict[str, str]] = []
        self.status_queries: list[dict[str, str]] = []
        self.webhook_posts: list[tuple[str, dict]] = []
        self.failing_channels: set[str] = set()
        self.unreachable_channels: set[str] = set()
        self.webhook_status: dict[str, int] = {}
        self.unreachable_webhooks: set[str] = set()
        self.status_pages: dict[str, str] = {}

    def handler(self, request: httpx.Request) -> httpx.Response:
        if request.url.host == HUB_HOST and request.method == "POST":
            form = {key: values[-1] for key, values in parse_qs(request.content.decode()).items()}
            self.hub_calls.append(form)
            channel_id = form["hub.topic"].rsplit("=", 1)[-1]
            if channel_id in self.unreachable_channels:
                raise httpx.ConnectError("hub unreachable", request=request)
            if channel_id in self.failing_channels:
                return httpx.Response(409, text="verification failed", request=request)
            return httpx.Response(204, request=request)

        if request.url.host == HUB_HOST:
            params = dict(request.url.params)
            self.status_queries.append(params)
            channel_id = params["hub.topic"].rsplit("=", 1)[-1]
            page = self.status_pages.get(channel_id, VERIFIED_PAGE)
            return httpx.Response(200, text=page, request=request)

        url = str(request.url)
        self.webhook_posts.append((url, json.loads(request.content)))
        if url in self.unreachable_webhooks:
            raise httpx.ConnectError("webhook unreachable", request=request)
        return httpx.Response(self.webhook_status.get(url, 200), json={"ok": True}, request=request)

    def calls(self, mode: str) -> list[dict[str, str]]:
        return [call for call in self.hub_calls if call["hub.mode"] == mode]

    def channels(self, mode: str, callback_url: str | None = None) -> list[str]:
        return sorted(
            call["hub.topic"].rsplit("=", 1)[-1]
            for call in self.calls(mode)
            if callback_url is None or call["hub.callback"] == callback_url
        )


@pytest.fixture
def network() -> FakeNetwork:
    return FakeNetwork()


@pytest_asyncio.fixture
async def client(network: FakeNetwork) -> httpx.AsyncClient:
    async with httpx.AsyncClient(transport=httpx.MockTransport(network.handler)) as http_client:
        yield http_client


@pytest.fixture(autouse=True)
def _default_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings, "public_base_url", "https://relay.example.com")
    monkeypatch.setattr(settings, "mirror_webhooks", True)
    monkeypatch.setattr(settings, "verify_topics", False)


@pytest.fixture
def verified_page() -> str:
    return VERIFIED_PAGE
