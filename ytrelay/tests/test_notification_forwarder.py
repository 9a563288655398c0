"""Tests for hub verification and notification forwarding."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from ytrelay.core.config import settings
from ytrelay.schema.notification import VIDEO_PUBLISHED_EVENT
from ytrelay.services import subscription_store as store
from ytrelay.services.channel_resolver import channel_feed_url
from ytrelay.services.errors import SubscriptionNotFoundError, VerificationError
from ytrelay.services.notification_forwarder import (
    SAMPLE_PAYLOAD,
    USER_AGENT,
    build_webhook_payload,
    forward_notification,
    send_test_notification,
    verify_subscription,
)
from ytrelay.services.subscription_store import SubscriptionRecord
from ytrelay.services.youtube_notifications import VideoEntry, WebhookParseError

CHANNEL = "UC1PsYPhJWpgcM88C4txYp1Q"
OTHER_CHANNEL = "UC" + "Z" * 22
PLAIN_URL = "https://example.com/hook"
TEST_URL = "https://n8n.example.com/webhook-test/yt"
PROD_URL = "https://n8n.example.com/webhook/yt"


def _feed(channel_id: str = CHANNEL) -> bytes:
    return f"""
    <feed xmlns="http://www.w3.org/2005/Atom" xmlns:yt="http://www.youtube.com/xml/schemas/2015">
      <entry>
        <yt:videoId>yrYmQDh2rM8</yt:videoId>
        <yt:channelId>{channel_id}</yt:channelId>
        <title>real notification</title>
        <link rel="alternate" href="https://www.youtube.com/watch?v=yrYmQDh2rM8"/>
        <author><name>Crazy Clones AI</name></author>
        <published>2025-03-01T16:59:59+00:00</published>
        <updated>2025-03-01T17:00:00.310119404+00:00</updated>
      </entry>
    </feed>
    """.strip().encode()


async def _store(session, url: str, channels: list[str]) -> SubscriptionRecord:
    record = SubscriptionRecord(user_key=store.generate_user_key(url), webhook_url=url, channel_ids=channels)
    assert await store.add_subscription(session, record)
    return record


@pytest.mark.asyncio
async def test_verification_echoes_challenge(session) -> None:
    challenge = await verify_subscription(
        session, user_key="whatever", mode="subscribe", topic=channel_feed_url(CHANNEL), challenge="abc123"
    )
    assert challenge == "abc123"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("mode", "topic", "challenge"),
    [
        ("subscribe", "https://topic", None),
        (None, "https://topic", "abc"),
        ("subscribe", None, "abc"),
        ("subscribe", "https://topic", ""),
    ],
)
async def test_verification_requires_all_parameters(session, mode, topic, challenge) -> None:
    with pytest.raises(VerificationError):
        await verify_subscription(session, user_key="k", mode=mode, topic=topic, challenge=challenge)


@pytest.mark.asyncio
async def test_topic_verification_rejects_untracked_channel(session, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings, "verify_topics", True)
    record = await _store(session, PLAIN_URL, [CHANNEL])

    assert (
        await verify_subscription(
            session, user_key=record.user_key, mode="subscribe", topic=channel_feed_url(CHANNEL), challenge="ok"
        )
        == "ok"
    )
    with pytest.raises(VerificationError):
        await verify_subscription(
            session, user_key=record.user_key, mode="subscribe", topic=channel_feed_url(OTHER_CHANNEL), challenge="x"
        )
    with pytest.raises(VerificationError):
        await verify_subscription(
            session, user_key="unknown", mode="subscribe", topic=channel_feed_url(CHANNEL), challenge="x"
        )


def test_build_webhook_payload_shape() -> None:
    entry = VideoEntry(
        video_id="vid",
        channel_id=CHANNEL,
        title="Title",
        link="https://www.youtube.com/watch?v=vid",
        author="Author",
        published="2025-03-01T16:59:59+00:00",
        updated=None,
    )
    dispatched_at = datetime(2025, 3, 1, 17, 0, tzinfo=timezone.utc)

    body = build_webhook_payload(entry, dispatched_at=dispatched_at).model_dump(mode="json")

    assert body["event"] == VIDEO_PUBLISHED_EVENT
    assert body["video"] == {
        "id": "vid",
        "title": "Title",
        "url": "https://www.youtube.com/watch?v=vid",
        "published_at": "2025-03-01T16:59:59+00:00",
        "updated_at": None,
    }
    assert body["channel"] == {"id": CHANNEL, "name": "Author"}
    assert body["timestamp"].startswith("2025-03-01T17:00:00")


@pytest.mark.asyncio
async def test_forward_to_owning_webhook(session, client, network) -> None:
    record = await _store(session, PLAIN_URL, [CHANNEL])

    outcome = await forward_notification(session, client, user_key=record.user_key, body=_feed())

    assert outcome is not None
    assert outcome.video_id == "yrYmQDh2rM8"
    assert outcome.primary.success
    assert outcome.counterpart is None
    assert not outcome.channel_mismatch

    [(url, body)] = network.webhook_posts
    assert url == PLAIN_URL
    assert body["video"]["published_at"] == "2025-03-01T16:59:59+00:00"
    assert body["video"]["updated_at"] == "2025-03-01T17:00:00.310119404+00:00"
    assert body["channel"]["name"] == "Crazy Clones AI"


@pytest.mark.asyncio
async def test_forward_to_both_variants(session, client, network) -> None:
    record = await _store(session, TEST_URL, [CHANNEL])
    network.webhook_status[PROD_URL] = 404

    outcome = await forward_notification(session, client, user_key=record.user_key, body=_feed())

    assert outcome is not None
    assert outcome.primary.success
    assert outcome.counterpart is not None
    assert outcome.counterpart.webhook_url == PROD_URL
    assert not outcome.counterpart.success
    assert outcome.counterpart.status_code == 404
    assert sorted(url for url, _ in network.webhook_posts) == [PROD_URL, TEST_URL]


@pytest.mark.asyncio
async def test_failing_primary_does_not_block_counterpart(session, client, network) -> None:
    record = await _store(session, TEST_URL, [CHANNEL])
    network.webhook_status[TEST_URL] = 500

    outcome = await forward_notification(session, client, user_key=record.user_key, body=_feed())

    assert outcome is not None
    assert not outcome.primary.success
    assert outcome.primary.status_code == 500
    assert outcome.counterpart is not None
    assert outcome.counterpart.success

    posts = dict(network.webhook_posts)
    assert set(posts) == {TEST_URL, PROD_URL}
    assert posts[PROD_URL] == posts[TEST_URL]


@pytest.mark.asyncio
async def test_unreachable_primary_does_not_block_counterpart(session, client, network) -> None:
    record = await _store(session, PROD_URL, [CHANNEL])
    network.unreachable_webhooks.add(PROD_URL)

    outcome = await forward_notification(session, client, user_key=record.user_key, body=_feed())

    assert outcome is not None
    assert not outcome.primary.success
    assert outcome.primary.status_code is None
    assert "unreachable" in (outcome.primary.error or "")
    assert outcome.counterpart is not None
    assert outcome.counterpart.webhook_url == TEST_URL
    assert outcome.counterpart.success

    posts = dict(network.webhook_posts)
    assert posts[TEST_URL] == posts[PROD_URL]


@pytest.mark.asyncio
async def test_forward_channel_mismatch_still_delivers(session, client, network) -> None:
    record = await _store(session, PLAIN_URL, [CHANNEL])

    outcome = await forward_notification(session, client, user_key=record.user_key, body=_feed(OTHER_CHANNEL))

    assert outcome is not None
    assert outcome.channel_mismatch
    assert len(network.webhook_posts) == 1


@pytest.mark.asyncio
async def test_forward_unknown_user_key(session, client, network) -> None:
    with pytest.raises(SubscriptionNotFoundError):
        await forward_notification(session, client, user_key="0000000000000000", body=_feed())
    assert network.webhook_posts == []


@pytest.mark.asyncio
async def test_forward_feed_without_entries(session, client, network) -> None:
    body = b'<feed xmlns="http://www.w3.org/2005/Atom"></feed>'
    assert await forward_notification(session, client, user_key="0000000000000000", body=body) is None
    assert network.webhook_posts == []


@pytest.mark.asyncio
async def test_forward_malformed_body(session, client) -> None:
    with pytest.raises(WebhookParseError):
        await forward_notification(session, client, user_key="0000000000000000", body=b"<feed")


@pytest.mark.asyncio
async def test_send_test_notification(client, network) -> None:
    result = await send_test_notification(client, PLAIN_URL)

    assert result.success
    [(url, body)] = network.webhook_posts
    assert url == PLAIN_URL
    assert body == SAMPLE_PAYLOAD.model_dump(mode="json")
    assert USER_AGENT.startswith("ytrelay/")
