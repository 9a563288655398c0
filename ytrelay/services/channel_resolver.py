"""Validation helpers for YouTube channel identifiers and webhook URLs."""

from __future__ import annotations

from collections.abc import Iterable
from urllib.parse import parse_qs, urlparse

CHANNEL_ID_PREFIX = "UC"
CHANNEL_ID_LENGTH = 24
YOUTUBE_FEED_BASE = "https://www.youtube.com/xml/feeds/videos.xml"


def is_valid_channel_id(value: object) -> bool:
    """Return True for strings shaped like a canonical channel id (``UC`` + 22 chars)."""

    return isinstance(value, str) and value.startswith(CHANNEL_ID_PREFIX) and len(value) == CHANNEL_ID_LENGTH


def invalid_channel_ids(values: Iterable[object]) -> list[object]:
    """Return the values that fail :func:`is_valid_channel_id`, in input order."""

    return [value for value in values if not is_valid_channel_id(value)]


def dedupe_channel_ids(values: Iterable[str]) -> list[str]:
    """Deduplicate while keeping first-seen order."""

    return list(dict.fromkeys(values))


def is_valid_webhook_url(value: object) -> bool:
    if not isinstance(value, str) or not value.strip():
        return False
    try:
        parsed = urlparse(value)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def channel_feed_url(channel_id: str) -> str:
    """Return the WebSub topic URL for a channel."""

    return f"{YOUTUBE_FEED_BASE}?channel_id={channel_id}"


def channel_id_from_topic(topic_url: str) -> str | None:
    """Extract the ``channel_id`` query parameter from a topic URL."""

    try:
        channel_ids = parse_qs(urlparse(topic_url).query).get("channel_id")
    except ValueError:
        return None
    return channel_ids[-1] if channel_ids else None
