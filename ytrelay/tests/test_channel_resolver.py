import pytest

from ytrelay.services import channel_resolver


def test_is_valid_channel_id_accepts_canonical_id() -> None:
    assert channel_resolver.is_valid_channel_id("UC1PsYPhJWpgcM88C4txYp1Q")
    assert channel_resolver.is_valid_channel_id("UC" + "A" * 22)


@pytest.mark.parametrize(
    "value",
    [
        "UC" + "A" * 21,
        "UC" + "A" * 23,
        "XY" + "A" * 22,
        "uc" + "A" * 22,
        "",
        None,
        12345,
    ],
)
def test_is_valid_channel_id_rejects_malformed_values(value: object) -> None:
    assert not channel_resolver.is_valid_channel_id(value)


def test_invalid_channel_ids_keeps_input_order() -> None:
    good = "UC" + "B" * 22
    assert channel_resolver.invalid_channel_ids(["bad", good, 7]) == ["bad", 7]
    assert channel_resolver.invalid_channel_ids([good]) == []


def test_dedupe_channel_ids_keeps_first_occurrence() -> None:
    a, b = "UC" + "A" * 22, "UC" + "B" * 22
    assert channel_resolver.dedupe_channel_ids([b, a, b, a]) == [b, a]


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("https://example.com/hook", True),
        ("http://localhost:5678/webhook/abc", True),
        ("ftp://example.com/hook", False),
        ("example.com/hook", False),
        ("https://", False),
        ("   ", False),
        (None, False),
    ],
)
def test_is_valid_webhook_url(value: object, expected: bool) -> None:
    assert channel_resolver.is_valid_webhook_url(value) is expected


def test_channel_feed_url_round_trips_through_topic_parser() -> None:
    channel_id = "UC" + "C" * 22
    topic = channel_resolver.channel_feed_url(channel_id)

    assert topic == f"https://www.youtube.com/xml/feeds/videos.xml?channel_id={channel_id}"
    assert channel_resolver.channel_id_from_topic(topic) == channel_id
    assert channel_resolver.channel_id_from_topic("https://www.youtube.com/xml/feeds/videos.xml") is None
