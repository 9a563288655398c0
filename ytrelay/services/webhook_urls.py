"""Pairing of test and production webhook URLs.

Workflow tools such as n8n expose every webhook under two paths, ``/webhook-test/...``
while the workflow is being edited and ``/webhook/...`` once it is active. A URL
containing one of those markers is treated as half of a mirrored pair and the
other half is derived by rewriting the first occurrence of the marker.
"""

from __future__ import annotations

from ytrelay.core.config import settings

TEST_MARKER = "webhook-test"
PRODUCTION_MARKER = "webhook"


def is_test_variant(url: str) -> bool:
    return TEST_MARKER in url


def is_production_variant(url: str) -> bool:
    return PRODUCTION_MARKER in url and TEST_MARKER not in url


def to_production_variant(url: str) -> str | None:
    if not is_test_variant(url):
        return None
    return url.replace(TEST_MARKER, PRODUCTION_MARKER, 1)


def to_test_variant(url: str) -> str | None:
    if not is_production_variant(url):
        return None
    return url.replace(PRODUCTION_MARKER, TEST_MARKER, 1)


def counterpart(url: str) -> str | None:
    """Return the other half of the pair, or None when the URL is not mirrorable."""

    return to_production_variant(url) or to_test_variant(url)


def mirror_target(url: str, *, production_only: bool = False) -> str | None:
    """Counterpart to mirror an operation onto, honouring ``settings.mirror_webhooks``.

    Subscribe mirrors only test URLs onto production (``production_only=True``);
    unsubscribe, status and notification forwarding mirror in both directions.
    """

    if not settings.mirror_webhooks:
        return None
    if production_only:
        return to_production_variant(url)
    return counterpart(url)
