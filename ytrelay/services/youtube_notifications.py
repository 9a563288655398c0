"""Parsing of the Atom documents YouTube's hub pushes to callback URLs."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from xml.etree import ElementTree as ET

logger = logging.getLogger(__name__)


ATOM_NS = "http://www.w3.org/2005/Atom"
YT_NS = "http://www.youtube.com/xml/schemas/2015"
TOMBSTONE_NS = "http://purl.org/atompub/tombstones/1.0"


class WebhookParseError(ValueError):
    """Raised when a WebSub payload cannot be parsed."""


@dataclass(slots=True)
class VideoEntry:
    """A single published (or updated) video from a feed notification."""

    video_id: str
    channel_id: str
    title: str | None
    link: str | None
    author: str | None
    published: str | None
    updated: str | None


def _text(entry: ET.Element, path: str) -> str | None:
    value = entry.findtext(path)
    if value is None:
        return None
    value = value.strip()
    return value or None


def _entry_link(entry: ET.Element) -> str | None:
    links = entry.findall(f"{{{ATOM_NS}}}link")
    for link in links:
        if link.get("rel", "alternate") == "alternate" and link.get("href"):
            return link.get("href")
    for link in links:
        if link.get("href"):
            return link.get("href")
    return None


def parse_notifications(payload: bytes | str) -> list[VideoEntry]:
    """Parse a raw Atom XML payload into video entries.

    Timestamps are kept as the strings YouTube sent so they are forwarded
    without loss of precision.
    """

    try:
        root = ET.fromstring(payload)
    except ET.ParseError as exc:
        raise WebhookParseError("Invalid XML payload") from exc

    if root.tag != f"{{{ATOM_NS}}}feed":
        raise WebhookParseError(f"Unexpected root element: {root.tag}")

    for deleted in root.findall(f"{{{TOMBSTONE_NS}}}deleted-entry"):
        logger.info("Ignoring deleted-entry notification", extra={"ref": deleted.get("ref")})

    entries: list[VideoEntry] = []
    for entry in root.findall(f"{{{ATOM_NS}}}entry"):
        video_id = _text(entry, f"{{{YT_NS}}}videoId")
        channel_id = _text(entry, f"{{{YT_NS}}}channelId")

        if not channel_id or not video_id:
            logger.warning("Skipping entry missing identifiers")
            continue

        entries.append(
            VideoEntry(
                video_id=video_id,
                channel_id=channel_id,
                title=_text(entry, f"{{{ATOM_NS}}}title"),
                link=_entry_link(entry),
                author=_text(entry, f"{{{ATOM_NS}}}author/{{{ATOM_NS}}}name"),
                published=_text(entry, f"{{{ATOM_NS}}}published"),
                updated=_text(entry, f"{{{ATOM_NS}}}updated"),
            )
        )

    return entries


def parse_video_entry(payload: bytes | str) -> VideoEntry | None:
    """Return the first video entry of a notification, or None for entry-less feeds."""

    entries = parse_notifications(payload)
    return entries[0] if entries else None
