"""Pydantic models for the payload relayed to client webhooks."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel

VIDEO_PUBLISHED_EVENT = "youtube.video.published"


class VideoInfo(BaseModel):
    id: str
    title: str | None = None
    url: str | None = None
    published_at: str | None = None
    updated_at: str | None = None


class ChannelInfo(BaseModel):
    id: str
    name: str | None = None


class WebhookPayload(BaseModel):
    """Normalised notification POSTed to subscriber webhooks."""

    event: Literal["youtube.video.published"] = VIDEO_PUBLISHED_EVENT
    video: VideoInfo
    channel: ChannelInfo
    timestamp: datetime
