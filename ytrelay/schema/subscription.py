"""Pydantic schemas for the subscription API."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class SubscribeRequest(BaseModel):
    """Inbound payload for subscribing a webhook to channels."""

    channel_ids: list[str] = Field(min_length=1, description="YouTube channel IDs (UC...)")
    webhook_url: str = Field(..., min_length=1)


class UnsubscribeRequest(BaseModel):
    webhook_url: str = Field(..., min_length=1)
    channel_ids: list[str] | None = None
    all_channels: bool = False


class WebhookTestRequest(BaseModel):
    webhook_url: str = Field(..., min_length=1)


class HubCallResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    channel_id: str
    success: bool
    status_code: int | None = None
    error: str | None = None


class SubscribeResponse(BaseModel):
    """Result of a subscribe reconciliation, with the mirrored production result nested."""

    model_config = ConfigDict(from_attributes=True)

    success: bool
    webhook_url: str
    message: str
    user_key: str | None = None
    created: bool = False
    channel_ids: list[str] = []
    newly_subscribed_channels: list[str] = []
    resubscribed_channels: list[str] = []
    subscription_results: list[HubCallResponse] = []
    resubscription_results: list[HubCallResponse] = []
    failed_channels: list[str] = []
    dual: SubscribeResponse | None = None


class UnsubscribeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    success: bool
    webhook_url: str
    message: str
    user_key: str | None = None
    removed: bool = False
    unsubscribed_channels: list[str] = []
    remaining_channels: list[str] = []
    unsubscription_results: list[HubCallResponse] = []
    failed_channels: list[str] = []
    dual: UnsubscribeResponse | None = None


class SubscriptionRecordResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_key: str
    webhook_url: str
    channel_ids: list[str]
    timestamp: datetime


class SubscriptionListResponse(BaseModel):
    subscriptions: list[SubscriptionRecordResponse]


class ChannelStatusResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    channel_id: str
    state: str
    is_subscribed: bool
    expiration: str | None = None
    last_verification: str | None = None
    last_subscribe: str | None = None
    verification_error: str | None = None
    error: str | None = None


class WebhookStatusResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    webhook_url: str
    user_key: str
    callback_url: str
    overall_status: str
    channels: list[ChannelStatusResponse]


class SubscriptionStatusResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    primary: WebhookStatusResponse
    related: WebhookStatusResponse | None = None


class DispatchResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    webhook_url: str
    success: bool
    status_code: int | None = None
    error: str | None = None


class ForwardResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    success: bool = True
    message: str = "Notification processed and forwarded"
    user_key: str
    video_id: str
    channel_id: str
    title: str | None = None
    channel_mismatch: bool
    primary: DispatchResponse
    counterpart: DispatchResponse | None = None


SubscribeResponse.model_rebuild()
UnsubscribeResponse.model_rebuild()
