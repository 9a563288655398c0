"""Exceptions raised by the subscription and notification services."""

from __future__ import annotations

from collections.abc import Sequence


class SubscriptionError(Exception):
    """Base class for errors surfaced to API callers."""

    message = "Subscription request failed"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.message)
        self.message = message or self.message

    def to_detail(self) -> dict[str, object]:
        return {"success": False, "message": self.message}


class InvalidChannelIdsError(SubscriptionError):
    message = "One or more channel IDs are not in the correct YouTube format"

    def __init__(self, invalid_ids: Sequence[object]) -> None:
        super().__init__()
        self.invalid_ids = list(invalid_ids)

    def to_detail(self) -> dict[str, object]:
        return {**super().to_detail(), "invalid_channel_ids": self.invalid_ids}


class InvalidWebhookUrlError(SubscriptionError):
    message = "webhook_url must be a valid URL"

    def __init__(self, webhook_url: object) -> None:
        super().__init__()
        self.webhook_url = webhook_url

    def to_detail(self) -> dict[str, object]:
        return {**super().to_detail(), "webhook_url": self.webhook_url}


class NoChannelsSpecifiedError(SubscriptionError):
    message = "You must specify either channel_ids or all_channels=true to unsubscribe"


class VerificationError(SubscriptionError):
    message = "Missing required verification parameters"


class SubscriptionNotFoundError(SubscriptionError):
    """No stored subscription matches the webhook URL or user key."""

    message = "No subscription found"

    def __init__(self, *, webhook_url: str | None = None, user_key: str | None = None) -> None:
        if webhook_url is not None:
            super().__init__("No subscription found for the provided webhook URL")
        else:
            super().__init__("No subscription found for this user key")
        self.webhook_url = webhook_url
        self.user_key = user_key

    def to_detail(self) -> dict[str, object]:
        detail = super().to_detail()
        if self.webhook_url is not None:
            detail["webhook_url"] = self.webhook_url
        if self.user_key is not None:
            detail["user_key"] = self.user_key
        return detail


class NoMatchingChannelsError(SubscriptionError):
    """None of the channels requested for removal belong to the subscription."""

    message = "None of the provided channel IDs are in the subscription"

    def __init__(self, *, webhook_url: str, requested: Sequence[str], subscribed: Sequence[str]) -> None:
        super().__init__()
        self.webhook_url = webhook_url
        self.requested = list(requested)
        self.subscribed = list(subscribed)

    def to_detail(self) -> dict[str, object]:
        return {
            **super().to_detail(),
            "webhook_url": self.webhook_url,
            "provided_channel_ids": self.requested,
            "subscribed_channel_ids": self.subscribed,
        }


class StoreWriteError(SubscriptionError):
    message = "Failed to save/update subscription"

    def __init__(self, webhook_url: str) -> None:
        super().__init__()
        self.webhook_url = webhook_url

    def to_detail(self) -> dict[str, object]:
        return {**super().to_detail(), "webhook_url": self.webhook_url}
