"""Error types raised by the message registry, broker wrapper and service."""
from __future__ import annotations

from typing import Optional


class KafkaServiceError(Exception):
    """Base class for every error raised by this package."""


class MessageNotFound(KafkaServiceError):
    """No message with the requested id is stored in the registry."""

    def __init__(self, message_id: str) -> None:
        super().__init__(f"Message not found: {message_id}")
        self.message_id = message_id


class UpstreamSendFailed(KafkaServiceError):
    """The broker did not acknowledge a record; nothing was committed."""

    def __init__(self, topic: str, reason: object, cause: Optional[BaseException] = None) -> None:
        super().__init__(f"Failed to send message to {topic!r}: {reason}")
        self.topic = topic
        self.reason = reason
        self.cause = cause


class InvalidInput(KafkaServiceError, ValueError):
    """A request payload was rejected before reaching the broker or registry."""


class SubscriptionClosed(KafkaServiceError):
    """The subscription was closed and has no more buffered messages."""
