"""Send-then-commit orchestration between the broker, registry and broadcaster."""
from __future__ import annotations

import logging
import threading
from typing import Any, List, Optional

from .broadcast import Broadcaster
from .errors import InvalidInput
from .registry import Message, MessageRegistry

logger = logging.getLogger(__name__)


def _check_text(name: str, value: Any) -> str:
    # HTTP payloads are already typed by pydantic (422); this guards library callers.
    if not isinstance(value, str):
        raise InvalidInput(f"{name} must be a string")
    return value


class MessageService:
    """Everything a request handler needs, built once per process.

    The broker is always called before the registry is touched, and without
    holding the registry lock, so slow acknowledgements only delay the
    request that is waiting on them. A failed send leaves the registry as it
    was.

    Commit and publish happen together under ``_publish_lock``, so
    subscribers see creates and updates in the order the registry applied
    them. Publishing never blocks, so the lock is held only briefly.
    """

    def __init__(
        self,
        registry: MessageRegistry,
        broker: Any,
        broadcaster: Broadcaster,
        *,
        topic: str,
        send_timeout: Optional[float] = None,
    ) -> None:
        self.registry = registry
        self.broker = broker
        self.broadcaster = broadcaster
        self.topic = topic
        self.send_timeout = send_timeout
        self._publish_lock = threading.Lock()

    def produce(self, key: str, body: str) -> Message:
        key = _check_text("key", key)
        body = _check_text("body", body)
        self.broker.send(self.topic, key, body, timeout=self.send_timeout)
        with self._publish_lock:
            message = self.registry.create(key, body)
            self.broadcaster.publish(message)
        logger.info("Produced message %s with key %r", message.id, key)
        return message

    def get(self, message_id: str) -> Message:
        return self.registry.get(message_id)

    def list(self) -> List[Message]:
        return self.registry.list()

    def update(self, message_id: str, key: str, body: str) -> Message:
        key = _check_text("key", key)
        body = _check_text("body", body)
        # Unknown ids never reach the broker.
        self.registry.get(message_id)
        self.broker.send(self.topic, key, body, timeout=self.send_timeout)
        # May still raise MessageNotFound if deleted while we were sending.
        with self._publish_lock:
            message = self.registry.update(message_id, key, body)
            self.broadcaster.publish(message)
        logger.info("Updated message %s", message_id)
        return message

    def delete(self, message_id: str) -> None:
        # The broker log is append-only; deletion is local only.
        self.registry.delete(message_id)
        logger.info("Deleted message %s", message_id)

    def close(self) -> None:
        self.broadcaster.close()
        close = getattr(self.broker, "close", None)
        if close is not None:
            close()
