"""In-memory registry of sent messages keyed by generated id (thread-safe)."""
from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass, replace
from typing import Dict, Iterator, List

from .errors import MessageNotFound


# -----------------------------
# Helpers
# -----------------------------
def _new_id() -> str:
    return str(uuid.uuid4())


@dataclass
class Message:
    """A message that was successfully sent to the broker."""
    id: str
    key: str
    body: str

    def to_dict(self) -> Dict[str, str]:
        return {"id": self.id, "key": self.key, "body": self.body}


# -----------------------------
# MessageRegistry
# -----------------------------
class MessageRegistry:
    """Insertion-ordered collection of messages guarded by one coarse lock.

    Every operation takes the lock for its whole read-modify-write sequence,
    so no caller ever observes a half-applied change. Records handed out are
    copies; mutating them does not touch the stored state.

    The registry never talks to the broker. Callers are expected to send
    first and commit here only once the broker has acknowledged the record
    (see :class:`kafka_service.service.MessageService`).
    """

    def __init__(self) -> None:
        # dicts keep insertion order, which doubles as the listing order
        self._messages: Dict[str, Message] = {}
        self._lock = threading.Lock()

    # --------- core API ----------
    def create(self, key: str, body: str) -> Message:
        """Store a new message under a fresh id and return it."""
        with self._lock:
            message_id = _new_id()
            while message_id in self._messages:
                message_id = _new_id()
            message = Message(id=message_id, key=key, body=body)
            self._messages[message_id] = message
            return replace(message)

    def get(self, message_id: str) -> Message:
        with self._lock:
            message = self._messages.get(message_id)
            if message is None:
                raise MessageNotFound(message_id)
            return replace(message)

    def update(self, message_id: str, key: str, body: str) -> Message:
        """Overwrite key and body in place.

        Existence is checked again here, under the lock, because the record
        may have been deleted while the caller was waiting on the broker.
        """
        with self._lock:
            message = self._messages.get(message_id)
            if message is None:
                raise MessageNotFound(message_id)
            message.key = key
            message.body = body
            return replace(message)

    def delete(self, message_id: str) -> None:
        with self._lock:
            try:
                del self._messages[message_id]
            except KeyError:
                raise MessageNotFound(message_id) from None

    # --------- convenience ----------
    def list(self) -> List[Message]:
        """Return a snapshot of all messages in insertion order."""
        with self._lock:
            return [replace(m) for m in self._messages.values()]

    def __len__(self) -> int:
        with self._lock:
            return len(self._messages)

    def __contains__(self, message_id: object) -> bool:
        with self._lock:
            return message_id in self._messages

    def __iter__(self) -> Iterator[Message]:
        return iter(self.list())
