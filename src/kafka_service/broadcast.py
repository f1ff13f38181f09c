"""Fan-out of created/updated messages to live subscribers.

Two kinds of subscription share one :class:`Broadcaster`: a thread-side
:class:`Subscription` read with a blocking ``get``, and an
:class:`AsyncSubscription` read from the event loop (used by the SSE
endpoint). Publishing into either never blocks the publisher.
"""
from __future__ import annotations

import asyncio
import logging
import threading
from collections import deque
from typing import Deque, List, Optional, Union

from .errors import SubscriptionClosed
from .registry import Message

logger = logging.getLogger(__name__)

# Queued after the last message of a closed AsyncSubscription.
_CLOSED = object()


class Subscription:
    """Bounded buffer of messages for one listener.

    When the buffer is full the oldest message is discarded to make room, so
    a slow reader sees a gap (counted in :attr:`dropped`) instead of slowing
    down the publisher.
    """

    def __init__(self, maxsize: int) -> None:
        if maxsize < 1:
            raise ValueError("maxsize must be >= 1")
        self._items: Deque[Message] = deque(maxlen=maxsize)
        self._cond = threading.Condition()
        self._closed = False
        self.dropped = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def put(self, message: Message) -> None:
        """Enqueue without blocking; drop the oldest entry on overflow."""
        with self._cond:
            if self._closed:
                return
            if len(self._items) == self._items.maxlen:
                self.dropped += 1
                logger.debug("Subscriber buffer full, dropping oldest message")
            self._items.append(message)
            self._cond.notify()

    def get(self, timeout: Optional[float] = None) -> Optional[Message]:
        """Return the next message, or ``None`` if ``timeout`` expires first.

        Raises :class:`SubscriptionClosed` once the subscription is closed and
        its buffer has been drained.
        """
        with self._cond:
            self._cond.wait_for(lambda: self._items or self._closed, timeout)
            if self._items:
                return self._items.popleft()
            if self._closed:
                raise SubscriptionClosed("subscription closed")
            return None

    def pending(self) -> int:
        with self._cond:
            return len(self._items)

    def close(self) -> None:
        with self._cond:
            self._closed = True
            self._cond.notify_all()


class AsyncSubscription:
    """Bounded ``asyncio.Queue`` of messages for one listener on an event loop.

    :meth:`put` may be called from any thread; it hands the message to the
    loop with ``call_soon_threadsafe``, so nothing ever waits on the reader.
    Callbacks run in scheduling order, which keeps the publish order. A full
    queue drops its oldest message, as :class:`Subscription` does.
    """

    def __init__(self, maxsize: int, loop: asyncio.AbstractEventLoop) -> None:
        if maxsize < 1:
            raise ValueError("maxsize must be >= 1")
        self._loop = loop
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._closed = False
        # set on the loop once the close marker is queued
        self._finished = False
        self.dropped = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def put(self, message: Message) -> None:
        if self._closed:
            return
        self._schedule(message)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._schedule(_CLOSED)

    def pending(self) -> int:
        return self._queue.qsize()

    async def get(self, timeout: Optional[float] = None) -> Optional[Message]:
        """Await the next message; ``None`` on timeout.

        Raises :class:`SubscriptionClosed` once closed and drained.
        """
        try:
            item = await asyncio.wait_for(self._queue.get(), timeout)
        except asyncio.TimeoutError:
            return None
        if item is _CLOSED:
            # leave the marker for any later get()
            self._queue.put_nowait(_CLOSED)
            raise SubscriptionClosed("subscription closed")
        return item

    # --------- loop side ----------
    def _schedule(self, item: object) -> None:
        try:
            self._loop.call_soon_threadsafe(self._enqueue, item)
        except RuntimeError:
            # The loop is gone, so is the reader.
            self._closed = True
            logger.debug("Event loop closed, subscription discarded")

    def _enqueue(self, item: object) -> None:
        if self._finished:
            return
        if self._queue.full():
            self._queue.get_nowait()
            self.dropped += 1
            logger.debug("Subscriber queue full, dropping oldest message")
        self._queue.put_nowait(item)
        if item is _CLOSED:
            self._finished = True


AnySubscription = Union[Subscription, AsyncSubscription]


class Broadcaster:
    """Registry of independent subscriptions fed by :meth:`publish`.

    Publishing happens under a single lock so every subscriber receives the
    messages in the order :meth:`publish` was called. Putting into a
    subscription never blocks, so the lock is only held for the fan-out.
    """

    def __init__(self, queue_size: int = 100) -> None:
        self.queue_size = int(queue_size)
        self._subscriptions: List[AnySubscription] = []
        self._lock = threading.Lock()

    def subscribe(self) -> Subscription:
        """Register a listener that will see messages published from now on."""
        return self._add(Subscription(self.queue_size))

    def subscribe_async(self) -> AsyncSubscription:
        """Like :meth:`subscribe`, for a reader on the running event loop."""
        loop = asyncio.get_running_loop()
        return self._add(AsyncSubscription(self.queue_size, loop))

    def _add(self, sub):
        with self._lock:
            self._subscriptions.append(sub)
            count = len(self._subscriptions)
        logger.info("Subscriber added (%d active)", count)
        return sub

    def unsubscribe(self, subscription: AnySubscription) -> None:
        """Remove and close a subscription. Unknown subscriptions are ignored."""
        with self._lock:
            try:
                self._subscriptions.remove(subscription)
            except ValueError:
                return
            count = len(self._subscriptions)
        subscription.close()
        logger.info("Subscriber removed (%d active)", count)

    def publish(self, message: Message) -> int:
        """Deliver ``message`` to every active subscription.

        Returns the number of subscriptions it was handed to.
        """
        with self._lock:
            for sub in self._subscriptions:
                sub.put(message)
            return len(self._subscriptions)

    def close(self) -> None:
        """Close every subscription (used at shutdown)."""
        with self._lock:
            subs, self._subscriptions = self._subscriptions, []
        for sub in subs:
            sub.close()

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscriptions)
