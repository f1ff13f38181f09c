from __future__ import annotations

import threading
import time

import pytest

from conftest import FakeBroker
from kafka_service.broadcast import Broadcaster
from kafka_service.errors import InvalidInput, MessageNotFound, UpstreamSendFailed
from kafka_service.registry import MessageRegistry
from kafka_service.service import MessageService


def _service(broker: FakeBroker) -> MessageService:
    return MessageService(MessageRegistry(), broker, Broadcaster(queue_size=10), topic="t")


def test_scenario_create_get_update_delete(fake_broker: FakeBroker):
    svc = _service(fake_broker)
    m1 = svc.produce("a", "hello")
    m2 = svc.produce("b", "world")
    assert m1.id != m2.id

    assert svc.get(m1.id).to_dict() == {"id": m1.id, "key": "a", "body": "hello"}
    assert svc.update(m1.id, "a2", "bye").to_dict() == {"id": m1.id, "key": "a2", "body": "bye"}
    assert svc.get(m1.id).to_dict() == {"id": m1.id, "key": "a2", "body": "bye"}

    svc.delete(m2.id)
    with pytest.raises(MessageNotFound):
        svc.get(m2.id)

    assert fake_broker.sent == [("t", "a", "hello"), ("t", "b", "world"), ("t", "a2", "bye")]


def test_failed_send_creates_nothing(fake_broker: FakeBroker):
    svc = _service(fake_broker)
    sub = svc.broadcaster.subscribe()
    fake_broker.fail = True
    with pytest.raises(UpstreamSendFailed):
        svc.produce("a", "hello")
    assert len(svc.registry) == 0
    assert sub.get(timeout=0) is None


def test_failed_send_leaves_update_unapplied(fake_broker: FakeBroker):
    svc = _service(fake_broker)
    msg = svc.produce("a", "hello")
    fake_broker.fail = True
    with pytest.raises(UpstreamSendFailed):
        svc.update(msg.id, "x", "y")
    stored = svc.get(msg.id)
    assert (stored.key, stored.body) == ("a", "hello")


def test_update_unknown_id_never_reaches_broker(fake_broker: FakeBroker):
    svc = _service(fake_broker)
    svc.produce("a", "hello")
    with pytest.raises(MessageNotFound):
        svc.update("missing", "x", "y")
    assert len(fake_broker.sent) == 1
    assert len(svc.registry) == 1


def test_update_racing_delete_is_not_resurrected():
    registry = MessageRegistry()

    class DeletingBroker(FakeBroker):
        target = None

        def send(self, topic, key, body, *, timeout=None):
            ack = super().send(topic, key, body, timeout=timeout)
            if self.target is not None:
                registry.delete(self.target)
            return ack

    broker = DeletingBroker()
    svc = MessageService(registry, broker, Broadcaster(), topic="t")
    msg = svc.produce("a", "hello")
    sub = svc.broadcaster.subscribe()

    broker.target = msg.id
    with pytest.raises(MessageNotFound):
        svc.update(msg.id, "x", "y")
    assert msg.id not in registry
    assert sub.get(timeout=0) is None


def test_publishes_creates_and_updates_but_not_deletes(fake_broker: FakeBroker):
    svc = _service(fake_broker)
    early = svc.produce("a", "before")
    sub = svc.broadcaster.subscribe()

    m = svc.produce("b", "one")
    svc.update(m.id, "b", "two")
    svc.delete(early.id)

    assert [sub.get(timeout=0).body for _ in range(2)] == ["one", "two"]
    assert sub.get(timeout=0) is None


def test_non_string_input_rejected_before_send(fake_broker: FakeBroker):
    svc = _service(fake_broker)
    with pytest.raises(InvalidInput):
        svc.produce("a", 42)  # type: ignore[arg-type]
    assert fake_broker.sent == []


def test_close_closes_broker_and_subscriptions(fake_broker: FakeBroker):
    svc = _service(fake_broker)
    svc.broadcaster.subscribe()
    svc.close()
    assert fake_broker.closed
    assert svc.broadcaster.subscriber_count == 0


def test_concurrent_updates_publish_in_commit_order(fake_broker: FakeBroker):
    class GatedBroadcaster(Broadcaster):
        """Holds the next publish after arming until released."""

        def __init__(self):
            super().__init__(queue_size=10)
            self.entered = threading.Event()
            self.release = threading.Event()
            self.armed = False

        def publish(self, message):
            if self.armed:
                self.armed = False
                self.entered.set()
                self.release.wait(5)
            return super().publish(message)

    broadcaster = GatedBroadcaster()
    svc = MessageService(MessageRegistry(), fake_broker, broadcaster, topic="t")
    msg = svc.produce("k", "initial")
    sub = broadcaster.subscribe()
    broadcaster.armed = True

    first = threading.Thread(target=svc.update, args=(msg.id, "k", "A"))
    first.start()
    assert broadcaster.entered.wait(5)

    second = threading.Thread(target=svc.update, args=(msg.id, "k", "B"))
    second.start()
    # give the second update time to get as far as it can
    time.sleep(0.1)
    broadcaster.release.set()
    first.join(5)
    second.join(5)

    assert svc.get(msg.id).body == "B"
    assert [sub.get(timeout=1).body for _ in range(2)] == ["A", "B"]
