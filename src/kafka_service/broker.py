"""Thin wrapper around :mod:`confluent_kafka` that sends one record and waits for its ack."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

import confluent_kafka as kafka

from .errors import UpstreamSendFailed

logger = logging.getLogger(__name__)

# How long a single poll() may block while waiting for a delivery report.
POLL_INTERVAL = 0.1


@dataclass(frozen=True)
class DeliveryAck:
    topic: str
    partition: int
    offset: int


# -----------------------------
# Broker client
# -----------------------------

class KafkaBroker:
    """Synchronous send-and-wait on top of ``confluent_kafka.Producer``.

    The producer is thread-safe, so one instance is shared by every request
    handler. Delivery reports are served by whichever thread happens to be
    polling; each :meth:`send` waits on its own event.
    """

    def __init__(self, config: Dict[str, Any], *, producer: Any = None) -> None:
        """
        Parameters
        ----------
        config : dict
            librdkafka configuration (``bootstrap.servers`` etc.).
        producer : Any
            Pre-built producer object; mostly useful in tests.
        """
        self.config = dict(config)
        self._producer = producer if producer is not None else kafka.Producer(self.config)

    def send(
        self,
        topic: str,
        key: str,
        body: str,
        *,
        timeout: Optional[float] = None,
    ) -> DeliveryAck:
        """Produce one record and block until the broker acknowledges it.

        ``timeout`` of ``None`` waits for as long as librdkafka keeps the
        record in flight. Any failure raises :class:`UpstreamSendFailed`;
        nothing is retried here.
        """
        done = threading.Event()
        report: Dict[str, Any] = {}

        def on_delivery(err, msg) -> None:
            report["err"] = err
            report["msg"] = msg
            done.set()

        try:
            self._producer.produce(
                topic,
                value=body.encode("utf-8"),
                key=key.encode("utf-8"),
                on_delivery=on_delivery,
            )
        except BufferError as e:
            logger.error("Local producer queue is full, cannot send to %s", topic)
            raise UpstreamSendFailed(topic, "local producer queue is full", e) from e
        except kafka.KafkaException as e:
            logger.error("Failed to produce to %s: %s", topic, e)
            raise UpstreamSendFailed(topic, e, e) from e

        deadline = None if timeout is None else time.monotonic() + timeout
        while not done.is_set():
            wait = POLL_INTERVAL
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    logger.error("No delivery report from %s within %ss", topic, timeout)
                    raise UpstreamSendFailed(topic, f"no delivery report within {timeout}s")
                wait = min(wait, remaining)
            self._producer.poll(wait)

        err = report.get("err")
        if err is not None:
            logger.error("Failed to deliver message to %s: %s", topic, err)
            raise UpstreamSendFailed(topic, err)

        msg = report["msg"]
        ack = DeliveryAck(topic=msg.topic(), partition=msg.partition(), offset=msg.offset())
        logger.debug("Delivered to %s [%d] @ %d", ack.topic, ack.partition, ack.offset)
        return ack

    def close(self, timeout: float = 5.0) -> int:
        """Flush outstanding records; returns how many are still queued."""
        try:
            remaining = self._producer.flush(timeout)
        except kafka.KafkaException as e:
            logger.error("Error flushing producer: %s", e)
            return -1
        if remaining:
            logger.warning("%d message(s) still in flight after flush", remaining)
        return remaining


# -----------------------------
# Convenience factory
# -----------------------------

def producer_config(cfg: Dict[str, Any]) -> Dict[str, Any]:
    """Build a librdkafka producer config from the ``kafka`` config section."""
    kafka_cfg = (cfg or {}).get("kafka", {}) if isinstance(cfg, dict) else {}
    params: Dict[str, Any] = {
        "bootstrap.servers": kafka_cfg.get("bootstrap_servers", "localhost:9092"),
    }
    # Extra librdkafka keys are passed through untouched.
    params.update(kafka_cfg.get("producer") or {})
    return params


def create_from_config(cfg: Dict[str, Any]) -> KafkaBroker:
    """Create a KafkaBroker from a config dict (e.g., loaded YAML)."""
    return KafkaBroker(producer_config(cfg))
