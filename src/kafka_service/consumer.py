"""Command line consumer that prints every record arriving on a topic."""

from __future__ import annotations

import argparse
import logging
from typing import Any, Callable, Dict, Optional, Sequence

import confluent_kafka as kafka

from .config import load_config

logger = logging.getLogger(__name__)


def decode_bytes(data: Optional[bytes]) -> str:
    return (data or b"").decode("utf-8", errors="replace")


def format_record(msg: Any, human_readable: bool) -> str:
    """Render one consumed record as a single line.

    In human-readable mode key and payload are decoded as UTF-8 (invalid
    sequences replaced); otherwise their raw bytes are shown.
    """
    key = msg.key() or b""
    payload = msg.value() or b""
    if human_readable:
        key_s, payload_s = decode_bytes(key), decode_bytes(payload)
    else:
        key_s, payload_s = repr(key), repr(payload)
    ts_type, ts = msg.timestamp()
    return (
        f"key: '{key_s}', payload: '{payload_s}', topic: {msg.topic()}, "
        f"partition: {msg.partition()}, offset: {msg.offset()}, "
        f"timestamp: {ts if ts_type != kafka.TIMESTAMP_NOT_AVAILABLE else None}"
    )


def consumer_config(broker: str, group_id: str) -> Dict[str, Any]:
    return {
        "group.id": group_id,
        "bootstrap.servers": broker,
        "enable.partition.eof": False,
        "session.timeout.ms": 6000,
        "enable.auto.commit": True,
    }


def consume_messages(
    consumer: Any,
    topic: str,
    human_readable: bool,
    *,
    emit: Callable[[str], None] = print,
    max_messages: Optional[int] = None,
    poll_timeout: float = 1.0,
) -> int:
    """Poll ``consumer`` and emit one line per record.

    Errors reported by the broker are printed and consumption goes on.
    Stops after ``max_messages`` records when given. Returns the number of
    records seen.
    """
    consumer.subscribe([topic])
    seen = 0
    while max_messages is None or seen < max_messages:
        msg = consumer.poll(poll_timeout)
        if msg is None:
            continue
        if msg.error():
            emit(f"Kafka error: {msg.error()}")
            continue
        emit(format_record(msg, human_readable))
        seen += 1
    return seen


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Print records from a Kafka topic.")
    parser.add_argument("mode", nargs="?", default="", help="pass 'human' to decode keys and payloads as text")
    parser.add_argument("--config", default=None, help="YAML config to read defaults from (default: $KAFKA_SERVICE_CONFIG or config/default.yaml)")
    parser.add_argument("--broker", default=None, help="bootstrap servers (default: kafka.bootstrap_servers)")
    parser.add_argument("--group", default=None, help="consumer group id (default: kafka.group_id)")
    parser.add_argument("--topic", default=None, help="topic to consume (default: kafka.topic)")
    return parser


def resolve_args(args: argparse.Namespace) -> argparse.Namespace:
    """Fill options not given on the command line from the ``kafka`` config section."""
    kafka_cfg = load_config(args.config).get("kafka", {})
    if args.broker is None:
        args.broker = kafka_cfg.get("bootstrap_servers", "localhost:9092")
    if args.group is None:
        args.group = kafka_cfg.get("group_id", "test_group")
    if args.topic is None:
        args.topic = kafka_cfg.get("topic", "test-topic")
    return args


def main(argv: Sequence[str] | None = None) -> int:
    logging.basicConfig(level=logging.INFO)
    args = resolve_args(build_parser().parse_args(argv))

    version_s, version_n = kafka.libversion()
    print(f"rd_kafka_version: 0x{version_n:08x}, {version_s}")

    consumer = kafka.Consumer(consumer_config(args.broker, args.group))
    try:
        consume_messages(consumer, args.topic, args.mode == "human")
    except KeyboardInterrupt:
        logger.info("Interrupted, closing consumer")
    finally:
        consumer.close()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
