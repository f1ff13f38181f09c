"""Command line producer: send a handful of keyed messages and print the outcome."""

from __future__ import annotations

import argparse
import logging
from typing import List, Optional, Sequence, Tuple

from .broker import KafkaBroker
from .config import load_config
from .errors import UpstreamSendFailed

# (message, key) pairs sent when none are given on the command line
DEMO_MESSAGES: List[Tuple[str, str]] = [
    ("Hello, Kafka!", "some_key"),
    ("Yo, Kafka!", "some_key"),
    ("Another Kafka!", "another_kafka"),
    ("Bye, Kafka!", "another_kafka"),
]


def produce_message(broker: KafkaBroker, topic: str, message: str, key: str,
                    timeout: Optional[float] = None) -> bool:
    """Send one message and print its delivery status. Returns True on success."""
    try:
        ack = broker.send(topic, key, message, timeout=timeout)
    except UpstreamSendFailed as e:
        print(f"Delivery status: Err({e.reason})")
        return False
    print(f"Delivery status: Ok(partition={ack.partition}, offset={ack.offset})")
    return True


def _pairs(args: argparse.Namespace) -> List[Tuple[str, str]]:
    messages = args.message or []
    keys = args.key or []
    if not messages:
        return list(DEMO_MESSAGES)
    if len(keys) != len(messages):
        raise SystemExit("each --message needs a matching --key")
    return list(zip(messages, keys))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Send messages to a Kafka topic.")
    parser.add_argument("--config", default=None, help="YAML config to read defaults from (default: $KAFKA_SERVICE_CONFIG or config/default.yaml)")
    parser.add_argument("--broker", default=None, help="bootstrap servers (default: kafka.bootstrap_servers)")
    parser.add_argument("--topic", default=None, help="topic to produce to (default: kafka.topic)")
    parser.add_argument("--message", action="append", help="message payload; repeat for several")
    parser.add_argument("--key", action="append", help="key for the matching --message")
    parser.add_argument("--timeout", type=float, default=None, help="seconds to wait per delivery (default: kafka.send_timeout)")
    return parser


def resolve_args(args: argparse.Namespace) -> argparse.Namespace:
    """Fill options not given on the command line from the ``kafka`` config section."""
    kafka_cfg = load_config(args.config).get("kafka", {})
    if args.broker is None:
        args.broker = kafka_cfg.get("bootstrap_servers", "localhost:9092")
    if args.topic is None:
        args.topic = kafka_cfg.get("topic", "test-topic")
    if args.timeout is None and kafka_cfg.get("send_timeout") is not None:
        args.timeout = float(kafka_cfg["send_timeout"])
    return args


def main(argv: Sequence[str] | None = None) -> int:
    logging.basicConfig(level=logging.WARNING)
    args = resolve_args(build_parser().parse_args(argv))

    pairs = _pairs(args)
    broker = KafkaBroker({"bootstrap.servers": args.broker})
    failures = 0
    try:
        for message, key in pairs:
            if not produce_message(broker, args.topic, message, key, args.timeout):
                failures += 1
    finally:
        broker.close()
    return 1 if failures else 0


if __name__ == "__main__":
    raise SystemExit(main())
