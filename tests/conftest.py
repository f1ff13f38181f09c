"""Pytest configuration and shared fixtures."""
from __future__ import annotations

import sys
import threading
from pathlib import Path
from typing import Any, List, Optional, Tuple

import pytest

# Ensure src/ is on the import path (for local imports without installing as package)
SRC_PATH = Path(__file__).resolve().parent.parent / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from kafka_service.broker import DeliveryAck  # noqa: E402
from kafka_service.errors import UpstreamSendFailed  # noqa: E402


class FakeBroker:
    """Records every send; raises UpstreamSendFailed while ``fail`` is set."""

    def __init__(self) -> None:
        self.sent: List[Tuple[str, str, str]] = []
        self.fail = False
        self.closed = False
        self._lock = threading.Lock()

    def send(self, topic: str, key: str, body: str, *, timeout: Optional[float] = None) -> DeliveryAck:
        if self.fail:
            raise UpstreamSendFailed(topic, "broker unavailable")
        with self._lock:
            self.sent.append((topic, key, body))
            return DeliveryAck(topic=topic, partition=0, offset=len(self.sent) - 1)

    def close(self, timeout: float = 5.0) -> int:
        self.closed = True
        return 0


class FakeRecord:
    """Mimics the parts of ``confluent_kafka.Message`` this package reads."""

    def __init__(self, topic: str = "test-topic", key: Any = b"k", value: Any = b"v",
                 partition: int = 0, offset: int = 0, timestamp: Tuple[int, int] = (1, 1700000000000),
                 error: Any = None) -> None:
        self._topic = topic
        self._key = key
        self._value = value
        self._partition = partition
        self._offset = offset
        self._timestamp = timestamp
        self._error = error

    def topic(self) -> str:
        return self._topic

    def key(self) -> Any:
        return self._key

    def value(self) -> Any:
        return self._value

    def partition(self) -> int:
        return self._partition

    def offset(self) -> int:
        return self._offset

    def timestamp(self) -> Tuple[int, int]:
        return self._timestamp

    def error(self) -> Any:
        return self._error


@pytest.fixture(scope="function")
def fake_broker() -> FakeBroker:
    return FakeBroker()


@pytest.fixture(scope="function")
def config_file(tmp_path: Path) -> Path:
    """A small config with a short heartbeat so streaming tests finish quickly."""
    path = tmp_path / "config.yaml"
    path.write_text(
        "kafka:\n  topic: unit-topic\nevents:\n  queue_size: 4\n  heartbeat_seconds: 0.05\n",
        encoding="utf-8",
    )
    return path


@pytest.fixture(scope="function")
def clean_env(monkeypatch: pytest.MonkeyPatch):
    """Ensure tests run with a clean environment (no leftover vars)."""
    import os

    for var in list(os.environ):
        if var.startswith("KAFKA_SERVICE"):
            monkeypatch.delenv(var, raising=False)
    yield
