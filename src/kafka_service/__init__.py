"""HTTP service that produces messages to Kafka and tracks what it has sent.

Typical usage
-------------
from kafka_service import create_app
app = create_app()

or, from the command line:

kafka-service --host 127.0.0.1 --port 8080
"""

from __future__ import annotations

from .server import create_app

__all__ = ["create_app", "__version__", "get_version"]

__version__ = "0.1.0"


def get_version() -> str:
    """Return the package version."""
    return __version__
