"""Launch the Kafka message service."""

from __future__ import annotations

import argparse
import logging
import os
from typing import Sequence

import uvicorn

from .config import load_config
from .server import create_app


def main(argv: Sequence[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Run the Kafka message service.")
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to a YAML config file (default: $KAFKA_SERVICE_CONFIG or config/default.yaml)",
    )
    parser.add_argument(
        "--host",
        type=str,
        default=os.environ.get("HOST"),
        help="Host to bind the server to (default: server.host, 127.0.0.1)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=int(os.environ["PORT"]) if "PORT" in os.environ else None,
        help="Port to bind the server to (default: server.port, 8080)",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default="info",
        help="Log level for the service and uvicorn (default: info)",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(level=args.log_level.upper())

    cfg = load_config(args.config)
    server_cfg = cfg.get("server", {})
    app = create_app(args.config)

    # A single process: the registry lives in this process's memory.
    uvicorn.run(
        app,
        host=args.host or server_cfg.get("host", "127.0.0.1"),
        port=args.port or int(server_cfg.get("port", 8080)),
        log_level=args.log_level,
    )


if __name__ == "__main__":
    main()
