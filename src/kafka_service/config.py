"""Configuration loading utilities for the Kafka message service.

This module handles layered configuration:
1. Explicit path argument (highest precedence)
2. Environment variable KAFKA_SERVICE_CONFIG
3. Fallback to "config/default.yaml"

Values from the file are laid over :data:`DEFAULTS`. It also supports
overrides from environment variables with prefix ``KAFKA_SERVICE__``
(e.g., KAFKA_SERVICE__KAFKA__TOPIC=orders).
"""

from __future__ import annotations

import copy
import logging
import os
from pathlib import Path
from typing import Any, Dict

import yaml

logger = logging.getLogger(__name__)

ENV_PREFIX = "KAFKA_SERVICE__"
ENV_CONFIG_PATH = "KAFKA_SERVICE_CONFIG"

DEFAULTS: Dict[str, Any] = {
    "kafka": {
        "bootstrap_servers": "localhost:9092",
        "topic": "test-topic",
        # seconds; null waits for the delivery report indefinitely
        "send_timeout": None,
        "group_id": "test_group",
    },
    "server": {
        "host": "127.0.0.1",
        "port": 8080,
        "cors_origins": ["*"],
    },
    "events": {
        "queue_size": 100,
        "heartbeat_seconds": 15,
    },
}


def _merge(base: Dict[str, Any], extra: Dict[str, Any]) -> Dict[str, Any]:
    for key, value in extra.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            _merge(base[key], value)
        else:
            base[key] = value
    return base


def _parse_scalar(value: str) -> Any:
    if value.lower() in {"true", "false"}:
        return value.lower() == "true"
    if value.lower() in {"null", "none"}:
        return None
    try:
        if "." in value:
            return float(value)
        return int(value)
    except ValueError:
        return value


def _apply_env_overrides(cfg: Dict[str, Any]) -> Dict[str, Any]:
    """Apply environment variable overrides with prefix KAFKA_SERVICE__."""
    for key, value in os.environ.items():
        if not key.startswith(ENV_PREFIX):
            continue
        # e.g., KAFKA_SERVICE__SERVER__PORT -> cfg["server"]["port"]
        parts = key[len(ENV_PREFIX):].lower().split("__")
        sub = cfg
        for p in parts[:-1]:
            if p not in sub or not isinstance(sub[p], dict):
                sub[p] = {}
            sub = sub[p]
        sub[parts[-1]] = _parse_scalar(value)
    return cfg


def load_config(path: str | None = None) -> Dict[str, Any]:
    """Load YAML configuration for the service.

    Parameters
    ----------
    path : str | None
        Optional path to a configuration file. If not provided, the
        environment variable ``KAFKA_SERVICE_CONFIG`` is consulted. As a
        last resort ``config/default.yaml`` is used.

    Returns
    -------
    Dict[str, Any]
        Defaults merged with the file contents, environment overrides applied.
    """
    if path is None:
        path = os.environ.get(ENV_CONFIG_PATH, "config/default.yaml")

    cfg = copy.deepcopy(DEFAULTS)
    path_obj = Path(path)
    if not path_obj.exists():
        logger.warning("Config file not found at %s, using defaults", path_obj)
        return _apply_env_overrides(cfg)

    with path_obj.open("r", encoding="utf-8") as f:
        try:
            loaded = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise RuntimeError(f"Failed to parse config file {path_obj}: {e}") from e

    if not isinstance(loaded, dict):
        raise RuntimeError(f"Invalid config format in {path_obj}, expected dict.")

    return _apply_env_overrides(_merge(cfg, loaded))
