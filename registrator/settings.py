from __future__ import annotations

import os
import socket
from dataclasses import dataclass


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


# Consul health check attached to every registration.
CHECK_INTERVAL = "15s"
CHECK_TIMEOUT = "5s"
CHECK_DEREGISTER_AFTER = "1m"

# Tags every record carries in addition to its protocol.
BASE_TAGS = ("sentiric", "auto-registered")
OWNER_TAG = "auto-registered"

IGNORE_ENV = "SERVICE_IGNORE"
NAME_ENV = "SERVICE_NAME"
TAGS_ENV = "SERVICE_TAGS"


@dataclass(frozen=True)
class Settings:
    # Node / registry
    node_ip: str = os.getenv("NODE_IP", "127.0.0.1")
    consul_url: str = os.getenv("CONSUL_URL", "http://discovery-service:8500")
    node_hostname: str = os.getenv("NODE_HOSTNAME", socket.gethostname())
    consul_token: str | None = os.getenv("CONSUL_HTTP_TOKEN")
    request_timeout_s: float = _env_float("REGISTRATOR_REQUEST_TIMEOUT_S", 5.0)

    # Naming
    service_prefix: str = os.getenv("REGISTRATOR_SERVICE_PREFIX", "sentiric-")

    # Start events: wait for the network to attach before trusting published ports.
    settle_delay_s: float = _env_float("REGISTRATOR_SETTLE_DELAY_S", 1.0)
    settle_retries: int = _env_int("REGISTRATOR_SETTLE_RETRIES", 3)
    settle_retry_interval_s: float = _env_float("REGISTRATOR_SETTLE_RETRY_INTERVAL_S", 1.0)

    workers: int = _env_int("REGISTRATOR_WORKERS", 8)
    drain_on_shutdown: bool = _env_bool("REGISTRATOR_DRAIN_ON_SHUTDOWN", False)

    # Event journal
    db_path: str = os.getenv("REGISTRATOR_DB_PATH", "registrator.db")
    journal_max_rows: int = _env_int("REGISTRATOR_JOURNAL_MAX_ROWS", 10000)

    # Read-only status API
    enable_api: bool = _env_bool("REGISTRATOR_ENABLE_API", True)
    api_host: str = os.getenv("REGISTRATOR_API_HOST", "0.0.0.0")
    api_port: int = _env_int("REGISTRATOR_API_PORT", 8089)


settings = Settings()
