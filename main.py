"""Registrator daemon: mirrors this node's containers into the local Consul agent.

No flags; everything comes from the environment (see registrator/settings.py).
Exit 0 on SIGINT/SIGTERM, 1 on a startup failure or a broken event stream.
"""
from __future__ import annotations

import signal
import sys
from typing import Any

from registrator import db
from registrator.api import create_app, serve_in_background
from registrator.consul import ConsulRegistry
from registrator.docker_ops import DockerSource
from registrator.errors import EventStreamError, RegistryError, RuntimeUnavailable
from registrator.reconciler import Reconciler
from registrator.registrar import NodeInfo, Registrar
from registrator.runtime import RuntimeState
from registrator.settings import Settings, settings as default_settings


def main(cfg: Settings | None = None) -> int:
    cfg = cfg or default_settings
    db.init_db()
    db.log_event("INFO", f"Starting... Node: {cfg.node_ip} ({cfg.node_hostname}) | Consul: {cfg.consul_url}")

    try:
        source = DockerSource.from_env()
    except RuntimeUnavailable as e:
        db.log_event("ERROR", str(e))
        return 1

    try:
        registry = ConsulRegistry(cfg.consul_url, token=cfg.consul_token, timeout_s=cfg.request_timeout_s)
    except RegistryError as e:
        db.log_event("ERROR", f"Consul client error: {e}")
        return 1

    # Connectivity probe only; we carry on either way.
    try:
        db.log_event("INFO", f"Connected to Consul agent '{registry.node_name()}'")
    except RegistryError as e:
        db.log_event("WARN", f"Consul not reachable yet ({e}); registrations will fail until it is")
    if not source.ping():
        db.log_event("WARN", "Docker daemon did not answer ping")

    node = NodeInfo(hostname=cfg.node_hostname, address=cfg.node_ip)
    runtime = RuntimeState()
    registrar = Registrar(registry, node, runtime, prefix=cfg.service_prefix)
    reconciler = Reconciler(
        source,
        registrar,
        runtime,
        workers=cfg.workers,
        settle_delay_s=cfg.settle_delay_s,
        settle_retries=cfg.settle_retries,
        settle_retry_interval_s=cfg.settle_retry_interval_s,
        drain_on_shutdown=cfg.drain_on_shutdown,
    )

    def shutdown_handler(signum: int, frame: Any) -> None:
        db.log_event("INFO", f"Received {signal.Signals(signum).name}, shutting down...")
        reconciler.stop()

    signal.signal(signal.SIGINT, shutdown_handler)
    signal.signal(signal.SIGTERM, shutdown_handler)

    if cfg.enable_api:
        serve_in_background(create_app(runtime, registry, node), cfg.api_host, cfg.api_port)

    try:
        reconciler.bootstrap()
        reconciler.run()
    except EventStreamError as e:
        db.log_event("ERROR", f"Fatal: {e}")
        return 1
    finally:
        # Tasks still running after a non-draining shutdown keep using both clients;
        # they are released at process exit instead.
        if runtime.snapshot()["in_flight"] == 0:
            registry.close()
            source.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
