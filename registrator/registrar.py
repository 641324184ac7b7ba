from __future__ import annotations

from dataclasses import dataclass

from . import db
from .consul import ConsulRegistry, HealthCheck, RegistrationRecord
from .docker_ops import ContainerSnapshot
from .endpoints import Endpoint, extract_endpoints
from .errors import RegistryError
from .identity import ServiceDescriptor, resolve_identity
from .runtime import RuntimeState
from .settings import CHECK_DEREGISTER_AFTER, CHECK_INTERVAL, CHECK_TIMEOUT


@dataclass(frozen=True)
class NodeInfo:
    hostname: str
    address: str


def service_id(hostname: str, name: str, port: int) -> str:
    return f"{hostname}-{name}-{port}"


def build_record(descriptor: ServiceDescriptor, endpoint: Endpoint, node: NodeInfo) -> RegistrationRecord:
    """Same descriptor + endpoint + node always gives the same record."""
    tags = (endpoint.protocol,) + tuple(t for t in descriptor.tags if t != endpoint.protocol)
    return RegistrationRecord(
        id=service_id(node.hostname, descriptor.name, endpoint.host_port),
        name=descriptor.name,
        address=node.address,
        port=endpoint.host_port,
        tags=tags,
        meta=dict(descriptor.meta),
        check=HealthCheck(
            name=f"TCP Check {descriptor.name}",
            tcp=f"{node.address}:{endpoint.host_port}",
            interval=CHECK_INTERVAL,
            timeout=CHECK_TIMEOUT,
            deregister_after=CHECK_DEREGISTER_AFTER,
        ),
    )


class Registrar:
    """Applies container state to Consul. Holds no state between calls."""

    def __init__(self, registry: ConsulRegistry, node: NodeInfo, runtime: RuntimeState, prefix: str = "sentiric-"):
        self.registry = registry
        self.node = node
        self.runtime = runtime
        self.prefix = prefix

    def register(self, snapshot: ContainerSnapshot) -> list[RegistrationRecord]:
        """Upsert one record per published endpoint.

        A failed endpoint is journaled and its siblings still go through, so a
        multi-port container can end up partially registered.
        """
        descriptor = resolve_identity(snapshot, self.prefix)
        if descriptor.ignored:
            self.runtime.count("skipped")
            return []

        endpoints = extract_endpoints(snapshot.ports)
        if not endpoints:
            self.runtime.count("skipped")
            return []

        done: list[RegistrationRecord] = []
        for ep in endpoints:
            record = build_record(descriptor, ep, self.node)
            try:
                self.registry.register(record)
            except RegistryError as e:
                self.runtime.count("failed")
                db.log_event(
                    "ERROR",
                    f"Registration failed: {record.name} [{record.id}] -> {e}",
                    service_name=record.name,
                    container_id=snapshot.short_id,
                )
                continue
            self.runtime.count("registered")
            done.append(record)
            db.log_event(
                "INFO",
                f"Registered {record.name} [{record.id}] -> {record.address}:{record.port}",
                service_name=record.name,
                container_id=snapshot.short_id,
            )
        return done

    def deregister(self, container_id: str) -> list[str]:
        """Remove every record this node holds for the container.

        Records are found through their container_id meta value, so this works
        whether or not the container can still be inspected. No match is a no-op.
        """
        short = container_id[:12]
        try:
            services = self.registry.services_for_container(container_id)
        except RegistryError as e:
            self.runtime.count("failed")
            db.log_event("ERROR", f"Deregistration lookup failed for {short}: {e}", container_id=short)
            return []

        removed: list[str] = []
        for svc in services:
            sid = svc.get("ID", "")
            if not sid:
                continue
            try:
                self.registry.deregister(sid)
            except RegistryError as e:
                self.runtime.count("failed")
                db.log_event("ERROR", f"Deregistration failed: [{sid}] -> {e}", container_id=short)
                continue
            self.runtime.count("deregistered")
            removed.append(sid)
            db.log_event("INFO", f"Deregistered [{sid}]", service_name=svc.get("Service"), container_id=short)
        return removed
