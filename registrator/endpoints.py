from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping


@dataclass(frozen=True)
class Endpoint:
    protocol: str
    host_port: int
    container_port: str = ""


def _to_port(raw: object) -> int:
    try:
        return int(str(raw).strip())
    except (TypeError, ValueError):
        return 0


def extract_endpoints(ports: Mapping[str, list[dict[str, str]] | None] | None) -> list[Endpoint]:
    """One endpoint per published container port.

    Keys look like "8080/tcp". Only the first host binding is used. Unparsable
    host ports become 0 and are dropped with the other non-positive ones.
    """
    out: list[Endpoint] = []
    for key, bindings in (ports or {}).items():
        if not bindings:
            continue
        container_port, _, proto = key.partition("/")
        host_port = _to_port(bindings[0].get("HostPort"))
        if host_port <= 0:
            continue
        out.append(Endpoint(protocol=(proto or "tcp").lower(), host_port=host_port, container_port=container_port))
    return out
