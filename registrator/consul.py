from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any
from urllib.parse import quote

import httpx

from .errors import RegistryError
from .settings import OWNER_TAG


@dataclass(frozen=True)
class HealthCheck:
    name: str
    tcp: str
    interval: str
    timeout: str
    deregister_after: str

    def to_payload(self) -> dict[str, str]:
        return {
            "Name": self.name,
            "TCP": self.tcp,
            "Interval": self.interval,
            "Timeout": self.timeout,
            "DeregisterCriticalServiceAfter": self.deregister_after,
        }


@dataclass(frozen=True)
class RegistrationRecord:
    id: str
    name: str
    address: str
    port: int
    tags: tuple[str, ...]
    meta: dict[str, str] = field(default_factory=dict)
    check: HealthCheck | None = None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "ID": self.id,
            "Name": self.name,
            "Address": self.address,
            "Port": self.port,
            "Tags": list(self.tags),
            "Meta": dict(self.meta),
        }
        if self.check is not None:
            payload["Check"] = self.check.to_payload()
        return payload


def normalize_base_url(url: str) -> str:
    url = url.strip().rstrip("/")
    if "://" not in url:
        url = f"http://{url}"
    return url


class ConsulRegistry:
    """Thin client for the local Consul agent's HTTP API.

    One httpx.Client is shared by all worker threads.
    """

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        timeout_s: float = 5.0,
        transport: httpx.BaseTransport | None = None,
    ):
        self.base_url = normalize_base_url(base_url)
        headers = {"X-Consul-Token": token} if token else {}
        try:
            self._http = httpx.Client(
                base_url=self.base_url,
                headers=headers,
                timeout=timeout_s,
                follow_redirects=False,
                transport=transport,
            )
        except (httpx.HTTPError, ValueError) as e:
            raise RegistryError(f"Invalid Consul URL {base_url!r}: {e}") from e

    def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            resp = self._http.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise RegistryError(f"{method} {path} failed: {type(e).__name__}: {e}") from e
        if resp.status_code >= 400:
            raise RegistryError(
                f"{method} {path} -> HTTP {resp.status_code}: {resp.text.strip()[:200]}",
                status_code=resp.status_code,
            )
        return resp

    def node_name(self) -> str:
        data = self._request("GET", "/v1/agent/self").json()
        return (data.get("Config") or {}).get("NodeName", "")

    def register(self, record: RegistrationRecord) -> None:
        """Upsert: Consul replaces any service already registered under record.id."""
        self._request("PUT", "/v1/agent/service/register", json=record.to_payload())

    def deregister(self, service_id: str) -> None:
        try:
            self._request("PUT", f"/v1/agent/service/deregister/{quote(service_id, safe='')}")
        except RegistryError as e:
            # Already gone.
            if e.status_code == 404:
                return
            raise

    def services(self) -> dict[str, dict[str, Any]]:
        return self._request("GET", "/v1/agent/services").json() or {}

    def owned_services(self) -> list[dict[str, Any]]:
        """Services on this agent that were created by a registrator."""
        return [s for s in self.services().values() if OWNER_TAG in (s.get("Tags") or [])]

    def services_for_container(self, container_id: str) -> list[dict[str, Any]]:
        short = container_id[:12]
        return [s for s in self.owned_services() if (s.get("Meta") or {}).get("container_id") == short]

    def close(self) -> None:
        self._http.close()
