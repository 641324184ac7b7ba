from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterator

import docker
from docker.errors import DockerException, NotFound

from .errors import RuntimeUnavailable

EVENT_FILTERS: dict[str, Any] = {
    "type": "container",
    "event": ["start", "die", "stop"],
}


@dataclass(frozen=True)
class ContainerSnapshot:
    """What one inspection returned. Never cached."""

    id: str
    name: str
    env: list[str] = field(default_factory=list)
    # "8080/tcp" -> [{"HostIp": "0.0.0.0", "HostPort": "33001"}, ...] or None
    ports: dict[str, list[dict[str, str]] | None] = field(default_factory=dict)
    image: str = ""
    running: bool = True

    @property
    def short_id(self) -> str:
        return self.id[:12]

    @classmethod
    def from_attrs(cls, attrs: dict[str, Any]) -> "ContainerSnapshot":
        config = attrs.get("Config") or {}
        network = attrs.get("NetworkSettings") or {}
        state = attrs.get("State") or {}
        return cls(
            id=attrs.get("Id", ""),
            name=attrs.get("Name", ""),
            env=list(config.get("Env") or []),
            ports=dict(network.get("Ports") or {}),
            image=config.get("Image", ""),
            running=bool(state.get("Running", True)),
        )


@dataclass(frozen=True)
class LifecycleEvent:
    action: str
    container_id: str
    name: str | None = None


def parse_event(raw: dict[str, Any]) -> LifecycleEvent | None:
    """Normalize a decoded Docker event. Returns None for non-container events."""
    if raw.get("Type", "container") != "container":
        return None
    action = raw.get("Action") or raw.get("status") or ""
    actor = raw.get("Actor") or {}
    container_id = actor.get("ID") or raw.get("id") or ""
    if not action or not container_id:
        return None
    attributes = actor.get("Attributes") or {}
    return LifecycleEvent(action=action, container_id=container_id, name=attributes.get("name"))


class DockerSource:
    """Runtime collaborator: list, inspect and watch containers.

    The underlying client is shared by every worker thread.
    """

    def __init__(self, client: docker.DockerClient):
        self.client = client
        self._stream: Any = None

    @classmethod
    def from_env(cls) -> "DockerSource":
        try:
            return cls(docker.from_env())
        except DockerException as e:
            raise RuntimeUnavailable(f"Docker client unavailable: {e}") from e

    def ping(self) -> bool:
        try:
            return bool(self.client.ping())
        except DockerException:
            return False

    def list_running_ids(self) -> list[str]:
        return [c.id for c in self.client.containers.list()]

    def inspect(self, container_id: str) -> ContainerSnapshot | None:
        """Return the container's current metadata, or None if it no longer exists."""
        try:
            container = self.client.containers.get(container_id)
        except NotFound:
            return None
        return ContainerSnapshot.from_attrs(container.attrs)

    def events(self) -> Iterator[dict[str, Any]]:
        self._stream = self.client.events(decode=True, filters=EVENT_FILTERS)
        return self._stream

    def close_events(self) -> None:
        """Unblock a reader waiting on the event stream."""
        stream, self._stream = self._stream, None
        if stream is not None and hasattr(stream, "close"):
            stream.close()

    def close(self) -> None:
        self.close_events()
        self.client.close()
