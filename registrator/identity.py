from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from .docker_ops import ContainerSnapshot
from .settings import BASE_TAGS, IGNORE_ENV, NAME_ENV, TAGS_ENV


@dataclass(frozen=True)
class ServiceDescriptor:
    name: str
    ignored: bool = False
    tags: tuple[str, ...] = ()
    meta: dict[str, str] = field(default_factory=dict)


IGNORED = ServiceDescriptor(name="", ignored=True)


def clean_value(value: str) -> str:
    return value.strip("\"' ")


def parse_env(entries: Iterable[str]) -> dict[str, str]:
    """Parse KEY=VALUE entries. Anything without a separator is skipped."""
    env: dict[str, str] = {}
    for entry in entries:
        key, sep, value = entry.partition("=")
        if not sep or not key:
            continue
        env[key] = clean_value(value)
    return env


def derive_name(raw_name: str, prefix: str) -> str:
    name = raw_name[1:] if raw_name.startswith("/") else raw_name
    if prefix and name.startswith(prefix):
        name = name[len(prefix):]
    return name


def extra_tags(raw: str | None) -> list[str]:
    if not raw:
        return []
    return [t.strip() for t in raw.split(",") if t.strip()]


def resolve_identity(snapshot: ContainerSnapshot, prefix: str = "sentiric-") -> ServiceDescriptor:
    """Map container metadata to a service identity.

    SERVICE_IGNORE=true skips the container. SERVICE_NAME wins over the container
    name; otherwise the name is the container name minus "/" and ``prefix``.
    Names are lower-cased. Protocol tags are added per endpoint by the registrar.
    """
    env = parse_env(snapshot.env)
    if env.get(IGNORE_ENV) == "true":
        return IGNORED

    name = env.get(NAME_ENV) or derive_name(snapshot.name, prefix)
    name = name.lower()
    if not name:
        return IGNORED

    tags: list[str] = list(BASE_TAGS)
    for t in extra_tags(env.get(TAGS_ENV)):
        if t not in tags:
            tags.append(t)

    meta = {
        "container_id": snapshot.short_id,
        "image": snapshot.image,
    }
    return ServiceDescriptor(name=name, tags=tuple(tags), meta=meta)
