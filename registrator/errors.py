from __future__ import annotations


class RegistratorError(Exception):
    pass


class RuntimeUnavailable(RegistratorError):
    """The Docker client could not be constructed or reached."""


class RegistryError(RegistratorError):
    """A call to the Consul agent failed (transport error or non-2xx status)."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class EventStreamError(RegistratorError):
    """The Docker event subscription broke. Fatal: registry state would silently drift."""
