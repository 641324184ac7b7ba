"""Docker -> Consul registrator.

Single-node bridge that keeps Consul's local agent in sync with running
containers:
 - initial full scan of running containers at startup
 - register on container start, deregister on die/stop
 - deterministic service IDs so every registration is an idempotent upsert
 - TCP health checks so Consul drops entries we never got to remove

The engine keeps no registration state of its own; Consul is the source of truth.
"""

__version__ = "1.0.0"
