from __future__ import annotations

from threading import Thread

import uvicorn
from fastapi import FastAPI, HTTPException, Query

from . import db
from .api_models import EventRow, HealthResponse, ServiceEntry, StatusResponse
from .consul import ConsulRegistry
from .errors import RegistryError
from .registrar import NodeInfo
from .runtime import RuntimeState


def create_app(runtime: RuntimeState, registry: ConsulRegistry, node: NodeInfo) -> FastAPI:
    """Read-only view of the registrator. Nothing here changes Consul."""
    app = FastAPI(title="Registrator", version="1.0.0")

    @app.get("/health", response_model=HealthResponse)
    def health() -> HealthResponse:
        return HealthResponse(phase=runtime.snapshot()["phase"])

    @app.get("/status", response_model=StatusResponse)
    def status() -> StatusResponse:
        return StatusResponse(
            **runtime.snapshot(),
            node_hostname=node.hostname,
            node_ip=node.address,
            consul_url=registry.base_url,
        )

    @app.get("/events", response_model=list[EventRow])
    def events(limit: int = Query(50, ge=1, le=1000), level: str | None = None) -> list[EventRow]:
        return [EventRow(**row) for row in db.latest_events(limit, level)]

    @app.get("/services", response_model=list[ServiceEntry])
    def services() -> list[ServiceEntry]:
        try:
            owned = registry.owned_services()
        except RegistryError as e:
            raise HTTPException(status_code=502, detail=str(e))
        return [
            ServiceEntry(
                id=s.get("ID", ""),
                name=s.get("Service", ""),
                address=s.get("Address", ""),
                port=int(s.get("Port") or 0),
                tags=list(s.get("Tags") or []),
                meta=dict(s.get("Meta") or {}),
            )
            for s in sorted(owned, key=lambda s: s.get("ID", ""))
        ]

    return app


def serve_in_background(app: FastAPI, host: str, port: int) -> Thread:
    config = uvicorn.Config(app, host=host, port=port, log_level="warning")
    server = uvicorn.Server(config)
    # uvicorn only installs signal handlers on the main thread; ours stay in charge.
    thr = Thread(target=server.run, name="registrator-api", daemon=True)
    thr.start()
    return thr
