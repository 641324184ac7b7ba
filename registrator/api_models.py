from __future__ import annotations

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    status: str = "ok"
    phase: str


class StatusResponse(BaseModel):
    phase: str
    started_at: str
    in_flight: int = Field(..., ge=0, description="Register/deregister tasks currently running or queued")
    counters: dict[str, int]
    node_hostname: str
    node_ip: str
    consul_url: str


class EventRow(BaseModel):
    id: int
    ts: str
    level: str
    service_name: str | None = None
    container_id: str | None = None
    message: str


class ServiceEntry(BaseModel):
    id: str
    name: str
    address: str
    port: int
    tags: list[str] = Field(default_factory=list)
    meta: dict[str, str] = Field(default_factory=dict)
