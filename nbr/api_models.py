from __future__ import annotations

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    status: str = "healthy"


class Event(BaseModel):
    id: int
    ts: str
    level: str
    subsystem: str | None = None
    unit: str | None = None
    message: str


class ProbeResult(BaseModel):
    healthy: bool
    message: str
    latency_ms: float | None = None


class RuntimeDaemonStatus(BaseModel):
    reachable: bool
    version: str | None = None


class StatusResponse(BaseModel):
    configured: bool = Field(..., description="Last reconciliation run succeeded")
    last_run: Event | None = Field(None, description="Outcome event of the last run, if any")
    kubelet: ProbeResult
    runtime_daemon: RuntimeDaemonStatus
