from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI, Query

from nbr.api_models import Event, HealthResponse, ProbeResult, RuntimeDaemonStatus, StatusResponse
from nbr.db import EventLog
from nbr.docker_ops import docker_available, docker_version
from nbr.health import check_health
from nbr.reconciler import RUN_FAILED, RUN_SUCCEEDED
from nbr.settings import Settings, settings


def create_app(events: EventLog | None = None, cfg: Settings | None = None) -> FastAPI:
    """Read-only status API for the sentinel process. It never reconciles."""
    cfg = cfg or settings
    events = events or EventLog(cfg.db_path)

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        events.init()
        yield

    app = FastAPI(title="Node Bootstrap Reconciler", lifespan=lifespan)

    @app.get("/health", response_model=HealthResponse)
    def health() -> HealthResponse:
        return HealthResponse()

    @app.get("/status", response_model=StatusResponse)
    def status() -> StatusResponse:
        last = events.last_matching(RUN_SUCCEEDED, RUN_FAILED)
        ok, msg, latency = check_health(cfg.kubelet_healthz_url)
        reachable = docker_available()
        return StatusResponse(
            configured=bool(last and last["message"].startswith(RUN_SUCCEEDED)),
            last_run=Event(**last) if last else None,
            kubelet=ProbeResult(healthy=ok, message=msg, latency_ms=latency),
            runtime_daemon=RuntimeDaemonStatus(reachable=reachable, version=docker_version() if reachable else None),
        )

    @app.get("/events", response_model=list[Event])
    def list_events(limit: int = Query(50, ge=1, le=1000)) -> list[Event]:
        return [Event(**e) for e in events.latest(limit)]

    return app


app = create_app()
