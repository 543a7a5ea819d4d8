from __future__ import annotations

import logging
import threading
from typing import Any

import uvicorn
from fastapi import FastAPI, HTTPException, Request
from pydantic import BaseModel

from .config import get_settings

logger = logging.getLogger(__name__)

settings = get_settings()

app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
)


class MonitorStatus(BaseModel):
    running: bool
    transcript: str
    last_outcome: str | None = None
    last_error: str | None = None
    last_content_length: int
    processed_events: int
    dropped_events: int
    counts: dict[str, int]


def bind_monitor(target: FastAPI, *, driver: Any, runtime: Any, transcript: str) -> None:
    """Attach the live driver/runtime so status routes can read them."""
    target.state.driver = driver
    target.state.runtime = runtime
    target.state.transcript = transcript


@app.get("/healthz")
def healthz():
    return {"ok": True, "version": settings.app_version}


@app.get("/status", response_model=MonitorStatus)
def status(request: Request):
    driver = getattr(request.app.state, "driver", None)
    runtime = getattr(request.app.state, "runtime", None)
    if driver is None or runtime is None:
        raise HTTPException(status_code=503, detail="Monitor not started")

    snap = driver.snapshot()
    counters = runtime.counters()
    return MonitorStatus(
        running=runtime.is_running,
        transcript=request.app.state.transcript,
        last_outcome=snap["last_outcome"],
        last_error=snap["last_error"],
        last_content_length=snap["last_content_length"],
        processed_events=counters["processed_events"],
        dropped_events=counters["dropped_events"],
        counts=snap["counts"],
    )


class StatusServer:
    """uvicorn on a daemon thread; the watch loop keeps the main thread."""

    def __init__(self, target: FastAPI, port: int, host: str = "127.0.0.1") -> None:
        self.server = uvicorn.Server(
            uvicorn.Config(target, host=host, port=port, log_level="warning")
        )
        self.thread = threading.Thread(target=self.server.run, name="status-api", daemon=True)
        self.port = port
        self.host = host

    def start(self) -> None:
        self.thread.start()
        logger.info("init: status API on http://%s:%d/status", self.host, self.port)

    def stop(self) -> None:
        self.server.should_exit = True
        self.thread.join(timeout=5)
