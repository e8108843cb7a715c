from __future__ import annotations

import time
import uuid

from fastapi import FastAPI
from fastapi.requests import Request
from fastapi.responses import JSONResponse, Response
from sqlalchemy import text

from cellar_core.db import now_ms, session_scope
from cellar_core.errors import CellarError
from cellar_core.observability import increment, log_event, observe_ms, snapshot

app = FastAPI(title="cellar-core")


@app.exception_handler(CellarError)
async def cellar_error_handler(request: Request, exc: CellarError):
    return JSONResponse(status_code=exc.status_code, content=exc.payload())


@app.middleware("http")
async def request_observability(request: Request, call_next):
    request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
    t0 = time.perf_counter()
    response = None
    status_code = 500
    try:
        response = await call_next(request)
        status_code = response.status_code
        return response
    finally:
        duration_ms = (time.perf_counter() - t0) * 1000.0
        increment("http.requests.total")
        observe_ms("http.request.latency_ms", duration_ms)
        log_event(
            "http.request",
            request_id=request_id,
            method=request.method,
            path=request.url.path,
            status=status_code,
            duration_ms=round(duration_ms, 2),
        )
        if response is None:
            response = Response(status_code=status_code)
        response.headers["x-request-id"] = request_id


@app.get("/metrics")
def metrics():
    return snapshot()


@app.get("/health")
def health():
    with session_scope() as session:
        session.execute(text("SELECT 1"))
    return {"ok": True, "ts": now_ms()}
