from __future__ import annotations

import json
import logging
from dataclasses import asdict
from typing import Any

from fastapi import FastAPI, HTTPException, Query
from fastapi.responses import JSONResponse

from fsr import db
from fsr.api_models import CancelResponse, RunRequest
from fsr.descriptor import parse_descriptor
from fsr.errors import ConfigurationError, TargetBusy
from fsr.retry import RetryPolicy
from fsr.runtime import RuntimeState
from fsr.service import run_reconciliation
from fsr.settings import settings
from fsr.targets import open_target

LOGGER = logging.getLogger("fsr.api")

app = FastAPI(title="Field State Reconciler")
runtime = RuntimeState()

# Replaced in tests to reconcile against an in-process target.
remote_factory = open_target


@app.on_event("startup")
def startup() -> None:
    logging.basicConfig(level=settings.log_level.upper(), format="%(asctime)s %(levelname)s %(name)s %(message)s")
    db.init_db()
    db.log_event("INFO", "API started")


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "healthy"}


@app.post("/runs")
def create_run(req: RunRequest) -> JSONResponse:
    try:
        desired = parse_descriptor(req.descriptor, target=req.target)
        remote = remote_factory(desired.target)
    except ConfigurationError as e:
        raise HTTPException(status_code=422, detail=str(e))

    policy = RetryPolicy.from_settings(max_retries=req.max_retries)
    try:
        result, run_id = run_reconciliation(runtime, desired, remote, policy=policy, call_timeout_s=req.call_timeout_s)
    except ConfigurationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except TargetBusy as e:
        raise HTTPException(status_code=409, detail=str(e))
    finally:
        close = getattr(remote, "close", None)
        if callable(close):
            close()

    body = {"run_id": run_id, **result.to_dict()}
    return JSONResponse(status_code=200 if result.ok else 207, content=body)


@app.get("/runs")
def list_runs(target: str | None = None, limit: int = Query(50, ge=1, le=500)) -> list[dict[str, Any]]:
    return [asdict(r) for r in db.list_runs(target=target, limit=limit)]


@app.get("/runs/{run_id}")
def get_run(run_id: int) -> dict[str, Any]:
    run = db.get_run(run_id)
    if not run:
        raise HTTPException(status_code=404, detail="Run not found")
    fields = []
    for f in db.list_run_fields(run_id):
        row = asdict(f)
        for k in ("old_value", "new_value"):
            row[k] = json.loads(row[k]) if row[k] is not None else None
        fields.append(row)
    return {**asdict(run), "fields": fields}


@app.get("/events")
def events(target: str | None = None, limit: int = Query(100, ge=1, le=1000)) -> list[dict[str, Any]]:
    return db.latest_events(limit=limit, target=target)


@app.get("/active")
def active_runs() -> list[dict[str, str]]:
    return [{"target": r.target, "started_at": r.started_at} for r in runtime.list_active()]


@app.post("/targets/{target}/cancel", response_model=CancelResponse)
def cancel_run(target: str) -> CancelResponse:
    cancelled = runtime.cancel(target)
    if cancelled:
        db.log_event("WARN", "Cancellation requested", target=target)
    return CancelResponse(target=target, cancelled=cancelled)
