from __future__ import annotations

import logging
import sys
from pathlib import Path
from uuid import uuid4

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from replyqueue.core.logging import configure_logging
from replyqueue.core.logging.context import log_context
from replyqueue.core.logging.redact import redact_mapping, redact_string
from replyqueue.core.queue.errors import PreconditionNotMet, QueueError, StorageFailure

from .auth import PROTECTED_PREFIXES, extract_body_key, extract_key, is_auth_enabled, is_request_authenticated
from .deps import get_activity_log, get_oracle, get_settings, get_task_store
from .routes_logs import router as logs_router
from .routes_tasks import router as tasks_router
from .routes_webhook import router as webhook_router

logger = logging.getLogger("replyqueue.api")


def _dir_writable(path: Path) -> bool:
    try:
        path.mkdir(parents=True, exist_ok=True)
        probe = path / ".write-check"
        probe.write_text("ok", encoding="utf-8")
        probe.unlink(missing_ok=True)
        return True
    except OSError:
        return False


app = FastAPI(title="Reply Queue API")

app.include_router(tasks_router, prefix="/tasks", tags=["tasks"])
app.include_router(logs_router, prefix="/logs", tags=["logs"])
app.include_router(webhook_router, prefix="/webhook", tags=["webhook"])


@app.middleware("http")
async def request_context_middleware(request, call_next):
    correlation_id = request.headers.get("X-Correlation-ID") or str(uuid4())
    with log_context(correlation_id=correlation_id):
        response = await call_next(request)
    response.headers["X-Correlation-ID"] = correlation_id
    return response


@app.middleware("http")
async def auth_middleware(request, call_next):
    path = request.url.path

    if not path.startswith(PROTECTED_PREFIXES) or not is_auth_enabled():
        return await call_next(request)

    # header and query first, then a "key" field in a JSON body
    body_key = None if extract_key(request) else await extract_body_key(request)
    if not is_request_authenticated(request, body_key):
        logger.warning(
            "auth_rejected",
            extra={"extra_fields": {"path": path, "query": redact_string(request.url.query)}},
        )
        return JSONResponse(status_code=401, content={"ok": False, "error": "unauthorized"})

    return await call_next(request)


@app.exception_handler(QueueError)
async def queue_error_handler(request: Request, exc: QueueError) -> JSONResponse:
    content: dict[str, object] = {"ok": False, "error": exc.code, "detail": str(exc)}
    if isinstance(exc, PreconditionNotMet):
        content["confirmed"] = False
    if isinstance(exc, StorageFailure):
        logger.error("storage_failure", exc_info=exc, extra={"extra_fields": {"path": request.url.path}})
    return JSONResponse(status_code=exc.status_code, content=content)


@app.on_event("startup")
def startup() -> None:
    settings = get_settings()
    configure_logging(settings.state_dir)
    app.state.settings = settings
    app.state.task_store = get_task_store()
    app.state.activity_log = get_activity_log()
    app.state.oracle = get_oracle()
    logger.info(
        "service_started",
        extra={"extra_fields": {"settings": redact_mapping(settings.model_dump(mode="json"))}},
    )
    if settings.auth_enabled and not settings.task_key:
        logger.warning("task_key_missing")


@app.get("/")
def root() -> dict[str, bool]:
    return {"ok": True, "up": True}


@app.get("/healthz")
def healthz() -> dict[str, bool]:
    return {"ok": True}


@app.get("/healthz/full")
def healthz_full() -> dict[str, object]:
    settings = get_settings()
    task_dir = settings.resolved_task_dir
    activity_dir = settings.resolved_activity_log_dir
    task_dir_writable = _dir_writable(task_dir)
    activity_dir_writable = _dir_writable(activity_dir)

    payload: dict[str, object] = {
        "ok": True,
        "python": {"version": sys.version.split()[0]},
        "task_dir": {"path": str(task_dir), "writable": task_dir_writable},
        "activity_log_dir": {
            "path": str(activity_dir),
            "writable": activity_dir_writable,
            "segments": len(get_activity_log().segments()),
        },
        "auth": {"mode": settings.auth_mode, "enabled": settings.auth_enabled, "key_set": bool(settings.task_key)},
        "webhook": {"secret_set": bool(settings.webhook_secret)},
        "claim": {"window": settings.claim_window, "default_account": settings.default_account},
        "confirm": {
            "segments": settings.confirm_segments,
            "tail_bytes": settings.confirm_tail_bytes,
            "radius_bytes": settings.confirm_radius_bytes,
        },
    }

    if settings.auth_enabled and not settings.task_key:
        payload["ok"] = False
    if not task_dir_writable or not activity_dir_writable:
        payload["ok"] = False

    return payload


def run() -> None:
    settings = get_settings()
    uvicorn.run("replyqueue.apps.api.main:app", host=settings.host, port=settings.port)
