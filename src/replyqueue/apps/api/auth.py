from __future__ import annotations

import hmac
import json
from typing import Any

from fastapi import Request

from .deps import get_settings

AUTH_HEADER = "X-Queue-Key"
AUTH_QUERY_PARAM = "key"
AUTH_BODY_FIELD = "key"
WEBHOOK_SECRET_HEADER = "X-Avito-Secret"

PROTECTED_PREFIXES = ("/tasks", "/logs")


def is_auth_enabled() -> bool:
    return get_settings().auth_enabled


def extract_key(request: Request) -> str | None:
    header_key = request.headers.get(AUTH_HEADER)
    if header_key:
        return header_key.strip()
    query_key = request.query_params.get(AUTH_QUERY_PARAM)
    if query_key:
        return query_key.strip()
    return None


async def extract_body_key(request: Request) -> str | None:
    if request.method.upper() not in {"POST", "PUT", "PATCH"}:
        return None
    raw = await request.body()
    if not raw.strip():
        return None
    try:
        payload = json.loads(raw)
    except ValueError:
        return None
    value = payload.get(AUTH_BODY_FIELD) if isinstance(payload, dict) else None
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def is_request_authenticated(request: Request, body_key: str | None = None) -> bool:
    if not is_auth_enabled():
        return True
    required = get_settings().task_key.strip()
    if not required:
        # no key configured: nobody gets in
        return False
    provided = extract_key(request) or body_key
    if not provided:
        return False
    return hmac.compare_digest(provided.encode("utf-8"), required.encode("utf-8"))


def is_webhook_authorized(request: Request, body: Any) -> bool:
    secret = get_settings().webhook_secret
    if not secret:
        return True
    provided = request.headers.get(WEBHOOK_SECRET_HEADER)
    if not provided and isinstance(body, dict):
        provided = body.get("secret")
    return hmac.compare_digest(str(provided or "").encode("utf-8"), secret.encode("utf-8"))
