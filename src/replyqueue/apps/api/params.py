from __future__ import annotations

import json
from typing import Any

from fastapi import HTTPException, Request


async def request_params(request: Request) -> dict[str, Any]:
    """Query parameters merged over a JSON object body; the query wins."""
    merged: dict[str, Any] = {}
    if request.method.upper() in {"POST", "PUT", "PATCH"}:
        raw = await request.body()
        if raw.strip():
            try:
                payload = json.loads(raw)
            except ValueError as exc:
                raise HTTPException(status_code=400, detail="body must be JSON") from exc
            if isinstance(payload, dict):
                merged.update(payload)
    merged.update(request.query_params)
    return merged


def text_param(params: dict[str, Any], *names: str) -> str | None:
    for name in names:
        value = params.get(name)
        if value is None or isinstance(value, (dict, list, bool)):
            continue
        text = str(value).strip()
        if text:
            return text
    return None
