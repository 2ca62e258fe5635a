from __future__ import annotations

import json

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from replyqueue.config import Settings
from replyqueue.core.webhook.intake import WebhookIntake

from .auth import is_webhook_authorized
from .deps import get_settings, get_webhook_intake

router = APIRouter()


async def _receive(account: str, request: Request, intake: WebhookIntake) -> JSONResponse | dict:
    raw = await request.body()
    try:
        body = json.loads(raw) if raw.strip() else {}
    except ValueError:
        return JSONResponse(status_code=400, content={"ok": False, "error": "body must be JSON"})

    if not is_webhook_authorized(request, body):
        return JSONResponse(status_code=403, content={"ok": False, "error": "forbidden"})

    result = intake.handle(account, body)
    return {"ok": True, **result.model_dump()}


@router.post("", response_model=None)
async def webhook_default(
    request: Request,
    intake: WebhookIntake = Depends(get_webhook_intake),
    settings: Settings = Depends(get_settings),
) -> JSONResponse | dict:
    return await _receive(settings.default_account, request, intake)


@router.post("/{account}", response_model=None)
async def webhook(
    account: str,
    request: Request,
    intake: WebhookIntake = Depends(get_webhook_intake),
) -> JSONResponse | dict:
    return await _receive(account, request, intake)
