from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request

from replyqueue.config import Settings
from replyqueue.core.confirm.completion import CompletionService
from replyqueue.core.queue.schemas import TaskDraft, TaskListing
from replyqueue.core.queue.store import TaskStore

from .deps import get_completion_service, get_settings, get_task_store
from .params import request_params, text_param

router = APIRouter()


@router.get("/debug", response_model=TaskListing)
def debug_listing(store: TaskStore = Depends(get_task_store)) -> TaskListing:
    return TaskListing(task_dir=str(store.task_dir), entries=store.list_entries())


@router.post("/enqueue")
async def enqueue(
    request: Request,
    store: TaskStore = Depends(get_task_store),
    settings: Settings = Depends(get_settings),
) -> dict:
    params = await request_params(request)
    chat_id = text_param(params, "chat_id")
    if chat_id is None:
        raise HTTPException(status_code=400, detail="chat_id required")

    draft = TaskDraft(
        account=text_param(params, "account"),
        chat_id=chat_id,
        author_id=text_param(params, "author_id"),
        reply_text=text_param(params, "reply_text") or settings.default_reply,
        message_id=text_param(params, "message_id"),
    )
    task = store.create(draft, idempotent=draft.message_id is not None)
    return {"ok": True, "task": task.model_dump()}


@router.api_route("/claim", methods=["GET", "POST"])
async def claim(request: Request, store: TaskStore = Depends(get_task_store)) -> dict:
    params = await request_params(request)
    claimed = store.claim(text_param(params, "account"))
    if claimed is None:
        return {"ok": True, "found": False}
    return {"ok": True, "found": True, "lock_id": claimed.lock_id, "task": claimed.task.model_dump()}


@router.post("/done")
async def done(request: Request, store: TaskStore = Depends(get_task_store)) -> dict:
    params = await request_params(request)
    changed = store.finalize(text_param(params, "lock") or "")
    return {"ok": True, "changed": changed}


@router.post("/requeue")
async def requeue(request: Request, store: TaskStore = Depends(get_task_store)) -> dict:
    params = await request_params(request)
    changed = store.requeue(text_param(params, "lock") or "")
    return {"ok": True, "changed": changed}


@router.post("/complete")
async def complete(request: Request, service: CompletionService = Depends(get_completion_service)) -> dict:
    params = await request_params(request)
    result = service.complete_if_confirmed(
        lock_id=text_param(params, "lock") or "",
        chat_id=text_param(params, "chat_id", "chat"),
        author_id=text_param(params, "author_id", "author"),
    )
    return {"ok": True, **result.model_dump()}
