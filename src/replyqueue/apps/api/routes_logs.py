from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query

from replyqueue.core.confirm.oracle import ConfirmationOracle

from .deps import get_oracle

router = APIRouter()


@router.get("/has")
def has_reply(
    chat: str = Query(default=""),
    author: str = Query(default=""),
    oracle: ConfirmationOracle = Depends(get_oracle),
) -> dict:
    chat = chat.strip()
    author = author.strip()
    if not chat or not author:
        raise HTTPException(status_code=400, detail="chat & author required")
    evidence = oracle.find_evidence(chat, author)
    if evidence is None:
        return {"ok": True, "exists": False}
    return {"ok": True, "exists": True, "file": evidence.segment, "strategy": evidence.strategy}
