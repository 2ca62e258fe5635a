from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field


class TaskDraft(BaseModel):
    account: str | None = None
    chat_id: str
    author_id: str | None = None
    reply_text: str
    message_id: str | None = None


class Task(BaseModel):
    id: str
    account: str
    chat_id: str
    author_id: str | None = None
    reply_text: str
    message_id: str | None = None
    created_at: str


class ClaimedTask(BaseModel):
    task: Task
    lock_id: str


class TaskEntry(BaseModel):
    name: str
    state: Literal["pending", "claimed", "quarantined"]
    account: str
    size_bytes: int
    mtime_iso: str
    age_s: float


class TaskListing(BaseModel):
    task_dir: str
    entries: list[TaskEntry] = Field(default_factory=list)
