from __future__ import annotations

import logging
import re
from typing import Any, Iterable

from pydantic import BaseModel

from replyqueue.core.activity.log import ActivityLog
from replyqueue.core.logging.context import log_context
from replyqueue.core.queue.errors import AlreadyExists
from replyqueue.core.queue.schemas import TaskDraft
from replyqueue.core.queue.store import TaskStore

DEFAULT_TRIGGER_PATTERNS = ("кандидат", "отклик")
DEFAULT_REPLY = "Здравствуйте!"


class IntakeResult(BaseModel):
    segment: str
    enqueued: bool = False
    duplicate: bool = False
    task_id: str | None = None


def _as_dict(value: Any) -> dict:
    return value if isinstance(value, dict) else {}


def _as_text(value: Any) -> str | None:
    if value is None or isinstance(value, (dict, list, bool)):
        return None
    text = str(value).strip()
    return text or None


class WebhookIntake:
    """Turns messenger webhook events into reply tasks.

    Only system notices about a new applicant produce a task. The message id
    of the notice is the idempotency key, so redelivered webhooks do not
    queue a second reply.
    """

    def __init__(
        self,
        store: TaskStore,
        activity_log: ActivityLog,
        default_reply: str = DEFAULT_REPLY,
        trigger_patterns: Iterable[str] = DEFAULT_TRIGGER_PATTERNS,
    ) -> None:
        self.store = store
        self.activity_log = activity_log
        self.default_reply = default_reply
        self.triggers = [re.compile(pattern, re.IGNORECASE) for pattern in trigger_patterns if pattern]
        self.logger = logging.getLogger("replyqueue.webhook")

    def extract_draft(self, account: str, event: Any) -> TaskDraft | None:
        value = _as_dict(_as_dict(_as_dict(event).get("payload")).get("value"))
        if value.get("type") != "system":
            return None

        chat_id = _as_text(value.get("chat_id"))
        if chat_id is None:
            return None

        text = _as_text(_as_dict(value.get("content")).get("text")) or ""
        if not any(trigger.search(text) for trigger in self.triggers):
            return None

        return TaskDraft(
            account=account,
            chat_id=chat_id,
            author_id=_as_text(value.get("user_id")),
            reply_text=self.default_reply,
            message_id=_as_text(value.get("id")),
        )

    def handle(self, account: str, event: Any) -> IntakeResult:
        segment = self.activity_log.append_event(f"RAW WEBHOOK ({account})", event)
        result = IntakeResult(segment=segment.name)

        draft = self.extract_draft(account, event)
        if draft is None:
            return result

        with log_context(account=account):
            try:
                task = self.store.create(draft, idempotent=draft.message_id is not None)
            except AlreadyExists as exc:
                self.logger.info("webhook_duplicate", extra={"extra_fields": {"key": exc.key}})
                result.duplicate = True
                return result

        result.enqueued = True
        result.task_id = task.id
        return result
