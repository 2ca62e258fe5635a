from __future__ import annotations

import logging

from pydantic import BaseModel

from replyqueue.core.logging.context import log_context
from replyqueue.core.queue.errors import Conflict, PreconditionNotMet, UnprocessableInput
from replyqueue.core.queue.store import TaskStore

from .oracle import ConfirmationOracle


class CompletionResult(BaseModel):
    confirmed: bool
    lock_id: str
    task_id: str
    chat_id: str
    author_id: str
    segment: str | None = None
    strategy: str | None = None


def _resolve(field: str, stored: str | None, asserted: str | None) -> str:
    stored = (stored or "").strip() or None
    asserted = (asserted or "").strip() or None
    if stored and asserted and stored != asserted:
        raise Conflict(f"{field} mismatch: task has {stored!r}, caller sent {asserted!r}")
    value = stored or asserted
    if not value:
        raise UnprocessableInput(f"{field} is unknown: not on the task and not supplied")
    return value


class CompletionService:
    """Closes a claimed task only once the activity log proves the reply went out."""

    def __init__(self, store: TaskStore, oracle: ConfirmationOracle) -> None:
        self.store = store
        self.oracle = oracle
        self.logger = logging.getLogger("replyqueue.completion")

    def complete_if_confirmed(
        self,
        lock_id: str,
        chat_id: str | None = None,
        author_id: str | None = None,
    ) -> CompletionResult:
        task = self.store.get_claimed(lock_id)
        with log_context(task_id=task.id, lock_id=lock_id, account=task.account):
            resolved_chat = _resolve("chat_id", task.chat_id, chat_id)
            resolved_author = _resolve("author_id", task.author_id, author_id)

            evidence = self.oracle.find_evidence(resolved_chat, resolved_author)
            if evidence is None:
                self.logger.info("completion_unconfirmed", extra={"extra_fields": {"chat_id": resolved_chat}})
                raise PreconditionNotMet(
                    "no reply observed yet; retry later",
                    chat_id=resolved_chat,
                    author_id=resolved_author,
                )

            self.store.finalize(lock_id)
            self.logger.info(
                "completion_confirmed",
                extra={"extra_fields": {"segment": evidence.segment, "strategy": evidence.strategy}},
            )
            return CompletionResult(
                confirmed=True,
                lock_id=lock_id,
                task_id=task.id,
                chat_id=resolved_chat,
                author_id=resolved_author,
                segment=evidence.segment,
                strategy=evidence.strategy,
            )
