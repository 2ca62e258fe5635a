from __future__ import annotations

import json
import logging
import os
import time
from datetime import datetime, timezone
from pathlib import Path
from tempfile import NamedTemporaryFile
from uuid import uuid4

from pydantic import ValidationError

from replyqueue.core.logging.context import log_context

from .errors import AlreadyExists, Conflict, InvalidLockToken, LockConflict, NotFound, StorageFailure, UnprocessableInput
from .keys import (
    CLAIMED_SUFFIX,
    DEFAULT_ACCOUNT,
    MARKER_DIR,
    PENDING_SUFFIX,
    QUARANTINE_SUFFIX,
    account_of,
    claimed_from_pending,
    claimed_name,
    is_valid_lock_id,
    marker_name,
    pending_from_claimed,
    pending_name,
    sanitize_account,
    sanitize_task_id,
)
from .schemas import ClaimedTask, Task, TaskDraft, TaskEntry
from .selector import ClaimSelector


class TaskStore:
    """Task queue kept as one JSON file per task in a shared directory.

    The file name carries the lifecycle state::

        <account>__<id>.json          pending
        <account>__<id>.json.taking   claimed (the name is the lock token)
        .ids/<account>__<id>          idempotency key, kept after the task is done

    Every transition is a ``link``, ``rename`` or ``unlink`` that never
    replaces an existing name, so several processes can share the directory
    without any other lock.
    """

    def __init__(
        self,
        task_dir: str | Path,
        selector: ClaimSelector | None = None,
        default_account: str = DEFAULT_ACCOUNT,
    ) -> None:
        self.task_dir = Path(task_dir)
        self.task_dir.mkdir(parents=True, exist_ok=True)
        self.selector = selector or ClaimSelector()
        self.default_account = default_account
        self.logger = logging.getLogger("replyqueue.queue")

    def create(self, draft: TaskDraft, idempotent: bool = False) -> Task:
        account = sanitize_account(draft.account, self.default_account)
        if idempotent:
            if not draft.message_id:
                raise UnprocessableInput("message_id is required for idempotent create")
            task_id = sanitize_task_id(draft.message_id)
        else:
            task_id = uuid4().hex

        name = pending_name(account, task_id)
        # tasks published before their key was reserved
        if idempotent and (self.task_dir / claimed_name(account, task_id)).exists():
            raise AlreadyExists(name)

        task = Task(
            id=task_id,
            account=account,
            chat_id=draft.chat_id,
            author_id=draft.author_id,
            reply_text=draft.reply_text,
            message_id=draft.message_id,
            created_at=now_iso(),
        )
        with log_context(task_id=task.id, account=account):
            if idempotent:
                self._reserve(account, task_id)
            try:
                self._publish(name, task)
            except StorageFailure:
                if idempotent:
                    self._release(account, task_id)
                raise
            self.logger.info("task_created", extra={"extra_fields": {"idempotent": idempotent}})
        return task

    def claim(self, account: str | None = None) -> ClaimedTask | None:
        wanted = sanitize_account(account, self.default_account) if account else None
        for candidate in self.selector.candidates(self.task_dir, wanted):
            try:
                lock_id = self._take(candidate.name)
            except LockConflict:
                self.logger.debug("claim_race_lost", extra={"extra_fields": {"name": candidate.name}})
                continue

            task = self._load_taken(lock_id)
            if task is None:
                continue
            with log_context(task_id=task.id, lock_id=lock_id, account=task.account):
                self.logger.info("task_claimed")
            return ClaimedTask(task=task, lock_id=lock_id)
        return None

    def get_claimed(self, lock_id: str) -> Task:
        path = self._lock_path(lock_id)
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError as exc:
            raise NotFound(f"claimed task not found: {lock_id}") from exc
        except OSError as exc:
            raise StorageFailure(f"cannot read {lock_id}: {exc.__class__.__name__}") from exc
        try:
            return Task.model_validate(json.loads(raw))
        except (json.JSONDecodeError, ValidationError) as exc:
            raise StorageFailure(f"corrupt task record: {lock_id}") from exc

    def finalize(self, lock_id: str) -> bool:
        path = self._lock_path(lock_id)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as exc:
            raise StorageFailure(f"cannot finalize {lock_id}: {exc.__class__.__name__}") from exc
        with log_context(lock_id=lock_id, account=account_of(lock_id)):
            self.logger.info("task_finalized")
        return True

    def requeue(self, lock_id: str) -> bool:
        path = self._lock_path(lock_id)
        target = pending_from_claimed(lock_id)
        try:
            # link() keeps the inode, so content and mtime come back unchanged
            os.link(path, self.task_dir / target)
        except FileNotFoundError:
            return False
        except FileExistsError as exc:
            self.logger.warning(
                "requeue_target_exists",
                extra={"extra_fields": {"lock_id": lock_id, "target": target}},
            )
            raise Conflict(f"pending task {target} already exists; claim {lock_id} left in place") from exc
        except OSError as exc:
            raise StorageFailure(f"cannot requeue {lock_id}: {exc.__class__.__name__}") from exc
        try:
            path.unlink()
        except FileNotFoundError:
            # finalized while we linked; the pending copy is a redelivery
            self.logger.warning("requeue_raced_finalize", extra={"extra_fields": {"lock_id": lock_id}})
        except OSError as exc:
            raise StorageFailure(f"cannot release {lock_id}: {exc.__class__.__name__}") from exc
        with log_context(lock_id=lock_id, account=account_of(lock_id)):
            self.logger.info("task_requeued")
        return True

    def list_entries(self) -> list[TaskEntry]:
        try:
            names = sorted(os.listdir(self.task_dir))
        except FileNotFoundError:
            return []

        now = time.time()
        entries: list[TaskEntry] = []
        for name in names:
            state = _state_of(name)
            if state is None:
                continue
            try:
                stat = os.stat(self.task_dir / name)
            except FileNotFoundError:
                continue
            entries.append(
                TaskEntry(
                    name=name,
                    state=state,
                    account=account_of(name),
                    size_bytes=stat.st_size,
                    mtime_iso=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc).isoformat(),
                    age_s=round(max(0.0, now - stat.st_mtime), 3),
                )
            )
        return entries

    def _lock_path(self, lock_id: str) -> Path:
        if not is_valid_lock_id(lock_id):
            raise InvalidLockToken(f"invalid lock: {lock_id!r}")
        return self.task_dir / lock_id

    def _publish(self, name: str, task: Task) -> None:
        body = json.dumps(task.model_dump(), ensure_ascii=False, indent=2)
        try:
            with NamedTemporaryFile(
                "w",
                encoding="utf-8",
                delete=False,
                dir=self.task_dir,
                prefix=f".{name}.",
                suffix=".tmp",
            ) as handle:
                handle.write(body)
                handle.flush()
                os.fsync(handle.fileno())
                temp_name = handle.name
        except OSError as exc:
            raise StorageFailure(f"cannot write {name}: {exc.__class__.__name__}") from exc

        try:
            # link() refuses to replace an existing name
            os.link(temp_name, self.task_dir / name)
        except FileExistsError as exc:
            raise AlreadyExists(name) from exc
        except OSError as exc:
            raise StorageFailure(f"cannot publish {name}: {exc.__class__.__name__}") from exc
        finally:
            Path(temp_name).unlink(missing_ok=True)

    def _reserve(self, account: str, task_id: str) -> None:
        """Claim the idempotency key for good, whatever state the task later reaches."""
        marker_dir = self.task_dir / MARKER_DIR
        try:
            marker_dir.mkdir(exist_ok=True)
        except OSError as exc:
            raise StorageFailure(f"cannot create {MARKER_DIR}: {exc.__class__.__name__}") from exc
        try:
            fd = os.open(marker_dir / marker_name(account, task_id), os.O_CREAT | os.O_EXCL | os.O_WRONLY)
        except FileExistsError as exc:
            raise AlreadyExists(pending_name(account, task_id)) from exc
        except OSError as exc:
            raise StorageFailure(f"cannot reserve {task_id}: {exc.__class__.__name__}") from exc
        os.close(fd)

    def _release(self, account: str, task_id: str) -> None:
        (self.task_dir / MARKER_DIR / marker_name(account, task_id)).unlink(missing_ok=True)

    def _take(self, name: str) -> str:
        lock_id = claimed_from_pending(name)
        try:
            os.rename(self.task_dir / name, self.task_dir / lock_id)
        except FileNotFoundError as exc:
            raise LockConflict(name) from exc
        except OSError as exc:
            raise StorageFailure(f"cannot claim {name}: {exc.__class__.__name__}") from exc
        if (self.task_dir / name).exists():
            # rename between two links to one file is a no-op: a requeue is mid-flight
            raise LockConflict(name)
        return lock_id

    def _load_taken(self, lock_id: str) -> Task | None:
        try:
            return self.get_claimed(lock_id)
        except NotFound:
            return None
        except StorageFailure:
            self._quarantine(lock_id)
            return None

    def _quarantine(self, lock_id: str) -> None:
        target = lock_id + QUARANTINE_SUFFIX
        try:
            os.rename(self.task_dir / lock_id, self.task_dir / target)
        except FileNotFoundError:
            return
        except OSError:
            self.logger.exception("task_quarantine_failed", extra={"extra_fields": {"name": lock_id}})
            return
        self.logger.warning("task_quarantined", extra={"extra_fields": {"name": target}})


def _state_of(name: str) -> str | None:
    if name.startswith("."):
        return None
    if name.endswith(PENDING_SUFFIX):
        return "pending"
    if name.endswith(CLAIMED_SUFFIX):
        return "claimed"
    if name.endswith(QUARANTINE_SUFFIX):
        return "quarantined"
    return None


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()
