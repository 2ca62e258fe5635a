from __future__ import annotations


class QueueError(RuntimeError):
    """Base error for task queue operations."""

    status_code = 500
    code = "queue_error"


class AlreadyExists(QueueError):
    """Idempotent create found an existing task for the same key."""

    status_code = 409
    code = "already_exists"

    def __init__(self, key: str) -> None:
        super().__init__(f"task already exists: {key}")
        self.key = key


class LockConflict(QueueError):
    """A concurrent claimant renamed the candidate first. Never leaves the store."""

    code = "lock_conflict"


class NotFound(QueueError):
    status_code = 404
    code = "not_found"


class Conflict(QueueError):
    status_code = 409
    code = "conflict"


class UnprocessableInput(QueueError):
    status_code = 422
    code = "unprocessable"


class InvalidLockToken(QueueError):
    status_code = 400
    code = "invalid_lock"


class PreconditionNotMet(QueueError):
    """No confirming evidence yet; the caller should retry later."""

    status_code = 412
    code = "precondition_not_met"

    def __init__(self, message: str, chat_id: str, author_id: str) -> None:
        super().__init__(message)
        self.chat_id = chat_id
        self.author_id = author_id


class StorageFailure(QueueError):
    status_code = 500
    code = "storage_failure"
