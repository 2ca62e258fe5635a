from __future__ import annotations


class QueueClientError(RuntimeError):
    """Base error for consumer-side calls to the queue service."""


class QueueClientStatusError(QueueClientError):
    def __init__(self, message: str, status_code: int | None = None, detail: str | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.detail = detail


class QueueClientNetworkError(QueueClientError):
    """Raised when request retries are exhausted for transport errors."""
