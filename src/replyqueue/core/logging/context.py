from __future__ import annotations

from contextlib import contextmanager
from contextvars import ContextVar, Token
from typing import Iterator

correlation_id_var: ContextVar[str | None] = ContextVar("correlation_id", default=None)
task_id_var: ContextVar[str | None] = ContextVar("task_id", default=None)
lock_id_var: ContextVar[str | None] = ContextVar("lock_id", default=None)
account_var: ContextVar[str | None] = ContextVar("account", default=None)

_CONTEXT_VARS: dict[str, ContextVar[str | None]] = {
    "correlation_id": correlation_id_var,
    "task_id": task_id_var,
    "lock_id": lock_id_var,
    "account": account_var,
}


def set_context(**kwargs: str | None) -> dict[str, Token[str | None]]:
    tokens: dict[str, Token[str | None]] = {}
    for key, value in kwargs.items():
        var = _CONTEXT_VARS.get(key)
        if var is None or value is None:
            continue
        tokens[key] = var.set(value)
    return tokens


def reset_context(tokens: dict[str, Token[str | None]]) -> None:
    for key, token in tokens.items():
        var = _CONTEXT_VARS.get(key)
        if var is not None:
            var.reset(token)


@contextmanager
def log_context(
    correlation_id: str | None = None,
    task_id: str | None = None,
    lock_id: str | None = None,
    account: str | None = None,
) -> Iterator[None]:
    tokens = set_context(
        correlation_id=correlation_id,
        task_id=task_id,
        lock_id=lock_id,
        account=account,
    )
    try:
        yield
    finally:
        reset_context(tokens)


def get_log_context() -> dict[str, str]:
    values = {
        "correlation_id": correlation_id_var.get(),
        "task_id": task_id_var.get(),
        "lock_id": lock_id_var.get(),
        "account": account_var.get(),
    }
    return {key: value for key, value in values.items() if value is not None}
