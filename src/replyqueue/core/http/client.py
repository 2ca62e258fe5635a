from __future__ import annotations

import os
import random
import threading
import time

import httpx

from replyqueue.core.queue.schemas import ClaimedTask

from .errors import QueueClientNetworkError, QueueClientStatusError

_RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}
_RETRYABLE_EXCEPTIONS = (httpx.ConnectError, httpx.ReadTimeout, httpx.RemoteProtocolError)
_DEFAULT_TIMEOUT_S = 15.0
_DEFAULT_CONNECT_TIMEOUT_S = 5.0
_DEFAULT_RETRIES = 2
_DEFAULT_BACKOFF_BASE_S = 0.25
_DEFAULT_BACKOFF_MAX_S = 2.0
_DEFAULT_USER_AGENT = "replyqueue-consumer/1.0"

KEY_HEADER = "X-Queue-Key"

_client: httpx.Client | None = None
_client_lock = threading.Lock()


def _get_float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _get_int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _build_timeout(total_s: float | None = None) -> httpx.Timeout:
    connect_s = max(0.1, _get_float_env("REPLYQUEUE_HTTP_CONNECT_TIMEOUT_S", _DEFAULT_CONNECT_TIMEOUT_S))
    read_total = max(0.1, total_s if total_s is not None else _get_float_env("REPLYQUEUE_HTTP_TIMEOUT_S", _DEFAULT_TIMEOUT_S))
    return httpx.Timeout(read_total, connect=min(connect_s, read_total))


def get_http_client() -> httpx.Client:
    global _client
    if _client is not None:
        return _client

    with _client_lock:
        if _client is None:
            user_agent = os.getenv("REPLYQUEUE_HTTP_USER_AGENT", _DEFAULT_USER_AGENT)
            _client = httpx.Client(timeout=_build_timeout(), headers={"User-Agent": user_agent})
    return _client


def _error_detail(response: httpx.Response) -> str | None:
    try:
        payload = response.json()
    except ValueError:
        return None
    if isinstance(payload, dict):
        detail = payload.get("detail") or payload.get("error")
        return str(detail) if detail is not None else None
    return None


def request_with_retry(
    method: str,
    url: str,
    *,
    headers: dict[str, str] | None = None,
    params: dict[str, str] | None = None,
    json: object | None = None,
    timeout_override: float | None = None,
    retries: int | None = None,
    allowed_statuses: set[int] | None = None,
) -> httpx.Response:
    max_retries = _get_int_env("REPLYQUEUE_HTTP_RETRIES", _DEFAULT_RETRIES) if retries is None else max(0, retries)
    backoff_base = max(0.01, _get_float_env("REPLYQUEUE_HTTP_BACKOFF_BASE_S", _DEFAULT_BACKOFF_BASE_S))
    backoff_max = max(0.01, _get_float_env("REPLYQUEUE_HTTP_BACKOFF_MAX_S", _DEFAULT_BACKOFF_MAX_S))

    client = get_http_client()
    attempts = max_retries + 1

    last_exc: Exception | None = None
    for attempt in range(attempts):
        try:
            response = client.request(
                method,
                url,
                headers=headers,
                params=params,
                json=json,
                timeout=_build_timeout(timeout_override) if timeout_override is not None else None,
            )
        except _RETRYABLE_EXCEPTIONS as exc:
            last_exc = exc
            if attempt >= max_retries:
                raise QueueClientNetworkError(f"HTTP request failed after retries for {url}: {exc.__class__.__name__}") from exc
            _sleep_for_retry(attempt, backoff_base, backoff_max)
            continue
        except httpx.HTTPError as exc:
            raise QueueClientNetworkError(f"HTTP request error for {url}: {exc.__class__.__name__}") from exc

        status = response.status_code
        if allowed_statuses is not None and status in allowed_statuses:
            return response
        if 200 <= status < 300:
            return response
        if status in _RETRYABLE_STATUS_CODES and attempt < max_retries:
            _sleep_for_retry(attempt, backoff_base, backoff_max)
            continue
        raise QueueClientStatusError(f"HTTP status {status} for {url}", status_code=status, detail=_error_detail(response))

    raise QueueClientNetworkError(f"HTTP request failed for {url}: {last_exc}")


def _sleep_for_retry(attempt: int, backoff_base: float, backoff_max: float) -> None:
    sleep_s = min(backoff_max, backoff_base * (2**attempt)) * (0.5 + random.random())
    time.sleep(sleep_s)


class QueueClient:
    """Consumer side of the task endpoints.

    Typical loop: ``claim`` -> send the reply -> ``complete_if_confirmed``
    until it returns True, or ``requeue`` when sending failed.
    """

    def __init__(self, base_url: str, key: str, account: str | None = None, retries: int | None = None) -> None:
        self.base_url = base_url.rstrip("/")
        self.key = key
        self.account = account
        self.retries = retries

    def _call(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, str] | None = None,
        json: object | None = None,
        allowed_statuses: set[int] | None = None,
    ) -> httpx.Response:
        return request_with_retry(
            method,
            f"{self.base_url}{path}",
            headers={KEY_HEADER: self.key},
            params=params,
            json=json,
            retries=self.retries,
            allowed_statuses=allowed_statuses,
        )

    def claim(self, account: str | None = None) -> ClaimedTask | None:
        wanted = account or self.account
        payload = self._call("POST", "/tasks/claim", json={"account": wanted} if wanted else {}).json()
        if not payload.get("found"):
            return None
        return ClaimedTask.model_validate({"task": payload["task"], "lock_id": payload["lock_id"]})

    def done(self, lock_id: str) -> bool:
        return bool(self._call("POST", "/tasks/done", json={"lock": lock_id}).json().get("changed"))

    def requeue(self, lock_id: str) -> bool:
        return bool(self._call("POST", "/tasks/requeue", json={"lock": lock_id}).json().get("changed"))

    def complete_if_confirmed(self, lock_id: str, chat_id: str | None = None, author_id: str | None = None) -> bool:
        body: dict[str, str] = {"lock": lock_id}
        if chat_id is not None:
            body["chat_id"] = chat_id
        if author_id is not None:
            body["author_id"] = author_id
        response = self._call("POST", "/tasks/complete", json=body, allowed_statuses={412})
        return bool(response.json().get("confirmed"))

    def has_reply(self, chat_id: str, author_id: str) -> bool:
        response = self._call("GET", "/logs/has", params={"chat": chat_id, "author": author_id})
        return bool(response.json().get("exists"))
