from __future__ import annotations

import hashlib
import re

PENDING_SUFFIX = ".json"
CLAIMED_SUFFIX = ".json.taking"
QUARANTINE_SUFFIX = ".bad"
SEPARATOR = "__"
MARKER_DIR = ".ids"
MAX_TASK_ID_LENGTH = 64
MAX_ACCOUNT_LENGTH = 64
HASHED_ID_PREFIX = "sha1-"
DEFAULT_ACCOUNT = "main"

_UNSAFE_RE = re.compile(r"[^a-zA-Z0-9_-]")
_UNDERSCORE_RUN_RE = re.compile(r"_{2,}")
_SAFE_ID_RE = re.compile(r"[a-zA-Z0-9_-]+(?:\.[a-zA-Z0-9_-]+)*")
_LOCK_RE = re.compile(r"^[a-zA-Z0-9_-]+__[a-zA-Z0-9_.-]+\.json\.taking$")


def sanitize_account(raw: str | None, default: str) -> str:
    value = (raw or "").strip() or default
    cleaned = _UNDERSCORE_RUN_RE.sub("_", _UNSAFE_RE.sub("_", value))[:MAX_ACCOUNT_LENGTH].strip("_")
    # a trailing underscore would bleed into the "__" separator
    return cleaned or DEFAULT_ACCOUNT


def sanitize_task_id(raw: str) -> str:
    """Return the message id itself when it is a safe file name part.

    Anything else, including ids longer than ``MAX_TASK_ID_LENGTH``, becomes
    ``sha1-<hex digest>`` so ``m/1`` and ``m_1`` stay distinct keys.
    """
    value = raw.strip()
    if len(value) <= MAX_TASK_ID_LENGTH and _SAFE_ID_RE.fullmatch(value):
        return value
    return HASHED_ID_PREFIX + hashlib.sha1(value.encode("utf-8")).hexdigest()


def pending_name(account: str, task_id: str) -> str:
    return f"{account}{SEPARATOR}{task_id}{PENDING_SUFFIX}"


def marker_name(account: str, task_id: str) -> str:
    return f"{account}{SEPARATOR}{task_id}"


def claimed_name(account: str, task_id: str) -> str:
    return f"{account}{SEPARATOR}{task_id}{CLAIMED_SUFFIX}"


def claimed_from_pending(name: str) -> str:
    return name[: -len(PENDING_SUFFIX)] + CLAIMED_SUFFIX


def pending_from_claimed(name: str) -> str:
    return name[: -len(CLAIMED_SUFFIX)] + PENDING_SUFFIX


def account_of(name: str) -> str:
    return name.split(SEPARATOR, 1)[0]


def is_valid_lock_id(lock_id: str) -> bool:
    return bool(_LOCK_RE.match(lock_id)) and ".." not in lock_id
