from __future__ import annotations

import os
import time
from pathlib import Path
from typing import Callable, Iterator

import pytest

from replyqueue.apps.api import deps


@pytest.fixture(autouse=True)
def isolated_state(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[Path]:
    monkeypatch.setenv("REPLYQUEUE_STATE_DIR", str(tmp_path))
    monkeypatch.setenv("REPLYQUEUE_AUTH_MODE", "off")
    monkeypatch.setenv("REPLYQUEUE_LOG_TO_FILE", "off")
    for name in (
        "REPLYQUEUE_CONFIG",
        "REPLYQUEUE_TASK_KEY",
        "REPLYQUEUE_WEBHOOK_SECRET",
        "REPLYQUEUE_TASK_DIR",
        "REPLYQUEUE_ACTIVITY_LOG_DIR",
        "REPLYQUEUE_CLAIM_WINDOW",
    ):
        monkeypatch.delenv(name, raising=False)
    deps.clear_caches()
    yield tmp_path
    deps.clear_caches()


@pytest.fixture
def set_age() -> Callable[[Path, float], None]:
    """Backdate a file's mtime so newest-first ordering is deterministic."""

    def _set_age(path: Path, seconds_ago: float) -> None:
        stamp = time.time() - seconds_ago
        os.utime(path, (stamp, stamp))

    return _set_age
