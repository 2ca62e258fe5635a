from __future__ import annotations

import json

from replyqueue.apps.cli.admin import main
from replyqueue.core.activity.log import ActivityLog
from replyqueue.core.queue.schemas import TaskDraft
from replyqueue.core.queue.store import TaskStore


def test_list_filters_stale_claims(tmp_path, set_age, capsys) -> None:
    store = TaskStore(tmp_path / "tasks")
    store.create(TaskDraft(chat_id="c-1", reply_text="hi"))
    store.create(TaskDraft(chat_id="c-2", reply_text="hi"))
    claimed = store.claim()
    set_age(tmp_path / "tasks" / claimed.lock_id, 3600)

    code = main(["--json", "list", "--state", "claimed", "--older-than", "600"])

    entries = json.loads(capsys.readouterr().out)
    assert code == 0
    assert [entry["name"] for entry in entries] == [claimed.lock_id]


def test_requeue_returns_stuck_claim(tmp_path, capsys) -> None:
    store = TaskStore(tmp_path / "tasks")
    store.create(TaskDraft(chat_id="c-1", reply_text="hi"))
    lock_id = store.claim().lock_id

    assert main(["requeue", lock_id]) == 0
    assert "requeued" in capsys.readouterr().out
    assert store.claim().lock_id == lock_id


def test_requeue_rejects_bad_lock(capsys) -> None:
    assert main(["requeue", "../etc.json.taking"]) == 2
    assert "invalid lock" in capsys.readouterr().err


def test_has_reply_exit_status(tmp_path, capsys) -> None:
    ActivityLog(tmp_path / "activity").append("chat_id=c-1 author_id=42\n")

    assert main(["has-reply", "c-1", "42"]) == 0
    assert "seen in logs." in capsys.readouterr().out
    assert main(["has-reply", "c-1", "43"]) == 1


def test_explicit_directories_override_settings(tmp_path, capsys) -> None:
    other = tmp_path / "elsewhere"
    TaskStore(other).create(TaskDraft(chat_id="c-1", reply_text="hi"))

    assert main(["--task-dir", str(other), "list"]) == 0
    assert "1 entries in" in capsys.readouterr().out
