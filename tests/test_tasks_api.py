from __future__ import annotations

from fastapi.testclient import TestClient

from replyqueue.apps.api import deps
from replyqueue.apps.api.main import app
from replyqueue.core.activity.log import ActivityLog


def _enable_auth(monkeypatch, key: str | None = "s3cret") -> None:
    monkeypatch.setenv("REPLYQUEUE_AUTH_MODE", "token")
    if key is None:
        monkeypatch.delenv("REPLYQUEUE_TASK_KEY", raising=False)
    else:
        monkeypatch.setenv("REPLYQUEUE_TASK_KEY", key)
    deps.clear_caches()


def _enqueue(client: TestClient, **fields) -> dict:
    payload = {"chat_id": "c-1", "author_id": "42", **fields}
    response = client.post("/tasks/enqueue", json=payload)
    assert response.status_code == 200
    return response.json()["task"]


def test_task_routes_require_key(monkeypatch) -> None:
    _enable_auth(monkeypatch)

    with TestClient(app) as client:
        response = client.get("/tasks/claim")
        assert response.status_code == 401
        assert response.json() == {"ok": False, "error": "unauthorized"}

        assert client.get("/tasks/claim", headers={"X-Queue-Key": "wrong"}).status_code == 401
        assert client.get("/tasks/claim", headers={"X-Queue-Key": "s3cret"}).status_code == 200
        assert client.get("/tasks/claim", params={"key": "s3cret"}).status_code == 200
        assert client.get("/logs/has", params={"chat": "c", "author": "a"}).status_code == 401


def test_auth_without_configured_key_rejects_everyone(monkeypatch) -> None:
    _enable_auth(monkeypatch, key=None)

    with TestClient(app) as client:
        assert client.get("/tasks/claim", headers={"X-Queue-Key": ""}).status_code == 401
        assert client.get("/tasks/claim", params={"key": "anything"}).status_code == 401


def test_health_routes_are_open(monkeypatch) -> None:
    _enable_auth(monkeypatch)

    with TestClient(app) as client:
        assert client.get("/").json() == {"ok": True, "up": True}
        assert client.get("/healthz").json() == {"ok": True}


def test_claim_on_empty_queue(tmp_path) -> None:
    with TestClient(app) as client:
        response = client.post("/tasks/claim")

    assert response.status_code == 200
    assert response.json() == {"ok": True, "found": False}


def test_enqueue_claim_done_flow(tmp_path) -> None:
    with TestClient(app) as client:
        task = _enqueue(client, reply_text="Добрый день")

        claimed = client.post("/tasks/claim", json={}).json()
        assert claimed["found"] is True
        assert claimed["task"]["id"] == task["id"]
        assert claimed["task"]["reply_text"] == "Добрый день"
        assert (tmp_path / "tasks" / claimed["lock_id"]).exists()

        assert client.post("/tasks/claim").json()["found"] is False

        first = client.post("/tasks/done", json={"lock": claimed["lock_id"]})
        second = client.post("/tasks/done", params={"lock": claimed["lock_id"]})

    assert first.json() == {"ok": True, "changed": True}
    assert second.json() == {"ok": True, "changed": False}
    assert list((tmp_path / "tasks").iterdir()) == []


def test_enqueue_uses_default_reply_and_account() -> None:
    with TestClient(app) as client:
        task = _enqueue(client)

    assert task["account"] == "main"
    assert task["reply_text"] == "Здравствуйте!"


def test_enqueue_requires_chat_id() -> None:
    with TestClient(app) as client:
        response = client.post("/tasks/enqueue", json={"author_id": "42"})

    assert response.status_code == 400
    assert response.json()["detail"] == "chat_id required"


def test_enqueue_rejects_non_json_body() -> None:
    with TestClient(app) as client:
        response = client.post("/tasks/enqueue", content=b"{oops", headers={"Content-Type": "application/json"})

    assert response.status_code == 400


def test_enqueue_with_message_id_is_idempotent() -> None:
    with TestClient(app) as client:
        _enqueue(client, message_id="m-1")
        again = client.post("/tasks/enqueue", json={"chat_id": "c-1", "message_id": "m-1"})

    assert again.status_code == 409
    assert again.json()["error"] == "already_exists"


def test_requeue_makes_task_claimable_again() -> None:
    with TestClient(app) as client:
        _enqueue(client)
        lock_id = client.post("/tasks/claim").json()["lock_id"]

        assert client.post("/tasks/requeue", json={"lock": lock_id}).json()["changed"] is True
        assert client.post("/tasks/requeue", json={"lock": lock_id}).json()["changed"] is False
        assert client.post("/tasks/claim").json()["lock_id"] == lock_id


def test_claim_by_account_via_query() -> None:
    with TestClient(app) as client:
        _enqueue(client, account="hr-a")
        _enqueue(client, account="hr-b", chat_id="c-b")

        response = client.get("/tasks/claim", params={"account": "hr-b"})

    assert response.json()["task"]["chat_id"] == "c-b"


def test_invalid_lock_is_bad_request() -> None:
    with TestClient(app) as client:
        response = client.post("/tasks/done", json={"lock": "../escape.json.taking"})

    assert response.status_code == 400
    assert response.json()["error"] == "invalid_lock"


def test_complete_waits_for_evidence(tmp_path) -> None:
    with TestClient(app) as client:
        _enqueue(client)
        lock_id = client.post("/tasks/claim").json()["lock_id"]

        pending = client.post("/tasks/complete", json={"lock": lock_id})
        assert pending.status_code == 412
        assert pending.json()["confirmed"] is False
        assert pending.json()["error"] == "precondition_not_met"
        assert (tmp_path / "tasks" / lock_id).exists()

        ActivityLog(tmp_path / "activity").append_event("SENT", {"chat_id": "c-1", "author_id": "42"})
        done = client.post("/tasks/complete", json={"lock": lock_id})

    assert done.status_code == 200
    body = done.json()
    assert body["ok"] is True
    assert body["confirmed"] is True
    assert body["strategy"] == "substring"
    assert not (tmp_path / "tasks" / lock_id).exists()


def test_complete_reports_conflict_and_missing() -> None:
    with TestClient(app) as client:
        _enqueue(client)
        lock_id = client.post("/tasks/claim").json()["lock_id"]

        conflict = client.post("/tasks/complete", json={"lock": lock_id, "chat": "other"})
        missing = client.post("/tasks/complete", json={"lock": "main__gone.json.taking"})

    assert conflict.status_code == 409
    assert conflict.json()["error"] == "conflict"
    assert missing.status_code == 404


def test_debug_lists_without_changing_state(tmp_path) -> None:
    with TestClient(app) as client:
        _enqueue(client)
        _enqueue(client, chat_id="c-2")
        client.post("/tasks/claim")

        listing = client.get("/tasks/debug").json()

    assert listing["task_dir"] == str(tmp_path / "tasks")
    assert sorted(entry["state"] for entry in listing["entries"]) == ["claimed", "pending"]


def test_correlation_id_is_echoed() -> None:
    with TestClient(app) as client:
        response = client.get("/healthz", headers={"X-Correlation-ID": "abc-123"})

    assert response.headers["X-Correlation-ID"] == "abc-123"


def test_healthz_full_reports_directories(tmp_path) -> None:
    with TestClient(app) as client:
        payload = client.get("/healthz/full").json()

    assert payload["ok"] is True
    assert payload["task_dir"]["path"] == str(tmp_path / "tasks")
    assert payload["task_dir"]["writable"] is True
    assert payload["claim"]["window"] == 3


def test_key_may_be_sent_in_json_body(monkeypatch) -> None:
    _enable_auth(monkeypatch)

    with TestClient(app) as client:
        denied = client.post("/tasks/enqueue", json={"key": "wrong", "chat_id": "c-9"})
        created = client.post("/tasks/enqueue", json={"key": "s3cret", "chat_id": "c-9"})
        claimed = client.post("/tasks/claim", json={"key": "s3cret"})

    assert denied.status_code == 401
    assert created.status_code == 200
    assert created.json()["task"]["chat_id"] == "c-9"
    assert claimed.json()["task"]["chat_id"] == "c-9"


def test_header_key_takes_precedence_over_body(monkeypatch) -> None:
    _enable_auth(monkeypatch)

    with TestClient(app) as client:
        response = client.post("/tasks/claim", json={"key": "s3cret"}, headers={"X-Queue-Key": "wrong"})

    assert response.status_code == 401
