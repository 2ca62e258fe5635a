from __future__ import annotations

from fastapi.testclient import TestClient

from replyqueue.apps.api.main import app
from replyqueue.core.activity.log import ActivityLog


def test_has_reply_reports_segment(tmp_path) -> None:
    ActivityLog(tmp_path / "activity").append_event("SENT", {"chat_id": "c-1", "author_id": "42"})

    with TestClient(app) as client:
        response = client.get("/logs/has", params={"chat": "c-1", "author": "42"})

    body = response.json()
    assert body["ok"] is True
    assert body["exists"] is True
    assert body["file"].startswith("logs.")
    assert body["strategy"] == "substring"


def test_has_reply_without_evidence() -> None:
    with TestClient(app) as client:
        response = client.get("/logs/has", params={"chat": "c-1", "author": "42"})

    assert response.json() == {"ok": True, "exists": False}


def test_has_reply_requires_both_ids() -> None:
    with TestClient(app) as client:
        response = client.get("/logs/has", params={"chat": "c-1", "author": " "})

    assert response.status_code == 400
    assert response.json()["detail"] == "chat & author required"
