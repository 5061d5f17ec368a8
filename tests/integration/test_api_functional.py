import pytest
from fastapi.testclient import TestClient

from docspace_agent.api.main import create_app
from docspace_agent.config import Settings


@pytest.fixture()
def client(tmp_path):
    settings = Settings(data_dir=tmp_path / "data")
    with TestClient(create_app(settings)) as test_client:
        yield test_client


def _uploads(client: TestClient):
    return client.app.state.docspace.settings.workspace_dir


def test_health_reports_offline_model(client) -> None:
    payload = client.get("/api/health").json()

    assert payload["status"] == "ok"
    assert payload["document_count"] == 0
    assert payload["llm_configured"] is False


def test_upload_search_chat_and_delete(client) -> None:
    upload = client.post(
        "/api/documents/upload",
        files={"file": ("policy.txt", b"Company policy requires encryption of customer data at rest.\n", "text/plain")},
    )
    assert upload.status_code == 200
    body = upload.json()
    assert body["status"] == "indexed"
    assert body["filename"].endswith("-policy.txt")
    assert (_uploads(client) / body["filename"]).is_file()

    search = client.get("/api/documents/search", params={"query": "customer data encryption", "top_k": 3})
    results = search.json()["results"]
    assert results[0]["docId"] == body["id"]
    assert results[0]["lineStart"] == 1

    chat = client.post(
        "/api/agent/chat",
        json={"message": "What does the policy require for customer data?"},
        headers={"X-Session-Id": "s1"},
    )
    assert chat.status_code == 200
    answer = chat.json()
    assert answer["response"].startswith("From your workspace documents:")
    assert answer["citations"][0]["filename"] == body["filename"]
    assert answer["usedGeneralKnowledge"] is False
    assert "timestamp" in answer

    deleted = client.delete(f"/api/documents/{body['id']}")
    assert deleted.status_code == 200
    assert deleted.json()["deletedFiles"] == [body["filename"]]
    assert client.get("/api/health").json()["document_count"] == 0


def test_unparseable_upload_is_kept_with_warning(client) -> None:
    response = client.post(
        "/api/documents/upload", files={"file": ("photo.png", b"\x89PNG", "image/png")}
    )

    payload = response.json()
    assert payload["status"] == "uploaded"
    assert payload["id"] is None
    assert "warning" in payload


def test_index_batch_list_and_clear_all(client) -> None:
    batch = client.post(
        "/api/documents/index-batch",
        json=[
            {"filename": "a.txt", "content": "alpha beta"},
            {"filename": "", "content": "skipped"},
            {"filename": "b.txt", "content": "gamma delta"},
        ],
    )
    assert batch.json()["count"] == 2
    (_uploads(client) / "loose.txt").write_text("x", encoding="utf-8")

    listed = client.get("/api/documents").json()["documents"]
    assert sorted(item["filename"] for item in listed) == ["a.txt", "b.txt"]

    cleared = client.post("/api/documents/clear-all")
    assert cleared.json()["success"] is True
    assert client.get("/api/health").json()["document_count"] == 0
    assert [p for p in _uploads(client).iterdir() if p.is_file()] == []


def test_meta_question_lists_workspace(client) -> None:
    (_uploads(client) / "a.md").write_text("# A", encoding="utf-8")
    (_uploads(client) / "b.pdf").write_bytes(b"%PDF-1.4")

    payload = client.post("/api/agent/chat", json={"message": "What files do I have?"}).json()

    assert payload["response"] == "Here are the documents in your workspace:\n\n• a.md\n• b.pdf"
    assert payload["citations"] == []


def test_plain_chat_without_documents_uses_general_knowledge(client) -> None:
    payload = client.post("/api/chat", json={"message": "Tell me a joke"}).json()

    assert payload["usedGeneralKnowledge"] is True
    assert payload["toolCalls"] == []


def test_error_mapping(client) -> None:
    missing = client.delete("/api/documents/nope.txt")
    assert missing.status_code == 404
    assert "error" in missing.json()

    assert client.post("/api/agent/chat", json={}).status_code == 422
    assert client.get("/api/documents/search", params={"query": "x", "top_k": 0}).status_code == 422

    not_found = client.post(
        "/api/documents/insert-text", json={"filename": "none.txt", "text": "X", "line": 1}
    )
    assert not_found.status_code == 404

    (_uploads(client) / "notes.txt").write_text("one\ntwo", encoding="utf-8")
    bad_line = client.post(
        "/api/documents/insert-text", json={"filename": "notes.txt", "text": "X", "line": 0}
    )
    assert bad_line.status_code == 400
    ok = client.post(
        "/api/documents/insert-text", json={"filename": "notes.txt", "text": "X", "line": 3}
    )
    assert ok.json()["success"] is True


def test_session_reset_clears_history(client) -> None:
    client.post("/api/chat", json={"message": "hello", "sessionId": "abc"})

    reset = client.post("/api/session/reset", headers={"X-Session-Id": "abc"})
    again = client.post("/api/session/reset", json={"sessionId": "abc"})

    assert reset.json() == {"status": "cleared", "existed": True}
    assert again.json()["existed"] is False
