"""Tests for the HTTP API."""
import pytest
from fastapi.testclient import TestClient

from conftest import FakeObserver
from folder_search_server.dependencies import build_services
from folder_search_server.main import create_app
from folder_search_server.services import shell


@pytest.fixture
def services(temp_db, fake_ocr):
    return build_services(temp_db, ocr_service=fake_ocr, observer_factory=FakeObserver,
                          stability_threshold=0.05, poll_interval=0.01)


@pytest.fixture
def client(services):
    """Create test client around a temporary database."""
    with TestClient(create_app(services)) as client:
        yield client


@pytest.fixture
def indexed(client, sample_tree):
    response = client.post("/api/folders/index", json={"folder_path": str(sample_tree)})
    assert response.status_code == 200
    return sample_tree.resolve()


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_index_folder(client, sample_tree):
    response = client.post("/api/folders/index", json={"folder_path": str(sample_tree)})

    assert response.status_code == 200
    data = response.json()
    assert data == {"folder_path": str(sample_tree.resolve()), "status": "indexed", "total": 4, "indexed": 4}


def test_index_missing_folder(client, tmp_path):
    response = client.post("/api/folders/index", json={"folder_path": str(tmp_path / "gone")})
    assert response.status_code == 404


def test_folders_and_status(client, indexed):
    folders = client.get("/api/folders").json()
    assert folders["folders"] == [{"folder_path": str(indexed), "state": "watching"}]
    assert folders["last_indexed_folder"] == str(indexed)

    status = client.get("/api/indexing/status").json()
    assert status["is_indexing"] is False
    assert status["folders"] == {str(indexed): "watching"}
    assert status["total_files"] == 4
    assert status["watching"] == [str(indexed)]
    assert ".json" in status["extractable_extensions"]


def test_remove_folder(client, indexed):
    response = client.delete("/api/folders", params={"folder_path": str(indexed)})

    assert response.status_code == 200
    assert response.json()["deleted_count"] == 4
    assert client.get("/api/files").json()["count"] == 0
    assert client.get("/api/folders").json()["folders"] == []
    assert FakeObserver.instances[-1].stopped


def test_search(client, indexed):
    response = client.post("/api/search", json={"text": "budget"})

    assert response.status_code == 200
    data = response.json()
    assert data["query"] == "budget"
    assert data["count"] == 1
    result = data["results"][0]
    assert result["file"]["path"] == str(indexed / "notes" / "meeting.md")
    assert "embedding" not in result["file"]
    assert "<mark>budget</mark>" in result["snippet"]
    assert result["highlights"][0]["text"] == "budget"


def test_search_with_filters(client, indexed):
    response = client.post("/api/search", json={
        "text": "invoice",
        "filters": {"file_types": [".png"], "folders": [str(indexed)]}
    })
    assert [r["file"]["name"] for r in response.json()["results"]] == ["scan.png"]

    response = client.post("/api/search", json={"text": "invoice", "filters": {"file_types": [".md"]}})
    assert response.json()["count"] == 0


def test_search_rejects_empty_text(client):
    assert client.post("/api/search", json={"text": ""}).status_code == 422


def test_suggestions(client, indexed):
    response = client.get("/api/search/suggestions", params={"partial": "MEET"})
    assert response.json() == {"partial": "MEET", "suggestions": ["meeting.md"]}


def test_ai_placeholder(client):
    response = client.post("/api/search/ai", json={"query": "budget", "context": []})

    assert response.status_code == 200
    assert response.json()["text"] == 'Search for: "budget". 0 results found.'


def test_files_listing_and_delete(client, indexed):
    files = client.get("/api/files").json()
    assert files["count"] == 4
    assert "content" not in files["files"][0]

    target = str(indexed / "page.html")
    assert client.delete("/api/file", params={"path": target}).status_code == 200
    assert client.delete("/api/file", params={"path": target}).status_code == 404
    assert client.get("/api/files").json()["count"] == 3


def test_reindex_file(client, indexed):
    response = client.post("/api/file/reindex", json={"path": str(indexed / "notes" / "todo.txt")})
    assert response.json() == {"status": "indexed", "path": str(indexed / "notes" / "todo.txt")}

    missing = client.post("/api/file/reindex", json={"path": str(indexed / "nope.txt")})
    assert missing.status_code == 404


def test_events(client, indexed):
    data = client.get("/api/events", params={"since": 0}).json()
    names = [event["name"] for event in data["events"]]

    assert names[0] == "indexing:started"
    assert "indexing:completed" in names
    assert data["last_seq"] == data["events"][-1]["seq"]
    assert client.get("/api/events", params={"since": data["last_seq"]}).json()["events"] == []


def test_config_roundtrip(client, services, fake_ocr):
    assert client.get("/api/config").json()["ui"]["theme"] == "auto"

    response = client.put("/api/config", json={"ui": {"theme": "dark"},
                                              "indexing": {"max_file_size": "1MB", "ocr_languages": ["deu"]}})
    assert response.status_code == 200
    assert response.json()["ui"]["theme"] == "dark"
    assert services.indexing.max_file_size == 1024 * 1024
    assert fake_ocr.languages == ["deu"]

    assert client.put("/api/config", json={"ui": {"theme": "neon"}}).status_code == 422
    assert client.put("/api/config", json={"indexing": {"max_file_size": "lots"}}).status_code == 422
    assert client.get("/api/config").json()["indexing"]["max_file_size"] == "1MB"

    reset = client.post("/api/config/reset").json()
    assert reset["ui"]["theme"] == "auto"
    assert services.indexing.max_file_size == 100 * 1024 * 1024


def test_ocr_languages(client):
    data = client.get("/api/config/ocr-languages").json()
    assert data == {"languages": ["eng", "fra"], "supported": ["eng", "fra", "deu"]}


def test_stats(client, indexed):
    stats = client.get("/api/stats/").json()

    assert stats["files_count"] == 4
    assert stats["ocr_files_count"] == 1
    assert len(stats["recent_files"]) == 4
    assert stats["db_path"].endswith("test.db")


def test_stats_logs(client, indexed):
    client.post("/api/search", json={"text": "budget"})
    logs = client.get("/api/stats/logs", params={"limit": 5}).json()
    assert logs["logs"][0]["message"] == "Search query"


def test_clear_index(client, indexed):
    response = client.delete("/api/stats/clear-index")

    assert response.status_code == 200
    assert response.json()["deleted_count"] == 4
    assert client.post("/api/search", json={"text": "budget"}).json()["count"] == 0
    assert FakeObserver.instances[-1].stopped


def test_vacuum_after_remove(client, indexed):
    client.delete("/api/folders", params={"folder_path": str(indexed)})

    response = client.post("/api/stats/vacuum")

    assert response.status_code == 200
    assert response.json() == {"status": "success"}
    assert client.get("/api/stats/").json()["files_count"] == 0


def test_open_and_reveal(client, tmp_path, monkeypatch):
    launched = []
    monkeypatch.setattr(shell.sys, "platform", "linux")
    monkeypatch.setattr(shell, "_run", launched.append)
    target = tmp_path / "a.txt"
    target.write_text("x")

    assert client.post("/api/files/open", json={"path": str(target)}).status_code == 200
    assert client.post("/api/files/reveal", json={"path": str(target)}).status_code == 200
    assert launched == [["xdg-open", str(target)], ["xdg-open", str(tmp_path)]]

    assert client.post("/api/files/open", json={"path": str(tmp_path / "missing")}).status_code == 404


def test_server_logs(client):
    client.get("/health")
    data = client.get("/api/logs", params={"lines": 5}).json()
    assert data["count"] == len(data["logs"])
