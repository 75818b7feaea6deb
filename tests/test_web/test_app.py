"""
API tests. The Selenium page factory is replaced with the simulated Maps
panel; TestClient runs background tasks before returning the response.
"""

import pytest
from fastapi.testclient import TestClient

from src.application.progress_tracker import ProgressTracker
from src.infrastructure.config import Settings
from src.infrastructure.diagnostics import DiagnosticStore
from src.web.app import SessionRecord, SessionRegistry, app
from tests.conftest import FakePage, MapsPage, make_reviews, sorted_pools

URL = "https://www.google.com/maps/place/Cafe+Noa"
SMALL = {"target_counts": {"recent": 10, "worst": 10, "best": 10}, "scroll_strategy": "aggressive"}


@pytest.fixture
def pages():
    return []


@pytest.fixture
def client(monkeypatch, pages):
    def factory():
        page = MapsPage(pools=sorted_pools(make_reviews(60)))
        pages.append(page)
        return page

    monkeypatch.setattr(app.state, "page_factory", factory)
    monkeypatch.setattr(app.state, "diagnostic_store", DiagnosticStore())
    monkeypatch.setattr(app.state, "progress_tracker", ProgressTracker())
    monkeypatch.setattr(app.state, "sessions", SessionRegistry(max_sessions=5))
    with TestClient(app) as test_client:
        yield test_client


def start(client, url=URL, config=SMALL):
    response = client.post("/api/collections", json={"url": url, "config": config})
    assert response.status_code == 202
    return response.json()


def test_start_collection_and_read_result(client, pages):
    body = start(client)

    assert body["session_id"].startswith("col-")
    assert body["config"]["target_counts"] == {"recent": 10, "worst": 10, "best": 10}
    assert body["config"]["scroll_strategy"] == "aggressive"

    result = client.get(f"/api/collections/{body['session_id']}/result")
    assert result.status_code == 200
    data = result.json()
    assert data["metadata"]["status"] == "complete"
    assert data["metadata"]["total_collected"] == 30
    assert len(data["per_category"]["worst"]) == 10
    assert pages[0].navigated == [URL]
    assert pages[0].closed


def test_progress_after_completion(client):
    session_id = start(client)["session_id"]

    response = client.get(f"/api/collections/{session_id}/progress")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "complete"
    assert body["progress"]["current_phase"] == "complete"
    assert body["progress"]["overall_percentage"] == 100


def test_camel_case_config(client):
    body = start(client, config={"targetCounts": {"recent": 5, "worst": 0, "best": 0},
                                 "timeouts": {"totalCollection": 60000}})
    assert body["config"]["target_counts"]["recent"] == 5
    assert body["config"]["timeouts"]["total_collection"] == 60.0


def test_bad_strategy_setting_does_not_break_requests(client, monkeypatch):
    monkeypatch.setenv("COLLECTION_SCROLL_STRATEGY", "sideways")
    monkeypatch.setattr("src.web.app.settings", Settings())

    body = start(client)
    assert body["config"]["scroll_strategy"] == "aggressive"

    response = client.post("/api/collections", json={"url": URL})
    assert response.status_code == 202
    assert response.json()["config"]["scroll_strategy"] == "adaptive"


def test_empty_url_is_rejected(client):
    response = client.post("/api/collections", json={"url": "   "})
    assert response.status_code == 422
    assert response.json()["detail"]["issues"] == ["url must not be empty"]


def test_non_maps_url_is_rejected(client, pages):
    response = client.post("/api/collections", json={"url": "https://example.com/restaurant"})
    assert response.status_code == 422
    assert "Google Maps" in response.json()["detail"]["issues"][0]
    assert pages == []


def test_invalid_config_is_rejected(client, pages):
    response = client.post("/api/collections", json={"url": URL, "config": {"target_counts": {"recent": -1}}})
    assert response.status_code == 422
    assert any("recent" in issue for issue in response.json()["detail"]["issues"])

    response = client.post("/api/collections", json={"url": URL, "config": {"scroll_strategy": "sideways"}})
    assert response.status_code == 422
    assert pages == []


def test_unknown_session(client):
    assert client.get("/api/collections/col-missing/progress").status_code == 404
    assert client.get("/api/collections/col-missing/result").status_code == 404


def test_result_not_ready(client):
    app.state.sessions.add(SessionRecord(session_id="col-running", url=URL, status="running"))
    response = client.get("/api/collections/col-running/result")
    assert response.status_code == 409


def test_failed_session_without_result(client):
    app.state.sessions.add(SessionRecord(session_id="col-failed", url=URL, status="error", error="driver crashed"))
    response = client.get("/api/collections/col-failed/result")
    assert response.status_code == 500
    assert response.json()["detail"] == "driver crashed"


def test_page_factory_failure_marks_session_failed(client, monkeypatch):
    def broken():
        raise RuntimeError("chrome not installed")

    monkeypatch.setattr(app.state, "page_factory", broken)
    session_id = start(client)["session_id"]

    response = client.get(f"/api/collections/{session_id}/result")
    assert response.status_code == 500
    assert response.json()["detail"] == "chrome not installed"


def test_diagnostics_for_a_page_without_reviews(client, monkeypatch):
    monkeypatch.setattr(app.state, "page_factory", lambda: FakePage())
    start(client, config={"target_counts": {"recent": 5, "worst": 0, "best": 0}})

    body = client.get("/api/diagnostics", params={"url": URL}).json()
    assert body["entries"]
    assert {e["payload"]["kind"] for e in body["entries"]} == {"exhausted"}
    assert body["stats"]["entry_count"] >= 1


def test_health(client):
    start(client)
    body = client.get("/api/health").json()
    assert body == {"status": "ok", "sessions": 1, "active": []}


def test_registry_drops_oldest():
    registry = SessionRegistry(max_sessions=2)
    assert registry.add(SessionRecord("a", URL)) is None
    assert registry.add(SessionRecord("b", URL)) is None
    assert registry.add(SessionRecord("c", URL)) == "a"
    assert registry.get("a") is None
    assert len(registry) == 2
