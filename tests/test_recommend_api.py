import httpx
import pytest
import respx
from fastapi.testclient import TestClient

from sizefinder import main
from sizefinder.main import app
from sizefinder.services.analytics import SupabaseSink
from sizefinder.services.recommender import Recommender


client = TestClient(app)

ENDPOINT = "https://project.supabase.co/rest/v1/size_quiz_responses"


@pytest.fixture
def recommender():
    original = app.state.recommender
    app.state.recommender = Recommender()
    yield app.state.recommender
    app.state.recommender = original


@pytest.mark.parametrize("path", ["/v1/size/recommend", "/api/size/recommend"])
def test_recommend_ok(recommender, path):
    r = client.post(path, json={"unit": "metric", "bust": 90, "waist": 74, "hip": 98})
    assert r.status_code == 200
    data = r.json()
    assert data["ok"] is True
    assert data["size"] == "M"
    assert data["coverage"] == "knee length"
    assert data["fitNotes"].startswith("We suggest **M** in a **knee length** style.")


def test_recommend_preference_wins(recommender):
    r = client.post("/v1/size/recommend", json={
        "style_preference": "burkini",
        "modesty": "low",
        "activity": "beach",
        "height_cm": 165,
        "weight_kg": 60,
    })
    data = r.json()
    assert data["coverage"] == "burkini"
    assert data["size"] == "M"
    assert "with full coverage." in data["fitNotes"]


def test_recommend_empty_body_defaults(recommender):
    r = client.post("/v1/size/recommend")
    assert r.status_code == 200
    assert r.json()["size"] == "M"


def test_recommend_mistyped_fields_ignored(recommender):
    r = client.post("/v1/size/recommend", json={"bust": "lots", "tummy_control": "on", "activity": ["beach"]})
    assert r.status_code == 200
    data = r.json()
    assert data["size"] == "M"
    assert data["coverage"] == "knee length"


def test_recommend_invalid_json(recommender):
    r = client.post("/v1/size/recommend", content=b"{not json", headers={"content-type": "application/json"})
    assert r.status_code == 400
    data = r.json()
    assert data["ok"] is False
    assert "valid JSON" in data["error"]


def test_recommend_non_object(recommender):
    r = client.post("/v1/size/recommend", json=[1, 2, 3])
    assert r.status_code == 400
    assert r.json() == {"ok": False, "error": "Request body must be a JSON object"}


def test_recommend_engine_failure_is_client_error():
    class Exploding(Recommender):
        def evaluate(self, normalized):
            raise RuntimeError("chart unavailable")

    original = app.state.recommender
    app.state.recommender = Exploding()
    try:
        r = client.post("/v1/size/recommend", json={"bust": 90})
    finally:
        app.state.recommender = original
    assert r.status_code == 400
    assert r.json() == {"ok": False, "error": "chart unavailable"}


@respx.mock
def test_recommend_survives_analytics_outage():
    respx.post(ENDPOINT).mock(return_value=httpx.Response(503))
    original = app.state.recommender
    sink = SupabaseSink("https://project.supabase.co", "key")
    app.state.recommender = Recommender(sink=sink)
    try:
        # entering the client runs the app lifespan, which closes the sink on exit
        with TestClient(app) as lifespan_client:
            r = lifespan_client.post("/v1/size/recommend", json={"bra": "34B", "modesty": "high"})
    finally:
        app.state.recommender = original
    assert sink._client.is_closed
    assert r.status_code == 200
    data = r.json()
    assert data["ok"] is True
    assert data["coverage"] == "burkini"


def test_rate_limit(recommender, monkeypatch):
    monkeypatch.setattr(main.settings, "rate_limit_burst", 2)
    monkeypatch.setattr(main.settings, "rate_limit_per_min", 1)
    assert client.post("/v1/size/recommend", json={}).status_code == 200
    assert client.post("/v1/size/recommend", json={}).status_code == 200
    r = client.post("/v1/size/recommend", json={})
    assert r.status_code == 429
    assert r.json()["ok"] is False


def test_huge_and_tiny_numbers_still_recommend(recommender):
    r = client.post("/v1/size/recommend", json={"bust": 10 ** 400, "height_cm": 165, "weight_kg": 60})
    assert r.status_code == 200
    assert r.json()["size"] == "M"

    r = client.post("/v1/size/recommend", json={"height_cm": 1e-200, "weight_kg": 60})
    assert r.status_code == 200
    assert r.json()["size"] == "M"


def test_wrong_method_uses_error_envelope():
    r = client.get("/v1/size/recommend")
    assert r.status_code == 405
    assert r.json() == {"ok": False, "error": "Method Not Allowed"}


def test_unknown_path_uses_error_envelope():
    r = client.post("/v1/size/recommendation", json={})
    assert r.status_code == 404
    assert r.json() == {"ok": False, "error": "Not Found"}


def test_rate_limit_buckets_are_pruned(monkeypatch):
    monkeypatch.setattr(main, "MAX_BUCKETS", 3)
    now = main.time.time()
    # two idle clients whose buckets have refilled, one still drained
    main._buckets.update({
        "10.0.0.1": (0.0, now - 3600),
        "10.0.0.2": (5.0, now - 3600),
        "10.0.0.3": (0.0, now),
    })

    main._rate_limit("10.0.0.4", requests_per_min=60, burst=30)

    assert set(main._buckets) == {"10.0.0.3", "10.0.0.4"}


def test_rate_limit_buckets_capped_when_all_busy(monkeypatch):
    monkeypatch.setattr(main, "MAX_BUCKETS", 2)
    now = main.time.time()
    main._buckets.update({
        "10.0.0.1": (0.0, now - 1),
        "10.0.0.2": (0.0, now),
    })

    main._rate_limit("10.0.0.3", requests_per_min=1, burst=30)

    assert set(main._buckets) == {"10.0.0.2", "10.0.0.3"}
