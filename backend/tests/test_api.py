import functools
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from app.api import routes_ingest, routes_recipes
from app.core.config import settings
from app.main import app
from app.models.schemas import MacroEstimate
from app.services import jobs, llm

RECIPE = {
    "title": "Chicken Rice Bowl",
    "servings": 2,
    "ingredients": [{"name": "chicken thigh", "quantity": "300 g"}],
    "steps": ["Grill chicken."],
}


@pytest.fixture
def client(store, monkeypatch):
    # 요청 안에서 백그라운드 태스크를 띄우지 않도록 (처리는 test_pipeline에서)
    monkeypatch.setattr(routes_ingest, "create_job", functools.partial(jobs.create_job, schedule=False))
    return TestClient(app)


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"ok": True, "job_store": "file", "openai": False, "fdc": False}


def test_ingest_requires_url(client):
    assert client.post("/api/ingest", json={}).json() == {"error": "url is required"}
    r = client.post("/api/ingest", json={"url": 42})
    assert r.status_code == 400


def test_ingest_rejects_other_hosts(client):
    r = client.post("/api/ingest", json={"url": "https://www.youtube.com/watch?v=1"})
    assert r.status_code == 400
    assert r.json() == {"error": "Only TikTok links are supported right now"}


def test_ingest_queues_job_and_poll(client, store):
    r = client.post("/api/ingest", json={"url": "https://www.tiktok.com/@chef/video/123?lang=en"})
    assert r.status_code == 202
    body = r.json()
    assert body["status"] == "queued"

    job = client.get(f"/api/jobs/{body['jobId']}").json()
    assert job["id"] == body["jobId"]
    assert job["provider"] == "tiktok"
    assert job["sourceUrl"].startswith("https://www.tiktok.com/@chef/video/123")
    assert "?" not in job["sourceUrl"]


def test_unknown_job_is_404(client):
    r = client.get("/api/jobs/does-not-exist")
    assert r.status_code == 404
    assert r.json() == {"error": "Job not found"}


def test_upload_video(client):
    r = client.post("/api/upload-video", files={"video": ("clip.mp4", b"fake-bytes", "video/mp4")})
    assert r.status_code == 202
    job = client.get(f"/api/jobs/{r.json()['jobId']}").json()
    assert job["provider"] == "upload"
    assert job["originalName"] == "clip.mp4"
    saved = Path(job["sourcePath"])
    assert saved.parent == Path(settings.UPLOADS_DIR)
    assert saved.suffix == ".mp4"
    assert saved.read_bytes() == b"fake-bytes"


def test_upload_video_validation(client):
    assert client.post("/api/upload-video").json() == {"error": "video file is required"}

    r = client.post("/api/upload-video", files={"video": ("notes.txt", b"hello", "text/plain")})
    assert r.status_code == 400
    assert r.json() == {"error": "Only video files are supported"}

    r = client.post("/api/upload-video", files={"video": ("empty.mp4", b"", "video/mp4")})
    assert r.status_code == 400
    assert r.json() == {"error": "Uploaded file is empty"}


def test_upload_video_too_large(client, monkeypatch):
    monkeypatch.setattr(settings, "MAX_UPLOAD_MB", 0)
    r = client.post("/api/upload-video", files={"video": ("clip.mp4", b"1234", "video/mp4")})
    assert r.status_code == 413
    assert r.json() == {"error": "File is too large (max 0 MB)"}
    assert list(Path(settings.UPLOADS_DIR).iterdir()) == []


def test_upload_recipe_image(client):
    r = client.post("/api/upload-recipe-image", files={"image": ("card.jpg", b"\xff\xd8\xff", "image/jpeg")})
    assert r.status_code == 202
    job = client.get(f"/api/jobs/{r.json()['jobId']}").json()
    assert job["provider"] == "image"
    assert job["mimeType"] == "image/jpeg"

    r = client.post("/api/upload-recipe-image", files={"image": ("clip.mp4", b"x", "video/mp4")})
    assert r.json() == {"error": "Only image files are supported"}


def test_modify_invalid_goal(client):
    r = client.post("/api/recipes/modify", json={"recipe": RECIPE, "goalType": "shred"})
    assert r.status_code == 400
    assert r.json() == {"error": "Invalid goal type: shred"}


def test_modify_without_openai_key_is_503(client):
    r = client.post("/api/recipes/modify", json={"recipe": RECIPE, "goalType": "cut"})
    assert r.status_code == 503
    assert "OPENAI_API_KEY is missing" in r.json()["error"]


def test_modify_model_failure_is_502(client, monkeypatch):
    async def broken(messages, temperature, model=None):
        raise RuntimeError("upstream timeout")

    monkeypatch.setattr(llm, "_chat_json", broken)
    r = client.post("/api/recipes/modify", json={"recipe": RECIPE, "goalType": "bulk"})
    assert r.status_code == 502
    assert r.json() == {"error": "Failed to modify recipe: upstream timeout"}


def test_modify_success(client, monkeypatch):
    async def fake(messages, temperature, model=None):
        return {"edits": [], "summary": {"totalChanges": 0}, "warnings": []}

    monkeypatch.setattr(llm, "_chat_json", fake)
    r = client.post("/api/recipes/modify", json={
        "recipe": RECIPE, "goalType": "lean_bulk", "userContext": {"dietStyle": "vegan"},
    })
    assert r.status_code == 200
    assert r.json()["summary"] == {"totalChanges": 0}
    assert "substitutionPlan" in r.json()


def test_recipe_macros_without_fdc_key_is_503(client):
    r = client.post("/api/recipes/macros", json={"recipe": RECIPE})
    assert r.status_code == 503
    assert r.json() == {"error": "FDC_API_KEY missing; cannot estimate macros."}


def test_macro_targets(client):
    r = client.post("/api/macros/targets", json={
        "biologicalSex": "male", "age": 30, "heightCm": 180, "weightKg": 80,
        "activityLevel": "moderate", "goal": "bulk", "pace": 3,
    })
    assert r.status_code == 200
    body = r.json()
    assert body["bmr"] == 1780
    assert body["tdee"] == 2759
    assert body["goalAdjustment"] == 300
    assert body["macros"]["calories"] == 3059
    assert body["isComplete"] is True
    assert body["goalName"] == "Bulk"


def test_macro_targets_incomplete_profile(client):
    body = client.post("/api/macros/targets", json={"age": 30}).json()
    assert body["macros"] is None
    assert body["isComplete"] is False
    assert "Weight" in body["missingFields"]


def test_validation_errors_use_error_envelope(client):
    r = client.post("/api/macros/targets", json={"pace": 9})
    assert r.status_code == 400
    assert r.json()["error"].startswith("pace:")


def test_recipe_bodies_accept_numeric_quantity_and_fractional_servings(client, monkeypatch):
    seen = {}

    async def estimate(recipe, include_yield_factors=True):
        seen["recipe"] = recipe
        return MacroEstimate(servings=recipe.servings)

    monkeypatch.setattr(routes_recipes, "estimate_macros", estimate)
    loose = {**RECIPE, "servings": 2.5, "ingredients": [{"name": "eggs", "quantity": 2}]}

    r = client.post("/api/recipes/macros", json={"recipe": loose})
    assert r.status_code == 200
    assert r.json()["servings"] == 2
    assert seen["recipe"].ingredients[0].quantity == "2"

    async def fake(messages, temperature, model=None):
        assert "1. 2 eggs" in messages[0]["content"]
        return {"edits": []}

    monkeypatch.setattr(llm, "_chat_json", fake)
    r = client.post("/api/recipes/modify", json={"recipe": loose, "goalType": "cut"})
    assert r.status_code == 200
