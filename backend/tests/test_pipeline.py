import asyncio
from pathlib import Path

import pytest

from app.models.schemas import MacroEstimate, NutrientTotals
from app.services import asr, jobs, llm, pipeline
from app.services.oembed import MetadataError
from app.services.transcript_api import TranscriptError

URL = "https://www.tiktok.com/@chef/video/1"
META = {"title": "Pasta night", "author_name": "chef", "caption": "Pasta night #pasta"}


def _recipe(source, **extra):
    return {"title": "Pasta", "servings": 2, "ingredients": [], "steps": [], "assumptions": [],
            "confidence": {"source": source, **extra}, "sourceUrl": URL}


@pytest.fixture
def tiktok_stubs(monkeypatch):
    async def oembed(url):
        return dict(META)

    async def transcript(url):
        return {"text": "boil the pasta", "confidence": 0.9}

    async def from_transcript(transcript, metadata, url):
        return _recipe("openai-transcript")

    async def from_caption(metadata, url):
        return _recipe("openai-caption", captionBased=True)

    monkeypatch.setattr(pipeline, "get_tiktok_oembed", oembed)
    monkeypatch.setattr(pipeline, "extract_tiktok_transcript", transcript)
    monkeypatch.setattr(llm, "generate_recipe_from_transcript", from_transcript)
    monkeypatch.setattr(llm, "generate_recipe_from_caption", from_caption)
    monkeypatch.setattr(pipeline, "has_fdc_key", lambda: False)


def test_tiktok_pipeline_transcript_path(tiktok_stubs):
    out = asyncio.run(pipeline.run_tiktok_pipeline(URL + "?lang=en"))
    assert out["recipe"]["confidence"]["source"] == "openai-transcript"
    assert [s["name"] for s in out["steps"]] == ["normalize_url", "fetch_metadata", "extract_transcript", "generate_recipe"]
    assert all(s["status"] == "completed" for s in out["steps"])
    meta = out["metadata"]
    assert meta["method"] == "transcript"
    assert meta["transcriptAvailable"] is True
    assert meta["transcriptConfidence"] == 0.9
    assert meta["videoMetadata"]["authorName"] == "chef"
    assert out["durationMs"] >= 0


def test_tiktok_pipeline_caption_fallback(tiktok_stubs, monkeypatch):
    async def broken(url):
        raise TranscriptError("Transcript extraction failed: quota")

    monkeypatch.setattr(pipeline, "extract_tiktok_transcript", broken)
    out = asyncio.run(pipeline.run_tiktok_pipeline(URL))
    assert out["metadata"]["method"] == "caption"
    assert out["metadata"]["transcriptAvailable"] is False
    assert out["metadata"]["captionBased"] is True
    assert "Recipe extracted from video caption/bio (no audio transcript available)." in out["recipe"]["assumptions"]
    assert out["steps"][2] == {"name": "extract_transcript", "status": "completed", "durationMs": out["steps"][2]["durationMs"], "error": None}


def test_tiktok_pipeline_low_confidence_uses_caption(tiktok_stubs, monkeypatch):
    async def weak(url):
        return {"text": "mumble", "confidence": 0.1}

    monkeypatch.setattr(pipeline, "extract_tiktok_transcript", weak)
    out = asyncio.run(pipeline.run_tiktok_pipeline(URL))
    assert out["metadata"]["method"] == "caption"
    assert out["metadata"]["transcriptAvailable"] is True


def test_tiktok_pipeline_reports_fallback_method(tiktok_stubs, monkeypatch):
    async def fallback(transcript, metadata, url):
        return llm.build_fallback_recipe(url)

    monkeypatch.setattr(llm, "generate_recipe_from_transcript", fallback)
    out = asyncio.run(pipeline.run_tiktok_pipeline(URL))
    assert out["metadata"]["method"] == "fallback"


def test_tiktok_pipeline_metadata_failure_propagates(tiktok_stubs, monkeypatch):
    async def broken(url):
        raise MetadataError("Failed to fetch TikTok video metadata: 404 Not Found")

    monkeypatch.setattr(pipeline, "get_tiktok_oembed", broken)
    with pytest.raises(MetadataError):
        asyncio.run(pipeline.run_tiktok_pipeline(URL))


def test_tiktok_pipeline_rejects_bad_url(tiktok_stubs):
    with pytest.raises(ValueError, match="Only TikTok links are supported right now"):
        asyncio.run(pipeline.run_tiktok_pipeline("https://example.com/x"))


def test_macro_step_attaches_estimate(tiktok_stubs, monkeypatch):
    async def estimate(recipe, include_yield_factors=True):
        return MacroEstimate(servings=2, per_serving=NutrientTotals(calories=500))

    monkeypatch.setattr(pipeline, "has_fdc_key", lambda: True)
    monkeypatch.setattr(pipeline, "estimate_macros", estimate)
    out = asyncio.run(pipeline.run_tiktok_pipeline(URL))
    assert out["steps"][-1]["name"] == "estimate_macros"
    assert out["recipe"]["macroEstimate"]["perServing"]["calories"] == 500


def test_macro_step_failure_becomes_assumption(tiktok_stubs, monkeypatch):
    async def estimate(recipe, include_yield_factors=True):
        raise RuntimeError("FDC down")

    monkeypatch.setattr(pipeline, "has_fdc_key", lambda: True)
    monkeypatch.setattr(pipeline, "estimate_macros", estimate)
    out = asyncio.run(pipeline.run_tiktok_pipeline(URL))
    assert "USDA macro estimate unavailable: FDC down" in out["recipe"]["assumptions"]
    assert "macroEstimate" not in out["recipe"]
    assert out["steps"][-1]["status"] == "completed"


def test_local_video_pipeline(monkeypatch, tmp_path):
    seen = {}

    async def extract_audio(video_path, workdir):
        seen["video"] = video_path
        return Path(workdir) / "audio.wav"

    async def transcribe(audio_path, workdir, source_url=None):
        return "sear the steak"

    async def from_transcript(transcript, metadata, url):
        seen["transcript"] = transcript
        seen["title"] = metadata["title"]
        return _recipe("openai-transcript")

    monkeypatch.setattr(asr, "extract_audio", extract_audio)
    monkeypatch.setattr(asr, "transcribe_audio", transcribe)
    monkeypatch.setattr(llm, "generate_recipe_from_transcript", from_transcript)
    monkeypatch.setattr(pipeline, "has_fdc_key", lambda: False)

    out = asyncio.run(pipeline.run_local_video_pipeline(str(tmp_path / "v.mp4"), "steak-night.mp4"))
    assert seen["video"].endswith("v.mp4")
    assert seen["transcript"] == {"text": "sear the steak", "confidence": 0.8}
    assert seen["title"] == "steak-night"
    assert out["metadata"]["method"] == "video_upload"
    assert [s["name"] for s in out["steps"]] == ["extract_audio", "transcribe", "generate_recipe"]


def test_recipe_image_pipeline(monkeypatch, tmp_path):
    img = tmp_path / "card.jpg"
    img.write_bytes(b"\xff\xd8\xff")

    async def from_image(data, mime_type, original_name=None):
        assert data == b"\xff\xd8\xff"
        return _recipe("openai-image")

    monkeypatch.setattr(llm, "generate_recipe_from_image", from_image)
    monkeypatch.setattr(pipeline, "has_fdc_key", lambda: False)
    out = asyncio.run(pipeline.run_recipe_image_pipeline(str(img), "card.jpg", "image/jpeg"))
    assert out["metadata"] == {"method": "recipe_image", "originalName": "card.jpg", "mimeType": "image/jpeg"}


def test_process_job_completes(store, monkeypatch):
    async def run(url):
        return {"recipe": _recipe("openai-transcript"), "steps": [], "metadata": {"method": "transcript"}, "durationMs": 12}

    monkeypatch.setattr(pipeline, "run_tiktok_pipeline", run)

    async def go():
        job = await jobs.create_job("tiktok", source_url=URL, schedule=False)
        assert job["status"] == "queued"
        return await jobs.process_job(job["id"])

    done = asyncio.run(go())
    assert done["status"] == "completed"
    assert done["result"]["title"] == "Pasta"
    assert done["durationMs"] == 12
    assert done["metadata"] == {"method": "transcript"}


def test_process_job_marks_failure_and_removes_upload(store, monkeypatch, tmp_path):
    upload = tmp_path / "clip.mp4"
    upload.write_bytes(b"data")

    async def run(video_path, original_name=None):
        raise RuntimeError("ffmpeg not installed")

    monkeypatch.setattr(pipeline, "run_local_video_pipeline", run)

    async def go():
        job = await jobs.create_job("upload", source_path=str(upload), original_name="clip.mp4", schedule=False)
        return await jobs.process_job(job["id"])

    failed = asyncio.run(go())
    assert failed["status"] == "failed"
    assert failed["error"] == "ffmpeg not installed"
    assert not upload.exists()


def test_create_job_schedules_background_task(store, monkeypatch):
    async def run(url):
        return {"recipe": _recipe("openai-transcript"), "steps": [], "metadata": {}, "durationMs": 1}

    monkeypatch.setattr(pipeline, "run_tiktok_pipeline", run)

    async def go():
        job = await jobs.create_job("tiktok", source_url=URL)
        assert len(jobs._tasks) == 1
        await asyncio.gather(*list(jobs._tasks))
        return await store.get(job["id"])

    final = asyncio.run(go())
    assert final["status"] == "completed"
    assert jobs._tasks == set()
