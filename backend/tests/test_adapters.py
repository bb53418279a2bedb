import asyncio

import httpx
import pytest

from app.core.config import settings
from app.services import asr
from app.services.asr import AsrError
from app.services.oembed import MetadataError, caption_from_embed, get_tiktok_oembed
from app.services.proc import CommandError
from app.services.transcript_api import TranscriptError, extract_tiktok_transcript

EMBED = (
    '<blockquote class="tiktok-embed" cite="https://www.tiktok.com/@chef/video/1">'
    '<section><a target="_blank" title="@chef" href="https://www.tiktok.com/@chef">@chef</a>'
    "<p>Best pasta ever</p> <a title=\"pasta\" href=\"https://www.tiktok.com/tag/pasta\">#pasta</a> "
    '<a target="_blank" href="https://www.tiktok.com/music/x">♬ original sound - chef</a></section></blockquote>'
)


def _run(coro):
    return asyncio.run(coro)


def test_caption_from_embed_drops_author_and_sound_links():
    assert caption_from_embed(EMBED) == "Best pasta ever #pasta"
    assert caption_from_embed("") == ""
    assert caption_from_embed("<div>no quote</div>") == ""


def test_oembed_normalizes_response():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = request.url.params.get("url")
        return httpx.Response(200, json={
            "title": "Best pasta ever #pasta",
            "author_name": "chef",
            "author_url": "https://www.tiktok.com/@chef",
            "thumbnail_url": "https://p16.example/thumb.jpg",
            "html": EMBED,
        })

    async def go():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            return await get_tiktok_oembed("https://www.tiktok.com/@chef/video/1", client=client)

    meta = _run(go())
    assert seen["url"] == "https://www.tiktok.com/@chef/video/1"
    assert meta["author_name"] == "chef"
    assert meta["provider_name"] == "TikTok"
    assert meta["caption"] == "Best pasta ever #pasta"
    assert meta["embed_html"] == EMBED


def test_oembed_http_error_raises_metadata_error():
    async def go():
        transport = httpx.MockTransport(lambda r: httpx.Response(404, text="nope"))
        async with httpx.AsyncClient(transport=transport) as client:
            await get_tiktok_oembed("https://www.tiktok.com/@chef/video/1", client=client)

    with pytest.raises(MetadataError, match="Failed to fetch TikTok video metadata: 404"):
        _run(go())


def test_transcript_requires_key():
    with pytest.raises(TranscriptError, match="TRANSCRIPT_API_KEY is missing"):
        _run(extract_tiktok_transcript("https://www.tiktok.com/@chef/video/1"))


def test_transcript_unknown_provider(monkeypatch):
    monkeypatch.setattr(settings, "TRANSCRIPT_API_PROVIDER", "whatever")
    with pytest.raises(TranscriptError, match="Unknown transcript provider: whatever"):
        _run(extract_tiktok_transcript("https://www.tiktok.com/@chef/video/1"))


def test_transcript_supadata_success(monkeypatch):
    monkeypatch.setattr(settings, "TRANSCRIPT_API_KEY", "k")
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["auth"] = request.headers.get("Authorization")
        seen["host"] = request.url.host
        return httpx.Response(200, json={"transcript": "add two cups of rice", "language": "en"})

    async def go():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            return await extract_tiktok_transcript("https://www.tiktok.com/@chef/video/1", client=client)

    out = _run(go())
    assert seen == {"auth": "Bearer k", "host": "api.supadata.ai"}
    assert out == {"text": "add two cups of rice", "segments": [], "language": "en", "confidence": 0.8}


def test_transcript_http_error(monkeypatch):
    monkeypatch.setattr(settings, "TRANSCRIPT_API_KEY", "k")

    async def go():
        transport = httpx.MockTransport(lambda r: httpx.Response(500, text="boom"))
        async with httpx.AsyncClient(transport=transport) as client:
            await extract_tiktok_transcript("https://www.tiktok.com/@chef/video/1", client=client)

    with pytest.raises(TranscriptError, match=r"Transcript extraction failed: SupaData API error \(500\): boom"):
        _run(go())


def _missing_binary(monkeypatch):
    async def run_command(cmd, args, cwd=None):
        raise CommandError(f"{cmd} not found on PATH", missing=True)

    monkeypatch.setattr(asr, "run_command", run_command)


def test_extract_audio_without_ffmpeg(monkeypatch, tmp_path):
    _missing_binary(monkeypatch)
    with pytest.raises(AsrError, match="ffmpeg not installed"):
        _run(asr.extract_audio(tmp_path / "v.mp4", tmp_path))


def test_transcribe_degrades_without_any_provider(monkeypatch, tmp_path):
    _missing_binary(monkeypatch)
    monkeypatch.setattr(settings, "ASR_PROVIDER", "auto")
    text = _run(asr.transcribe_audio(tmp_path / "audio.wav", tmp_path))
    assert text.startswith("Transcript unavailable; no ASR provider succeeded")

    monkeypatch.setattr(settings, "ASR_PROVIDER", "whisper")
    text = _run(asr.transcribe_audio(tmp_path / "audio.wav", tmp_path))
    assert text.startswith("Transcript unavailable; install whisper CLI")


def test_transcribe_openai_only_requires_key(monkeypatch, tmp_path):
    monkeypatch.setattr(settings, "ASR_PROVIDER", "openai")
    with pytest.raises(AsrError, match="OPENAI_API_KEY is missing"):
        _run(asr.transcribe_audio(tmp_path / "audio.wav", tmp_path))


def test_truncate(monkeypatch):
    monkeypatch.setattr(settings, "MAX_TRANSCRIPT_CHARS", 5)
    assert asr.truncate("  abcdefgh ") == "abcde…"
    assert asr.truncate("abc") == "abc"
    assert asr.truncate(None) == ""
