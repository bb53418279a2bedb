# app/services/asr.py
# 업로드 영상 → 오디오 추출(ffmpeg) → 음성 인식
# - ASR_PROVIDER: auto(whisper CLI → OpenAI) | whisper | openai
# - 네트워크/쿼터 문제는 실패 대신 "Transcript unavailable; ..." 텍스트로 진행

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import openai
from openai import AsyncOpenAI

from app.core.config import has_openai_key, settings
from app.services.proc import CommandError, run_command

log = logging.getLogger(__name__)


class AsrError(Exception):
    pass


def truncate(text: Optional[str]) -> str:
    if not text:
        return ""
    clean = str(text).strip()
    limit = settings.MAX_TRANSCRIPT_CHARS
    if len(clean) <= limit:
        return clean
    return clean[:limit] + "…"


def is_recoverable(err: Exception) -> bool:
    # 네트워크 끊김/타임아웃, 429, 쿼터 초과
    if isinstance(err, (openai.APIConnectionError, openai.RateLimitError)):
        return True
    if getattr(err, "status_code", None) == 429:
        return True
    msg = str(err).lower()
    return any(k in msg for k in ("quota", "network", "timed out", "connect", "socket", "tls", "certificate"))


async def extract_audio(video_path: str | Path, workdir: str | Path) -> Path:
    # 16kHz 모노 wav (whisper 기본 입력)
    out = Path(workdir) / "audio.wav"
    try:
        await run_command("ffmpeg", ["-y", "-i", str(video_path), "-vn", "-ac", "1", "-ar", "16000", str(out)])
    except CommandError as e:
        if e.missing:
            raise AsrError("ffmpeg not installed. Install ffmpeg to process uploaded videos.") from e
        raise AsrError(f"Audio extraction failed: {e}") from e
    return out


async def _try_whisper_cli(audio_path: Path, workdir: Path, provider: str) -> Optional[str]:
    try:
        await run_command("whisper", [
            str(audio_path),
            "--model", settings.WHISPER_MODEL,
            "--language", "en",
            "--output_format", "txt",
            "--output_dir", str(workdir),
            "--fp16", "False",
        ])
        txt = (workdir / f"{audio_path.stem}.txt").read_text(encoding="utf-8")
        return truncate(txt)
    except CommandError as e:
        if e.missing:
            if provider != "whisper":
                log.warning("whisper CLI not found on PATH; falling back to OpenAI ASR.")
            return None
        if provider == "whisper":
            raise AsrError(f"whisper CLI failed: {e}") from e
        log.warning("whisper CLI failed; falling back to OpenAI ASR: %s", e)
        return None


async def _transcribe_with_openai(audio_path: Path, source_url: Optional[str]) -> str:
    client = AsyncOpenAI(api_key=settings.OPENAI_API_KEY)
    try:
        with open(audio_path, "rb") as fh:
            text = await client.audio.transcriptions.create(
                file=fh,
                model=settings.OPENAI_ASR_MODEL,
                language="en",
                response_format="text",
            )
        return truncate(text if isinstance(text, str) else getattr(text, "text", ""))
    except Exception as e:
        suffix = f". Source: {source_url}" if source_url else ""
        if is_recoverable(e):
            log.warning("OpenAI ASR issue, continuing without transcript: %s", e)
            return truncate(f"Transcript unavailable; OpenAI ASR issue: {e}{suffix}")
        raise AsrError(f"OpenAI ASR failed{' for ' + source_url if source_url else ''}: {e}") from e


async def transcribe_audio(audio_path: str | Path, workdir: str | Path, source_url: Optional[str] = None) -> str:
    """
    오디오 파일 → 텍스트 (MAX_TRANSCRIPT_CHARS로 자름)
    - whisper CLI가 없으면 OpenAI로 폴백
    - 둘 다 불가하면 설명 문구를 반환 (openai 전용 모드에서 키 없으면 AsrError)
    """
    audio_path, workdir = Path(audio_path), Path(workdir)
    provider = (settings.ASR_PROVIDER or "auto").lower()

    if provider != "openai":
        log.info("trying whisper CLI")
        result = await _try_whisper_cli(audio_path, workdir, provider)
        if result is not None:
            return result
        if provider == "whisper" and not has_openai_key():
            log.warning("whisper CLI missing and OPENAI_API_KEY is not set; continuing without transcript.")
            return truncate("Transcript unavailable; install whisper CLI or provide OPENAI_API_KEY to enable ASR.")

    if not has_openai_key():
        if provider == "openai":
            raise AsrError("OPENAI_API_KEY is missing. Provide it or install whisper CLI.")
        return truncate("Transcript unavailable; no ASR provider succeeded (missing OPENAI_API_KEY and whisper CLI).")

    log.info("using OpenAI ASR model %s", settings.OPENAI_ASR_MODEL)
    return await _transcribe_with_openai(audio_path, source_url)
