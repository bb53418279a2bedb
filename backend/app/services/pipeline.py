# app/services/pipeline.py
# 잡 파이프라인 (단계별 기록 + [step:start|ok|fail] 로그)
# - tiktok: URL 정규화 → oEmbed 메타데이터 → 트랜스크립트 → 레시피 생성 → (FDC 있으면) 매크로 추정
# - upload: 오디오 추출 → ASR → 레시피 생성 → 매크로 추정
# - image: 레시피 사진 → vision 생성 → 매크로 추정
# 재시도/스케줄링 없음. 예외는 잡 러너가 failed로 기록

from __future__ import annotations

import logging
import tempfile
import time
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar

from pydantic.alias_generators import to_camel

from app.core.config import has_fdc_key
from app.models.schemas import StepRecord
from app.services import asr, llm
from app.services.macros import estimate_macros
from app.services.oembed import get_tiktok_oembed
from app.services.tiktok import normalize_tiktok_url
from app.services.transcript_api import extract_tiktok_transcript

log = logging.getLogger(__name__)

T = TypeVar("T")

# 이 값 미만이면 트랜스크립트 대신 캡션에서 추출
MIN_TRANSCRIPT_CONFIDENCE = 0.3


def _ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)


class StepRunner:
    """단계 실행기. 성공/실패 모두 StepRecord로 남기고 실패는 그대로 올려보냄"""

    def __init__(self) -> None:
        self.steps: List[StepRecord] = []
        self.started = time.perf_counter()

    async def run(self, name: str, fn: Callable[[], Awaitable[T]]) -> T:
        start = time.perf_counter()
        log.info("[step:start] %s", name)
        try:
            result = await fn()
        except Exception as e:
            log.error("[step:fail] %s %dms %s", name, _ms(start), e)
            self.steps.append(StepRecord(name=name, status="failed", duration_ms=_ms(start), error=str(e)))
            raise
        log.info("[step:ok] %s %dms", name, _ms(start))
        self.steps.append(StepRecord(name=name, status="completed", duration_ms=_ms(start)))
        return result

    def result(self, recipe: Dict[str, Any], metadata: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "recipe": recipe,
            "steps": [s.to_wire() for s in self.steps],
            "metadata": metadata,
            "durationMs": _ms(self.started),
        }


async def _attach_macro_estimate(runner: StepRunner, recipe: Dict[str, Any]) -> None:
    # FDC 키가 있을 때만. 실패해도 잡은 계속 (assumptions에 경고)
    if not has_fdc_key():
        return

    async def _estimate() -> None:
        try:
            estimate = await estimate_macros(recipe, include_yield_factors=True)
        except Exception as e:
            log.warning("macro estimate failed: %s", e)
            recipe.setdefault("assumptions", []).append(f"USDA macro estimate unavailable: {e}")
            return
        recipe["macroEstimate"] = estimate.to_wire()

    await runner.run("estimate_macros", _estimate)


async def run_tiktok_pipeline(source_url: str) -> Dict[str, Any]:
    runner = StepRunner()

    async def _normalize() -> str:
        url, err = normalize_tiktok_url(source_url)
        if err:
            raise ValueError(err)
        return url

    url = await runner.run("normalize_url", _normalize)
    metadata = await runner.run("fetch_metadata", lambda: get_tiktok_oembed(url))

    async def _transcript() -> Dict[str, Any]:
        try:
            return await extract_tiktok_transcript(url)
        except Exception as e:
            log.warning("transcript extraction failed, using caption: %s", e)
            return {"text": "", "confidence": 0, "error": str(e)}

    transcript = await runner.run("extract_transcript", _transcript)
    use_transcript = bool(transcript.get("text")) and (transcript.get("confidence") or 0) >= MIN_TRANSCRIPT_CONFIDENCE

    async def _generate() -> Dict[str, Any]:
        if use_transcript:
            return await llm.generate_recipe_from_transcript(transcript, metadata, url)

        log.warning("low transcript confidence or no transcript; extracting from caption")
        recipe = await llm.generate_recipe_from_caption(metadata, url)
        if recipe.get("confidence", {}).get("source") == "openai-caption":
            recipe.setdefault("assumptions", []).extend([
                "Recipe extracted from video caption/bio (no audio transcript available).",
                "For more accurate extraction, upload the video directly.",
            ])
        return recipe

    recipe = await runner.run("generate_recipe", _generate)
    await _attach_macro_estimate(runner, recipe)

    source = recipe.get("confidence", {}).get("source")
    if use_transcript and source == "openai-transcript":
        method = "transcript"
    elif source == "openai-caption":
        method = "caption"
    else:
        method = "fallback"

    return runner.result(recipe, {
        "method": method,
        "transcriptAvailable": bool(transcript.get("text")),
        "transcriptConfidence": transcript.get("confidence"),
        "captionBased": bool(recipe.get("confidence", {}).get("captionBased")),
        "videoMetadata": {to_camel(k): v for k, v in metadata.items()},
    })


async def run_local_video_pipeline(video_path: str, original_name: Optional[str] = None) -> Dict[str, Any]:
    runner = StepRunner()

    with tempfile.TemporaryDirectory(prefix="video-recipe-") as workdir:
        audio = await runner.run("extract_audio", lambda: asr.extract_audio(video_path, workdir))
        text = await runner.run("transcribe", lambda: asr.transcribe_audio(audio, workdir))

    available = bool(text) and not text.startswith("Transcript unavailable")
    transcript = {"text": text, "confidence": 0.8 if available else 0.0}
    metadata = {"title": Path(original_name).stem if original_name else "Uploaded video", "author_name": "You"}

    recipe = await runner.run(
        "generate_recipe",
        lambda: llm.generate_recipe_from_transcript(transcript, metadata, None),
    )
    await _attach_macro_estimate(runner, recipe)

    return runner.result(recipe, {
        "method": "video_upload",
        "transcriptAvailable": available,
        "originalName": original_name,
    })


async def run_recipe_image_pipeline(image_path: str, original_name: Optional[str] = None, mime_type: Optional[str] = None) -> Dict[str, Any]:
    runner = StepRunner()

    async def _generate() -> Dict[str, Any]:
        data = Path(image_path).read_bytes()
        return await llm.generate_recipe_from_image(data, mime_type, original_name)

    recipe = await runner.run("generate_recipe", _generate)
    await _attach_macro_estimate(runner, recipe)

    return runner.result(recipe, {
        "method": "recipe_image",
        "originalName": original_name,
        "mimeType": mime_type,
    })
