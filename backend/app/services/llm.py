# app/services/llm.py
# 레시피 생성 / 목표 변형 (OpenAI Chat Completions, JSON 모드)
# - 트랜스크립트 / 캡션 / 레시피 이미지 → Recipe
# - LLM이 불가하거나 응답이 망가지면 오프라인 초안 레시피로 대체 (잡은 실패시키지 않음)
# - 목표 변형은 실패 시 RecipeModificationError

from __future__ import annotations

import base64
import json
import logging
import time
from typing import Any, Dict, List, Optional

from openai import AsyncOpenAI

from app.core.config import has_fdc_key, settings
from app.models.schemas import Recipe, SubstitutionPlan
from app.services.goals import build_modification_prompt, is_valid_goal
from app.services.macros import estimate_macros
from app.services.substitutions import build_substitution_plan
from app.services.tiktok import extract_short_title

log = logging.getLogger(__name__)


class LLMNotReady(Exception):
    # OPENAI_API_KEY 없음
    pass


class RecipeModificationError(Exception):
    pass


def _client() -> AsyncOpenAI:
    if not settings.OPENAI_API_KEY:
        raise LLMNotReady("OPENAI_API_KEY is missing. Set it to enable recipe generation.")
    return AsyncOpenAI(api_key=settings.OPENAI_API_KEY, timeout=60.0)


SYSTEM_PROMPT = """
You are a culinary AI that turns cooking videos and recipe images into detailed, editable recipes with macros.

Respond ONLY with a JSON object matching this exact shape:
{
  "title": string,
  "servings": number,
  "ingredients": [{ "name": string, "quantity": string }],
  "steps": [string],
  "times": { "prepMinutes": number, "cookMinutes": number },
  "macros": { "calories": number, "protein": number, "carbs": number, "fat": number },
  "assumptions": [string],
  "confidence": { "audioDetected": boolean, "ingredientsVisible": boolean }
}

Rules:
- Extract exact quantities when they are stated; otherwise infer realistic amounts and note them as assumptions
- Include clear cooking steps (1 step per array item) in chronological order
- Macros are per serving; state assumptions when estimating hidden ingredients (oils, sauces, seasonings)
- prepMinutes = prep work before heat, cookMinutes = active cooking time
- Be specific with ingredient names (e.g., "all-purpose flour" not just "flour")
- Include cooking temperatures if mentioned (e.g., "Preheat oven to 350°F")
"""


async def _chat_json(messages: List[Dict[str, Any]], temperature: float, model: Optional[str] = None) -> Dict[str, Any]:
    """
    Chat Completions(JSON 모드) 1회 호출 → dict
    - 빈 응답 / JSON 아님 / 객체 아님 → ValueError
    """
    client = _client()
    chat = await client.chat.completions.create(
        model=model or settings.OPENAI_MODEL,
        temperature=temperature,
        messages=messages,
        # json_schema 대신 JSON만 받도록 강제
        response_format={"type": "json_object"},
    )
    text = chat.choices[0].message.content if chat and chat.choices else ""
    if not text:
        raise ValueError("Recipe model returned no content.")
    obj = json.loads(text)
    if not isinstance(obj, dict):
        raise ValueError("Recipe model returned a non-object JSON payload.")
    return obj


def _section(raw: Dict[str, Any], key: str) -> Dict[str, Any]:
    v = raw.get(key)
    return v if isinstance(v, dict) else {}


def normalize_recipe(raw: Dict[str, Any], url: Optional[str], **confidence: Any) -> Dict[str, Any]:
    """LLM 결과 → Recipe 와이어 dict (기본값 채우고 confidence 병합)"""
    merged = {k: v for k, v in confidence.items() if v is not None}
    merged.update(_section(raw, "confidence"))
    recipe = Recipe.model_validate({
        "title": str(raw.get("title") or "Generated Recipe"),
        # 숫자 필드는 스키마에서 "420 kcal" → 420 식으로 보정
        "servings": raw.get("servings"),
        "ingredients": [
            {"name": str(i.get("name") or ""), "quantity": str(i.get("quantity") or "")}
            for i in (raw.get("ingredients") or []) if isinstance(i, dict)
        ],
        "steps": [str(s) for s in (raw.get("steps") or [])],
        "times": _section(raw, "times"),
        "macros": _section(raw, "macros"),
        "assumptions": [str(a) for a in (raw.get("assumptions") or [])],
        "confidence": merged,
        "sourceUrl": url,
    })
    return recipe.to_wire()


def build_fallback_recipe(url: Optional[str], reason: Optional[str] = None) -> Dict[str, Any]:
    recipe = Recipe(
        title="Recipe draft (offline fallback)",
        servings=2,
        ingredients=[
            {"name": "Protein of choice (chicken, tofu, etc.)", "quantity": "400 g"},
            {"name": "Vegetables (mixed)", "quantity": "2 cups, chopped"},
            {"name": "Oil or butter", "quantity": "1.5 tbsp"},
            {"name": "Salt & pepper", "quantity": "to taste"},
        ],
        steps=[
            "Season protein and sear until browned and cooked through.",
            "Saute vegetables in the same pan with a little oil.",
            "Combine, adjust seasoning, and serve with grains or greens.",
        ],
        times={"prep_minutes": 10, "cook_minutes": 15},
        macros={"calories": 480, "protein": 30, "carbs": 40, "fat": 18},
        assumptions=[
            "Fallback recipe used because the recipe model was unavailable (quota/network).",
            "Please check the original video to adjust ingredients and steps.",
        ],
        confidence={"source": "fallback-heuristic", "reason": reason} if reason else {"source": "fallback-heuristic"},
        source_url=url,
    )
    return recipe.to_wire()


async def generate_recipe_from_transcript(transcript: Dict[str, Any], metadata: Dict[str, Any], url: Optional[str]) -> Dict[str, Any]:
    text = transcript.get("text") or ""
    log.info("generating recipe from transcript (%d chars, confidence=%s)", len(text), transcript.get("confidence"))

    prompt = f"""Video Metadata:
- Title: {metadata.get("title") or "Unknown"}
- Author: {metadata.get("author_name") or "Unknown"}
- Source: cooking video

Video Transcript:
{text}

Extract the recipe from this cooking video transcript. Include all ingredients with quantities, steps in order, estimated times, and macros. Mark any inferred data in assumptions.

Since this is extracted from a transcript (not full video analysis), you may need to infer some details:
- Visual-only ingredients may be missing; note these as assumptions
- Quantities might be approximate if not clearly stated
- Be conservative with macro estimates and clearly state assumptions"""

    try:
        raw = await _chat_json(
            [{"role": "system", "content": SYSTEM_PROMPT}, {"role": "user", "content": prompt}],
            temperature=0.35,
        )
        return normalize_recipe(
            raw, url,
            source="openai-transcript",
            transcriptBased=True,
            transcriptConfidence=transcript.get("confidence"),
        )
    except Exception as e:
        log.warning("transcript recipe extraction failed: %s", e)
        return build_fallback_recipe(url, reason="transcript_processing_failed")


async def generate_recipe_from_caption(metadata: Dict[str, Any], url: Optional[str]) -> Dict[str, Any]:
    # 트랜스크립트가 없을 때: 캡션/설명에 레시피가 적혀 있는 경우가 많음
    caption = metadata.get("caption") or metadata.get("title") or ""
    if not caption.strip():
        return build_fallback_recipe(url, reason="no_caption")

    prompt = f"""Video Metadata:
- Author: {metadata.get("author_name") or "Unknown"}

Video Caption:
{caption}

The audio transcript is unavailable. Extract the recipe from the caption text above.
If the caption does not list quantities or steps, infer realistic ones and record every inference in assumptions."""

    try:
        raw = await _chat_json(
            [{"role": "system", "content": SYSTEM_PROMPT}, {"role": "user", "content": prompt}],
            temperature=0.35,
        )
        recipe = normalize_recipe(raw, url, source="openai-caption", captionBased=True)
    except Exception as e:
        log.warning("caption recipe extraction failed: %s", e)
        return build_fallback_recipe(url, reason="caption_processing_failed")

    if not raw.get("title"):
        recipe["title"] = extract_short_title(caption, metadata.get("author_name"))
    return recipe


async def generate_recipe_from_image(image_bytes: bytes, mime_type: Optional[str], original_name: Optional[str] = None) -> Dict[str, Any]:
    """
    레시피 사진(손글씨/인쇄) → Recipe
    - data URL로 vision 모델에 전달
    """
    b64 = base64.b64encode(image_bytes).decode("ascii")
    content: List[Dict[str, Any]] = [
        {"type": "text", "text": (
            "This image shows a recipe (handwritten, printed, or a screenshot). "
            "Transcribe the title, ingredients with quantities and the steps, then estimate times and macros per serving. "
            "Record anything you could not read clearly in assumptions."
        )},
        {"type": "image_url", "image_url": {"url": f"data:{mime_type or 'image/jpeg'};base64,{b64}"}},
    ]

    try:
        raw = await _chat_json(
            [{"role": "system", "content": SYSTEM_PROMPT}, {"role": "user", "content": content}],
            temperature=0.35,
            model=settings.OPENAI_VISION_MODEL,
        )
        return normalize_recipe(raw, None, source="openai-image", imageBased=True, originalName=original_name)
    except Exception as e:
        log.warning("image recipe extraction failed (%s): %s", original_name or "upload", e)
        return build_fallback_recipe(None, reason="image_processing_failed")


async def modify_recipe_for_goal(recipe: Dict[str, Any], goal_type: str, user_context: Any = None) -> Dict[str, Any]:
    """
    목표(bulk/lean_bulk/cut)에 맞춘 레시피 편집 문서
    - FDC 키가 있으면 매크로 추정 → 치환 후보 계획을 먼저 만들고 프롬프트에 넣음
    - 결과 JSON에 substitutionPlan을 붙여 반환
    """
    if not is_valid_goal(goal_type):
        raise ValueError(f"Invalid goal type: {goal_type}")

    total_start = time.perf_counter()
    rec = recipe if isinstance(recipe, Recipe) else Recipe.model_validate(recipe)
    log.info("modifying recipe %r for goal %s", rec.title, goal_type)

    plan = SubstitutionPlan(warnings=["FDC_API_KEY missing; substitutions limited to portion tweaks."])
    if has_fdc_key():
        try:
            estimate = await estimate_macros(rec, include_yield_factors=True)
            plan = await build_substitution_plan(rec, goal_type, user_context, macro_estimate=estimate)
        except Exception as e:
            log.warning("substitution plan failed: %s", e)
            plan = SubstitutionPlan(warnings=[f"Substitution plan unavailable: {e}"])
    plan_ms = int((time.perf_counter() - total_start) * 1000)

    try:
        prompt = build_modification_prompt(rec, goal_type, user_context, plan)
        llm_start = time.perf_counter()
        parsed = await _chat_json([{"role": "user", "content": prompt}], temperature=0.3)
        llm_ms = int((time.perf_counter() - llm_start) * 1000)
    except Exception as e:
        log.error("recipe modification failed: %s", e)
        raise RecipeModificationError(f"Failed to modify recipe: {e}") from e

    parsed["substitutionPlan"] = plan.to_wire()
    log.info(
        "recipe modified: %d edits, timings plan=%dms llm=%dms total=%dms",
        len(parsed.get("edits") or []), plan_ms, llm_ms, int((time.perf_counter() - total_start) * 1000),
    )
    return parsed
