# app/services/transcript_api.py
# 서드파티 트랜스크립트 API (SupaData 기본, SocialKit 대안)
# - 영상 다운로드 없이 TikTok 자막/음성 텍스트만 받아옴

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from app.core.config import settings

log = logging.getLogger(__name__)

PROVIDER_URLS: Dict[str, str] = {
    "supadata": "https://api.supadata.ai/v1/tiktok/transcript",
    "socialkit": "https://api.socialkit.dev/v1/tiktok/transcript",
}
PROVIDER_LABELS = {"supadata": "SupaData", "socialkit": "SocialKit"}


class TranscriptError(Exception):
    pass


def _normalize(provider: str, data: Dict[str, Any]) -> Dict[str, Any]:
    # 공급자마다 필드명이 조금씩 다름 → {text, segments, language, confidence}
    if provider == "socialkit":
        return {
            "text": data.get("transcript") or data.get("text") or "",
            "segments": data.get("segments") or data.get("captions") or [],
            "language": data.get("language") or data.get("lang") or "unknown",
            "confidence": data.get("confidence") or data.get("score") or 0.8,
        }
    return {
        "text": data.get("transcript") or data.get("text") or "",
        "segments": data.get("segments") or [],
        "language": data.get("language") or "unknown",
        "confidence": data.get("confidence") or 0.8,
    }


async def extract_tiktok_transcript(url: str, client: Optional[httpx.AsyncClient] = None) -> Dict[str, Any]:
    provider = (settings.TRANSCRIPT_API_PROVIDER or "supadata").lower()
    if provider not in PROVIDER_URLS:
        raise TranscriptError(f"Unknown transcript provider: {settings.TRANSCRIPT_API_PROVIDER}")

    api_key = settings.TRANSCRIPT_API_KEY
    if not api_key:
        raise TranscriptError("TRANSCRIPT_API_KEY is missing. Set it to enable transcript extraction.")

    if client is None:
        async with httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT) as cli:
            return await extract_tiktok_transcript(url, client=cli)

    label = PROVIDER_LABELS[provider]
    log.info("extracting transcript via %s", label)
    try:
        r = await client.post(
            PROVIDER_URLS[provider],
            headers={"Authorization": f"Bearer {api_key}"},
            json={"url": url},
        )
        if r.status_code >= 400:
            raise TranscriptError(f"{label} API error ({r.status_code}): {r.text}")
        data = r.json()
    except TranscriptError as e:
        log.warning("%s extraction failed: %s", label, e)
        raise TranscriptError(f"Transcript extraction failed: {e}") from e
    except (httpx.HTTPError, ValueError) as e:
        log.warning("%s extraction failed: %s", label, e)
        raise TranscriptError(f"Transcript extraction failed: {e}") from e

    if not isinstance(data, dict):
        raise TranscriptError("Transcript extraction failed: unexpected response")
    return _normalize(provider, data)
