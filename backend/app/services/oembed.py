# app/services/oembed.py
# TikTok 공식 oEmbed로 영상 메타데이터 조회 (영상 다운로드 없음)
# 의존: httpx, beautifulsoup4, lxml

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx
from bs4 import BeautifulSoup

from app.core.config import settings

log = logging.getLogger(__name__)

OEMBED_URL = "https://www.tiktok.com/oembed"
HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 13_3) "
        "AppleWebKit/537.36 (KHTML, like Gecko) "
        "Chrome/125.0.0.0 Safari/537.36"
    )
}


class MetadataError(Exception):
    # oEmbed 호출/파싱 실패
    pass


def _soup(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "lxml")


def caption_from_embed(html: str) -> str:
    """
    embed blockquote 안의 캡션 텍스트만 추출
    - 작성자 링크(@user)와 사운드 링크(♬ ...)는 제외, 해시태그는 유지
    """
    if not html:
        return ""
    soup = _soup(html)
    section = soup.select_one("blockquote section") or soup.select_one("blockquote")
    if section is None:
        return ""

    for a in section.select("a"):
        text = a.get_text(" ", strip=True)
        if text.startswith("@") or text.startswith("♬"):
            a.decompose()

    caption = section.get_text(" ", strip=True)
    return " ".join(caption.split())


def _normalize(data: Dict[str, Any]) -> Dict[str, Any]:
    html = data.get("html") or ""
    title = data.get("title") or "Untitled TikTok Video"
    return {
        "title": title,
        "author_name": data.get("author_name") or "Unknown",
        "author_url": data.get("author_url") or "",
        "thumbnail_url": data.get("thumbnail_url") or "",
        "embed_html": html,
        "provider_name": data.get("provider_name") or "TikTok",
        "version": data.get("version") or "1.0",
        # 틱톡 oEmbed title이 곧 캡션인 경우가 많음. embed에서 못 뽑으면 title 사용
        "caption": caption_from_embed(html) or (data.get("title") or ""),
    }


async def get_tiktok_oembed(url: str, client: Optional[httpx.AsyncClient] = None) -> Dict[str, Any]:
    # 정규화된 TikTok URL → 메타데이터 dict. 실패는 MetadataError
    if client is None:
        async with httpx.AsyncClient(headers=HEADERS, timeout=settings.HTTP_TIMEOUT) as cli:
            return await get_tiktok_oembed(url, client=cli)

    try:
        r = await client.get(OEMBED_URL, params={"url": url})
        r.raise_for_status()
        data = r.json()
    except httpx.HTTPStatusError as e:
        log.warning("tiktok oembed failed: %s", e.response.status_code)
        raise MetadataError(
            f"Failed to fetch TikTok video metadata: {e.response.status_code} {e.response.reason_phrase}"
        ) from e
    except (httpx.HTTPError, ValueError) as e:
        log.warning("tiktok oembed failed: %s", e)
        raise MetadataError(f"Failed to fetch TikTok video metadata: {e}") from e

    if not isinstance(data, dict):
        raise MetadataError("Failed to fetch TikTok video metadata: unexpected response")
    return _normalize(data)
