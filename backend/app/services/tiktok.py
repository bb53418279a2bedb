# app/services/tiktok.py
# TikTok 링크 정규화 + 캡션에서 짧은 요리 제목 뽑기

from __future__ import annotations

import re
from typing import Optional, Tuple
from urllib.parse import urlsplit, urlunsplit

TIKTOK_HOSTS = {
    "tiktok.com",
    "www.tiktok.com",
    "m.tiktok.com",
    "vm.tiktok.com",
    "vt.tiktok.com",
}

DEFAULT_PORTS = {"http": 80, "https": 443}

_SCHEME = re.compile(r"^https?://", re.I)
_PREFIX = re.compile(r"^(recipe|how to make|easy|simple|quick|the best|my|homemade)\s+", re.I)
_EMOJI = re.compile(
    "[\U0001F300-\U0001F9FF☀-⛿✀-➿\U0001F600-\U0001F64F\U0001F680-\U0001F6FF]"
)
_BREAK = re.compile(r"^(.{20,50}?)[,\-|•]")
_TRAILING = re.compile(r"[,\-|•:]+$")


def normalize_tiktok_url(text: object) -> Tuple[Optional[str], Optional[str]]:
    """
    사용자 입력 → (정규화 URL, None) 또는 (None, 에러 메시지)
    - 스킴 없으면 https:// 붙임
    - query/fragment 제거
    """
    trimmed = text.strip() if isinstance(text, str) else ""
    if not trimmed:
        return None, "Enter a TikTok URL"

    with_scheme = trimmed if _SCHEME.match(trimmed) else f"https://{trimmed}"

    try:
        parts = urlsplit(with_scheme)
        host = (parts.hostname or "").lower()
        port = parts.port  # 포트가 숫자가 아니면 ValueError
    except ValueError:
        return None, "Enter a valid URL"
    if not host or re.search(r"\s", parts.netloc):
        return None, "Enter a valid URL"

    if host not in TIKTOK_HOSTS and not host.endswith(".tiktok.com"):
        return None, "Only TikTok links are supported right now"

    if not parts.path or parts.path == "/":
        return None, "Paste the full TikTok video link"

    scheme = parts.scheme.lower()
    # 호스트만 소문자, 기본 포트(http 80 / https 443)는 뺌
    netloc = host
    if port is not None and port != DEFAULT_PORTS.get(scheme):
        netloc = f"{host}:{port}"
    userinfo, sep, _ = parts.netloc.rpartition("@")
    if sep:
        netloc = f"{userinfo}@{netloc}"
    return urlunsplit((scheme, netloc, parts.path, "", "")), None


def _fallback_title(author: Optional[str]) -> str:
    return f"Recipe by {author}" if author else "Recipe from TikTok"


def extract_short_title(caption: Optional[str], author: Optional[str] = None) -> str:
    # 긴 캡션 → 요리 이름만 (마케팅 접두어/해시태그/이모지 제거, ~50자)
    if not caption or not caption.strip():
        return _fallback_title(author)

    title = _PREFIX.sub("", caption.strip())
    first_line = re.split(r"[\n\r]", title)[0].strip()
    no_tags = first_line.split("#")[0].strip()
    cleaned = _EMOJI.sub("", no_tags).strip()

    result = cleaned
    if len(result) > 60:
        m = _BREAK.match(result)
        if m:
            result = m.group(1).strip()
        else:
            result = re.sub(r"\s+\S*$", "", result[:50]).strip()
            if len(result) < 10:
                result = cleaned[:50].strip() + "..."

    result = _TRAILING.sub("", result).strip()
    if len(result) < 3:
        return _fallback_title(author)
    return result
