# app/services/fdc.py
# USDA FoodData Central 검색 (Foundation + SR Legacy, 첫 결과만)
# - 영양소 값은 100g 기준
# - 프로세스 내 캐시 30분 (같은 재료 반복 호출 방지)

from __future__ import annotations

import logging
import time
from collections import OrderedDict
from typing import Any, Dict, List, Optional, Tuple

import httpx

from app.core.config import has_fdc_key, settings

log = logging.getLogger(__name__)

SEARCH_URL = "https://api.nal.usda.gov/fdc/v1/foods/search"
SEARCH_PARAMS = {"dataType": "Foundation,SR Legacy", "pageSize": 1}
TTL_SECONDS = 30 * 60
CACHE_MAX = 500

NUTRIENT_KEYS: Dict[str, str] = {
    "calories": "Energy",
    "protein": "Protein",
    "carbs": "Carbohydrate, by difference",
    "fat": "Total lipid (fat)",
    "fiber": "Fiber, total dietary",
    "sodium": "Sodium, Na",
}

# 검색어 → (저장 시각, food). 만료는 읽을 때, 개수는 CACHE_MAX에서 오래된 것부터 밀어냄
_cache: "OrderedDict[str, Tuple[float, Optional[Dict[str, Any]]]]" = OrderedDict()


class FdcNotReady(Exception):
    # FDC_API_KEY 없음
    pass


class FdcError(Exception):
    pass


def _cache_get(key: str) -> Tuple[bool, Optional[Dict[str, Any]]]:
    hit = _cache.get(key)
    if hit is None:
        return False, None
    ts, value = hit
    if time.monotonic() - ts > TTL_SECONDS:
        _cache.pop(key, None)
        return False, None
    return True, value


def _cache_set(key: str, value: Optional[Dict[str, Any]]) -> None:
    _cache[key] = (time.monotonic(), value)
    _cache.move_to_end(key)
    while len(_cache) > CACHE_MAX:
        _cache.popitem(last=False)


def clear_cache() -> None:
    _cache.clear()


def extract_nutrients(food_nutrients: List[Dict[str, Any]]) -> Dict[str, float]:
    out: Dict[str, float] = {}
    for key, name in NUTRIENT_KEYS.items():
        matches = [n for n in food_nutrients if n.get("nutrientName") == name and isinstance(n.get("value"), (int, float))]
        if not matches:
            continue
        if key == "calories":
            # Energy는 kcal/kJ 두 줄이 올 수 있음 → kcal 우선
            kcal = [n for n in matches if (n.get("unitName") or "").upper() == "KCAL"]
            matches = kcal or matches
        out[key] = float(matches[0]["value"])
    return out


def normalize_food(food: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "fdc_id": food.get("fdcId"),
        "description": food.get("description") or "",
        "data_type": food.get("dataType"),
        "nutrients": extract_nutrients(food.get("foodNutrients") or []),
    }


async def search_food(query: str, client: Optional[httpx.AsyncClient] = None) -> Optional[Dict[str, Any]]:
    """
    검색어 → 첫 번째 식품 (없으면 None)
    {fdc_id, description, data_type, nutrients: {calories, protein, carbs, fat, fiber, sodium}}
    """
    if not has_fdc_key():
        raise FdcNotReady("FDC_API_KEY is missing")

    key = f"search:{query.lower().strip()}"
    found, cached = _cache_get(key)
    if found:
        return cached

    if client is None:
        async with httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT, headers={"Accept": "application/json"}) as cli:
            return await search_food(query, client=cli)

    try:
        r = await client.get(SEARCH_URL, params={**SEARCH_PARAMS, "query": query, "api_key": settings.FDC_API_KEY})
    except httpx.HTTPError as e:
        raise FdcError(f"FDC request failed: {e}") from e
    if r.status_code >= 400:
        raise FdcError(f"FDC request failed ({r.status_code}): {r.text[:200]}")

    foods = (r.json() or {}).get("foods") or []
    food = normalize_food(foods[0]) if foods else None
    _cache_set(key, food)
    return food


async def search_first(queries: List[str], client: Optional[httpx.AsyncClient] = None) -> Optional[Dict[str, Any]]:
    # 후보 쿼리를 순서대로 시도, 첫 매칭 반환 (개별 실패는 경고만)
    for q in queries:
        if not q:
            continue
        try:
            food = await search_food(q, client=client)
        except FdcError as e:
            log.warning("fdc search failed for %r: %s", q, e)
            continue
        if food:
            return food
    return None
