# app/services/yield_factors.py
# 조리 전/후 무게 보정 (yield factor = 조리 후 무게 / 생 무게)
# - < 1: 수분 손실 (육류, 채소)
# - > 1: 수분 흡수 (곡물, 파스타, 콩)

from __future__ import annotations

import re
from typing import Any, Dict, List, Optional

# 카테고리 → 재료 → 조리법별 계수 (default 필수)
YIELD_FACTORS: Dict[str, Dict[str, Dict[str, float]]] = {
    "proteins": {
        "chicken breast": {"baked": 0.75, "grilled": 0.73, "fried": 0.70, "poached": 0.78, "boiled": 0.80, "default": 0.75},
        "chicken thigh": {"baked": 0.72, "grilled": 0.70, "fried": 0.68, "default": 0.72},
        "chicken wing": {"baked": 0.70, "fried": 0.65, "default": 0.70},
        "beef ground": {"pan_fried": 0.71, "grilled": 0.70, "baked": 0.73, "default": 0.71},
        "beef steak": {"grilled": 0.80, "seared": 0.82, "default": 0.80},
        "pork chop": {"grilled": 0.75, "pan_fried": 0.73, "baked": 0.77, "default": 0.75},
        "bacon": {"pan_fried": 0.30, "baked": 0.35, "microwaved": 0.32, "default": 0.30},
        "sausage": {"pan_fried": 0.75, "grilled": 0.73, "default": 0.75},
        "turkey ground": {"pan_fried": 0.72, "default": 0.72},
        "salmon": {"baked": 0.80, "grilled": 0.78, "poached": 0.85, "seared": 0.77, "default": 0.80},
        "tuna": {"seared": 0.85, "baked": 0.78, "default": 0.80},
        "cod": {"baked": 0.82, "poached": 0.85, "default": 0.82},
        "shrimp": {"boiled": 0.77, "sauteed": 0.75, "grilled": 0.73, "default": 0.75},
        "tofu": {"pan_fried": 0.85, "baked": 0.80, "default": 0.85},
        "egg": {"fried": 0.88, "boiled": 0.95, "poached": 0.95, "default": 0.92},
    },
    "grains": {
        "rice white": {"boiled": 3.0, "steamed": 2.8, "default": 3.0},
        "rice brown": {"boiled": 2.5, "default": 2.5},
        "rice": {"boiled": 3.0, "default": 3.0},
        "pasta": {"boiled": 2.25, "default": 2.25},
        "spaghetti": {"boiled": 2.25, "default": 2.25},
        "penne": {"boiled": 2.1, "default": 2.1},
        "noodles": {"boiled": 2.0, "default": 2.0},
        "quinoa": {"boiled": 3.0, "default": 3.0},
        "couscous": {"steamed": 2.5, "default": 2.5},
        "oats": {"boiled": 4.0, "default": 4.0},
        "barley": {"boiled": 3.5, "default": 3.5},
    },
    "legumes": {
        "beans black": {"boiled": 2.3, "default": 2.3},
        "beans kidney": {"boiled": 2.2, "default": 2.2},
        "chickpeas": {"boiled": 2.0, "default": 2.0},
        "lentils": {"boiled": 2.5, "default": 2.5},
    },
    "vegetables": {
        "spinach": {"sauteed": 0.23, "steamed": 0.25, "boiled": 0.20, "default": 0.23},
        "kale": {"sauteed": 0.35, "steamed": 0.40, "default": 0.35},
        "broccoli": {"steamed": 0.90, "boiled": 0.88, "roasted": 0.80, "default": 0.90},
        "cauliflower": {"steamed": 0.92, "roasted": 0.78, "default": 0.90},
        "carrots": {"boiled": 0.90, "roasted": 0.75, "steamed": 0.92, "default": 0.90},
        "onions": {"sauteed": 0.65, "caramelized": 0.40, "roasted": 0.60, "default": 0.65},
        "mushrooms": {"sauteed": 0.50, "roasted": 0.55, "default": 0.50},
        "zucchini": {"sauteed": 0.85, "grilled": 0.80, "roasted": 0.75, "default": 0.85},
        "bell peppers": {"sauteed": 0.85, "roasted": 0.70, "grilled": 0.75, "default": 0.80},
        "tomatoes": {"roasted": 0.70, "sauteed": 0.80, "default": 0.75},
        "potatoes": {"boiled": 0.95, "baked": 0.90, "roasted": 0.85, "fried": 0.65, "default": 0.90},
        "sweet potatoes": {"baked": 0.88, "boiled": 0.95, "roasted": 0.82, "default": 0.88},
    },
}

# (패턴, 조리법) 앞에서부터 첫 매칭. deep fried가 pan fried보다 먼저
_METHOD_PATTERNS = [
    (re.compile(r"\b(deep[- ]?fried|deep[- ]?frying)\b"), "fried"),
    (re.compile(r"\b(bake|baked|baking)\b"), "baked"),
    (re.compile(r"\b(roast|roasted|roasting)\b"), "roasted"),
    (re.compile(r"\b(grill|grilled|grilling)\b"), "grilled"),
    (re.compile(r"\b(fry|fried|frying|pan[- ]?fried)\b"), "pan_fried"),
    (re.compile(r"\b(saute|sauteed|sautéed?|sauteing)\b"), "sauteed"),
    (re.compile(r"\b(boil|boiled|boiling)\b"), "boiled"),
    (re.compile(r"\b(steam|steamed|steaming)\b"), "steamed"),
    (re.compile(r"\b(poach|poached|poaching)\b"), "poached"),
    (re.compile(r"\b(braise|braised|braising)\b"), "braised"),
    (re.compile(r"\b(smoke|smoked|smoking)\b"), "smoked"),
    (re.compile(r"\b(slow[- ]?cook|slow[- ]?cooked|slow[- ]?cooking)\b"), "slow_cooked"),
    (re.compile(r"\b(microwave|microwaved)\b"), "microwaved"),
    (re.compile(r"\b(sear|seared|searing)\b"), "seared"),
    (re.compile(r"\b(caramelize|caramelized)\b"), "caramelized"),
    (re.compile(r"\b(raw|uncooked|fresh)\b"), "raw"),
]

_RAW_CONTEXT = ["salad", "garnish", "topping", "serving", "dressing"]


def _words(s: str) -> set:
    return set(re.sub(r"[^\w\s]", " ", (s or "").lower()).split())


def _singular(words: set) -> set:
    return {w[:-1] if w.endswith("s") and len(w) > 3 else w for w in words}


def get_yield_factor(name: str, method: Optional[str] = None, direction: str = "raw_to_cooked") -> Dict[str, Any]:
    """
    재료/조리법 → {factor, confidence, category, ingredient, method}
    - 매칭 없으면 1.0 (보정 없음)
    - direction="cooked_to_raw"면 역수
    """
    name_w = _singular(_words(name))
    m = (method or "").lower().strip()

    for category, items in YIELD_FACTORS.items():
        for item, methods in items.items():
            item_w = _singular(_words(item))
            if not name_w or not (item_w <= name_w or name_w <= item_w):
                continue
            used = m if m and m in methods else "default"
            factor = methods[used]
            if direction == "cooked_to_raw":
                factor = 1 / factor
            return {
                "factor": factor,
                "confidence": "high" if used == m else "medium",
                "category": category,
                "ingredient": item,
                "method": used,
            }

    return {
        "factor": 1.0,
        "confidence": "low",
        "category": "unknown",
        "ingredient": name,
        "method": "none",
        "note": "No yield factor found, using 1:1 ratio",
    }


def raw_to_cooked(raw_grams: float, name: str, method: Optional[str] = None) -> Dict[str, Any]:
    if not raw_grams or raw_grams <= 0:
        return {"cooked_grams": None, "error": "Invalid raw weight"}
    y = get_yield_factor(name, method, "raw_to_cooked")
    return {"cooked_grams": raw_grams * y["factor"], "factor": y["factor"], "confidence": y["confidence"]}


def cooked_to_raw(cooked_grams: float, name: str, method: Optional[str] = None) -> Dict[str, Any]:
    if not cooked_grams or cooked_grams <= 0:
        return {"raw_grams": None, "error": "Invalid cooked weight"}
    y = get_yield_factor(name, method, "cooked_to_raw")
    return {
        "raw_grams": cooked_grams * y["factor"],
        "factor": y["factor"],
        "confidence": y["confidence"],
        "note": y.get("note") or f"{name} {y['method']}: {cooked_grams:.0f}g cooked → {cooked_grams * y['factor']:.1f}g raw",
    }


def detect_cooking_method(text: Optional[str]) -> Optional[str]:
    if not text:
        return None
    lower = text.lower()
    for pattern, method in _METHOD_PATTERNS:
        if pattern.search(lower):
            return method
    return None


def analyze_ingredient_cooking_state(text: str, steps: Optional[List[str]] = None) -> Dict[str, Any]:
    # 재료 문구 → 레시피 단계 → 기본값(익힘) 순으로 판단
    method = detect_cooking_method(text)
    if method == "raw":
        return {"is_cooked": False, "method": "raw", "confidence": "high"}
    if method:
        return {"is_cooked": True, "method": method, "confidence": "high"}

    steps_method = detect_cooking_method(" ".join(steps or []))
    if steps_method and steps_method != "raw":
        return {"is_cooked": True, "method": steps_method, "confidence": "medium"}

    lower = (text or "").lower()
    if any(k in lower for k in _RAW_CONTEXT):
        return {"is_cooked": False, "method": "raw", "confidence": "medium"}

    return {"is_cooked": True, "method": "default", "confidence": "low"}
