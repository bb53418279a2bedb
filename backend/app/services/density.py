# app/services/density.py
# 부피/개수 단위 → 그램 변환
# - 값은 단위당 그램 (USDA FDC + 조리 참고자료 기준)
# - 정확 매칭 > 부분 매칭 > 카테고리 > 기본값(물 밀도) 순서

from __future__ import annotations

import re
from typing import Any, Dict, Optional

# 이름 → {cup, tbsp, tsp, category}
DENSITY_DATA: Dict[str, Dict[str, Any]] = {
    # 가루/베이킹
    "flour all purpose": {"cup": 125, "tbsp": 7.8, "tsp": 2.6, "category": "flour"},
    "flour bread": {"cup": 127, "tbsp": 7.9, "tsp": 2.6, "category": "flour"},
    "flour whole wheat": {"cup": 120, "tbsp": 7.5, "tsp": 2.5, "category": "flour"},
    "flour almond": {"cup": 96, "tbsp": 6, "tsp": 2, "category": "flour"},
    "flour coconut": {"cup": 112, "tbsp": 7, "tsp": 2.3, "category": "flour"},
    "flour rice": {"cup": 158, "tbsp": 9.9, "tsp": 3.3, "category": "flour"},
    "cornstarch": {"cup": 128, "tbsp": 8, "tsp": 2.7, "category": "flour"},
    "cornmeal": {"cup": 157, "tbsp": 9.8, "tsp": 3.3, "category": "flour"},
    # 당류
    "sugar granulated": {"cup": 200, "tbsp": 12.5, "tsp": 4.2, "category": "sugar"},
    "sugar brown": {"cup": 220, "tbsp": 13.8, "tsp": 4.6, "category": "sugar"},
    "sugar powdered": {"cup": 120, "tbsp": 7.5, "tsp": 2.5, "category": "sugar"},
    "honey": {"cup": 340, "tbsp": 21, "tsp": 7, "category": "sweetener"},
    "syrups maple": {"cup": 322, "tbsp": 20, "tsp": 6.7, "category": "sweetener"},
    "maple syrup": {"cup": 322, "tbsp": 20, "tsp": 6.7, "category": "sweetener"},
    "agave": {"cup": 336, "tbsp": 21, "tsp": 7, "category": "sweetener"},
    # 오일/지방
    "oil olive": {"cup": 216, "tbsp": 13.5, "tsp": 4.5, "category": "oil"},
    "oil olive extra virgin": {"cup": 216, "tbsp": 13.5, "tsp": 4.5, "category": "oil"},
    "oil vegetable": {"cup": 218, "tbsp": 13.6, "tsp": 4.5, "category": "oil"},
    "oil canola": {"cup": 218, "tbsp": 13.6, "tsp": 4.5, "category": "oil"},
    "oil coconut": {"cup": 218, "tbsp": 13.6, "tsp": 4.5, "category": "oil"},
    "oil sesame": {"cup": 218, "tbsp": 13.6, "tsp": 4.5, "category": "oil"},
    "oil avocado": {"cup": 218, "tbsp": 13.6, "tsp": 4.5, "category": "oil"},
    "butter salted": {"cup": 227, "tbsp": 14.2, "tsp": 4.7, "category": "fat"},
    "butter unsalted": {"cup": 227, "tbsp": 14.2, "tsp": 4.7, "category": "fat"},
    "butter": {"cup": 227, "tbsp": 14.2, "tsp": 4.7, "category": "fat"},
    # 유제품
    "milk whole": {"cup": 244, "tbsp": 15.3, "tsp": 5.1, "category": "dairy"},
    "milk nonfat": {"cup": 245, "tbsp": 15.3, "tsp": 5.1, "category": "dairy"},
    "milk reduced fat 2%": {"cup": 244, "tbsp": 15.3, "tsp": 5.1, "category": "dairy"},
    "cream heavy whipping": {"cup": 238, "tbsp": 14.9, "tsp": 5, "category": "dairy"},
    "sour cream": {"cup": 242, "tbsp": 15.1, "tsp": 5, "category": "dairy"},
    "yogurt plain whole milk": {"cup": 245, "tbsp": 15.3, "tsp": 5.1, "category": "dairy"},
    "yogurt greek plain nonfat": {"cup": 285, "tbsp": 17.8, "tsp": 5.9, "category": "dairy"},
    "cream cheese": {"cup": 232, "tbsp": 14.5, "tsp": 4.8, "category": "dairy"},
    "cottage cheese": {"cup": 226, "tbsp": 14.1, "tsp": 4.7, "category": "dairy"},
    # 치즈 (채썬/간)
    "cheese cheddar": {"cup": 113, "tbsp": 7.1, "tsp": 2.4, "category": "cheese"},
    "cheese mozzarella whole milk": {"cup": 113, "tbsp": 7.1, "tsp": 2.4, "category": "cheese"},
    "cheese parmesan hard": {"cup": 100, "tbsp": 6.3, "tsp": 2.1, "category": "cheese"},
    "cheese feta": {"cup": 150, "tbsp": 9.4, "tsp": 3.1, "category": "cheese"},
    # 곡물
    "rice white long grain raw": {"cup": 185, "tbsp": 11.6, "tsp": 3.9, "category": "grain"},
    "rice brown long grain raw": {"cup": 190, "tbsp": 11.9, "tsp": 4, "category": "grain"},
    "quinoa uncooked": {"cup": 170, "tbsp": 10.6, "tsp": 3.5, "category": "grain"},
    "oats regular": {"cup": 80, "tbsp": 5, "tsp": 1.7, "category": "grain"},
    "couscous": {"cup": 173, "tbsp": 10.8, "tsp": 3.6, "category": "grain"},
    "pasta dry": {"cup": 100, "tbsp": 6.3, "tsp": 2.1, "category": "pasta"},
    "spaghetti dry": {"cup": 100, "tbsp": 6.3, "tsp": 2.1, "category": "pasta"},
    # 콩류
    "beans black canned drained": {"cup": 172, "tbsp": 10.8, "tsp": 3.6, "category": "legume"},
    "beans kidney canned drained": {"cup": 177, "tbsp": 11.1, "tsp": 3.7, "category": "legume"},
    "chickpeas canned drained": {"cup": 164, "tbsp": 10.3, "tsp": 3.4, "category": "legume"},
    "lentils raw": {"cup": 192, "tbsp": 12, "tsp": 4, "category": "legume"},
    # 견과/씨앗
    "nuts almonds": {"cup": 143, "tbsp": 8.9, "tsp": 3, "category": "nut"},
    "nuts walnuts": {"cup": 117, "tbsp": 7.3, "tsp": 2.4, "category": "nut"},
    "nuts cashews raw": {"cup": 137, "tbsp": 8.6, "tsp": 2.9, "category": "nut"},
    "peanuts raw": {"cup": 146, "tbsp": 9.1, "tsp": 3, "category": "nut"},
    "chia seeds": {"cup": 168, "tbsp": 10.5, "tsp": 3.5, "category": "seed"},
    "peanut butter smooth": {"cup": 258, "tbsp": 16, "tsp": 5.3, "category": "nut_butter"},
    "almond butter": {"cup": 256, "tbsp": 16, "tsp": 5.3, "category": "nut_butter"},
    "tahini": {"cup": 240, "tbsp": 15, "tsp": 5, "category": "nut_butter"},
    # 채소
    "onions raw": {"cup": 160, "tbsp": 10, "tsp": 3.3, "category": "vegetable"},
    "garlic raw": {"cup": 136, "tbsp": 8.5, "tsp": 2.8, "clove": 3, "category": "vegetable"},
    "tomatoes red ripe raw": {"cup": 180, "tbsp": 11.3, "tsp": 3.8, "category": "vegetable"},
    "tomatoes grape raw": {"cup": 149, "tbsp": 9.3, "tsp": 3.1, "category": "vegetable"},
    "tomato paste": {"cup": 262, "tbsp": 16.4, "tsp": 5.5, "category": "vegetable"},
    "tomato sauce": {"cup": 245, "tbsp": 15.3, "tsp": 5.1, "category": "vegetable"},
    "carrots raw": {"cup": 128, "tbsp": 8, "tsp": 2.7, "category": "vegetable"},
    "celery raw": {"cup": 101, "tbsp": 6.3, "tsp": 2.1, "category": "vegetable"},
    "peppers sweet raw": {"cup": 149, "tbsp": 9.3, "tsp": 3.1, "category": "vegetable"},
    "broccoli raw": {"cup": 91, "tbsp": 5.7, "tsp": 1.9, "category": "vegetable"},
    "spinach raw": {"cup": 30, "tbsp": 1.9, "tsp": 0.6, "category": "vegetable"},
    "kale raw": {"cup": 67, "tbsp": 4.2, "tsp": 1.4, "category": "vegetable"},
    "mushrooms white raw": {"cup": 70, "tbsp": 4.4, "tsp": 1.5, "category": "vegetable"},
    "squash zucchini raw": {"cup": 124, "tbsp": 7.8, "tsp": 2.6, "category": "vegetable"},
    "avocados raw": {"cup": 150, "tbsp": 9.4, "tsp": 3.1, "category": "vegetable"},
    "corn sweet yellow raw": {"cup": 154, "tbsp": 9.6, "tsp": 3.2, "category": "vegetable"},
    "potatoes raw": {"cup": 150, "tbsp": 9.4, "tsp": 3.1, "category": "vegetable"},
    "sweet potato raw": {"cup": 133, "tbsp": 8.3, "tsp": 2.8, "category": "vegetable"},
    # 과일
    "bananas raw": {"cup": 150, "tbsp": 9.4, "tsp": 3.1, "category": "fruit"},
    "strawberries raw": {"cup": 152, "tbsp": 9.5, "tsp": 3.2, "category": "fruit"},
    "blueberries raw": {"cup": 148, "tbsp": 9.3, "tsp": 3.1, "category": "fruit"},
    "lemon juice raw": {"cup": 244, "tbsp": 15.3, "tsp": 5.1, "category": "fruit"},
    "lime juice raw": {"cup": 246, "tbsp": 15.4, "tsp": 5.1, "category": "fruit"},
    # 단백질
    "chicken broiler breast meat raw": {"cup": 140, "tbsp": 8.8, "tsp": 2.9, "category": "protein"},
    "beef ground 85% lean raw": {"cup": 226, "tbsp": 14.1, "tsp": 4.7, "category": "protein"},
    "turkey ground raw": {"cup": 226, "tbsp": 14.1, "tsp": 4.7, "category": "protein"},
    "egg whole raw": {"large": 50, "medium": 44, "small": 38, "category": "protein"},
    "egg white raw": {"cup": 243, "tbsp": 15.2, "tsp": 5.1, "large": 33, "category": "protein"},
    "tofu firm raw": {"cup": 252, "tbsp": 15.8, "tsp": 5.3, "category": "protein"},
    "shrimp raw": {"cup": 145, "tbsp": 9.1, "tsp": 3, "category": "protein"},
    # 소스
    "soy sauce": {"cup": 255, "tbsp": 16, "tsp": 5.3, "category": "condiment"},
    "ketchup": {"cup": 272, "tbsp": 17, "tsp": 5.7, "category": "condiment"},
    "mustard prepared yellow": {"cup": 249, "tbsp": 15.6, "tsp": 5.2, "category": "condiment"},
    "mayonnaise": {"cup": 232, "tbsp": 14.5, "tsp": 4.8, "category": "condiment"},
    "vinegar distilled": {"cup": 238, "tbsp": 14.9, "tsp": 5, "category": "condiment"},
    "sauce hot chile pepper": {"cup": 273, "tbsp": 17.1, "tsp": 5.7, "category": "condiment"},
    # 양념
    "salt table": {"cup": 292, "tbsp": 18.3, "tsp": 6.1, "category": "seasoning"},
    "salt table iodized": {"cup": 292, "tbsp": 18.3, "tsp": 6.1, "category": "seasoning"},
    "spices pepper black": {"cup": 105, "tbsp": 6.6, "tsp": 2.2, "category": "seasoning"},
    "spices paprika": {"cup": 109, "tbsp": 6.8, "tsp": 2.3, "category": "seasoning"},
    "spices cumin ground": {"cup": 104, "tbsp": 6.5, "tsp": 2.2, "category": "seasoning"},
    "spices cinnamon ground": {"cup": 125, "tbsp": 7.8, "tsp": 2.6, "category": "seasoning"},
    "spices garlic powder": {"cup": 155, "tbsp": 9.7, "tsp": 3.2, "category": "seasoning"},
    "spices chili powder": {"cup": 128, "tbsp": 8, "tsp": 2.7, "category": "seasoning"},
    "basil fresh": {"cup": 24, "tbsp": 1.5, "tsp": 0.5, "category": "herb"},
    "cilantro fresh": {"cup": 16, "tbsp": 1, "tsp": 0.3, "category": "herb"},
    "parsley fresh": {"cup": 60, "tbsp": 3.8, "tsp": 1.3, "category": "herb"},
    "ginger root raw": {"cup": 96, "tbsp": 6, "tsp": 2, "category": "herb"},
    # 베이킹
    "leavening agents baking powder": {"cup": 230, "tbsp": 14.4, "tsp": 4.8, "category": "baking"},
    "leavening agents baking soda": {"cup": 230, "tbsp": 14.4, "tsp": 4.8, "category": "baking"},
    "vanilla extract": {"cup": 208, "tbsp": 13, "tsp": 4.3, "category": "baking"},
    "cocoa dry powder unsweetened": {"cup": 86, "tbsp": 5.4, "tsp": 1.8, "category": "baking"},
    "chocolate chips semisweet": {"cup": 168, "tbsp": 10.5, "tsp": 3.5, "category": "baking"},
    "breadcrumbs": {"cup": 108, "tbsp": 6.8, "tsp": 2.3, "category": "baking"},
    # 액체
    "water": {"cup": 237, "tbsp": 14.8, "tsp": 4.9, "category": "liquid"},
    "broth chicken": {"cup": 240, "tbsp": 15, "tsp": 5, "category": "liquid"},
    "coconut milk": {"cup": 240, "tbsp": 15, "tsp": 5, "category": "liquid"},
    "almond milk": {"cup": 244, "tbsp": 15.3, "tsp": 5.1, "category": "liquid"},
}

CATEGORY_FALLBACKS: Dict[str, Dict[str, float]] = {
    "flour": {"cup": 125, "tbsp": 7.8, "tsp": 2.6},
    "sugar": {"cup": 200, "tbsp": 12.5, "tsp": 4.2},
    "sweetener": {"cup": 330, "tbsp": 20.6, "tsp": 6.9},
    "oil": {"cup": 218, "tbsp": 13.6, "tsp": 4.5},
    "fat": {"cup": 227, "tbsp": 14.2, "tsp": 4.7},
    "dairy": {"cup": 244, "tbsp": 15.3, "tsp": 5.1},
    "cheese": {"cup": 113, "tbsp": 7.1, "tsp": 2.4},
    "grain": {"cup": 180, "tbsp": 11.3, "tsp": 3.8},
    "pasta": {"cup": 100, "tbsp": 6.3, "tsp": 2.1},
    "legume": {"cup": 180, "tbsp": 11.3, "tsp": 3.8},
    "nut": {"cup": 130, "tbsp": 8.1, "tsp": 2.7},
    "seed": {"cup": 150, "tbsp": 9.4, "tsp": 3.1},
    "nut_butter": {"cup": 256, "tbsp": 16, "tsp": 5.3},
    "vegetable": {"cup": 130, "tbsp": 8.1, "tsp": 2.7},
    "fruit": {"cup": 150, "tbsp": 9.4, "tsp": 3.1},
    "protein": {"cup": 170, "tbsp": 10.6, "tsp": 3.5},
    "condiment": {"cup": 250, "tbsp": 15.6, "tsp": 5.2},
    "seasoning": {"cup": 110, "tbsp": 6.9, "tsp": 2.3},
    "herb": {"cup": 30, "tbsp": 1.9, "tsp": 0.6},
    "baking": {"cup": 150, "tbsp": 9.4, "tsp": 3.1},
    "liquid": {"cup": 240, "tbsp": 15, "tsp": 5},
}

DEFAULT_FALLBACK: Dict[str, float] = {"cup": 240, "tbsp": 15, "tsp": 5}

# 카테고리 판별 (앞에서부터 첫 매칭, nut_butter가 fat/nut보다 먼저)
_CATEGORY_RULES = [
    ("nut_butter", r"(peanut|almond|cashew|sunflower)\s+butter|tahini"),
    ("flour", r"flour|starch"),
    ("sugar", r"sugar|sweetener|syrup|honey|molasses"),
    ("oil", r"\boil\b|olive|canola"),
    ("fat", r"butter|margarine|shortening|lard"),
    ("dairy", r"milk|cream|yogurt"),
    ("cheese", r"cheese"),
    ("grain", r"rice|quinoa|\boat|barley|farro|bulgur|couscous"),
    ("pasta", r"pasta|spaghetti|noodle|penne|macaroni"),
    ("legume", r"bean|lentil|chickpea|\bpeas?\b"),
    ("nut", r"\bnuts?\b|almond|walnut|pecan|cashew|peanut|pistachio|macadamia"),
    ("seed", r"seed|chia|flax"),
    ("protein", r"chicken|beef|pork|turkey|fish|salmon|shrimp|\beggs?\b|tofu|tempeh"),
    ("condiment", r"sauce|ketchup|mustard|mayo|vinegar"),
    ("seasoning", r"spice|powder|ground|dried|seasoning"),
    ("herb", r"fresh|basil|cilantro|parsley|mint|thyme|rosemary"),
    ("liquid", r"broth|stock|water|wine|beer"),
    ("baking", r"baking|yeast|extract|cocoa|chocolate"),
    ("fruit", r"fruit|apple|banana|berry|orange|lemon|lime|mango|peach"),
    ("vegetable", r"vegetable|onion|garlic|tomato|carrot|celery|pepper|broccoli|spinach"),
]

WEIGHT_UNITS: Dict[str, float] = {"g": 1, "kg": 1000, "mg": 0.001, "oz": 28.3495, "lb": 453.592}

# 컵 기준 환산 (ml 등은 컵으로 바꾼 뒤 밀도 적용)
VOLUME_TO_CUP: Dict[str, float] = {
    "ml": 1 / 236.588,
    "l": 1000 / 236.588,
    "fl oz": 0.125,
    "pint": 2,
    "quart": 4,
    "gallon": 16,
}

# 개수 단위 (단위 없이 "2 eggs" 같은 경우 포함): 키워드 → 1개당 그램
COUNT_WEIGHTS: Dict[str, float] = {
    "egg": 50,
    "garlic": 3,
    "chicken breast": 174,
    "chicken thigh": 116,
    "onion": 110,
    "shallot": 40,
    "tomato": 123,
    "potato": 213,
    "sweet potato": 130,
    "carrot": 61,
    "bell pepper": 119,
    "zucchini": 196,
    "avocado": 150,
    "banana": 118,
    "apple": 182,
    "lemon": 58,
    "lime": 67,
    "tortilla": 45,
    "bread": 28,
    "bacon": 28,
}
# 단위별 고정 무게
UNIT_WEIGHTS: Dict[str, float] = {"stick": 113, "can": 400, "jar": 450, "package": 450, "bunch": 100, "sprig": 1, "stalk": 40, "head": 500}
SIZE_SCALE = {"large": 1.2, "medium": 1.0, "small": 0.8}


def _words(s: str) -> set:
    # "Onions, raw" → {"onions", "raw"}  (단어 단위 비교: "salt"가 "butter salted"에 걸리지 않게)
    return set(re.sub(r"[^\w%\s]", " ", s).split())


def detect_category(name: str, fdc_description: str = "") -> Optional[str]:
    combined = f"{name} {fdc_description}".lower()
    for category, pattern in _CATEGORY_RULES:
        if re.search(pattern, combined):
            return category
    return None


def get_density_data(name: str, fdc_description: Optional[str] = None) -> Dict[str, Any]:
    """
    재료 이름(및 FDC 설명) → 밀도 dict + match_type
    match_type: exact | fdc_exact | partial | fdc_partial | category | default
    """
    name_l = (name or "").lower().strip()
    fdc_l = (fdc_description or "").lower().strip()

    if name_l in DENSITY_DATA:
        return {**DENSITY_DATA[name_l], "match_type": "exact"}
    if fdc_l and fdc_l in DENSITY_DATA:
        return {**DENSITY_DATA[fdc_l], "match_type": "fdc_exact"}

    name_w, fdc_w = _words(name_l), _words(fdc_l)
    for key, data in DENSITY_DATA.items():
        key_w = _words(key)
        if name_w and (key_w <= name_w or name_w <= key_w):
            return {**data, "match_type": "partial"}
        if fdc_w and (key_w <= fdc_w or fdc_w <= key_w):
            return {**data, "match_type": "fdc_partial"}

    category = detect_category(name_l, fdc_l)
    if category and category in CATEGORY_FALLBACKS:
        return {**CATEGORY_FALLBACKS[category], "category": category, "match_type": "category"}

    return {**DEFAULT_FALLBACK, "match_type": "default"}


def count_weight(name: str) -> Optional[float]:
    # 가장 긴 키워드부터 ("sweet potato"가 "potato"보다 우선)
    lower = (name or "").lower()
    for key in sorted(COUNT_WEIGHTS, key=len, reverse=True):
        if key in lower:
            return COUNT_WEIGHTS[key]
    return None


def _confidence(match_type: str) -> str:
    if match_type in ("exact", "fdc_exact"):
        return "high"
    if match_type in ("partial", "fdc_partial"):
        return "medium"
    return "low"


def to_grams(
    quantity: Optional[float],
    unit: Optional[str],
    name: str,
    fdc_description: Optional[str] = None,
) -> Dict[str, Any]:
    """
    수량+단위 → {grams, confidence, density_source, warning?}
    - 무게 단위는 그대로, 부피는 밀도표, 개수는 크기표
    - 모르는 단위는 tbsp로 근사 + warning
    """
    if quantity is None or quantity <= 0:
        return {"grams": None, "confidence": "failed", "error": "Invalid quantity"}

    u = (unit or "").lower().strip() or None

    if u in WEIGHT_UNITS:
        return {"grams": quantity * WEIGHT_UNITS[u], "confidence": "high", "density_source": "weight_unit"}

    density = get_density_data(name, fdc_description)
    match_type = density["match_type"]

    if u in VOLUME_TO_CUP:
        u, quantity = "cup", quantity * VOLUME_TO_CUP[u]

    if u in ("cup", "tbsp", "tsp") and density.get(u):
        return {"grams": quantity * density[u], "confidence": _confidence(match_type), "density_source": match_type}

    if u == "clove" and density.get("clove"):
        return {"grams": quantity * density["clove"], "confidence": "medium", "density_source": "count_unit"}

    if u in SIZE_SCALE and density.get(u):
        return {"grams": quantity * density[u], "confidence": "medium", "density_source": "size_unit"}

    if u in UNIT_WEIGHTS:
        return {"grams": quantity * UNIT_WEIGHTS[u], "confidence": "low", "density_source": "unit_weight"}

    # 단위 없음 / piece / whole / each / clove / slice → 1개당 무게
    if u in (None, "piece", "whole", "each", "clove", "slice"):
        per = count_weight(name)
        if per is not None:
            return {"grams": quantity * per, "confidence": "medium", "density_source": "count_unit"}

    tbsp = density.get("tbsp") or DEFAULT_FALLBACK["tbsp"]
    return {
        "grams": quantity * tbsp,
        "confidence": "low",
        "density_source": "fallback_tbsp",
        "warning": f'Unknown unit "{unit or "none"}", approximated as tbsp',
    }
