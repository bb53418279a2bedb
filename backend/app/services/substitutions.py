# app/services/substitutions.py
# USDA 기반 치환 후보 계산
# - 재료별 역할(role) 추론 → 큐레이션 카탈로그에서 후보 → 사용자 제약(알레르기/식단/기피/질환) 필터
# - 후보 영양은 FDC 조회, 원재료 대비 macro delta로 목표 적합도 점수
# - 점수 = 맛/식감 0.45 + 흔함 0.2 + 목표적합 0.3 + 안전 0.05, 상위 3개

from __future__ import annotations

import asyncio
import logging
import re
from collections import OrderedDict
from typing import Any, Dict, List, Optional

import httpx

from app.core.config import has_fdc_key, settings
from app.models.schemas import (
    IngredientMacro,
    IngredientSubstitutions,
    MacroDelta,
    MacroEstimate,
    Recipe,
    SubstitutionCandidate,
    SubstitutionPlan,
    UserProfile,
)
from app.services.fdc import search_first
from app.services.macros import estimate_macros
from app.services.utils import normalize_recipe_ingredients

log = logging.getLogger(__name__)

MAX_CONCURRENT_LOOKUPS = 6
CANDIDATE_CACHE_MAX = 200

# 후보 FDC 결과 (id → food), 오래된 것부터 밀어냄
_candidate_cache: "OrderedDict[str, Dict[str, Any]]" = OrderedDict()

SKIP_KEYWORDS = ["salt", "pepper", "water", "vanilla", "baking powder", "baking soda", "yeast", "spice", "seasoning"]

# 큐레이션 카탈로그
# portion=True: 같은 재료의 양 조절형 후보 (원재료와 이름이 겹쳐도 허용)
CATALOG: List[Dict[str, Any]] = [
    # 단백질
    {"id": "chicken_breast", "name": "Chicken breast (skinless)", "roles": ["poultry", "red_meat", "pork", "lean_protein"],
     "fdc_queries": ["chicken broiler breast meat raw"], "taste": 4, "texture": 4, "commonness": 5, "diets": [], "allergens": []},
    {"id": "turkey_ground_93", "name": "93% lean ground turkey", "roles": ["red_meat", "lean_ground", "poultry"],
     "fdc_queries": ["turkey ground 93% lean raw", "turkey ground raw"], "taste": 4, "texture": 4, "commonness": 4, "diets": [], "allergens": []},
    {"id": "beef_ground_93", "name": "93% lean ground beef", "roles": ["red_meat", "lean_ground"],
     "fdc_queries": ["beef ground 93% lean meat raw"], "taste": 4, "texture": 5, "commonness": 4, "diets": [], "allergens": []},
    {"id": "pork_tenderloin", "name": "Pork tenderloin", "roles": ["pork", "red_meat"],
     "fdc_queries": ["pork tenderloin raw"], "taste": 4, "texture": 4, "commonness": 3, "diets": [], "allergens": []},
    {"id": "shrimp", "name": "Shrimp", "roles": ["seafood", "poultry"],
     "fdc_queries": ["shrimp raw"], "taste": 4, "texture": 3, "commonness": 4, "diets": ["pescatarian"], "allergens": ["shellfish"]},
    {"id": "cod", "name": "Cod fillet", "roles": ["seafood"],
     "fdc_queries": ["fish cod atlantic raw"], "taste": 4, "texture": 4, "commonness": 3, "diets": ["pescatarian"], "allergens": ["fish"]},
    {"id": "salmon", "name": "Salmon fillet", "roles": ["seafood", "poultry"],
     "fdc_queries": ["salmon atlantic raw"], "taste": 4, "texture": 4, "commonness": 4, "diets": ["pescatarian"], "allergens": ["fish"]},
    {"id": "tofu_firm", "name": "Extra-firm tofu", "roles": ["plant_protein", "poultry", "red_meat"],
     "fdc_queries": ["tofu firm raw"], "taste": 3, "texture": 3, "commonness": 4, "diets": ["vegan", "vegetarian"], "allergens": ["soy"]},
    {"id": "tempeh", "name": "Tempeh", "roles": ["plant_protein"],
     "fdc_queries": ["tempeh"], "taste": 3, "texture": 3, "commonness": 2, "diets": ["vegan", "vegetarian"], "allergens": ["soy"]},
    {"id": "lentils", "name": "Lentils", "roles": ["plant_protein", "carb_base"],
     "fdc_queries": ["lentils raw"], "taste": 3, "texture": 3, "commonness": 4, "diets": ["vegan", "vegetarian"], "allergens": ["legume"]},
    {"id": "egg_whites", "name": "Egg whites", "roles": ["binder", "lean_protein"],
     "fdc_queries": ["egg white raw"], "taste": 3, "texture": 4, "commonness": 4, "diets": ["vegetarian"], "allergens": ["egg"]},
    # 지방/오일
    {"id": "oil_half", "name": "Olive oil (half portion)", "roles": ["fat_oil"], "gram_ratio": 0.5, "portion": True,
     "fdc_queries": ["oil olive"], "taste": 4, "texture": 4, "commonness": 5, "diets": ["vegan", "vegetarian"], "allergens": []},
    {"id": "cooking_spray", "name": "Cooking spray (canola)", "roles": ["fat_oil"], "gram_ratio": 0.15,
     "fdc_queries": ["oil canola"], "taste": 4, "texture": 4, "commonness": 4, "diets": ["vegan", "vegetarian"], "allergens": []},
    {"id": "avocado_oil", "name": "Avocado oil", "roles": ["fat_oil"],
     "fdc_queries": ["oil avocado"], "taste": 4, "texture": 5, "commonness": 3, "diets": ["vegan", "vegetarian"], "allergens": []},
    {"id": "peanut_butter", "name": "Peanut butter", "roles": ["fat_oil"], "gram_ratio": 1.5,
     "fdc_queries": ["peanut butter smooth"], "taste": 3, "texture": 3, "commonness": 4, "diets": ["vegan", "vegetarian"], "allergens": ["peanut"]},
    # 유제품
    {"id": "greek_yogurt", "name": "Nonfat Greek yogurt", "roles": ["creamy_dairy"],
     "fdc_queries": ["yogurt greek plain nonfat"], "taste": 4, "texture": 4, "commonness": 5, "diets": ["vegetarian"], "allergens": ["dairy"]},
    {"id": "skim_milk", "name": "Skim milk", "roles": ["creamy_dairy"],
     "fdc_queries": ["milk nonfat"], "taste": 4, "texture": 4, "commonness": 5, "diets": ["vegetarian"], "allergens": ["dairy"]},
    {"id": "whole_milk", "name": "Whole milk", "roles": ["creamy_dairy"],
     "fdc_queries": ["milk whole"], "taste": 5, "texture": 5, "commonness": 5, "diets": ["vegetarian"], "allergens": ["dairy"]},
    {"id": "mozzarella_part_skim", "name": "Part-skim mozzarella", "roles": ["cheese"],
     "fdc_queries": ["cheese mozzarella part skim milk"], "taste": 4, "texture": 4, "commonness": 4, "diets": ["vegetarian"], "allergens": ["dairy"]},
    {"id": "cheese_half", "name": "Cheese (half portion)", "roles": ["cheese"], "gram_ratio": 0.5, "portion": True,
     "fdc_queries": ["cheese cheddar"], "taste": 4, "texture": 4, "commonness": 5, "diets": ["vegetarian"], "allergens": ["dairy"]},
    {"id": "nutritional_yeast", "name": "Nutritional yeast", "roles": ["cheese"], "gram_ratio": 0.3,
     "fdc_queries": ["yeast extract spread", "nutritional yeast"], "taste": 3, "texture": 2, "commonness": 2, "diets": ["vegan", "vegetarian"], "allergens": []},
    # 탄수화물
    {"id": "white_rice_more", "name": "White rice (1.5x portion)", "roles": ["carb_base"], "gram_ratio": 1.5, "portion": True,
     "fdc_queries": ["rice white long grain raw"], "taste": 5, "texture": 5, "commonness": 5, "diets": ["vegan", "vegetarian"], "allergens": []},
    {"id": "brown_rice", "name": "Brown rice", "roles": ["carb_base"],
     "fdc_queries": ["rice brown long grain raw"], "taste": 4, "texture": 4, "commonness": 5, "diets": ["vegan", "vegetarian"], "allergens": []},
    {"id": "quinoa", "name": "Quinoa", "roles": ["carb_base"],
     "fdc_queries": ["quinoa uncooked"], "taste": 4, "texture": 3, "commonness": 4, "diets": ["vegan", "vegetarian"], "allergens": []},
    {"id": "cauliflower_rice", "name": "Cauliflower rice", "roles": ["carb_base", "low_carb_base"],
     "fdc_queries": ["cauliflower raw"], "taste": 3, "texture": 3, "commonness": 4, "diets": ["vegan", "vegetarian"], "allergens": []},
    {"id": "zucchini_noodles", "name": "Zucchini noodles", "roles": ["carb_base", "low_carb_base"],
     "fdc_queries": ["squash zucchini raw"], "taste": 3, "texture": 2, "commonness": 3, "diets": ["vegan", "vegetarian"], "allergens": []},
    {"id": "whole_wheat_pasta", "name": "Whole wheat pasta", "roles": ["carb_base"],
     "fdc_queries": ["pasta whole wheat dry"], "taste": 4, "texture": 4, "commonness": 4, "diets": ["vegan", "vegetarian"], "allergens": ["gluten"]},
    {"id": "whole_wheat_tortilla", "name": "Whole wheat tortilla", "roles": ["bread_wrap"],
     "fdc_queries": ["tortillas whole wheat"], "taste": 4, "texture": 4, "commonness": 4, "diets": ["vegan", "vegetarian"], "allergens": ["gluten"]},
    {"id": "corn_tortilla", "name": "Corn tortilla", "roles": ["bread_wrap"],
     "fdc_queries": ["tortillas corn"], "taste": 4, "texture": 3, "commonness": 4, "diets": ["vegan", "vegetarian"], "allergens": []},
    {"id": "lettuce_wrap", "name": "Lettuce wrap", "roles": ["bread_wrap"], "gram_ratio": 0.6,
     "fdc_queries": ["lettuce romaine raw"], "taste": 3, "texture": 2, "commonness": 3, "diets": ["vegan", "vegetarian"], "allergens": []},
]

_CONDITION_HITS: Dict[str, List[str]] = {
    "celiac": ["flour", "wheat", "barley", "rye", "malt", "bread", "panko"],
    "diabetes": ["sugar", "syrup", "honey", "sweetened"],
    "hypertension": ["soy sauce", "salt", "bacon", "sausage", "ham", "broth", "bouillon", "cured"],
    "high_cholesterol": ["butter", "cream", "cheese", "bacon", "sausage", "ribeye", "short rib", "pork belly", "lard", "ghee"],
    "kidney": ["soy sauce", "salt", "broth", "spinach", "tomato", "potato", "beans", "lentil", "avocado"],
}


def get_candidates_for_roles(roles: List[str]) -> List[Dict[str, Any]]:
    want = set(roles)
    return [c for c in CATALOG if want.intersection(c["roles"])]


def should_skip(name: Optional[str], base: Optional[MacroDelta]) -> bool:
    # 양념류/영양 영향 미미한 재료는 건너뜀
    lower = (name or "").lower()
    if any(k in lower for k in SKIP_KEYWORDS):
        return True
    return base is not None and (base.calories or 0) <= 5


def infer_roles(name: str, fdc_description: Optional[str], base: Optional[MacroDelta]) -> List[str]:
    name = (name or "").lower()
    desc = (fdc_description or "").lower()
    roles: List[str] = []

    def add(role: str) -> None:
        if role not in roles:
            roles.append(role)

    if "chicken" in name or "turkey" in name or "poultry" in desc:
        add("poultry")
    if "beef" in name or "beef" in desc:
        add("red_meat")
    if "pork" in name or "pork" in desc:
        add("pork")
    if "fish" in desc or "shellfish" in desc or "shrimp" in name or "salmon" in name:
        add("seafood")
    if "tofu" in name or "tempeh" in name or "soy" in desc or "bean" in name or "lentil" in name or "legume" in desc:
        add("plant_protein")
    if "oil" in name or re.search(r"\bbutter\b", name) and "peanut" not in name or "ghee" in name or "avocado" in name:
        add("fat_oil")
    if "cheese" in name or "milk" in name or "yogurt" in name or "cream" in name:
        add("creamy_dairy")
        if "cheese" in name:
            add("cheese")
    if "egg" in name:
        add("binder")
    if any(k in name for k in ("rice", "pasta", "noodle", "spaghetti", "penne", "quinoa", "oats")):
        add("carb_base")
    if "tortilla" in name or "bread" in name:
        add("bread_wrap")
    if "cauliflower" in name or "zucchini" in name:
        add("low_carb_base")

    if base is not None:
        protein, fat = base.protein or 0, base.fat or 0
        if protein >= 15 and fat <= 8:
            add("lean_protein")
        if protein >= 12 and fat <= 5 and ("ground" in name or "ground" in desc):
            add("lean_ground")

    return roles


def _avoid_terms(avoid_list: str) -> List[str]:
    return [t.strip().lower() for t in re.split(r"[,;]", avoid_list or "") if t.strip()]


def is_candidate_allowed(candidate: Dict[str, Any], ctx: UserProfile, original_name: str = "") -> bool:
    """알레르기 / 식단 / 기피 목록 / 질환 가드레일 / 동일 재료 여부"""
    allergens = {a.lower().strip() for a in ctx.allergens}
    diet = (ctx.diet_style or "").lower()
    conditions = {c.lower().strip() for c in ctx.conditions}
    cand_name = candidate["name"].lower()
    cand_allergens = [a.lower() for a in candidate.get("allergens", [])]
    diets = candidate.get("diets", [])

    for a in cand_allergens:
        if a in allergens:
            return False
        if a == "legume" and "peanut" in allergens:
            return False

    if diet == "vegan" and "vegan" not in diets:
        return False
    if diet == "vegetarian" and not ({"vegetarian", "vegan"} & set(diets)):
        return False
    if diet == "pescatarian" and "seafood" not in candidate["roles"] and not ({"vegetarian", "vegan"} & set(diets)):
        return False
    if diet == "dairy_free" and "dairy" in cand_allergens:
        return False

    if any(term in cand_name for term in _avoid_terms(ctx.avoid_list)):
        return False

    for cond, hits in _CONDITION_HITS.items():
        if cond in conditions and any(k in cand_name for k in hits):
            return False
    if "celiac" in conditions and "gluten" in cand_allergens:
        return False

    original = (original_name or "").lower().strip()
    if original and not candidate.get("portion") and original in cand_name:
        return False
    return True


def _clamp(v: float, lo: float = 0.0, hi: float = 1.0) -> float:
    return min(max(v, lo), hi)


def _pos(delta: float, target: float) -> float:
    return 0.0 if delta <= 0 else _clamp(delta / target)


def _neg(delta: float, target: float) -> float:
    return 0.0 if delta >= 0 else _clamp(abs(delta) / target)


def _band(delta: float, low: float, high: float) -> float:
    if delta <= 0:
        return 0.0
    if delta >= high:
        return 1.0
    return _clamp((delta - low) / (high - low))


def compute_goal_fit(delta: MacroDelta, goal_type: str) -> float:
    """macro delta가 목표 방향과 얼마나 맞는지 0~1"""
    cal, protein, carbs, fat = delta.calories, delta.protein, delta.carbs, delta.fat

    if goal_type == "bulk":
        return _clamp(0.45 * _pos(cal, 250) + 0.4 * _pos(protein, 12) + 0.15 * _pos(fat, 8))
    if goal_type == "lean_bulk":
        fat_penalty = _neg(fat, 10) * 0.5
        return _clamp(0.45 * _pos(protein, 12) + 0.35 * _band(cal, 75, 200) + 0.2 * (1 - fat_penalty))
    if goal_type == "cut":
        protein_guard = 1.0 if protein >= -3 else 1 - _neg(protein, 8)
        return _clamp(0.4 * _neg(cal, 180) + 0.25 * _neg(fat, 10) + 0.2 * protein_guard + 0.15 * _neg(carbs, 25))
    return 0.3


def score_candidate(candidate: Dict[str, Any], goal_fit: float) -> float:
    taste_texture = (candidate.get("taste", 3) + candidate.get("texture", 3)) / 10
    commonness = candidate.get("commonness", 3) / 5
    safety = 0.8 if candidate.get("allergens") else 1.0
    return round(taste_texture * 0.45 + commonness * 0.2 + goal_fit * 0.3 + safety * 0.05, 3)


def _macros_for(nutrients: Dict[str, float], grams: float) -> MacroDelta:
    f = grams / 100.0
    return MacroDelta(
        calories=(nutrients.get("calories") or 0) * f,
        protein=(nutrients.get("protein") or 0) * f,
        carbs=(nutrients.get("carbs") or 0) * f,
        fat=(nutrients.get("fat") or 0) * f,
    )


def _rounded(m: MacroDelta) -> MacroDelta:
    return MacroDelta(calories=round(m.calories), protein=round(m.protein, 1), carbs=round(m.carbs, 1), fat=round(m.fat, 1))


async def _load_candidate_food(candidate: Dict[str, Any], sem: asyncio.Semaphore, client: httpx.AsyncClient) -> Optional[Dict[str, Any]]:
    cid = candidate["id"]
    if cid in _candidate_cache:
        _candidate_cache.move_to_end(cid)
        return _candidate_cache[cid]

    async with sem:
        food = await search_first(candidate.get("fdc_queries") or [candidate["name"]], client=client)

    if food:
        _candidate_cache[cid] = food
        while len(_candidate_cache) > CANDIDATE_CACHE_MAX:
            _candidate_cache.popitem(last=False)
    return food


async def _candidates_for(
    name: str,
    detail: IngredientMacro,
    roles: List[str],
    goal_type: str,
    ctx: UserProfile,
    sem: asyncio.Semaphore,
    client: httpx.AsyncClient,
) -> List[SubstitutionCandidate]:
    base = MacroDelta(**detail.macros.model_dump(include={"calories", "protein", "carbs", "fat"}))
    base_grams = detail.grams or 0.0
    allowed = [c for c in get_candidates_for_roles(roles) if is_candidate_allowed(c, ctx, name)]

    foods = await asyncio.gather(*(_load_candidate_food(c, sem, client) for c in allowed))

    scored: List[SubstitutionCandidate] = []
    for cand, food in zip(allowed, foods):
        if not food or not food.get("nutrients"):
            continue
        swap_grams = max(base_grams * cand.get("gram_ratio", 1.0), 1.0)
        m = _macros_for(food["nutrients"], swap_grams)
        delta = MacroDelta(
            calories=m.calories - base.calories,
            protein=m.protein - base.protein,
            carbs=m.carbs - base.carbs,
            fat=m.fat - base.fat,
        )
        fit = compute_goal_fit(delta, goal_type)
        scored.append(SubstitutionCandidate(
            name=cand["name"],
            fdc_description=food.get("description"),
            swap_grams=round(swap_grams, 1),
            macro_delta=_rounded(delta),
            taste_score=cand.get("taste", 3),
            texture_score=cand.get("texture", 3),
            commonness=cand.get("commonness", 3),
            goal_fit=round(fit * 100, 1),
            score=score_candidate(cand, fit),
        ))

    scored.sort(key=lambda c: c.score, reverse=True)
    return scored[:3]


async def build_substitution_plan(
    recipe: Any,
    goal_type: str,
    user_context: Any = None,
    macro_estimate: Optional[MacroEstimate] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> SubstitutionPlan:
    """
    레시피 + 목표 + 사용자 제약 → SubstitutionPlan
    - FDC 키 없으면 빈 계획 + 경고
    - 후보 FDC 조회는 동시에 최대 6개
    """
    if not has_fdc_key():
        return SubstitutionPlan(warnings=["FDC_API_KEY missing; substitution candidates limited to portion tweaks."])

    if client is None:
        async with httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT, headers={"Accept": "application/json"}) as cli:
            return await build_substitution_plan(recipe, goal_type, user_context, macro_estimate, client=cli)

    rec = recipe if isinstance(recipe, Recipe) else Recipe.model_validate(recipe)
    ctx = user_context if isinstance(user_context, UserProfile) else UserProfile.model_validate(user_context or {})

    if macro_estimate is None:
        macro_estimate = await estimate_macros(rec, include_yield_factors=True, client=client)

    plan = SubstitutionPlan(warnings=list(macro_estimate.warnings), assumptions=list(macro_estimate.assumptions))
    sem = asyncio.Semaphore(MAX_CONCURRENT_LOOKUPS)
    parsed_all = normalize_recipe_ingredients([i.model_dump() for i in rec.ingredients])

    for i, parsed in enumerate(parsed_all):
        detail = macro_estimate.ingredients[i] if i < len(macro_estimate.ingredients) else None
        base = None
        if detail is not None and detail.macros is not None:
            base = MacroDelta(**detail.macros.model_dump(include={"calories", "protein", "carbs", "fat"}))

        name = parsed["name"]
        roles = [] if should_skip(name, base) else infer_roles(name, detail.fdc_description if detail else None, base)

        candidates: List[SubstitutionCandidate] = []
        if roles and base is not None and detail.grams:
            candidates = await _candidates_for(name, detail, roles, goal_type, ctx, sem, client)

        plan.ingredients.append(IngredientSubstitutions(
            name=name,
            original=parsed["original"],
            roles=roles,
            base_grams=detail.grams if detail else None,
            base_macros=_rounded(base) if base else None,
            candidates=candidates,
        ))

    log.info("substitution plan: %d ingredients, goal=%s", len(plan.ingredients), goal_type)
    return plan
