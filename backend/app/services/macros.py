# app/services/macros.py
# 레시피 재료 → USDA FDC 기반 매크로 추정
# 흐름: 재료 파싱(utils) → 그램 환산(density) → FDC 검색(fdc) → (선택) 조리 수율 보정(yield_factors)

from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Optional

import httpx

from app.core.config import has_fdc_key, settings
from app.models.schemas import IngredientMacro, MacroEstimate, NutrientTotals, Recipe
from app.services import density, yield_factors
from app.services.fdc import FdcNotReady, search_first
from app.services.utils import INGREDIENT_ALIASES, normalize_recipe_ingredients

log = logging.getLogger(__name__)

_FIELDS = ("calories", "protein", "carbs", "fat", "fiber", "sodium")
# FDC 설명이 생/건조 상태인지 (익힌 재료 무게를 생 무게로 되돌릴 때만 보정)
_RAW_DESC = re.compile(r"\b(raw|dry|uncooked|unprepared)\b", re.I)


def _r1(x: float) -> float:
    return round(x + 1e-9, 1)


def _scale(nutrients: Dict[str, float], grams: float) -> Dict[str, float]:
    # FDC 값은 100g 기준
    return {k: (nutrients.get(k) or 0.0) * grams / 100.0 for k in _FIELDS}


def _as_recipe(recipe: Any) -> Recipe:
    return recipe if isinstance(recipe, Recipe) else Recipe.model_validate(recipe)


async def estimate_macros(
    recipe: Any,
    include_yield_factors: bool = True,
    client: Optional[httpx.AsyncClient] = None,
) -> MacroEstimate:
    """
    레시피(dict 또는 Recipe) → MacroEstimate
    - totals: 전체 합, per_serving: totals / max(1, servings), 소수 1자리
    - 파싱 실패 / FDC 미매칭 재료는 warning으로 남기고 건너뜀
    - kcal와 4/4/9 환산 칼로리가 10% 넘게 다르면 warning
    """
    if not has_fdc_key():
        raise FdcNotReady("FDC_API_KEY missing; cannot estimate macros.")

    if client is None:
        async with httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT, headers={"Accept": "application/json"}) as cli:
            return await estimate_macros(recipe, include_yield_factors, client=cli)

    rec = _as_recipe(recipe)
    totals = {k: 0.0 for k in _FIELDS}
    details: List[IngredientMacro] = []
    assumptions: List[str] = []
    warnings: List[str] = []

    for parsed in normalize_recipe_ingredients([i.model_dump() for i in rec.ingredients]):
        ing = parsed["original_ingredient"]
        label = ing.get("name") or parsed["name"]
        quantity_text = ing.get("quantity") or ""

        if parsed["quantity"] is None:
            warnings.append(f'Could not parse quantity for "{label}" ({quantity_text or "n/a"})')
            details.append(IngredientMacro(name=label, quantity=quantity_text, cooked_state=parsed["cooked_state"]))
            continue

        food = await search_first(parsed["search_queries"], client=client)
        if food is None:
            warnings.append(f'No FDC match for "{label}"')
            details.append(IngredientMacro(name=label, quantity=quantity_text, cooked_state=parsed["cooked_state"]))
            continue

        lookup = INGREDIENT_ALIASES.get(parsed["name"], parsed["name"])
        conv = density.to_grams(parsed["quantity"], parsed["unit"], lookup, food["description"])
        grams = conv["grams"] or 0.0
        if conv.get("warning"):
            warnings.append(f'{label}: {conv["warning"]}')

        factor: Optional[float] = None
        if include_yield_factors and parsed["cooked_state"] == "cooked" and _RAW_DESC.search(food["description"]):
            state = yield_factors.analyze_ingredient_cooking_state(parsed["original"], rec.steps)
            method = state["method"] if state["method"] not in ("default", "raw") else None
            y = yield_factors.cooked_to_raw(grams, parsed["name"], method)
            if y.get("raw_grams") and y["factor"] != 1.0:
                factor = y["factor"]
                grams = y["raw_grams"]
                assumptions.append(f'Cooked weight converted to raw for "{label}" ({y["note"]})')

        scaled = _scale(food["nutrients"], grams)
        for k in _FIELDS:
            totals[k] += scaled[k]

        details.append(IngredientMacro(
            name=label,
            quantity=quantity_text,
            grams=_r1(grams),
            fdc_id=food.get("fdc_id"),
            fdc_description=food["description"],
            confidence=conv["confidence"],
            cooked_state=parsed["cooked_state"],
            yield_factor=factor,
            macros=NutrientTotals(**{k: _r1(v) for k, v in scaled.items()}),
        ))
        assumptions.append(
            f'Ingredient "{label}" → {grams:.1f} g using unit "{parsed["unit"] or "count"}" (FDC: {food["description"]})'
        )

    servings = max(1, int(rec.servings or 1))
    per = {k: _r1(v / servings) for k, v in totals.items()}

    from_macros = per["protein"] * 4 + per["carbs"] * 4 + per["fat"] * 9
    if abs(from_macros - per["calories"]) / max(1.0, per["calories"]) > 0.1:
        warnings.append("Calorie sum differs from macro-derived calories by >10% (check quantities).")

    log.info("macro estimate: %d ingredients, %d warnings", len(details), len(warnings))
    return MacroEstimate(
        totals=NutrientTotals(**{k: _r1(v) for k, v in totals.items()}),
        per_serving=NutrientTotals(**per),
        servings=servings,
        ingredients=details,
        assumptions=assumptions,
        warnings=warnings,
    )
