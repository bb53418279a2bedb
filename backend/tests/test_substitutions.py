import asyncio

import httpx
import pytest

from app.core.config import settings
from app.models.schemas import IngredientMacro, MacroDelta, MacroEstimate, NutrientTotals, UserProfile
from app.services import substitutions
from app.services.substitutions import (
    CATALOG,
    build_substitution_plan,
    compute_goal_fit,
    infer_roles,
    is_candidate_allowed,
    score_candidate,
    should_skip,
)

from conftest import fdc_food


def _cand(cid):
    return next(c for c in CATALOG if c["id"] == cid)


def test_should_skip_seasonings_and_negligible_items():
    assert should_skip("black pepper", None)
    assert should_skip("chicken", MacroDelta(calories=3))
    assert not should_skip("chicken", MacroDelta(calories=200))


def test_infer_roles():
    assert infer_roles("olive oil", None, None) == ["fat_oil"]
    assert infer_roles("cheddar cheese", None, None) == ["creamy_dairy", "cheese"]
    assert "fat_oil" not in infer_roles("peanut butter", None, None)

    lean = infer_roles("beef", "Beef, ground, 93% lean meat / 7% fat, raw", MacroDelta(calories=150, protein=21, fat=4))
    assert lean == ["red_meat", "lean_protein", "lean_ground"]


def test_candidate_filters_diet_and_allergens():
    vegan = UserProfile(diet_style="vegan")
    assert not is_candidate_allowed(_cand("chicken_breast"), vegan)
    assert is_candidate_allowed(_cand("tofu_firm"), vegan)

    pesc = UserProfile(diet_style="pescatarian")
    assert is_candidate_allowed(_cand("salmon"), pesc)
    assert is_candidate_allowed(_cand("tofu_firm"), pesc)
    assert not is_candidate_allowed(_cand("chicken_breast"), pesc)

    assert not is_candidate_allowed(_cand("greek_yogurt"), UserProfile(diet_style="dairy_free"))
    assert not is_candidate_allowed(_cand("lentils"), UserProfile(allergens=["peanut"]))
    assert not is_candidate_allowed(_cand("shrimp"), UserProfile(allergens=["Shellfish"]))


def test_candidate_filters_avoid_list_and_conditions():
    assert not is_candidate_allowed(_cand("tofu_firm"), UserProfile(avoid_list="shrimp; Tofu"))
    assert not is_candidate_allowed(_cand("whole_wheat_pasta"), UserProfile(conditions=["celiac"]))
    assert is_candidate_allowed(_cand("brown_rice"), UserProfile(conditions=["celiac"]))


def test_candidate_never_repeats_original_unless_portion_swap():
    ctx = UserProfile()
    assert not is_candidate_allowed(_cand("avocado_oil"), ctx, "avocado oil")
    assert is_candidate_allowed(_cand("oil_half"), ctx, "olive oil")


def test_goal_fit():
    assert compute_goal_fit(MacroDelta(calories=250, protein=12, fat=8), "bulk") == pytest.approx(1.0)
    assert compute_goal_fit(MacroDelta(calories=-180, protein=0, carbs=-25, fat=-10), "cut") == pytest.approx(1.0)
    # 단백질이 크게 줄면 cut 점수가 깎인다
    assert compute_goal_fit(MacroDelta(calories=-180, protein=-8, carbs=-25, fat=-10), "cut") == pytest.approx(0.8)
    assert compute_goal_fit(MacroDelta(calories=200, protein=12, fat=0), "lean_bulk") == pytest.approx(1.0)
    assert compute_goal_fit(MacroDelta(), "maintain") == 0.3


def test_score_candidate_penalizes_allergens():
    chicken = score_candidate(_cand("chicken_breast"), 0.5)
    assert chicken == pytest.approx(0.36 + 0.2 + 0.15 + 0.05)
    assert score_candidate(_cand("shrimp"), 0.5) < chicken


def test_plan_without_fdc_key():
    plan = asyncio.run(build_substitution_plan({"ingredients": []}, "cut", {}))
    assert plan.ingredients == []
    assert "FDC_API_KEY missing" in plan.warnings[0]


def test_plan_ranks_candidates(monkeypatch, make_fdc_client):
    monkeypatch.setattr(settings, "FDC_API_KEY", "k")
    recipe = {
        "servings": 2,
        "ingredients": [
            {"name": "chicken thigh", "quantity": "200 g"},
            {"name": "salt", "quantity": "1 tsp"},
        ],
    }
    estimate = MacroEstimate(ingredients=[
        IngredientMacro(
            name="chicken thigh", quantity="200 g", grams=200,
            fdc_description="Chicken, broilers or fryers, thigh, meat only, raw",
            macros=NutrientTotals(calories=242, protein=39, carbs=0, fat=8.6),
        ),
        IngredientMacro(name="salt", quantity="1 tsp", grams=6, macros=NutrientTotals(sodium=2300)),
    ])
    foods = {
        "chicken broiler breast meat raw": fdc_food("Chicken breast, raw", 120, 22.5, 0, 2.6),
        "salmon atlantic raw": fdc_food("Fish, salmon, Atlantic, raw", 208, 20, 0, 13),
        "tofu firm raw": fdc_food("Tofu, firm, raw", 144, 17.3, 2.8, 8.7),
    }
    calls = []

    async def go():
        async with make_fdc_client(foods, calls) as client:
            return await build_substitution_plan(
                recipe, "cut", {"allergens": ["shellfish"]}, macro_estimate=estimate, client=client,
            )

    plan = asyncio.run(go())
    thigh, salt = plan.ingredients
    assert thigh.roles == ["poultry"]
    assert [c.name for c in thigh.candidates] == ["Chicken breast (skinless)", "Salmon fillet", "Extra-firm tofu"]

    best = thigh.candidates[0]
    assert best.swap_grams == 200
    assert best.macro_delta.calories == -2
    assert best.macro_delta.protein == 6
    assert best.score == pytest.approx(0.697, abs=0.001)

    assert salt.roles == [] and salt.candidates == []
    assert "shrimp raw" not in calls
    assert "salmon" in substitutions._candidate_cache

    wire = plan.to_wire()
    assert wire["ingredients"][0]["candidates"][0]["macroDelta"]["protein"] == 6


def _rice_estimate():
    return MacroEstimate(ingredients=[
        IngredientMacro(
            name="white rice", quantity="200 g", grams=200,
            fdc_description="Rice, white, long-grain, regular, raw",
            macros=NutrientTotals(calories=730, protein=14, carbs=160, fat=1.4),
        ),
    ])


def test_candidate_lookups_are_bounded(monkeypatch):
    monkeypatch.setattr(settings, "FDC_API_KEY", "k")
    state = {"in_flight": 0, "peak": 0, "calls": 0}

    async def handler(request):
        state["calls"] += 1
        state["in_flight"] += 1
        state["peak"] = max(state["peak"], state["in_flight"])
        await asyncio.sleep(0.02)
        state["in_flight"] -= 1
        return httpx.Response(200, json={"foods": [fdc_food(request.url.params["query"], 120, 3, 25, 1)]})

    recipe = {"servings": 1, "ingredients": [{"name": "white rice", "quantity": "200 g"}]}

    async def go():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            return await build_substitution_plan(recipe, "cut", {}, macro_estimate=_rice_estimate(), client=client)

    plan = asyncio.run(go())
    # carb_base 후보 7개를 한 번에 조회하지만 동시에는 최대 6개
    assert state["calls"] == 7
    assert state["peak"] == substitutions.MAX_CONCURRENT_LOOKUPS
    assert len(plan.ingredients[0].candidates) == 3


def test_candidate_cache_evicts_oldest(monkeypatch, make_fdc_client):
    monkeypatch.setattr(settings, "FDC_API_KEY", "k")
    for i in range(substitutions.CANDIDATE_CACHE_MAX):
        substitutions._candidate_cache[f"old{i}"] = {"description": f"old {i}", "nutrients": {}}

    quinoa = _cand("quinoa")
    foods = {q: fdc_food("Quinoa, uncooked", 368, 14, 64, 6) for q in quinoa["fdc_queries"]}
    calls = []

    async def go():
        sem = asyncio.Semaphore(substitutions.MAX_CONCURRENT_LOOKUPS)
        async with make_fdc_client(foods, calls) as client:
            # 캐시 히트는 가장 최근으로 옮겨짐 (HTTP 호출 없음)
            hit = await substitutions._load_candidate_food({"id": "old0", "name": "x"}, sem, client)
            fresh = await substitutions._load_candidate_food(quinoa, sem, client)
            return hit, fresh

    hit, fresh = asyncio.run(go())
    cache = substitutions._candidate_cache
    assert hit == {"description": "old 0", "nutrients": {}}
    assert fresh["description"] == "Quinoa, uncooked"
    assert len(cache) == substitutions.CANDIDATE_CACHE_MAX
    assert "old1" not in cache
    assert "old0" in cache
    assert list(cache)[-1] == "quinoa"
    assert len(calls) == 1
