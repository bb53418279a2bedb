# app/services/goals.py
# 목표(bulk / lean_bulk / cut)별 변형 규칙 + LLM 프롬프트 빌더
# 2단계: (1) 목표 매크로 수치 계산 → (2) 치환으로 그 수치에 맞추기

from __future__ import annotations

from typing import Any, Dict, List, Optional

from app.models.schemas import Recipe, SubstitutionPlan, UserProfile

GOAL_CONFIGS: Dict[str, Dict[str, Any]] = {
    "bulk": {
        "name": "Bulk",
        "description": "Maximize muscle gain with calorie surplus",
        "targets": {
            "calories": "+300 to +500",
            "protein": "+20 to +40g",
            "carbs": "can increase",
            "fat": "can increase",
        },
    },
    "lean_bulk": {
        "name": "Lean Bulk",
        "description": "Build muscle with minimal fat gain",
        "targets": {
            "calories": "+150 to +250",
            "protein": "+25 to +40g",
            "carbs": "slight increase okay",
            "fat": "keep same or lower",
        },
    },
    "cut": {
        "name": "Cut",
        "description": "Lose fat while preserving muscle",
        "targets": {
            "calories": "-200 to -400",
            "protein": "maintain or increase",
            "carbs": "reduce",
            "fat": "reduce",
        },
    },
}

CONDITION_LABELS: Dict[str, str] = {
    "celiac": "Celiac (strict gluten-free)",
    "diabetes": "Diabetes / blood sugar",
    "hypertension": "Hypertension",
    "high_cholesterol": "High cholesterol",
    "kidney": "Kidney-friendly",
}

CONDITION_GUARDRAILS: Dict[str, str] = {
    "celiac": (
        "- Celiac: recipe MUST be gluten-free. Exclude wheat, barley, rye, malt, standard soy sauce/beer; "
        "prefer gluten-free flours, tamari, rice/corn starches."
    ),
    "diabetes": (
        "- Diabetes: keep carbs lower-glycemic, minimize added sugars, prefer fiber-rich swaps, "
        "and note carb counts after edits."
    ),
    "hypertension": (
        "- Hypertension: lower sodium. Avoid salty cured meats and high-sodium sauces; "
        "choose low-sodium alternatives."
    ),
    "high_cholesterol": (
        "- High cholesterol: reduce saturated fat. Favor lean proteins and plant oils over butter/cream/fatty cuts."
    ),
    "kidney": (
        "- Kidney-friendly: moderate sodium, potassium-heavy items (tomato, potato, spinach), "
        "and very high protein portions."
    ),
}

PLAYBOOK = """**To INCREASE PROTEIN:**
- Swap chicken thigh → chicken breast (leaner, more protein per calorie)
- Swap 80/20 ground beef → 93/7 lean ground beef
- Add Greek yogurt (100g = 10g protein)
- Add egg whites (3 whites = 11g protein)
- Increase meat/fish portion size
- Add cottage cheese, tofu, or tempeh

**To INCREASE CALORIES (for bulk):**
- Add avocado (1/2 = 160 cal, healthy fats)
- Add nuts/nut butter (2 tbsp peanut butter = 190 cal)
- Drizzle olive oil (1 tbsp = 120 cal)
- Increase carb portions (more rice, pasta, bread)
- Use full-fat dairy instead of low-fat
- Add cheese

**To DECREASE CALORIES (for cut):**
- Reduce or eliminate oil/butter
- Use cooking spray instead of oil
- Remove or reduce cheese
- Reduce carb portions by 30-50%
- Swap rice → cauliflower rice
- Swap pasta → zucchini noodles
- Remove high-calorie toppings/sauces

**To DECREASE CARBS:**
- Rice → cauliflower rice
- Pasta → zucchini noodles or shirataki
- Bread → lettuce wrap
- Reduce portion of grains/starches
- Skip sugary sauces"""

REQUIREMENTS = """1. You MUST make at least 2 ingredient modifications
2. Your modifiedRecipe.macros MUST match your macroTargets within 5%
3. Each modification MUST include the exact macro impact (macroDelta)
4. The sum of original macros + all macroDelta values MUST equal the new macros
5. Update cooking steps if your substitutions require different preparation
6. NEVER include ingredients that conflict with allergens, diet style, avoid-list, OR the medical guardrails above (celiac = zero gluten; hypertension = lower sodium; diabetes = lower glycemic load; kidney = moderate sodium/potassium; high_cholesterol = lower saturated fat)
7. Use ONLY the USDA candidate options above; if none are available for an ingredient, prefer portion adjustments or adds from the provided playbook rather than inventing new ingredients
8. Prioritize candidates with tasteScore/textureScore >= 4 and commonness >= 4 to preserve flavor and function; avoid uncommon or high-risk swaps
9. If you cannot fully satisfy a medical guardrail, choose the safest option available AND include a warning in the warnings array explaining the tradeoff"""


def is_valid_goal(goal_type: Optional[str]) -> bool:
    return bool(goal_type) and goal_type in GOAL_CONFIGS


def _profile(ctx: Any) -> UserProfile:
    if isinstance(ctx, UserProfile):
        return ctx
    return UserProfile.model_validate(ctx or {})


def _fmt_num(v: Any) -> str:
    if isinstance(v, float) and v.is_integer():
        return str(int(v))
    return str(v)


def format_user_context(ctx: Any) -> str:
    p = _profile(ctx)
    lines: List[str] = []
    if p.biological_sex:
        lines.append(f"- Sex: {p.biological_sex}")
    if p.age:
        lines.append(f"- Age: {_fmt_num(p.age)}")
    if p.height_cm:
        lines.append(f"- Height: {_fmt_num(p.height_cm)} cm")
    if p.weight_kg:
        lines.append(f"- Weight: {_fmt_num(p.weight_kg)} kg")
    if p.goal_weight_kg:
        lines.append(f"- Goal weight: {_fmt_num(p.goal_weight_kg)} kg")
    if p.activity_level:
        lines.append(f"- Activity: {p.activity_level}")
    if p.pace:
        lines.append(f"- Pace (1-5): {p.pace}")
    if p.diet_style and p.diet_style != "none":
        lines.append(f"- Diet style: {p.diet_style}")
    if p.conditions:
        lines.append("- Conditions: " + ", ".join(CONDITION_LABELS.get(c, c) for c in p.conditions))
    if p.allergens:
        lines.append("- Allergens to avoid: " + ", ".join(p.allergens))
    if p.avoid_list:
        lines.append(f"- Avoid list: {p.avoid_list}")

    return "\n".join(lines) if lines else "- No additional user constraints provided"


def format_condition_guardrails(ctx: Any) -> str:
    p = _profile(ctx)
    lines = [CONDITION_GUARDRAILS[c] for c in CONDITION_GUARDRAILS if c in p.conditions]
    return "\n".join(lines) if lines else "- None reported."


def format_substitution_plan(plan: Optional[SubstitutionPlan]) -> str:
    # 재료 최대 12개, 재료당 후보 최대 3개
    if plan is None or not plan.ingredients:
        return "- No USDA-backed candidate table (fallback to portion tweaks and minor adds)."

    blocks: List[str] = []
    for ing in plan.ingredients[:12]:
        if ing.base_macros:
            b = ing.base_macros
            grams = _fmt_num(ing.base_grams) if ing.base_grams else "?"
            base = f"Base: {_fmt_num(b.calories)} kcal, P {_fmt_num(b.protein)}g, C {_fmt_num(b.carbs)}g, F {_fmt_num(b.fat)}g ({grams}g)"
        else:
            base = "Base macros: unknown"

        cands = [
            f"- {c.name}: swap {_fmt_num(c.swap_grams)}g, Δkcal {_fmt_num(c.macro_delta.calories)}, "
            f"ΔP {_fmt_num(c.macro_delta.protein)}g, ΔC {_fmt_num(c.macro_delta.carbs)}g, ΔF {_fmt_num(c.macro_delta.fat)}g; "
            f"taste {c.taste_score}/5, texture {c.texture_score}/5, score {_fmt_num(c.score)}"
            for c in ing.candidates[:3]
        ]
        body = "\n".join(cands) or "- No safe swaps; only adjust portion or add lean/low-fat options."
        roles = ", ".join(ing.roles) or "uncategorized"
        blocks.append(f"Ingredient: {ing.name or ing.original} ({roles})\n{base}\n{body}")

    return "\n\n".join(blocks)


def _output_format(name: str, recipe: Recipe) -> str:
    m = recipe.macros
    orig = (
        f'{{ "calories": {_fmt_num(m.calories)}, "protein": {_fmt_num(m.protein)}, '
        f'"carbs": {_fmt_num(m.carbs)}, "fat": {_fmt_num(m.fat)} }}'
    )
    return f"""{{
  "analysis": {{
    "reasoning": "<why these specific modifications achieve the {name} goal>",
    "topMacroDrivers": [
      {{ "ingredient": "<ingredient name>", "contribution": "<e.g., 'Provides 40% of total calories'>" }}
    ]
  }},
  "edits": [
    {{
      "lever": "substitute" | "adjust_portion" | "add" | "remove",
      "original": "<original ingredient with quantity, or null if adding>",
      "modified": "<new ingredient with quantity, or null if removing>",
      "reason": "<why this helps reach the goal>",
      "tasteScore": <1-5 rating of taste impact, 5 = no change>,
      "textureScore": <1-5 rating of texture impact, 5 = no change>,
      "macroDelta": {{ "calories": <number>, "protein": <number>, "carbs": <number>, "fat": <number> }}
    }}
  ],
  "stepUpdates": [
    {{ "stepNumber": <1-based index>, "original": "<original step text>", "modified": "<updated step text>" }}
  ],
  "modifiedRecipe": {{
    "title": "{recipe.title} ({name})",
    "servings": {recipe.servings},
    "ingredients": [{{ "name": "<string>", "quantity": "<string>" }}],
    "steps": ["<complete updated steps array>"],
    "macros": {{ "calories": <number>, "protein": <number>, "carbs": <number>, "fat": <number> }}
  }},
  "summary": {{
    "originalMacros": {orig},
    "newMacros": {{ "calories": <number>, "protein": <number>, "carbs": <number>, "fat": <number> }},
    "totalChanges": <number of edits made>
  }},
  "warnings": ["<taste/texture warnings>", "<cooking adjustment notes>", "<any allergen or dietary notes>"]
}}"""


def build_modification_prompt(
    recipe: Any,
    goal_type: str,
    user_context: Any = None,
    substitution_plan: Optional[SubstitutionPlan] = None,
) -> str:
    """
    목표 변형 프롬프트. goal_type이 bulk/lean_bulk/cut이 아니면 ValueError
    """
    if not is_valid_goal(goal_type):
        raise ValueError(f"Invalid goal type: {goal_type}")

    config = GOAL_CONFIGS[goal_type]
    rec = recipe if isinstance(recipe, Recipe) else Recipe.model_validate(recipe)
    t = config["targets"]
    m = rec.macros

    ingredients = "\n".join(f"{i}. {ing.quantity} {ing.name}".replace("  ", " ") for i, ing in enumerate(rec.ingredients, 1))
    steps = "\n".join(f"{i}. {s}" for i, s in enumerate(rec.steps, 1))

    return f"""You are a nutrition optimization expert. Your job is to modify recipes to hit specific macro targets.

## GOAL: {config["name"]}
{config["description"]}

## TARGET CHANGES (per serving):
- Calories: {t["calories"]}
- Protein: {t["protein"]}
- Carbs: {t["carbs"]}
- Fat: {t["fat"]}

## ORIGINAL RECIPE
Title: {rec.title}
Servings: {rec.servings}

### Ingredients:
{ingredients}

### Steps:
{steps}

### Current Macros (per serving):
- Calories: {_fmt_num(m.calories)} kcal
- Protein: {_fmt_num(m.protein)}g
- Carbs: {_fmt_num(m.carbs)}g
- Fat: {_fmt_num(m.fat)}g

## USER PROFILE & CONSTRAINTS (from quiz)
{format_user_context(user_context)}

## MEDICAL / DIETARY GUARDRAILS
{format_condition_guardrails(user_context)}

## USDA-GUIDED SUBSTITUTION CANDIDATES (precomputed; DO NOT invent outside these)
{format_substitution_plan(substitution_plan)}

---

## YOUR TASK (Two Phases)

### PHASE 1: Calculate Exact Macro Targets
Based on the goal, calculate SPECIFIC numeric targets for the modified recipe.

### PHASE 2: Make Substitutions to Hit Those Targets
You MUST modify ingredients to reach your Phase 1 targets. The final recipe macros MUST match your targets (within 5%).

## SUBSTITUTION PLAYBOOK (use these strategies):

{PLAYBOOK}

---

## REQUIREMENTS (MUST follow):
{REQUIREMENTS}

---

## OUTPUT FORMAT
Return a JSON object with this EXACT structure:
{_output_format(config["name"], rec)}

IMPORTANT REQUIREMENTS:
1. modifiedRecipe.ingredients MUST contain the FULL updated ingredient list (not just changes)
2. modifiedRecipe.steps MUST contain the FULL updated steps array (not just changes)
3. modifiedRecipe.macros MUST reflect the actual macros of the modified recipe
4. summary.newMacros MUST match modifiedRecipe.macros
5. Return ONLY valid JSON. No markdown, no explanation, just the JSON object."""
