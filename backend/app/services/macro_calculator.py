# app/services/macro_calculator.py
# 퀴즈 답변 → 일일 목표 칼로리/매크로 계산 (순수 함수, I/O 없음)
# - BMR: Mifflin-St Jeor
# - TDEE = BMR * 활동계수, 목표/페이스에 따라 칼로리 가감
# - 단백질은 체중 기준, 나머지 칼로리를 탄수/지방으로 분배

from __future__ import annotations

import math
from typing import Any, Dict, List, Mapping, Optional

ACTIVITY_MULTIPLIERS: Dict[str, float] = {
    "sedentary": 1.2,
    "light": 1.375,
    "moderate": 1.55,
    "active": 1.725,
    "very_active": 1.9,
}

# goal -> (base, per_pace)  pace 3이 기준
GOAL_ADJUSTMENTS: Dict[str, tuple[int, int]] = {
    "bulk": (300, 50),
    "lean_bulk": (150, 25),
    "maintain": (0, 0),
    "cut": (-300, -50),
}

PROTEIN_PER_KG: Dict[str, float] = {"cut": 2.2, "bulk": 1.6, "lean_bulk": 2.0}
CARB_SHARE: Dict[str, float] = {"cut": 0.45, "bulk": 0.60}

GOAL_NAMES: Dict[str, str] = {
    "bulk": "Bulk",
    "lean_bulk": "Lean Bulk",
    "cut": "Cut",
    "maintain": "Maintain",
}

MIN_CALORIES = 1200
MAX_CALORIES = 5000

# (프로필 키, 표시 라벨) 순서 유지
_REQUIRED_FIELDS = [
    ("biological_sex", "Biological sex"),
    ("age", "Age"),
    ("height_cm", "Height"),
    ("weight_kg", "Weight"),
    ("activity_level", "Activity level"),
    ("goal", "Goal"),
]


def _round(x: float) -> int:
    # half-up 반올림 (round()는 banker's rounding)
    return int(math.floor(x + 0.5))


def calculate_bmr(sex: Optional[str], age: float, height_cm: float, weight_kg: float) -> int:
    base = 10 * weight_kg + 6.25 * height_cm - 5 * age
    if sex == "male":
        return _round(base + 5)
    if sex == "female":
        return _round(base - 161)
    # unspecified: 남/녀 평균
    return _round((base + 5 + base - 161) / 2)


def get_activity_multiplier(level: Optional[str]) -> float:
    return ACTIVITY_MULTIPLIERS.get(level or "", 1.2)


def get_goal_adjustment(goal: Optional[str], pace: int = 3) -> int:
    if not goal or goal not in GOAL_ADJUSTMENTS:
        return 0
    base, per_pace = GOAL_ADJUSTMENTS[goal]
    return base + (pace - 3) * per_pace


def calculate_macro_split(target_calories: float, goal: Optional[str], weight_kg: float) -> Dict[str, int]:
    protein = _round(weight_kg * PROTEIN_PER_KG.get(goal or "", 1.8))
    remaining = target_calories - protein * 4

    carb_share = CARB_SHARE.get(goal or "", 0.55)
    carbs = _round(remaining * carb_share / 4)
    fat = _round(remaining * (1 - carb_share) / 9)

    return {
        "calories": _round(target_calories),
        "protein": protein,
        "carbs": carbs,
        "fat": fat,
    }


def _get(profile: Any, key: str) -> Any:
    if isinstance(profile, Mapping):
        return profile.get(key)
    return getattr(profile, key, None)


def get_missing_fields(profile: Any) -> List[str]:
    return [label for key, label in _REQUIRED_FIELDS if _get(profile, key) is None]


def calculate_macros(profile: Any) -> Dict[str, Any]:
    """
    퀴즈 프로필(dict 또는 UserProfile) → 계산 결과
    - 필수 항목이 하나라도 비면 is_complete=False + missing_fields
    - 목표 칼로리는 [1200, 5000]로 클램프
    """
    missing = get_missing_fields(profile)
    if missing:
        return {
            "macros": None,
            "bmr": None,
            "tdee": None,
            "goal_adjustment": 0,
            "is_complete": False,
            "missing_fields": missing,
        }

    goal = _get(profile, "goal")
    pace = _get(profile, "pace")
    weight = float(_get(profile, "weight_kg"))

    bmr = calculate_bmr(
        _get(profile, "biological_sex"),
        float(_get(profile, "age")),
        float(_get(profile, "height_cm")),
        weight,
    )
    tdee = _round(bmr * get_activity_multiplier(_get(profile, "activity_level")))
    adjustment = get_goal_adjustment(goal, 3 if pace is None else int(pace))
    target = max(MIN_CALORIES, min(MAX_CALORIES, tdee + adjustment))

    return {
        "macros": calculate_macro_split(target, goal, weight),
        "bmr": bmr,
        "tdee": tdee,
        "goal_adjustment": adjustment,
        "is_complete": True,
        "missing_fields": [],
    }


def format_goal_name(goal: Optional[str]) -> str:
    if not goal:
        return "Unknown"
    return GOAL_NAMES.get(goal, goal)
