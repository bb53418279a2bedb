# app/api/routes_macros.py
# 퀴즈 프로필 → BMR/TDEE/목표 칼로리/매크로 (저장 없음)

from __future__ import annotations

from fastapi import APIRouter

from app.models.schemas import MacroTargetsOut, UserProfile
from app.services.macro_calculator import calculate_macros, format_goal_name

router = APIRouter(prefix="/api/macros", tags=["macros"])


@router.post("/targets")
async def macro_targets(profile: UserProfile):
    out = calculate_macros(profile)
    return MacroTargetsOut(**out, goal_name=format_goal_name(profile.goal)).to_wire()
