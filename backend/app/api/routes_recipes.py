# app/api/routes_recipes.py
# 레시피 후처리: 목표(bulk/lean_bulk/cut) 변형, USDA 매크로 추정

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException

from app.models.schemas import MacroEstimateIn, ModifyRecipeIn
from app.services.fdc import FdcNotReady
from app.services.goals import is_valid_goal
from app.services.llm import LLMNotReady, RecipeModificationError, modify_recipe_for_goal
from app.services.macros import estimate_macros

log = logging.getLogger(__name__)

router = APIRouter(prefix="/api/recipes", tags=["recipes"])


@router.post("/modify")
async def modify_recipe(body: ModifyRecipeIn):
    """
    레시피 + goalType + userContext → 편집 문서(edits/summary/warnings + substitutionPlan)
    - goalType 오류 400, 모델 실패 502
    """
    if not is_valid_goal(body.goal_type):
        raise HTTPException(status_code=400, detail=f"Invalid goal type: {body.goal_type}")

    try:
        return await modify_recipe_for_goal(body.recipe, body.goal_type, body.user_context)
    except RecipeModificationError as e:
        cause = e.__cause__
        if isinstance(cause, LLMNotReady):
            raise HTTPException(status_code=503, detail=str(cause))
        raise HTTPException(status_code=502, detail=str(e))


@router.post("/macros")
async def recipe_macros(body: MacroEstimateIn):
    try:
        estimate = await estimate_macros(body.recipe, include_yield_factors=body.include_yield_factors)
    except FdcNotReady as e:
        raise HTTPException(status_code=503, detail=str(e))
    return estimate.to_wire()
