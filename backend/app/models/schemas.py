# app/models/schemas.py
# Pydantic 모델 정의
# - 파이썬 쪽은 snake_case, 와이어(모바일 클라이언트)는 camelCase
# - Recipe: LLM 결과/목표 변형의 공통 스키마
# - Job: 파이프라인 잡 문서 (저장소에는 camelCase JSON 그대로 저장)
from __future__ import annotations

import re
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    # 프론트는 camelCase로 보내므로 alias 허용 + 이름으로도 채울 수 있게
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ------------------------------
# 레시피
# ------------------------------

_NUMBER = re.compile(r"-?\d+(?:\.\d+)?")


def leading_number(v: Any) -> Optional[float]:
    """숫자 또는 "420 kcal" / "10 min" 같은 문자열 → 첫 숫자 (없으면 None)"""
    if v is None or isinstance(v, bool):
        return None
    if isinstance(v, (int, float)):
        return float(v)
    m = _NUMBER.search(str(v).replace(",", ""))
    return float(m.group()) if m else None


def coerce_servings(v: Any) -> int:
    # 못 읽거나 0 이하면 기본 2인분
    n = leading_number(v)
    if n is None:
        return 2
    n = int(round(n))
    return n if n > 0 else 2


class Ingredient(CamelModel):
    name: str = ""
    quantity: str = ""

    @field_validator("name", "quantity", mode="before")
    @classmethod
    def _as_text(cls, v: Any) -> str:
        # {"quantity": 2} 같은 숫자도 받음 (파싱 단계에서 판단)
        return "" if v is None else str(v)


class Times(CamelModel):
    prep_minutes: Optional[float] = None
    cook_minutes: Optional[float] = None

    @field_validator("prep_minutes", "cook_minutes", mode="before")
    @classmethod
    def _minutes(cls, v: Any) -> Optional[float]:
        return leading_number(v)


class Macros(CamelModel):
    # per serving
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel, extra="allow")

    calories: Optional[float] = None
    protein: Optional[float] = None
    carbs: Optional[float] = None
    fat: Optional[float] = None

    @field_validator("calories", "protein", "carbs", "fat", mode="before")
    @classmethod
    def _amount(cls, v: Any) -> Optional[float]:
        return leading_number(v)


class Recipe(CamelModel):
    title: str = "Generated Recipe"
    servings: int = 2
    ingredients: List[Ingredient] = Field(default_factory=list)
    steps: List[str] = Field(default_factory=list)
    times: Times = Field(default_factory=Times)
    macros: Macros = Field(default_factory=Macros)
    assumptions: List[str] = Field(default_factory=list)
    confidence: Dict[str, Any] = Field(default_factory=dict)
    source_url: Optional[str] = None
    macro_estimate: Optional[Dict[str, Any]] = None

    @field_validator("servings", mode="before")
    @classmethod
    def _servings(cls, v: Any) -> int:
        return coerce_servings(v)


class NutrientTotals(CamelModel):
    calories: float = 0.0
    protein: float = 0.0
    carbs: float = 0.0
    fat: float = 0.0
    fiber: float = 0.0
    sodium: float = 0.0


class IngredientMacro(CamelModel):
    # 재료 1개 추정 상세
    name: str
    quantity: str = ""
    grams: Optional[float] = None
    fdc_id: Optional[int] = None
    fdc_description: Optional[str] = None
    confidence: str = "low"
    cooked_state: str = "unknown"
    yield_factor: Optional[float] = None
    macros: Optional[NutrientTotals] = None


class MacroEstimate(CamelModel):
    totals: NutrientTotals = Field(default_factory=NutrientTotals)
    per_serving: NutrientTotals = Field(default_factory=NutrientTotals)
    servings: int = 1
    ingredients: List[IngredientMacro] = Field(default_factory=list)
    assumptions: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)


class MacroDelta(CamelModel):
    calories: float = 0.0
    protein: float = 0.0
    carbs: float = 0.0
    fat: float = 0.0


class SubstitutionCandidate(CamelModel):
    name: str
    fdc_description: Optional[str] = None
    swap_grams: float
    macro_delta: MacroDelta
    taste_score: int
    texture_score: int
    commonness: int
    goal_fit: float
    score: float


class IngredientSubstitutions(CamelModel):
    name: str
    original: str = ""
    roles: List[str] = Field(default_factory=list)
    base_grams: Optional[float] = None
    base_macros: Optional[MacroDelta] = None
    candidates: List[SubstitutionCandidate] = Field(default_factory=list)


class SubstitutionPlan(CamelModel):
    ingredients: List[IngredientSubstitutions] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    assumptions: List[str] = Field(default_factory=list)


# ------------------------------
# 퀴즈/프로필 (호스티드 DB 소유, 요청 바디로만 받음)
# ------------------------------

class UserProfile(CamelModel):
    biological_sex: Optional[str] = None       # "female" | "male" | "unspecified"
    age: Optional[float] = None
    height_cm: Optional[float] = None
    weight_kg: Optional[float] = None
    goal_weight_kg: Optional[float] = None
    goal: Optional[str] = None                 # "bulk" | "lean_bulk" | "cut" | "maintain"
    pace: int = Field(default=3, ge=1, le=5)
    activity_level: Optional[str] = None       # "sedentary" ~ "very_active"
    diet_style: Optional[str] = None           # "none" | "vegetarian" | "vegan" | "pescatarian" | "dairy_free"
    allergens: List[str] = Field(default_factory=list)
    avoid_list: str = ""
    conditions: List[str] = Field(default_factory=list)


class MacroGoals(CamelModel):
    calories: int
    protein: int
    carbs: int
    fat: int


class MacroTargetsOut(CamelModel):
    macros: Optional[MacroGoals] = None
    bmr: Optional[int] = None
    tdee: Optional[int] = None
    goal_adjustment: int = 0
    is_complete: bool = False
    missing_fields: List[str] = Field(default_factory=list)
    goal_name: str = "Unknown"


# ------------------------------
# 잡
# ------------------------------

class JobStatus(str, Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class StepRecord(CamelModel):
    name: str
    status: str                      # "completed" | "failed"
    duration_ms: int = 0
    error: Optional[str] = None


class Job(CamelModel):
    id: str
    status: JobStatus = JobStatus.QUEUED
    provider: str                    # "tiktok" | "upload" | "image"
    source_url: Optional[str] = None
    source_path: Optional[str] = None
    original_name: Optional[str] = None
    mime_type: Optional[str] = None
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    steps: List[StepRecord] = Field(default_factory=list)
    metadata: Optional[Dict[str, Any]] = None
    duration_ms: Optional[int] = None
    created_at: str = Field(default_factory=utc_now_iso)
    updated_at: str = Field(default_factory=utc_now_iso)


# ------------------------------
# 요청/응답 바디
# ------------------------------

class JobAccepted(CamelModel):
    job_id: str
    status: JobStatus


class ModifyRecipeIn(CamelModel):
    recipe: Recipe
    goal_type: str
    user_context: UserProfile = Field(default_factory=UserProfile)


class MacroEstimateIn(CamelModel):
    recipe: Recipe
    include_yield_factors: bool = True
