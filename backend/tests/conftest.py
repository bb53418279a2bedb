from typing import Any, Callable, Dict, List

import httpx
import pytest

from app.core.config import settings
from app.db.jobs import FileJobStore, set_job_store
from app.services import fdc, substitutions


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch, tmp_path):
    # 외부 키는 기본적으로 비워두고, 필요한 테스트에서만 채운다
    monkeypatch.setattr(settings, "OPENAI_API_KEY", None)
    monkeypatch.setattr(settings, "FDC_API_KEY", None)
    monkeypatch.setattr(settings, "TRANSCRIPT_API_KEY", None)
    monkeypatch.setattr(settings, "TRANSCRIPT_API_PROVIDER", "supadata")
    monkeypatch.setattr(settings, "UPLOADS_DIR", str(tmp_path / "uploads"))
    monkeypatch.setattr(settings, "JOBS_DIR", str(tmp_path / "jobs"))
    fdc.clear_cache()
    substitutions._candidate_cache.clear()
    yield
    fdc.clear_cache()
    substitutions._candidate_cache.clear()


@pytest.fixture
def store(tmp_path):
    s = FileJobStore(tmp_path / "jobs")
    set_job_store(s)
    yield s
    set_job_store(None)


def fdc_food(description: str, calories: float, protein: float, carbs: float, fat: float, fdc_id: int = 1) -> Dict[str, Any]:
    # FDC 검색 응답의 foods[0] 모양
    return {
        "fdcId": fdc_id,
        "description": description,
        "dataType": "SR Legacy",
        "foodNutrients": [
            {"nutrientName": "Energy", "unitName": "kJ", "value": calories * 4.184},
            {"nutrientName": "Energy", "unitName": "KCAL", "value": calories},
            {"nutrientName": "Protein", "unitName": "G", "value": protein},
            {"nutrientName": "Carbohydrate, by difference", "unitName": "G", "value": carbs},
            {"nutrientName": "Total lipid (fat)", "unitName": "G", "value": fat},
            {"nutrientName": "Fiber, total dietary", "unitName": "G", "value": 0},
            {"nutrientName": "Sodium, Na", "unitName": "MG", "value": 50},
        ],
    }


def fdc_transport(foods: Dict[str, Dict[str, Any]], calls: List[str] = None) -> httpx.MockTransport:
    """query 문자열 → food (없으면 빈 결과)"""

    def handler(request: httpx.Request) -> httpx.Response:
        q = request.url.params.get("query")
        if calls is not None:
            calls.append(q)
        food = foods.get(q)
        return httpx.Response(200, json={"foods": [food] if food else []})

    return httpx.MockTransport(handler)


@pytest.fixture
def make_fdc_client() -> Callable[..., httpx.AsyncClient]:
    def _make(foods: Dict[str, Dict[str, Any]], calls: List[str] = None) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=fdc_transport(foods, calls))

    return _make
