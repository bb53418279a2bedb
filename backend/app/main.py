# app/main.py
# FastAPI 앱 초기화 및 라우터 설정
# 라우터는 각 기능별로 분리하여 관리

from __future__ import annotations

import asyncio
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from app.api.routes_ingest import router as ingest_router     # 잡 생성/폴링
from app.api.routes_macros import router as macros_router     # 퀴즈 → 매크로 목표
from app.api.routes_recipes import router as recipes_router   # 목표 변형/USDA 매크로
from app.core.config import has_fdc_key, has_openai_key, log_env_status, settings
from app.db.jobs import close_job_store, get_job_store, init_job_store

logging.basicConfig(
    level=getattr(logging, (settings.LOG_LEVEL or "INFO").upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
log = logging.getLogger(__name__)

app = FastAPI(title="Video Recipes - API", version="0.1.0")

# CORS: 모바일 클라이언트/웹 프리뷰
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


# 에러 응답은 항상 {"error": "..."}
@app.exception_handler(HTTPException)
async def http_error(_: Request, exc: HTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)})


@app.exception_handler(RequestValidationError)
async def validation_error(_: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    loc = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    msg = first.get("msg", "Invalid request")
    return JSONResponse(status_code=400, content={"error": f"{loc}: {msg}" if loc else msg})


@app.exception_handler(Exception)
async def unhandled_error(_: Request, exc: Exception):
    log.exception("unhandled error: %s", exc)
    return JSONResponse(status_code=500, content={"error": str(exc) or "Internal server error"})


# 앱 시작/종료 이벤트 핸들러
@app.on_event("startup")
async def on_startup() -> None:
    log_env_status()
    # 잡 저장소 연결 (mongo는 최대 20회, 1초 간격 재시도)
    for i in range(20):
        try:
            await init_job_store()
            return
        except RuntimeError:
            # 설정 오류 (알 수 없는 JOB_STORE)
            raise
        except Exception as e:
            log.warning("[startup] job store init retry %d: %s", i + 1, e)
            await asyncio.sleep(1.0)
    raise RuntimeError("Job store init failed after retries")


@app.on_event("shutdown")
async def on_shutdown() -> None:
    await close_job_store()


@app.get("/health")
async def health():
    try:
        store = get_job_store().kind
    except RuntimeError:
        store = "uninitialized"
    return {"ok": True, "job_store": store, "openai": has_openai_key(), "fdc": has_fdc_key()}


# 라우터 prefix는 각 파일 내에서 정의함 , 중복 prefix 금지
app.include_router(ingest_router)
app.include_router(recipes_router)
app.include_router(macros_router)
