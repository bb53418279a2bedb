# app/db/jobs.py
# 잡 저장소: 로컬 JSON 파일 또는 Mongo(motor) 컬렉션
# - 문서는 camelCase dict 그대로 저장 (GET /api/jobs/{id} 응답과 동일)
# - 잡당 writer는 파이프라인 러너 하나뿐, 읽기는 폴링 시 단건 조회

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorCollection
from pymongo import ReturnDocument

from app.core.config import settings
from app.models.schemas import utc_now_iso

log = logging.getLogger(__name__)


class FileJobStore:
    """`<root>/<id>.json` 하나에 잡 하나 (indent=2)"""

    kind = "file"

    def __init__(self, root: str | Path):
        self.root = Path(root)

    def _path(self, job_id: str) -> Path:
        # id는 uuid4 hex만 들어오지만 경로 탈출은 막아둔다
        return self.root / f"{Path(job_id).name}.json"

    def _write(self, doc: Dict[str, Any]) -> None:
        self.root.mkdir(parents=True, exist_ok=True)
        self._path(doc["id"]).write_text(json.dumps(doc, indent=2, ensure_ascii=False), encoding="utf-8")

    async def create(self, job: Dict[str, Any]) -> Dict[str, Any]:
        self._write(job)
        return job

    async def get(self, job_id: str) -> Optional[Dict[str, Any]]:
        path = self._path(job_id)
        if not path.exists():
            return None
        return json.loads(path.read_text(encoding="utf-8"))

    async def update(self, job_id: str, patch: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        current = await self.get(job_id)
        if current is None:
            log.warning("job update skipped, unknown id=%s", job_id)
            return None
        nxt = {**current, **patch, "updatedAt": utc_now_iso()}
        self._write(nxt)
        return nxt

    async def close(self) -> None:
        return None


class MongoJobStore:
    # _id = job id, 나머지 필드는 파일 저장소와 동일
    kind = "mongo"

    def __init__(self, collection: AsyncIOMotorCollection, client: AsyncIOMotorClient | None = None):
        self.col = collection
        self._client = client

    @staticmethod
    def _out(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        if doc is None:
            return None
        doc = dict(doc)
        doc.pop("_id", None)
        return doc

    async def create(self, job: Dict[str, Any]) -> Dict[str, Any]:
        await self.col.insert_one({"_id": job["id"], **job})
        return job

    async def get(self, job_id: str) -> Optional[Dict[str, Any]]:
        return self._out(await self.col.find_one({"_id": job_id}))

    async def update(self, job_id: str, patch: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        doc = await self.col.find_one_and_update(
            {"_id": job_id},
            {"$set": {**patch, "updatedAt": utc_now_iso()}},
            return_document=ReturnDocument.AFTER,
        )
        if doc is None:
            log.warning("job update skipped, unknown id=%s", job_id)
        return self._out(doc)

    async def close(self) -> None:
        if self._client:
            self._client.close()
        self._client = None


JobStore = FileJobStore | MongoJobStore

_store: JobStore | None = None


async def init_job_store() -> JobStore:
    # 앱 시작 시 1회 호출 (JOB_STORE=file|mongo)
    global _store
    if _store is not None:
        return _store

    kind = (settings.JOB_STORE or "file").lower()
    if kind == "mongo":
        client = AsyncIOMotorClient(settings.MONGO_URI)
        db = client[settings.MONGO_DB]
        # 연결 확인 (준비 안 됐으면 클라이언트 닫고 예외)
        try:
            await db.command("ping")
        except Exception:
            client.close()
            raise
        _store = MongoJobStore(db[settings.MONGO_JOBS_COLLECTION], client)
    elif kind == "file":
        _store = FileJobStore(settings.JOBS_DIR)
    else:
        raise RuntimeError(f"Unknown JOB_STORE: {settings.JOB_STORE}")

    log.info("[startup] job store ready (%s)", _store.kind)
    return _store


def get_job_store() -> JobStore:
    # 라우터/러너에서 쓰는 핸들. 미초기화면 예외 발생
    if _store is None:
        raise RuntimeError("Job store is not initialized yet.")
    return _store


def set_job_store(store: JobStore | None) -> None:
    # 테스트에서 임시 디렉터리 저장소를 끼워 넣을 때 사용
    global _store
    _store = store


async def close_job_store() -> None:
    # 앱 종료 시 커넥션 정리
    global _store
    if _store is not None:
        await _store.close()
    _store = None
