import asyncio
import json

import pytest
from pymongo import ReturnDocument

from app.db import jobs as job_db
from app.db.jobs import FileJobStore, MongoJobStore, get_job_store, init_job_store, set_job_store


def test_create_get_update(tmp_path):
    store = FileJobStore(tmp_path / "jobs")
    job = {"id": "abc", "status": "queued", "provider": "tiktok", "updatedAt": "2020-01-01T00:00:00+00:00"}

    async def go():
        await store.create(job)
        got = await store.get("abc")
        updated = await store.update("abc", {"status": "processing"})
        return got, updated

    got, updated = asyncio.run(go())
    assert got == job
    assert updated["status"] == "processing"
    assert updated["provider"] == "tiktok"
    assert updated["updatedAt"] != job["updatedAt"]

    raw = (tmp_path / "jobs" / "abc.json").read_text(encoding="utf-8")
    assert raw.startswith("{\n  ")
    assert json.loads(raw)["status"] == "processing"


def test_missing_job_returns_none(tmp_path):
    store = FileJobStore(tmp_path / "jobs")
    assert asyncio.run(store.get("nope")) is None
    assert asyncio.run(store.update("nope", {"status": "failed"})) is None
    assert not (tmp_path / "jobs" / "nope.json").exists()


def test_ids_cannot_escape_root(tmp_path):
    store = FileJobStore(tmp_path / "jobs")
    assert store._path("../../etc/passwd").parent == tmp_path / "jobs"


def test_init_selects_file_store(monkeypatch, tmp_path):
    set_job_store(None)
    monkeypatch.setattr(job_db.settings, "JOB_STORE", "file")
    store = asyncio.run(init_job_store())
    try:
        assert store.kind == "file"
        assert get_job_store() is store
    finally:
        asyncio.run(job_db.close_job_store())
    with pytest.raises(RuntimeError):
        get_job_store()


def test_init_rejects_unknown_store(monkeypatch):
    set_job_store(None)
    monkeypatch.setattr(job_db.settings, "JOB_STORE", "redis")
    with pytest.raises(RuntimeError, match="Unknown JOB_STORE"):
        asyncio.run(init_job_store())


class FakeCollection:
    """motor 컬렉션 흉내 (insert_one / find_one / find_one_and_update만)"""

    def __init__(self):
        self.docs = {}

    async def insert_one(self, doc):
        self.docs[doc["_id"]] = dict(doc)

    async def find_one(self, query):
        doc = self.docs.get(query["_id"])
        return dict(doc) if doc else None

    async def find_one_and_update(self, query, update, return_document=ReturnDocument.BEFORE):
        doc = self.docs.get(query["_id"])
        if doc is None:
            return None
        before = dict(doc)
        doc.update(update["$set"])
        return dict(doc) if return_document == ReturnDocument.AFTER else before


def test_mongo_store_roundtrip():
    col = FakeCollection()
    store = MongoJobStore(col)
    job = {"id": "j1", "status": "queued", "provider": "tiktok", "updatedAt": "2020-01-01T00:00:00+00:00"}

    async def go():
        await store.create(job)
        got = await store.get("j1")
        updated = await store.update("j1", {"status": "completed", "result": {"title": "Pasta"}})
        return got, updated

    got, updated = asyncio.run(go())
    assert col.docs["j1"]["_id"] == "j1"
    assert got == job
    assert "_id" not in updated
    assert updated["status"] == "completed"
    assert updated["result"] == {"title": "Pasta"}
    assert updated["updatedAt"] != job["updatedAt"]
    assert col.docs["j1"]["updatedAt"] == updated["updatedAt"]


def test_mongo_store_unknown_id():
    store = MongoJobStore(FakeCollection())
    assert asyncio.run(store.get("nope")) is None
    assert asyncio.run(store.update("nope", {"status": "failed"})) is None


def test_mongo_store_close_releases_client():
    class Client:
        closed = False

        def close(self):
            self.closed = True

    client = Client()
    store = MongoJobStore(FakeCollection(), client)
    asyncio.run(store.close())
    assert client.closed
    asyncio.run(store.close())
