# app/services/jobs.py
# 잡 생성 + 백그라운드 처리
# - create_job: queued 문서 저장 후 process_job을 asyncio 태스크로 띄움 (응답은 바로 202)
# - process_job: processing → completed | failed, 업로드 파일은 처리 후 삭제

from __future__ import annotations

import asyncio
import logging
import uuid
from pathlib import Path
from typing import Any, Dict, Optional, Set

from app.db.jobs import get_job_store
from app.models.schemas import Job, JobStatus
from app.services import pipeline

log = logging.getLogger(__name__)

# 태스크가 GC되지 않도록 끝날 때까지 강한 참조 유지
_tasks: Set[asyncio.Task] = set()


async def create_job(
    provider: str,
    source_url: Optional[str] = None,
    source_path: Optional[str] = None,
    schedule: bool = True,
    **extra: Any,
) -> Dict[str, Any]:
    job = Job(
        id=uuid.uuid4().hex,
        provider=provider,
        source_url=source_url,
        source_path=source_path,
        **extra,
    )
    doc = job.to_wire()
    await get_job_store().create(doc)
    log.info("job %s queued (provider=%s)", job.id, provider)

    if schedule:
        task = asyncio.create_task(process_job(job.id))
        _tasks.add(task)
        task.add_done_callback(_tasks.discard)
    return doc


async def _dispatch(job: Dict[str, Any]) -> Dict[str, Any]:
    provider = job.get("provider")
    if provider == "tiktok":
        return await pipeline.run_tiktok_pipeline(job["sourceUrl"])
    if provider == "upload":
        return await pipeline.run_local_video_pipeline(job["sourcePath"], job.get("originalName"))
    if provider == "image":
        return await pipeline.run_recipe_image_pipeline(job["sourcePath"], job.get("originalName"), job.get("mimeType"))
    raise ValueError(f"Unknown job provider: {provider}")


def _remove_upload(path: Optional[str]) -> None:
    if not path:
        return
    try:
        Path(path).unlink(missing_ok=True)
    except OSError as e:
        log.warning("failed to remove upload %s: %s", path, e)


async def process_job(job_id: str) -> Optional[Dict[str, Any]]:
    """잡 1개 실행. 어떤 예외든 failed + error 메시지로 기록"""
    store = get_job_store()
    current = await store.get(job_id)
    if current is None:
        log.warning("process_job: job %s not found", job_id)
        return None

    await store.update(job_id, {"status": JobStatus.PROCESSING.value})
    try:
        out = await _dispatch(current)
    except Exception as e:
        log.exception("job %s failed: %s", job_id, e)
        return await store.update(job_id, {
            "status": JobStatus.FAILED.value,
            "error": str(e) or "Processing failed",
        })
    finally:
        _remove_upload(current.get("sourcePath"))

    log.info("job %s completed in %sms", job_id, out.get("durationMs"))
    return await store.update(job_id, {
        "status": JobStatus.COMPLETED.value,
        "result": out["recipe"],
        "steps": out["steps"],
        "metadata": out["metadata"],
        "durationMs": out["durationMs"],
    })
