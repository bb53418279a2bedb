# app/api/routes_ingest.py
# 레시피 잡 생성(링크/영상/사진) + 폴링

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, File, HTTPException, UploadFile

from app.core.config import settings
from app.core.deps import job_store, save_upload
from app.db.jobs import JobStore
from app.models.schemas import JobAccepted
from app.services.jobs import create_job
from app.services.tiktok import normalize_tiktok_url

log = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["jobs"])


def _accepted(job: Dict[str, Any]) -> Dict[str, Any]:
    return JobAccepted(job_id=job["id"], status=job["status"]).to_wire()


@router.post("/ingest", status_code=202)
async def ingest(payload: Optional[Dict[str, Any]] = Body(default=None)):
    """TikTok 링크 → 잡 생성. 정규화 실패는 400 + 사유"""
    url = (payload or {}).get("url")
    if not url or not isinstance(url, str):
        raise HTTPException(status_code=400, detail="url is required")

    normalized, err = normalize_tiktok_url(url)
    if err:
        raise HTTPException(status_code=400, detail=err)

    job = await create_job("tiktok", source_url=normalized)
    return _accepted(job)


@router.post("/upload-video", status_code=202)
async def upload_video(video: Optional[UploadFile] = File(None)):
    if video is None or not video.filename:
        raise HTTPException(status_code=400, detail="video file is required")
    if not (video.content_type or "").startswith("video/"):
        raise HTTPException(status_code=400, detail="Only video files are supported")

    path = await save_upload(video, settings.MAX_UPLOAD_MB)
    job = await create_job(
        "upload",
        source_path=str(path),
        original_name=video.filename,
        mime_type=video.content_type,
    )
    return _accepted(job)


@router.post("/upload-recipe-image", status_code=202)
async def upload_recipe_image(image: Optional[UploadFile] = File(None)):
    if image is None or not image.filename:
        raise HTTPException(status_code=400, detail="image file is required")
    if not (image.content_type or "").startswith("image/"):
        raise HTTPException(status_code=400, detail="Only image files are supported")

    path = await save_upload(image, settings.MAX_IMAGE_MB)
    job = await create_job(
        "image",
        source_path=str(path),
        original_name=image.filename,
        mime_type=image.content_type,
    )
    return _accepted(job)


@router.get("/jobs/{job_id}")
async def get_job(job_id: str, store: JobStore = Depends(job_store)):
    job = await store.get(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return job
