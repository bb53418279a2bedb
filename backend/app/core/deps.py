# 공용 의존성/헬퍼 (잡 저장소 핸들, 업로드 파일 저장)
import uuid
from pathlib import Path

from fastapi import HTTPException, UploadFile

from app.core.config import settings
from app.db.jobs import JobStore, get_job_store

CHUNK = 1024 * 1024  # 1MB


def job_store() -> JobStore:
    # 라우터 Depends용
    return get_job_store()


async def save_upload(file: UploadFile, max_mb: int) -> Path:
    """
    업로드 파일을 UPLOADS_DIR에 저장 (청크 단위)
    - max_mb 초과 시 부분 파일 지우고 413
    """
    root = Path(settings.UPLOADS_DIR)
    root.mkdir(parents=True, exist_ok=True)
    suffix = Path(file.filename or "").suffix[:10]
    dest = root / f"{uuid.uuid4().hex}{suffix}"

    limit = max_mb * 1024 * 1024
    size = 0
    with dest.open("wb") as fh:
        while True:
            chunk = await file.read(CHUNK)
            if not chunk:
                break
            size += len(chunk)
            if size > limit:
                fh.close()
                dest.unlink(missing_ok=True)
                raise HTTPException(status_code=413, detail=f"File is too large (max {max_mb} MB)")
            fh.write(chunk)

    if size == 0:
        dest.unlink(missing_ok=True)
        raise HTTPException(status_code=400, detail="Uploaded file is empty")
    return dest
