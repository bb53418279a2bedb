# 환경변수 로딩 (.env)
# 키 값은 로그에 남기지 않는다 (set/missing 여부만)
import logging
from typing import List

from pydantic_settings import BaseSettings

log = logging.getLogger(__name__)


class Settings(BaseSettings):
    # LLM / ASR (OpenAI)
    OPENAI_API_KEY: str | None = None
    OPENAI_MODEL: str = "gpt-4o-mini"
    OPENAI_VISION_MODEL: str = "gpt-4o"
    OPENAI_ASR_MODEL: str = "whisper-1"
    ASR_PROVIDER: str = "auto"              # auto | whisper | openai
    WHISPER_MODEL: str = "tiny"
    MAX_TRANSCRIPT_CHARS: int = 12000

    # 외부 트랜스크립트 API
    TRANSCRIPT_API_PROVIDER: str = "supadata"   # supadata | socialkit
    TRANSCRIPT_API_KEY: str | None = None

    # USDA FoodData Central
    FDC_API_KEY: str | None = None

    # 잡 저장소: file(로컬 JSON) | mongo(호스티드 테이블)
    JOB_STORE: str = "file"
    JOBS_DIR: str = "data/jobs"
    UPLOADS_DIR: str = "data/uploads"
    MONGO_URI: str = "mongodb://localhost:27017"
    MONGO_DB: str = "video_recipes"
    MONGO_JOBS_COLLECTION: str = "jobs"

    # HTTP
    CORS_ORIGINS: List[str] = ["*"]
    MAX_UPLOAD_MB: int = 100
    MAX_IMAGE_MB: int = 15
    HTTP_TIMEOUT: float = 20.0

    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"


settings = Settings()


def has_openai_key() -> bool:
    return bool(settings.OPENAI_API_KEY)


def has_fdc_key() -> bool:
    return bool(settings.FDC_API_KEY)


def log_env_status() -> None:
    # 스타트업에서 1회: 어떤 키가 잡혔는지 확인용
    log.info(
        "[env] OPENAI_API_KEY: %s | FDC_API_KEY: %s | TRANSCRIPT_API_KEY: %s | job store: %s",
        "set" if has_openai_key() else "missing",
        "set" if has_fdc_key() else "missing",
        "set" if settings.TRANSCRIPT_API_KEY else "missing",
        settings.JOB_STORE,
    )
