from typing import Literal

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # 앱 설정
    APP_NAME: str = "variant-pipeline"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    SLOW_REQUEST_MS: int = 500

    # 서버 설정
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # DB 설정 (로컬: SQLite, 운영: PostgreSQL)
    DATABASE_URL: str = "sqlite:///./variant_pipeline.db"

    # 내부 호출용 공유 시크릿 (Authorization: Bearer <SERVICE_ROLE_KEY>)
    SERVICE_ROLE_KEY: str = "dev-service-role-key-change-in-production"
    # 배치 스윕이 /process-images를 호출할 때 사용하는 자기 자신의 주소
    SITE_URL: str = "http://localhost:8000"

    # 오브젝트 스토리지 (S3 호환)
    STORAGE_BUCKET: str = "product-images"
    STORAGE_ENDPOINT_URL: str | None = None
    STORAGE_REGION: str = "us-east-1"
    STORAGE_ACCESS_KEY: str | None = None
    STORAGE_SECRET_KEY: str | None = None
    # 공개 URL 베이스. 예: https://<project>.supabase.co/storage/v1/object/public
    STORAGE_PUBLIC_URL: str | None = None

    # 타임아웃 (초)
    STORAGE_TIMEOUT_SECONDS: float = 30.0
    FETCH_TIMEOUT_SECONDS: float = 30.0
    DISPATCH_TIMEOUT_SECONDS: float = 120.0
    # 운영 스크립트가 배치 전체 응답을 기다리는 시간
    REPROCESS_TIMEOUT_SECONDS: float = 900.0

    # 변환 설정
    VARIANT_QUALITY: int = 85
    VARIANT_FORMAT: Literal["webp", "jpeg", "png"] = "webp"
    BLURHASH_SIZE: int = 32
    BLURHASH_X_COMPONENTS: int = 4
    BLURHASH_Y_COMPONENTS: int = 3

    # 동시성 설정 (BATCH_CONCURRENCY=0 이면 제한 없음)
    BATCH_CONCURRENCY: int = 8
    CPU_WORKERS: int = 4
    # SQLite는 쓰기가 직렬화되므로 1. PostgreSQL이면 늘려도 된다 (요청마다 세션이 따로 있음)
    DB_WORKERS: int = 1

    model_config = {"env_file": ".env", "extra": "ignore"}


settings = Settings()
