from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI
from loguru import logger

from core.config import settings
from model.database import create_db_and_tables
from processor.async_runner import shutdown_pool
from service.storage_client import build_storage_client
from utility.logger import setup_logger


@asynccontextmanager
async def lifespan(app: FastAPI):
    # === 시작 ===
    setup_logger()
    logger.info(f"{settings.APP_NAME} v{settings.APP_VERSION}")

    create_db_and_tables()
    logger.info(f"Database ready ({settings.DATABASE_URL})")

    # 공유 클라이언트: 요청마다 만들지 않고 커넥션 풀을 재사용
    app.state.http = httpx.AsyncClient(timeout=settings.FETCH_TIMEOUT_SECONDS)
    app.state.storage = build_storage_client()
    app.state.settings = settings

    yield

    # === 종료 ===
    await app.state.http.aclose()
    shutdown_pool()
    logger.info("Shutting down")
