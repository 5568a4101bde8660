import sys

from loguru import logger

from core.config import settings


def setup_logger(level: str | None = None):
    """Loguru 기본 설정. 앱 시작 시 한 번 호출.

    request_id는 RequestLoggingMiddleware가 contextualize로 채운다.
    요청 밖(스크립트, 시작/종료 로그)에서는 "-"로 표시된다.
    """
    logger.remove()
    logger.configure(extra={"request_id": "-"})
    logger.add(
        sys.stderr,
        format=(
            "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
            "<level>{level: <8}</level> | "
            "<magenta>{extra[request_id]}</magenta> | "
            "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
            "<level>{message}</level>"
        ),
        level=level or ("DEBUG" if settings.DEBUG else settings.LOG_LEVEL),
    )
    return logger
