"""전역 예외 핸들러.

AppException 계열 예외와 요청 검증 오류를 잡아 일관된 JSON 응답으로 변환한다.
main.py에서 app.add_exception_handler()로 등록한다.
"""

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger

from core.exceptions import AppException, InvalidRequest


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} | {exc.error_code}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": exc.message,
            "error_code": exc.error_code,
        },
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    # pydantic 기본 422 대신 400 + 공통 형식으로 응답한다
    missing = [
        ".".join(str(part) for part in err["loc"] if part != "body")
        for err in exc.errors()
    ]
    message = f"Invalid or missing fields: {', '.join(missing)}" if missing else None
    return await app_exception_handler(request, InvalidRequest(message))
