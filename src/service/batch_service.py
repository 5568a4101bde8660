"""미처리 이미지 일괄 재처리.

미처리 = blurhash, thumbnail_url, medium_url, large_url 이 모두 NULL.
찾은 이미지마다 dispatch(record)를 호출하고, 하나가 실패해도 나머지 결과는 유지한다.
동시 실행 개수는 BATCH_CONCURRENCY로 제한한다 (스토리지 동시 요청 한도 보호).
"""

from collections.abc import Awaitable, Callable
from typing import Literal

import httpx
from loguru import logger
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, col, select

from core.exceptions import DispatchError, ScanError
from model.image import ProductImage
from processor.async_runner import settle_all

Dispatch = Callable[[dict], Awaitable[dict]]


class ProcessingOutcome(BaseModel):
    id: str | None = None
    product_id: str | None = None
    status: Literal["success", "failed"]
    result: dict | None = None
    error: str | None = None


class BatchSummary(BaseModel):
    message: str
    total: int
    processed: int
    failed: int
    results: list[ProcessingOutcome]


class HttpDispatcher:
    """레코드 하나를 /process-images로 보내 처리한다 (서비스 자기 호출)."""

    def __init__(
        self, http: httpx.AsyncClient, site_url: str, service_key: str, timeout: float
    ):
        self.http = http
        self.url = f"{site_url.rstrip('/')}/process-images"
        self.service_key = service_key
        self.timeout = timeout

    async def __call__(self, record: dict) -> dict:
        image_id = record.get("id")
        try:
            response = await self.http.post(
                self.url,
                json={"record": record},
                headers={"Authorization": f"Bearer {self.service_key}"},
                timeout=self.timeout,
            )
        except httpx.HTTPError as e:
            raise DispatchError(
                f"Failed to process image {image_id}: {type(e).__name__}: {e}"
            ) from e

        if not response.is_success:
            raise DispatchError(f"Failed to process image {image_id}: {response.text}")
        return response.json()


def find_unprocessed(session: Session) -> list[ProductImage]:
    try:
        return list(
            session.exec(
                select(ProductImage).where(
                    col(ProductImage.blurhash).is_(None),
                    col(ProductImage.thumbnail_url).is_(None),
                    col(ProductImage.medium_url).is_(None),
                    col(ProductImage.large_url).is_(None),
                )
            ).all()
        )
    except SQLAlchemyError as e:
        raise ScanError(f"Failed to query unprocessed images: {e}") from e


async def _run_one(record: dict, dispatch: Dispatch) -> ProcessingOutcome:
    logger.info(f"Processing image {record['id']}...")
    try:
        result = await dispatch(record)
    except Exception as e:
        # 이미지 단위 격리: 어떤 실패든 결과로 남기고 배치는 계속
        logger.error(f"Error processing image {record['id']}: {e}")
        return ProcessingOutcome(
            id=record["id"],
            product_id=record.get("product_id"),
            status="failed",
            error=str(e) or type(e).__name__,
        )
    return ProcessingOutcome(
        id=record["id"],
        product_id=record.get("product_id"),
        status="success",
        result=result,
    )


async def reprocess(
    images: list[ProductImage], dispatch: Dispatch, concurrency: int = 0
) -> BatchSummary:
    if not images:
        return BatchSummary(
            message="No unprocessed images found", total=0, processed=0, failed=0, results=[]
        )

    # 세션과 분리된 스냅샷을 넘긴다 (디스패치 중 ORM 객체 상태에 의존하지 않도록)
    records = [image.model_dump(mode="json") for image in images]
    logger.info(f"Found {len(records)} unprocessed images (concurrency: {concurrency or 'unbounded'})")

    settled = await settle_all((_run_one(r, dispatch) for r in records), limit=concurrency)

    results = []
    for record, outcome in zip(records, settled):
        if isinstance(outcome, BaseException):
            outcome = ProcessingOutcome(
                id=record["id"],
                product_id=record.get("product_id"),
                status="failed",
                error=str(outcome) or "Unknown error",
            )
        results.append(outcome)

    processed = sum(1 for r in results if r.status == "success")
    failed = len(results) - processed
    logger.info(f"Batch processing complete. Processed: {processed}, Failed: {failed}")

    return BatchSummary(
        message="Batch processing complete",
        total=len(records),
        processed=processed,
        failed=failed,
        results=results,
    )
