from fastapi import APIRouter, Depends
from sqlmodel import Session

from core.config import settings
from core.dependencies import get_dispatcher, require_service_key
from model.database import get_session
from processor.async_runner import run_db
from service import batch_service
from service.batch_service import BatchSummary, Dispatch

router = APIRouter(prefix="/admin", tags=["admin"])


@router.post(
    "/reprocess-images",
    response_model=BatchSummary,
    dependencies=[Depends(require_service_key)],
)
async def reprocess_images(
    session: Session = Depends(get_session),
    dispatch: Dispatch = Depends(get_dispatcher),
):
    """미처리 이미지 전체를 /process-images로 다시 보낸다.

    개별 이미지 실패는 results에 failed로 남고 응답은 200.
    조회 자체가 실패했을 때만 500.
    """
    images = await run_db(batch_service.find_unprocessed, session)
    return await batch_service.reprocess(images, dispatch, settings.BATCH_CONCURRENCY)
