import httpx
from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from sqlmodel import Session
from starlette.datastructures import UploadFile

from core.dependencies import get_http_client, get_storage, require_service_key
from core.exceptions import InvalidRequest
from model.database import get_session
from service import image_service
from service.storage_client import StorageClient

router = APIRouter(tags=["images"])


# --- 요청/응답 스키마 ---

class ProcessImageRequest(BaseModel):
    imageUrl: str = Field(min_length=1)
    storagePath: str = Field(min_length=1)


class VariantPayload(BaseModel):
    name: str
    path: str
    data: str  # base64
    size: int


class ProcessImageResponse(BaseModel):
    original_url: str
    variants: list[VariantPayload]
    blurhash: str | None
    width: int
    height: int
    file_size: int


class ImageRecordPayload(BaseModel):
    # 업로드 트리거가 보내는 행 전체를 받되, 필요한 필드만 검증한다
    model_config = ConfigDict(extra="allow")

    id: str | int | None = None
    product_id: str | int | None = None
    original_url: str | None = None


class ProcessRecordRequest(BaseModel):
    record: ImageRecordPayload | None = None


class ProcessRecordResponse(BaseModel):
    success: bool
    updates: dict[str, str | None]


class BlurhashUrlRequest(BaseModel):
    imageUrl: str | None = None


class BlurhashResponse(BaseModel):
    blurhash: str
    width: int
    height: int


# --- 엔드포인트 ---

@router.post("/process-image", response_model=ProcessImageResponse)
async def process_image(
    req: ProcessImageRequest,
    http: httpx.AsyncClient = Depends(get_http_client),
):
    """URL의 이미지로 변형을 만들어 base64로 반환. (업로드는 호출 측 책임)"""
    return await image_service.process_url(req.imageUrl, req.storagePath, http)


@router.post(
    "/process-images",
    response_model=ProcessRecordResponse,
    dependencies=[Depends(require_service_key)],
)
async def process_images(
    request: Request,
    session: Session = Depends(get_session),
    storage: StorageClient = Depends(get_storage),
):
    """저장된 레코드 하나를 처리: 변형 업로드 + DB 반영. (서비스 시크릿 필수)

    본문은 원문 JSON으로 받는다. 트리거마다 Content-Type이 제각각이라
    FastAPI 본문 파싱 대신 직접 검증한다.
    """
    raw = await request.body()
    if not raw.strip():
        raise InvalidRequest("Empty request body")

    try:
        body = ProcessRecordRequest.model_validate_json(raw)
    except ValidationError as e:
        raise InvalidRequest(f"Invalid request body: {e.error_count()} error(s)") from e

    if body.record is None or body.record.id in (None, ""):
        raise InvalidRequest("No record found")

    record = body.record.model_dump()
    record["id"] = str(record["id"])
    return await image_service.process_record(record, session, storage)


@router.post("/generate-blurhash", response_model=BlurhashResponse)
async def generate_blurhash(
    request: Request,
    http: httpx.AsyncClient = Depends(get_http_client),
):
    """multipart 'image' 파일 또는 JSON {imageUrl} → BlurHash + 원본 크기."""
    content_type = request.headers.get("content-type", "")

    if "multipart/form-data" in content_type:
        form = await request.form()
        upload = form.get("image")
        if not isinstance(upload, UploadFile):
            raise InvalidRequest("No image file provided")
        data = await upload.read()
    elif "application/json" in content_type:
        try:
            body = BlurhashUrlRequest.model_validate_json(await request.body())
        except ValidationError as e:
            raise InvalidRequest("Invalid JSON body") from e
        if not body.imageUrl:
            raise InvalidRequest("No imageUrl provided")
        data = await image_service.fetch_source(http, body.imageUrl)
    else:
        raise InvalidRequest(
            "Invalid content type. Expected multipart/form-data or application/json"
        )

    return await image_service.generate_blurhash(data)
