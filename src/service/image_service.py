import asyncio
import base64

import httpx
from loguru import logger
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from core.config import settings
from core.exceptions import (
    AppException,
    EncodingError,
    FetchError,
    ImageNotFound,
    InvalidRequest,
    PersistenceError,
    StorageError,
)
from model.image import (
    LEGACY_URL_COLUMNS,
    ProcessingStatus,
    ProductImage,
    ProductImageVariant,
    utcnow,
)
from processor.async_runner import run_blocking, run_db
from processor.blurhash_encoder import blurhash_from_bytes
from processor.variants import (
    DEFAULT_VARIANTS,
    SourceInfo,
    generate_variants,
    inspect_source,
    variant_path,
)
from service.storage_client import StorageClient
from service.storage_reconciler import (
    VariantRow,
    extract_storage_path,
    original_row,
    reconcile_variants,
)
from utility.timer import timer

# 재처리 시 덮어쓰는 컬럼 (자연키 product_image_id, variant_name 제외)
UPSERT_COLUMNS = (
    "width",
    "height",
    "size",
    "format",
    "storage_path",
    "public_url",
    "storage_object_id",
    "updated_at",
)


async def fetch_source(http: httpx.AsyncClient, url: str) -> bytes:
    """URL에서 원본을 받는다. 2xx가 아니면 FetchError."""
    try:
        response = await http.get(
            url, timeout=settings.FETCH_TIMEOUT_SECONDS, follow_redirects=True
        )
    except httpx.HTTPError as e:
        raise FetchError(f"Failed to fetch image: {e}") from e
    if not response.is_success:
        raise FetchError(
            f"Failed to fetch image: {response.status_code} {response.reason_phrase}"
        )
    return response.content


async def safe_blurhash(data: bytes, image_id: str = "-") -> str | None:
    """BlurHash 생성은 best-effort: 실패하면 None으로 계속 진행한다."""
    try:
        return await run_blocking(blurhash_from_bytes, data)
    except EncodingError as e:
        logger.warning(f"[{image_id}] blurhash skipped: {e.message}")
        return None


async def process_url(
    image_url: str, storage_path: str, http: httpx.AsyncClient
) -> dict:
    """URL의 이미지를 받아 변형을 만들고 base64로 돌려준다.

    업로드는 하지 않는다 (업로드 흐름에서 호출 측이 직접 올림).
    """
    logger.info(f"Processing image {image_url} (path: {storage_path})")

    with timer("fetch", warn_after=settings.FETCH_TIMEOUT_SECONDS / 2):
        data = await fetch_source(http, image_url)
    source = await run_blocking(inspect_source, data)
    logger.info(
        f"Original: {source.width}x{source.height} {source.format}, "
        f"{source.byte_size / 1024:.2f} KB"
    )

    with timer("variants"):
        variants = await generate_variants(data, DEFAULT_VARIANTS)

    thumbnail = next((v for v in variants if v.name == "thumbnail"), None)
    blurhash = await safe_blurhash(thumbnail.data if thumbnail else data)

    return {
        "original_url": image_url,
        "variants": [
            {
                "name": v.name,
                "path": variant_path(storage_path, v.name, v.format),
                "data": base64.b64encode(v.data).decode("ascii"),
                "size": v.byte_size,
            }
            for v in variants
        ],
        "blurhash": blurhash,
        "width": source.width,
        "height": source.height,
        "file_size": source.byte_size,
    }


async def generate_blurhash(data: bytes) -> dict:
    """업로드된 이미지 하나의 BlurHash와 원본 크기."""
    source = await run_blocking(inspect_source, data)
    blurhash = await run_blocking(blurhash_from_bytes, data)
    return {"blurhash": blurhash, "width": source.width, "height": source.height}


def get_image_or_raise(image_id: str, session: Session) -> ProductImage:
    image = session.get(ProductImage, image_id)
    if not image:
        raise ImageNotFound(f"Image {image_id} not found")
    return image


async def process_record(
    record: dict, session: Session, storage: StorageClient
) -> dict:
    """저장된 이미지 레코드 하나를 처리한다.

    1. 원본 다운로드 (실패 시 치명적)
    2. 원본 크기/포맷 확인
    3. thumbnail/medium/large 동시 생성 + BlurHash (BlurHash 실패는 무시)
    4. 변형 업로드 + original 기록 (개별 실패는 무시)
    5. product_images 갱신 + product_image_variants upsert (한 트랜잭션)

    치명적 실패 시 레코드를 failed로 표시하고 예외를 다시 던진다.
    AppException이 아닌 예외도 failed로 남기고 AppException(500)으로 바꿔 던진다.
    세션 작업은 모두 run_db 안에서 끝내고, 루프에서는 image_id 문자열만 다룬다.
    """
    image_id = str(record["id"])
    original_url, storage_path = await run_db(
        _start, image_id, record.get("original_url"), storage.bucket, session
    )

    try:
        updates = await _run_pipeline(image_id, original_url, storage_path, session, storage)
    except AppException as e:
        await run_db(_mark_failed, image_id, e.message, session)
        raise
    except Exception as e:
        logger.exception(f"[{image_id}] unexpected error")
        message = f"Processing failed: {type(e).__name__}: {e}"
        await run_db(_mark_failed, image_id, message, session)
        raise AppException(message) from e

    logger.info(f"[{image_id}] processed: {sorted(k for k, v in updates.items() if v)}")
    return {"success": True, "updates": updates}


def _start(
    image_id: str, original_url: str | None, bucket: str, session: Session
) -> tuple[str | None, str]:
    """행을 찾아 원본 경로를 정하고 processing으로 바꾼다."""
    image = get_image_or_raise(image_id, session)

    original_url = original_url or image.original_url
    storage_path = (
        extract_storage_path(original_url, bucket) if original_url else image.storage_path
    )
    if not storage_path:
        raise InvalidRequest("Could not determine image path")

    image.transition_to(ProcessingStatus.PROCESSING)
    session.add(image)
    session.commit()
    return original_url, storage_path


async def _run_pipeline(
    image_id: str,
    original_url: str | None,
    storage_path: str,
    session: Session,
    storage: StorageClient,
) -> dict:
    with timer(f"{image_id} download", warn_after=settings.STORAGE_TIMEOUT_SECONDS / 2):
        try:
            data = await storage.download(storage_path)
        except StorageError as e:
            raise FetchError(f"Download failed: {e.message}") from e

    source = await run_blocking(inspect_source, data)

    with timer(f"{image_id} variants"):
        variants, blurhash = await asyncio.gather(
            generate_variants(data, DEFAULT_VARIANTS),
            safe_blurhash(data, image_id),
        )

    items = [(v, variant_path(storage_path, v.name, v.format)) for v in variants]
    with timer(f"{image_id} upload", warn_after=settings.STORAGE_TIMEOUT_SECONDS / 2):
        original, rows = await asyncio.gather(
            original_row(storage, image_id, source, storage_path, original_url),
            reconcile_variants(storage, image_id, items),
        )

    updates: dict[str, str | None] = {"blurhash": blurhash}
    for row in rows:
        updates[LEGACY_URL_COLUMNS[row.variant_name]] = row.public_url

    with timer(f"{image_id} persist"):
        await run_db(_persist, image_id, source, updates, [original, *rows], session)
    return updates


def _persist(
    image_id: str,
    source: SourceInfo,
    updates: dict[str, str | None],
    rows: list[VariantRow],
    session: Session,
) -> None:
    derived = [row for row in rows if row.variant_name != "original"]
    try:
        image = get_image_or_raise(image_id, session)
        for column, value in updates.items():
            setattr(image, column, value)
        image.original_width = source.width
        image.original_height = source.height
        image.file_size_bytes = source.byte_size
        if derived:
            image.transition_to(ProcessingStatus.COMPLETED)
        else:
            # 처리를 시도했지만 결과가 없음 → 미처리와 구분되도록 failed
            image.transition_to(ProcessingStatus.FAILED, "No variants were produced")
        session.add(image)
        upsert_variants(rows, session)
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        raise PersistenceError(f"Database update failed: {e}") from e


def upsert_variants(rows: list[VariantRow], session: Session) -> None:
    """(product_image_id, variant_name) 충돌 시 덮어쓴다."""
    if not rows:
        return

    now = utcnow()
    values = [{**row.to_dict(), "updated_at": now} for row in rows]
    dialect = session.get_bind().dialect.name

    if dialect in ("sqlite", "postgresql"):
        insert = sqlite.insert if dialect == "sqlite" else postgresql.insert
        stmt = insert(ProductImageVariant).values(values)
        stmt = stmt.on_conflict_do_update(
            index_elements=["product_image_id", "variant_name"],
            set_={column: stmt.excluded[column] for column in UPSERT_COLUMNS},
        )
        session.exec(stmt)  # type: ignore[call-overload]
        return

    # ON CONFLICT 미지원 DB: 조회 후 갱신
    for value in values:
        existing = session.exec(
            select(ProductImageVariant).where(
                ProductImageVariant.product_image_id == value["product_image_id"],
                ProductImageVariant.variant_name == value["variant_name"],
            )
        ).first()
        if existing:
            for column in UPSERT_COLUMNS:
                setattr(existing, column, value[column])
            session.add(existing)
        else:
            session.add(ProductImageVariant(**value))


def _mark_failed(image_id: str, error: str, session: Session) -> None:
    session.rollback()
    try:
        image = get_image_or_raise(image_id, session)
        image.transition_to(ProcessingStatus.FAILED, error)
        session.add(image)
        session.commit()
    except (SQLAlchemyError, AppException) as e:
        session.rollback()
        logger.error(f"[{image_id}] could not record failure: {e}")
    logger.error(f"[{image_id}] processing failed: {error}")
