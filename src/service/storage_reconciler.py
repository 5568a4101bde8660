"""생성된 변형을 스토리지에 올리고 DB에 기록할 메타데이터로 맞춘다.

- 업로드: 덮어쓰기 허용 put
- 공개 URL: 필수. 실패하면 해당 변형만 실패로 처리
- storage_object_id: 업로드 응답의 id. 없으면 폴더 목록에서 파일명으로 찾는 best-effort 조회 (실패해도 None)
"""

import posixpath
from dataclasses import asdict, dataclass
from urllib.parse import unquote

from loguru import logger

from core.exceptions import StorageError
from processor.async_runner import settle_all
from processor.variants import GeneratedVariant, SourceInfo
from service.storage_client import StorageClient


@dataclass
class VariantRow:
    product_image_id: str
    variant_name: str
    width: int
    height: int
    size: int
    format: str | None
    storage_path: str
    public_url: str
    storage_object_id: str | None = None

    def to_dict(self) -> dict:
        return asdict(self)


def extract_storage_path(original_url: str, bucket: str) -> str:
    """공개 URL에서 버킷 이후 경로를 꺼낸다. 버킷이 없으면 URL 전체를 경로로 본다.

    public_url()이 경로를 퍼센트 인코딩하므로 되돌려서 스토리지 키로 쓴다.
    """
    marker = f"{bucket}/"
    if marker in original_url:
        return unquote(original_url.split(marker, 1)[1])
    return unquote(original_url)


async def resolve_object_id(storage: StorageClient, path: str) -> str | None:
    folder, filename = posixpath.split(path)
    try:
        objects = await storage.list_objects(folder, search=filename)
    except StorageError as e:
        logger.warning(f"Could not list storage objects for {path}: {e}")
        return None

    match = next((obj for obj in objects if obj.name == filename), None)
    if match is None or not match.id:
        logger.debug(f"No storage object id for {path}")
        return None
    return match.id


async def reconcile_variant(
    storage: StorageClient, image_id: str, variant: GeneratedVariant, path: str
) -> VariantRow:
    object_id = await storage.upload(path, variant.data, variant.content_type)
    public_url = storage.public_url(path)
    if object_id is None:
        object_id = await resolve_object_id(storage, path)
    logger.debug(f"[{image_id}] uploaded {variant.name} → {path}")
    return VariantRow(
        product_image_id=image_id,
        variant_name=variant.name,
        width=variant.width,
        height=variant.height,
        size=variant.byte_size,
        format=variant.format,
        storage_path=path,
        public_url=public_url,
        storage_object_id=object_id,
    )


async def reconcile_variants(
    storage: StorageClient,
    image_id: str,
    items: list[tuple[GeneratedVariant, str]],
) -> list[VariantRow]:
    """(변형, 경로) 목록을 동시에 업로드한다. 성공한 것만 반환한다."""
    results = await settle_all(
        reconcile_variant(storage, image_id, variant, path) for variant, path in items
    )

    rows = []
    for (variant, path), result in zip(items, results):
        if isinstance(result, BaseException):
            logger.error(f"[{image_id}] upload failed for {variant.name} ({path}): {result}")
            continue
        rows.append(result)
    return rows


async def original_row(
    storage: StorageClient,
    image_id: str,
    source: SourceInfo,
    storage_path: str,
    original_url: str | None,
) -> VariantRow:
    """재인코딩 없이 원본 자체를 'original' 변형으로 기록한다."""
    return VariantRow(
        product_image_id=image_id,
        variant_name="original",
        width=source.width,
        height=source.height,
        size=source.byte_size,
        format=source.format,
        storage_path=storage_path,
        public_url=original_url or "",
        storage_object_id=await resolve_object_id(storage, storage_path),
    )
