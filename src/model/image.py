import uuid
from datetime import UTC, datetime
from enum import Enum

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel

from core.exceptions import InvalidStatusTransition


def utcnow() -> datetime:
    return datetime.now(UTC)


class ProcessingStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


# processing → processing 허용: 중복 실행이나 비정상 종료 후 재처리가 막히지 않도록
STATUS_TRANSITIONS: dict[ProcessingStatus, set[ProcessingStatus]] = {
    ProcessingStatus.PENDING: {ProcessingStatus.PROCESSING},
    ProcessingStatus.PROCESSING: {
        ProcessingStatus.PROCESSING,
        ProcessingStatus.COMPLETED,
        ProcessingStatus.FAILED,
    },
    ProcessingStatus.COMPLETED: {ProcessingStatus.PROCESSING},
    ProcessingStatus.FAILED: {ProcessingStatus.PROCESSING},
}

LEGACY_URL_COLUMNS = {
    "thumbnail": "thumbnail_url",
    "medium": "medium_url",
    "large": "large_url",
}


class ProductImage(SQLModel, table=True):
    __tablename__ = "product_images"

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    product_id: str = Field(index=True)
    original_url: str | None = None
    storage_path: str

    blurhash: str | None = None
    # 구버전 소비자 호환용 컬럼 (variant 테이블로 이전 전까지 유지)
    thumbnail_url: str | None = None
    medium_url: str | None = None
    large_url: str | None = None

    original_width: int | None = None
    original_height: int | None = None
    file_size_bytes: int | None = None

    processing_status: ProcessingStatus = Field(default=ProcessingStatus.PENDING)
    processing_error: str | None = None

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def transition_to(self, status: ProcessingStatus, error: str | None = None) -> None:
        """처리 상태를 전이한다. 허용되지 않은 전이는 InvalidStatusTransition."""
        current = ProcessingStatus(self.processing_status)
        if status not in STATUS_TRANSITIONS[current]:
            raise InvalidStatusTransition(
                f"Cannot move image {self.id} from {current.value} to {status.value}"
            )
        self.processing_status = status
        self.processing_error = error
        self.updated_at = utcnow()


class ProductImageVariant(SQLModel, table=True):
    __tablename__ = "product_image_variants"
    __table_args__ = (
        UniqueConstraint("product_image_id", "variant_name", name="uq_image_variant"),
    )

    id: int | None = Field(default=None, primary_key=True)
    product_image_id: str = Field(foreign_key="product_images.id", index=True)
    variant_name: str  # original, thumbnail, medium, large
    width: int
    height: int
    size: int
    format: str | None = None
    storage_path: str
    public_url: str
    storage_object_id: str | None = None
    updated_at: datetime = Field(default_factory=utcnow)
