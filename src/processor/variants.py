"""
순수 CPU-bound 변형(variant) 생성 함수.

원본 바이트를 받아 지정한 최대 크기 안에 맞게 줄이고(확대 없음, 비율 유지)
손실 포맷(WebP, 품질 85)으로 재인코딩한다. 결과의 width/height/byte_size는
요청값이 아니라 실제 인코딩 결과에서 읽는다.
"""

import io
import posixpath
from dataclasses import dataclass

from loguru import logger
from PIL import Image, UnidentifiedImageError

from core.config import settings
from core.exceptions import DecodeError
from processor.async_runner import run_blocking, settle_all

# VARIANT_FORMAT으로 고를 수 있는 출력 포맷 → Pillow 포맷 이름
PIL_FORMATS = {
    "webp": "WEBP",
    "jpeg": "JPEG",
    "png": "PNG",
}

# 디코딩 실패로 보는 예외. DecompressionBombError는 MAX_IMAGE_PIXELS 2배를 넘는 원본
UNREADABLE = (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError)


@dataclass(frozen=True)
class VariantSpec:
    name: str
    max_dimension: int
    output_format: str = "webp"


@dataclass(frozen=True)
class SourceInfo:
    width: int
    height: int
    format: str | None
    byte_size: int


@dataclass
class GeneratedVariant:
    name: str
    data: bytes
    width: int
    height: int
    byte_size: int
    format: str

    @property
    def content_type(self) -> str:
        return f"image/{self.format}"


DEFAULT_VARIANTS: tuple[VariantSpec, ...] = (
    VariantSpec("thumbnail", 400, settings.VARIANT_FORMAT),
    VariantSpec("medium", 800, settings.VARIANT_FORMAT),
    VariantSpec("large", 1200, settings.VARIANT_FORMAT),
)


def open_source(data: bytes) -> Image.Image:
    """원본 바이트를 디코딩한다. 읽을 수 없으면 DecodeError."""
    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except UNREADABLE as e:
        raise DecodeError(f"Source image could not be decoded: {e}") from e
    return image


def inspect_source(data: bytes) -> SourceInfo:
    image = open_source(data)
    return SourceInfo(
        width=image.width,
        height=image.height,
        format=image.format.lower() if image.format else None,
        byte_size=len(data),
    )


def fit_inside(width: int, height: int, max_dimension: int) -> tuple[int, int]:
    """max_dimension x max_dimension 안에 들어가는 크기. 원본보다 커지지 않는다."""
    if width <= max_dimension and height <= max_dimension:
        return width, height
    scale = min(max_dimension / width, max_dimension / height)
    return max(1, round(width * scale)), max(1, round(height * scale))


def _normalize_mode(image: Image.Image) -> Image.Image:
    """손실 포맷이 받을 수 있는 RGB/RGBA로 맞춘다."""
    if image.mode in ("RGB", "RGBA"):
        return image
    if image.mode in ("LA", "PA") or (image.mode == "P" and "transparency" in image.info):
        return image.convert("RGBA")
    return image.convert("RGB")


def render_variant(
    data: bytes, spec: VariantSpec, quality: int | None = None
) -> GeneratedVariant:
    """원본 바이트에서 하나의 변형을 만든다 (스레드마다 독립적으로 디코딩)."""
    quality = quality or settings.VARIANT_QUALITY
    pil_format = PIL_FORMATS.get(spec.output_format.lower())
    if pil_format is None:
        raise ValueError(f"Unsupported output format: {spec.output_format}")

    image = _normalize_mode(open_source(data))
    target = fit_inside(image.width, image.height, spec.max_dimension)
    if target != image.size:
        image = image.resize(target, Image.Resampling.LANCZOS)

    if pil_format == "JPEG" and image.mode == "RGBA":
        image = image.convert("RGB")

    output = io.BytesIO()
    image.save(output, format=pil_format, quality=quality)
    encoded = output.getvalue()

    return GeneratedVariant(
        name=spec.name,
        data=encoded,
        width=image.width,
        height=image.height,
        byte_size=len(encoded),
        format="jpeg" if pil_format == "JPEG" else pil_format.lower(),
    )


async def generate_variants(
    data: bytes,
    specs: tuple[VariantSpec, ...] | list[VariantSpec] = DEFAULT_VARIANTS,
    quality: int | None = None,
) -> list[GeneratedVariant]:
    """모든 변형을 스레드풀에서 동시에 생성한다.

    원본을 읽을 수 없으면 변형을 하나도 시도하지 않고 DecodeError.
    개별 변형 실패는 로그만 남기고 결과에서 빠진다.
    """
    await run_blocking(open_source, data)

    results = await settle_all(run_blocking(render_variant, data, spec, quality) for spec in specs)

    generated = []
    for spec, result in zip(specs, results):
        if isinstance(result, BaseException):
            logger.error(f"Variant {spec.name} ({spec.max_dimension}px) failed: {result}")
            continue
        logger.debug(
            f"Variant {result.name}: {result.width}x{result.height}, "
            f"{result.byte_size / 1024:.1f} KB"
        )
        generated.append(result)
    return generated


def variant_path(storage_path: str, variant_name: str, fmt: str) -> str:
    """dir/name.ext → dir/name_<variant>.<fmt>"""
    folder, filename = posixpath.split(storage_path)
    stem = posixpath.splitext(filename)[0] or filename
    name = f"{stem}_{variant_name}.{fmt}"
    return f"{folder}/{name}" if folder else name
