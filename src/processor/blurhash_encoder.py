"""
BlurHash 플레이스홀더 인코딩.

작은 해상도(기본 32x32)로 줄인 RGBA 픽셀에서 색/밝기 분포를 요약한
짧은 문자열을 만든다. 클라이언트는 원본을 받기 전에 이 문자열만으로
흐린 미리보기를 그릴 수 있다.

컴포넌트 수는 4x3 고정: 해시 길이 = 4 + 2 * x * y = 28자.
"""

import io

import blurhash
from PIL import Image

from core.config import settings
from core.exceptions import DecodeError, EncodingError
from processor.variants import UNREADABLE

MAX_COMPONENTS = 9


def encode_pixels(
    pixels: bytes,
    width: int,
    height: int,
    x_components: int = 4,
    y_components: int = 3,
) -> str:
    """RGBA 버퍼를 BlurHash 문자열로 인코딩한다.

    Args:
        pixels: 행 우선 RGBA 바이트 (len == width * height * 4)
        width, height: 픽셀 크기 (각각 1 이상)
        x_components, y_components: 가로/세로 주파수 성분 수 (1~9)

    Raises:
        EncodingError: 버퍼 크기나 파라미터가 잘못된 경우
    """
    if width < 1 or height < 1:
        raise EncodingError(f"Invalid dimensions {width}x{height}")
    if len(pixels) != width * height * 4:
        raise EncodingError(
            f"Pixel buffer length {len(pixels)} does not match {width}x{height} RGBA"
        )
    if not (1 <= x_components <= MAX_COMPONENTS and 1 <= y_components <= MAX_COMPONENTS):
        raise EncodingError(
            f"Component counts must be between 1 and {MAX_COMPONENTS}, "
            f"got {x_components}x{y_components}"
        )

    # blurhash는 image[y][x] = [r, g, b] 형태를 받는다 (알파는 사용하지 않음)
    stride = width * 4
    rows = [
        [
            [pixels[offset], pixels[offset + 1], pixels[offset + 2]]
            for offset in range(y * stride, (y + 1) * stride, 4)
        ]
        for y in range(height)
    ]

    try:
        return blurhash.encode(rows, components_x=x_components, components_y=y_components)
    except (ValueError, IndexError, ZeroDivisionError) as e:
        raise EncodingError(f"Failed to generate blurhash: {e}") from e


def blurhash_from_image(image: Image.Image, size: int | None = None) -> str:
    """이미지를 size x size 안에 맞게 축소한 뒤 BlurHash를 만든다."""
    size = size or settings.BLURHASH_SIZE
    small = image.copy()
    small.thumbnail((size, size), Image.Resampling.BILINEAR)
    small = small.convert("RGBA")
    return encode_pixels(
        small.tobytes(),
        small.width,
        small.height,
        settings.BLURHASH_X_COMPONENTS,
        settings.BLURHASH_Y_COMPONENTS,
    )


def blurhash_from_bytes(data: bytes, size: int | None = None) -> str:
    """인코딩된 이미지 바이트(JPEG/PNG/WebP 등)에서 BlurHash를 만든다."""
    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except UNREADABLE as e:
        raise DecodeError(f"Source image could not be decoded: {e}") from e
    return blurhash_from_image(image, size)
