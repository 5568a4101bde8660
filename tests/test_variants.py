"""변형 생성 함수 단위 테스트."""

import asyncio
import io
import typing

import pytest
from PIL import Image
from pydantic import ValidationError

from conftest import make_image_bytes
from core.config import Settings
from core.exceptions import DecodeError
from processor.variants import (
    DEFAULT_VARIANTS,
    PIL_FORMATS,
    VariantSpec,
    fit_inside,
    generate_variants,
    inspect_source,
    render_variant,
    variant_path,
)


def _decoded_size(data: bytes) -> tuple[int, int]:
    return Image.open(io.BytesIO(data)).size


class TestFitInside:
    @pytest.mark.parametrize(
        "source, target, expected",
        [
            ((2000, 1500), 400, (400, 300)),
            ((2000, 1500), 800, (800, 600)),
            ((2000, 1500), 1200, (1200, 900)),
            ((1500, 2000), 400, (300, 400)),
            ((300, 200), 400, (300, 200)),  # 확대하지 않음
            ((5000, 10), 400, (400, 1)),
        ],
    )
    def test_fit_inside(self, source, target, expected):
        assert fit_inside(*source, target) == expected

    @pytest.mark.parametrize("width, height", [(1999, 1001), (641, 479), (3, 1000), (1234, 1234)])
    @pytest.mark.parametrize("target", [400, 800, 1200])
    def test_never_upscales_and_keeps_aspect(self, width, height, target):
        w, h = fit_inside(width, height, target)
        scale = min(target / width, target / height, 1)

        assert w <= min(width, target)
        assert h <= min(height, target)
        # 두 축 모두 반올림 전 목표 크기와 ±1px 이내
        assert abs(w - width * scale) <= 1
        assert abs(h - height * scale) <= 1


class TestRenderVariant:
    def test_example_2000x1500_jpeg(self):
        """2000x1500 JPEG → 400x300 WebP, 보고된 크기가 실제 인코딩 결과와 같다."""
        data = make_image_bytes(2000, 1500)

        result = render_variant(data, VariantSpec("thumbnail", 400))

        assert result.format == "webp"
        assert (result.width, result.height) == (400, 300)
        assert _decoded_size(result.data) == (400, 300)
        assert result.byte_size == len(result.data)
        assert Image.open(io.BytesIO(result.data)).format == "WEBP"
        assert result.content_type == "image/webp"

    def test_small_source_is_not_upscaled(self):
        result = render_variant(make_image_bytes(120, 80), VariantSpec("large", 1200))

        assert (result.width, result.height) == (120, 80)

    def test_png_with_alpha_is_reencoded(self):
        data = make_image_bytes(500, 250, "PNG", "RGBA")

        result = render_variant(data, VariantSpec("thumbnail", 400))

        assert result.format == "webp"
        assert (result.width, result.height) == (400, 200)

    def test_jpeg_output_drops_alpha(self):
        data = make_image_bytes(500, 250, "PNG", "RGBA")

        result = render_variant(data, VariantSpec("thumbnail", 400, "jpeg"))

        assert result.format == "jpeg"
        assert Image.open(io.BytesIO(result.data)).mode == "RGB"

    def test_unsupported_format(self):
        with pytest.raises(ValueError):
            render_variant(make_image_bytes(50, 50), VariantSpec("odd", 400, "bmpx"))


class TestGenerateVariants:
    def test_generates_default_set(self):
        results = asyncio.run(generate_variants(make_image_bytes(2000, 1500)))

        sizes = {r.name: (r.width, r.height) for r in results}
        assert sizes == {
            "thumbnail": (400, 300),
            "medium": (800, 600),
            "large": (1200, 900),
        }

    def test_one_failing_spec_does_not_block_others(self):
        specs = [
            VariantSpec("thumbnail", 400),
            VariantSpec("broken", 800, "bmpx"),
            VariantSpec("large", 1200),
        ]

        results = asyncio.run(generate_variants(make_image_bytes(900, 600), specs))

        assert [r.name for r in results] == ["thumbnail", "large"]

    def test_corrupt_source_fails_before_any_variant(self):
        with pytest.raises(DecodeError):
            asyncio.run(generate_variants(b"\x89PNG\r\n\x1a\n truncated", DEFAULT_VARIANTS))

    def test_oversized_source_is_a_decode_error(self, monkeypatch):
        monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 1000)

        with pytest.raises(DecodeError):
            asyncio.run(generate_variants(make_image_bytes(2000, 1500)))

    def test_inspect_source(self):
        data = make_image_bytes(640, 480)

        info = inspect_source(data)

        assert (info.width, info.height) == (640, 480)
        assert info.format == "jpeg"
        assert info.byte_size == len(data)


class TestVariantPath:
    @pytest.mark.parametrize(
        "path, expected",
        [
            ("products/p1/photo.jpg", "products/p1/photo_thumbnail.webp"),
            ("photo.png", "photo_thumbnail.webp"),
            ("a/b/c/name.with.dots.jpeg", "a/b/c/name.with.dots_thumbnail.webp"),
            ("products/noext", "products/noext_thumbnail.webp"),
        ],
    )
    def test_variant_path(self, path, expected):
        assert variant_path(path, "thumbnail", "webp") == expected


class TestOutputFormats:
    def test_every_configurable_format_is_renderable(self):
        """VARIANT_FORMAT으로 고를 수 있는 포맷은 모두 인코딩할 수 있다."""
        allowed = typing.get_args(Settings.model_fields["VARIANT_FORMAT"].annotation)

        assert set(allowed) == set(PIL_FORMATS)
        for fmt in allowed:
            result = render_variant(make_image_bytes(60, 40), VariantSpec("thumbnail", 400, fmt))
            assert Image.open(io.BytesIO(result.data)).format == PIL_FORMATS[fmt]

    @pytest.mark.parametrize("fmt", ["avif", "gif", "jpg"])
    def test_unsupported_format_is_rejected_by_config(self, fmt):
        with pytest.raises(ValidationError):
            Settings(VARIANT_FORMAT=fmt)
