"""Tests for the resize orchestrator and its reports."""

import base64
import logging

import pytest

from tryon_studio.imaging import ProcessingOptions
from tryon_studio.resizing import (
    build_resize_report,
    compression_ratio,
    compute_fit_dimensions,
    format_file_size,
    resize,
    resize_to_fit,
)


class TestHelpers:

    @pytest.mark.parametrize("size,expected", [
        (0, "0 B"),
        (500, "500 B"),
        (1024, "1 KB"),
        (1536, "1.5 KB"),
        (5 * 1024 * 1024, "5 MB"),
        (3 * 1024 ** 3, "3 GB"),
    ])
    def test_format_file_size(self, size, expected):
        assert format_file_size(size) == expected

    def test_compression_ratio(self):
        assert compression_ratio(1_024_000, 512_000) == 50.0
        assert compression_ratio(0, 512_000) == 0
        assert compression_ratio(1000, 1500) == -50.0

    @pytest.mark.parametrize("original,box,expected", [
        ((1920, 1080), (800, 600), (800, 450)),
        ((1080, 1920), (800, 600), (338, 600)),
        ((1000, 1000), (300, 200), (200, 200)),
        ((4000, 1000), (800, 100), (400, 100)),
        ((10000, 1), (50, 50), (50, 1)),
    ])
    def test_compute_fit_dimensions(self, original, box, expected):
        assert compute_fit_dimensions(*original, *box) == expected


class TestResize:

    def test_success(self, png_b64):
        result = resize(png_b64, ProcessingOptions(width=32, height=16, format="jpeg"))

        assert result.success
        assert result.error is None
        assert result.metadata.original.format == "png"
        assert result.metadata.resized.format == "jpeg"
        assert (result.metadata.resized.width, result.metadata.resized.height) == (32, 16)
        assert base64.b64decode(result.resized_blob)[:3] == b"\xff\xd8\xff"

    def test_accepts_data_url(self, png_data_url):
        assert resize(png_data_url, ProcessingOptions(width=8)).success

    def test_invalid_base64_fails_without_raising(self):
        result = resize("%%%not-base64", ProcessingOptions(width=10))

        assert not result.success
        assert "Invalid base64" in result.error
        assert result.applied_options.width == 10

    def test_undecodable_image_fails_without_raising(self):
        result = resize(base64.b64encode(b"not an image at all").decode())

        assert not result.success
        assert "Cannot read image metadata" in result.error

    def test_logs_report(self, png_b64, caplog):
        with caplog.at_level(logging.INFO, logger="tryon_studio.resizing"):
            resize(png_b64, ProcessingOptions(width=16), context="thumbnail")

        record = caplog.records[-1]
        assert record.resize_report["context"] == "thumbnail"
        assert record.resize_report["success"] is True


class TestResizeToFit:

    def test_landscape_into_box(self, make_image):
        image = base64.b64encode(make_image("RGB", (1920, 1080), "JPEG")).decode()

        result = resize_to_fit(image, 800, 600)

        assert result.success
        assert (result.metadata.resized.width, result.metadata.resized.height) == (800, 450)
        assert result.applied_options.fit == "contain"

    def test_small_source_is_not_enlarged(self, make_image):
        image = base64.b64encode(make_image("RGB", (200, 100), "JPEG")).decode()

        result = resize_to_fit(image, 800, 600)

        assert result.success
        assert (result.metadata.resized.width, result.metadata.resized.height) == (200, 100)

    def test_computed_dimensions_override_caller(self, make_image):
        image = base64.b64encode(make_image("RGB", (200, 100), "PNG")).decode()

        result = resize_to_fit(image, 100, 100, ProcessingOptions(width=10, height=10, fit="fill", format="webp"))

        assert (result.applied_options.width, result.applied_options.height) == (100, 50)
        assert result.applied_options.fit == "contain"
        assert result.applied_options.format == "webp"

    def test_invalid_box(self, png_b64):
        result = resize_to_fit(png_b64, 0, 100)

        assert not result.success
        assert "Invalid bounding box" in result.error


class TestReport:

    def test_success_report_shape(self, png_b64):
        result = resize(png_b64, ProcessingOptions(width=32))
        report = build_resize_report(result, "unit")

        assert report["context"] == "unit"
        assert report["success"] is True
        assert set(report["original"]) == {"width", "height", "size", "format", "has_alpha", "channels", "color_space"}
        assert report["resized"]["width"] == 32
        assert report["compression_ratio"] == result.compression_ratio
        assert report["options"]["width"] == 32

    def test_failure_report_without_original(self):
        result = resize("%%%")
        report = build_resize_report(result, "unit")

        assert report["success"] is False
        assert "error" in report
        assert "attempted_options" in report
        assert "original" not in report

    def test_failure_report_keeps_known_original(self, png_b64):
        result = resize(png_b64, ProcessingOptions(format="tiff", quality=50))
        assert result.success

        broken = result.model_copy(update={"success": False, "error": "encoder exploded"})
        report = build_resize_report(broken)

        assert report["error"] == "encoder exploded"
        assert report["original"]["format"] == "png"
