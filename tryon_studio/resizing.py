"""Resize orchestration on top of the imaging engine.

Every call returns a ``ResizeResult`` (never raises for bad input) and emits
one report entry through the module logger. The report dict is also what
``build_resize_report`` returns, so callers and tests can inspect it.
"""

import logging
import math

from pydantic import BaseModel, ConfigDict

from tryon_studio.errors import ImageProcessingError, InvalidImageError
from tryon_studio.imaging import ImageMetadata, ProcessingOptions, process_image, read_metadata
from tryon_studio.schema import decode_image, encode_image

logger = logging.getLogger(__name__)

SIZE_UNITS = ("B", "KB", "MB", "GB")

EMPTY_METADATA = ImageMetadata(width=0, height=0, format="unknown", size_bytes=0)


class ImagesMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    original: ImageMetadata
    resized: ImageMetadata


class ResizeResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool
    resized_blob: str = ""
    metadata: ImagesMetadata
    applied_options: ProcessingOptions
    compression_ratio: float = 0.0
    error: str | None = None


def format_file_size(num_bytes: int) -> str:
    """Human readable size: ``0 B``, ``1.5 KB``, ``3.25 MB``..."""
    if num_bytes <= 0:
        return "0 B"
    value = float(num_bytes)
    unit = SIZE_UNITS[0]
    for unit in SIZE_UNITS:
        if value < 1024 or unit == SIZE_UNITS[-1]:
            break
        value /= 1024
    return f"{round(value, 2):g} {unit}"


def compression_ratio(original_size: int, resized_size: int) -> float:
    """Percentage saved by the resize, 0 when the original size is unknown."""
    if original_size <= 0:
        return 0.0
    return round((1 - resized_size / original_size) * 100, 2)


def _round(value: float) -> int:
    # half-up, so x.5 always rounds the same way regardless of parity
    return int(math.floor(value + 0.5))


def compute_fit_dimensions(
    original_width: int,
    original_height: int,
    max_width: int,
    max_height: int,
) -> tuple[int, int]:
    """Largest size with the original aspect ratio that fits the box.

    Each step is rounded before the overflow check, so the fallback branch
    works on already-rounded pixels.
    """
    aspect_ratio = original_width / original_height
    new_width, new_height = max_width, max_height

    if aspect_ratio > 1:
        new_height = _round(max_width / aspect_ratio)
        if new_height > max_height:
            new_height = max_height
            new_width = _round(max_height * aspect_ratio)
    else:
        new_width = _round(max_height * aspect_ratio)
        if new_width > max_width:
            new_width = max_width
            new_height = _round(max_width / aspect_ratio)

    return max(1, new_width), max(1, new_height)


def _describe(metadata: ImageMetadata) -> dict:
    return {
        "width": metadata.width,
        "height": metadata.height,
        "size": format_file_size(metadata.size_bytes),
        "format": metadata.format,
        "has_alpha": metadata.has_alpha,
        "channels": metadata.channels,
        "color_space": metadata.color_space,
    }


def build_resize_report(result: ResizeResult, context: str = "resize") -> dict:
    options = result.applied_options.model_dump()
    if result.success:
        return {
            "context": context,
            "success": True,
            "original": _describe(result.metadata.original),
            "resized": _describe(result.metadata.resized),
            "compression_ratio": result.compression_ratio,
            "options": options,
        }

    report = {
        "context": context,
        "success": False,
        "error": result.error or "Unknown error",
        "attempted_options": options,
    }
    if result.metadata.original.size_bytes > 0:
        report["original"] = _describe(result.metadata.original)
    return report


def log_resize_result(result: ResizeResult, context: str = "resize") -> dict:
    report = build_resize_report(result, context)
    if result.success:
        original, resized = report["original"], report["resized"]
        logger.info(
            "[%s] Resize completed: %sx%s (%s) -> %sx%s (%s), %s%% reduction",
            context,
            original["width"],
            original["height"],
            original["size"],
            resized["width"],
            resized["height"],
            resized["size"],
            result.compression_ratio,
            extra={"resize_report": report},
        )
    else:
        logger.error(
            "[%s] Resize failed: %s (attempted options: %s)",
            context,
            report["error"],
            report["attempted_options"],
            extra={"resize_report": report},
        )
    return report


def _failure(options: ProcessingOptions, error: str, original: ImageMetadata = EMPTY_METADATA) -> ResizeResult:
    return ResizeResult(
        success=False,
        metadata=ImagesMetadata(original=original, resized=EMPTY_METADATA),
        applied_options=options,
        error=error,
    )


def resize(image: str, options: ProcessingOptions | None = None, *, context: str = "resize") -> ResizeResult:
    """Run the imaging engine on a base64 image and report the outcome."""
    options = options or ProcessingOptions()

    try:
        data = decode_image(image)
        original = read_metadata(data)
    except (InvalidImageError, ImageProcessingError) as e:
        result = _failure(options, str(e))
        log_resize_result(result, context)
        return result

    try:
        processed = process_image(data, options)
    except ImageProcessingError as e:
        result = _failure(options, str(e), original=original)
        log_resize_result(result, context)
        return result

    result = ResizeResult(
        success=True,
        resized_blob=encode_image(processed.data),
        metadata=ImagesMetadata(original=original, resized=processed.metadata),
        applied_options=options,
        compression_ratio=compression_ratio(original.size_bytes, processed.metadata.size_bytes),
    )
    log_resize_result(result, context)
    return result


def resize_to_fit(
    image: str,
    max_width: int,
    max_height: int,
    options: ProcessingOptions | None = None,
) -> ResizeResult:
    """Shrink ``image`` to fit ``max_width`` x ``max_height``, keeping its aspect ratio."""
    options = options or ProcessingOptions()
    context = "resize_to_fit"

    if max_width < 1 or max_height < 1:
        result = _failure(options, f"Invalid bounding box {max_width}x{max_height}")
        log_resize_result(result, context)
        return result

    try:
        original = read_metadata(decode_image(image))
    except (InvalidImageError, ImageProcessingError) as e:
        result = _failure(options, str(e))
        log_resize_result(result, context)
        return result

    width, height = compute_fit_dimensions(original.width, original.height, max_width, max_height)
    fit_options = options.model_copy(update={"width": width, "height": height, "fit": "contain"})
    return resize(image, fit_options, context=context)
