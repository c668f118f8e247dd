"""Pillow image normalization: channel enforcement, format negotiation, resizing.

The engine takes raw image bytes plus ``ProcessingOptions`` and returns new
bytes. Metadata for the output is always read back from the encoded bytes,
since the encoder may change the channel layout on its own.
"""

import io
import logging
from dataclasses import dataclass
from typing import Literal

from PIL import Image, UnidentifiedImageError
from pydantic import BaseModel, ConfigDict, Field, field_validator

from tryon_studio.errors import ImageProcessingError

logger = logging.getLogger(__name__)

FitMode = Literal["cover", "contain", "fill", "inside", "outside"]
ImageFormat = Literal["jpeg", "png", "webp", "tiff"]

ALPHA_FORMATS = ("png", "webp", "tiff")
DEFAULT_ALPHA_FORMAT = "png"
DEFAULT_QUALITY = 80

_PIL_FORMATS = {"jpeg": "JPEG", "png": "PNG", "webp": "WEBP", "tiff": "TIFF"}
_JPEG_MODES = ("L", "RGB", "CMYK")

_COLOR_SPACES = {
    "1": "b-w",
    "L": "b-w",
    "LA": "b-w",
    "I": "b-w",
    "F": "b-w",
    "I;16": "grey16",
    "P": "srgb",
    "PA": "srgb",
    "RGB": "srgb",
    "RGBA": "srgb",
    "RGBX": "srgb",
    "CMYK": "cmyk",
    "YCbCr": "ycbcr",
    "LAB": "lab",
    "HSV": "hsv",
}


class ImageMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    width: int
    height: int
    format: str
    size_bytes: int
    channels: int | None = None
    has_alpha: bool | None = None
    color_space: str | None = None

    @property
    def mime_type(self) -> str:
        return f"image/{self.format}"


class ProcessingOptions(BaseModel):
    """What the caller wants the output to look like.

    ``force_four_channel`` always applies the alpha transform;
    ``ensure_four_channel`` only applies it when the source is not RGBA already.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    width: int | None = Field(default=None, ge=1, le=10000)
    height: int | None = Field(default=None, ge=1, le=10000)
    fit: FitMode = "cover"
    format: ImageFormat | None = None
    quality: int | None = Field(default=None, ge=1, le=100)
    ensure_four_channel: bool = Field(default=False, alias="ensureFourChannel")
    force_four_channel: bool = Field(default=False, alias="forceFourChannel")

    @field_validator("format", mode="before")
    @classmethod
    def _normalize_format(cls, value):
        if isinstance(value, str):
            value = value.lower()
            return "jpeg" if value == "jpg" else value
        return value


@dataclass(frozen=True)
class ProcessedImage:
    data: bytes
    original: ImageMetadata
    metadata: ImageMetadata


def _channel_info(img: Image.Image) -> tuple[int, bool]:
    if img.mode == "P":
        has_alpha = "transparency" in img.info
        return (4 if has_alpha else 3), has_alpha
    bands = img.getbands()
    return len(bands), "A" in bands or "a" in bands


def _format_name(img: Image.Image) -> str:
    fmt = (img.format or "unknown").lower()
    # Pillow reports multi-picture JPEGs (most phone photos) as MPO
    return "jpeg" if fmt == "mpo" else fmt


def _describe(img: Image.Image, size_bytes: int) -> ImageMetadata:
    channels, has_alpha = _channel_info(img)
    return ImageMetadata(
        width=img.width,
        height=img.height,
        format=_format_name(img),
        size_bytes=size_bytes,
        channels=channels,
        has_alpha=has_alpha,
        color_space=_COLOR_SPACES.get(img.mode, img.mode.lower()),
    )


def _open(data: bytes) -> Image.Image:
    if not data:
        raise ImageProcessingError("Cannot read image metadata: empty image data")
    try:
        img = Image.open(io.BytesIO(data))
        img.load()
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as e:
        raise ImageProcessingError(f"Cannot read image metadata: {e}") from e
    return img


def read_metadata(data: bytes) -> ImageMetadata:
    """Decode ``data`` and describe it. Raises ImageProcessingError on corrupt input."""
    with _open(data) as img:
        return _describe(img, len(data))


def needs_alpha_enforcement(metadata: ImageMetadata, options: ProcessingOptions) -> bool:
    if options.force_four_channel:
        return True
    return options.ensure_four_channel and (not metadata.has_alpha or metadata.channels != 4)


def ensure_alpha(img: Image.Image) -> Image.Image:
    """Return an RGBA image, adding a fully opaque alpha channel if missing."""
    if img.mode == "RGBA":
        return img.copy()
    return img.convert("RGBA")


def _output_format(requested: str) -> str:
    if requested in ALPHA_FORMATS:
        return requested
    logger.info("Format %s does not support alpha channels, switching to %s", requested, DEFAULT_ALPHA_FORMAT)
    return DEFAULT_ALPHA_FORMAT


def _target_size(img: Image.Image, width: int | None, height: int | None) -> tuple[int, int]:
    ow, oh = img.size
    if width is None:
        width = max(1, round(ow * height / oh))
    if height is None:
        height = max(1, round(oh * width / ow))
    return width, height


def _pad(img: Image.Image, size: tuple[int, int]) -> Image.Image:
    if img.size == size:
        return img
    if img.mode == "P":
        img = img.convert("RGBA" if "transparency" in img.info else "RGB")
    # 0 is transparent black for modes with alpha, plain black otherwise
    canvas = Image.new(img.mode, size, 0)
    canvas.paste(img, ((size[0] - img.width) // 2, (size[1] - img.height) // 2))
    return canvas


def resize(img: Image.Image, width: int | None, height: int | None, fit: FitMode = "cover") -> Image.Image:
    """Resize following sharp-style fit modes. Never enlarges the source."""
    ow, oh = img.size
    width, height = _target_size(img, width, height)

    if fit == "fill":
        size = (min(width, ow), min(height, oh))
        return img if size == img.size else img.resize(size, Image.LANCZOS)

    ratios = (width / ow, height / oh)
    scale = min(ratios) if fit in ("contain", "inside") else max(ratios)
    scale = min(scale, 1.0)
    scaled = (max(1, round(ow * scale)), max(1, round(oh * scale)))
    out = img if scaled == img.size else img.resize(scaled, Image.LANCZOS)

    if fit == "cover":
        crop_w, crop_h = min(width, out.width), min(height, out.height)
        left = (out.width - crop_w) // 2
        top = (out.height - crop_h) // 2
        return out.crop((left, top, left + crop_w, top + crop_h))
    if fit == "contain":
        return _pad(out, (min(width, ow), min(height, oh)))
    return out


def _encode(img: Image.Image, fmt: str, quality: int | None) -> bytes:
    params = {}
    if fmt == "png":
        # no palette quantization, it would drop the alpha channel
        params = {"optimize": False}
    elif fmt in ("jpeg", "webp"):
        params = {"quality": quality or DEFAULT_QUALITY}

    buf = io.BytesIO()
    try:
        img.save(buf, format=_PIL_FORMATS[fmt], **params)
    except (OSError, ValueError, KeyError) as e:
        raise ImageProcessingError(f"Cannot encode image as {fmt}: {e}") from e
    return buf.getvalue()


def process_image(data: bytes, options: ProcessingOptions | None = None) -> ProcessedImage:
    """Normalize channels/format and optionally resize ``data``."""
    options = options or ProcessingOptions()

    with _open(data) as source:
        original = _describe(source, len(data))
        fmt = options.format or (original.format if original.format in _PIL_FORMATS else DEFAULT_ALPHA_FORMAT)
        img = source

        if needs_alpha_enforcement(original, options):
            # pick the alpha-capable format before anything is encoded
            fmt = _output_format(fmt)
            img = ensure_alpha(img)
            logger.debug("Applied 4-channel conversion with format %s", fmt)
        elif fmt == "jpeg" and img.mode not in _JPEG_MODES:
            img = img.convert("RGB")
        elif fmt != "jpeg" and img.mode == "CMYK":
            img = img.convert("RGB")

        if options.width or options.height:
            img = resize(img, options.width, options.height, options.fit)

        encoded = _encode(img, fmt, options.quality)

    return ProcessedImage(data=encoded, original=original, metadata=read_metadata(encoded))
