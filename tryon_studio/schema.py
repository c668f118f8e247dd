"""Base64 image codec and the request/result contracts of the try-on service.

Images travel as base64 strings, either raw or wrapped in a data URL
(``data:image/png;base64,<payload>``). Everything that crosses a boundary
(HTTP request, provider response) goes through the validators here.
"""

import base64
import re
from typing import Annotated, Any

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, ValidationError, field_validator

from tryon_studio.errors import FieldError, InputValidationError, InvalidImageError

BASE64_RE = re.compile(r"^(?:[A-Za-z0-9+/]{4})*(?:[A-Za-z0-9+/]{2}==|[A-Za-z0-9+/]{3}=)?$")
IMAGE_DATA_URL_RE = re.compile(r"^data:image/[\w.+-]+;base64,", re.IGNORECASE)
DATA_URL_RE = re.compile(r"^data:(?P<mime>[^;,]*)(?P<params>(?:;[^;,]*)*),")

DEFAULT_MIME_TYPE = "image/png"


def normalize_base64(image: str) -> str:
    """Strip a leading ``data:image/<fmt>;base64,`` prefix, if any."""
    return IMAGE_DATA_URL_RE.sub("", image, count=1)


def validate_image(image: Any) -> str:
    """Check that ``image`` is a raw base64 string or an image data URL.

    Returns the input unchanged so it can be used as a pydantic validator.
    """
    if not isinstance(image, str):
        raise InvalidImageError("Image must be a base64 string")
    if not image:
        raise InvalidImageError("Image data is empty")

    payload = image
    if image.startswith("data:"):
        match = DATA_URL_RE.match(image)
        if match is None or ";base64" not in match.group("params").lower():
            raise InvalidImageError("Malformed data URL, expected data:image/<format>;base64,<payload>")
        mime = match.group("mime").lower()
        if not mime.startswith("image/"):
            raise InvalidImageError(f"Data URL must contain an image, got '{mime or 'unknown'}'")
        payload = image[match.end():]
        if not payload:
            raise InvalidImageError("Image data is empty")

    if not BASE64_RE.match(payload):
        raise InvalidImageError("Invalid base64 image data")
    return image


def decode_image(image: str) -> bytes:
    """Validate and decode a base64 image (raw or data URL) into bytes."""
    validate_image(image)
    return base64.b64decode(normalize_base64(image))


def encode_image(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def to_data_url(image: str, mime_type: str = DEFAULT_MIME_TYPE) -> str:
    return f"data:{mime_type};base64,{normalize_base64(image)}"


def detect_mime_type(image: str) -> str:
    """Best-effort MIME type of a base64 image.

    The data URL wins when present; otherwise the magic bytes of the payload
    are inspected. Falls back to ``image/png``.
    """
    match = DATA_URL_RE.match(image)
    if match and match.group("mime").lower().startswith("image/"):
        return match.group("mime").lower()

    payload = normalize_base64(image)
    try:
        head = base64.b64decode(payload[:32] if len(payload) > 32 else payload)
    except ValueError:
        return DEFAULT_MIME_TYPE

    if head[:3] == b"\xff\xd8\xff":
        return "image/jpeg"
    if head[:8] == b"\x89PNG\r\n\x1a\n":
        return "image/png"
    if head[:4] == b"RIFF" and head[8:12] == b"WEBP":
        return "image/webp"
    if head[:6] in (b"GIF87a", b"GIF89a"):
        return "image/gif"
    return DEFAULT_MIME_TYPE


Base64Image = Annotated[str, AfterValidator(validate_image)]


class TryOnParams(BaseModel):
    """Input of a try-on generation.

    Several apparel images are accepted, but the generators only consume the
    first one (``primary_apparel``).
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True, protected_namespaces=())

    model_image: Base64Image = Field(alias="modelImage")
    apparel_images: list[Base64Image] = Field(alias="apparelImages")

    @field_validator("apparel_images")
    @classmethod
    def _require_apparel(cls, value: list[str]) -> list[str]:
        if not value:
            raise ValueError("At least one apparel image is required")
        return value

    @property
    def primary_apparel(self) -> str:
        return self.apparel_images[0]


class TryOnResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    img_generated: Base64Image = Field(alias="imgGenerated")


def field_errors(exc: ValidationError) -> list[FieldError]:
    errors = []
    for err in exc.errors():
        field = ".".join(str(part) for part in err["loc"]) or "body"
        cause = (err.get("ctx") or {}).get("error")
        message = str(cause) if cause is not None else err["msg"]
        errors.append(FieldError(field=field, message=message))
    return errors


def validate_request(payload: Any) -> TryOnParams:
    """Validate a raw request payload (or re-validate a TryOnParams)."""
    if isinstance(payload, TryOnParams):
        payload = payload.model_dump(by_alias=True)
    try:
        return TryOnParams.model_validate(payload)
    except ValidationError as e:
        raise InputValidationError(field_errors(e)) from e


def validate_result(image: Any) -> str:
    """A provider's output must itself be a valid base64 image."""
    try:
        return TryOnResult.model_validate({"imgGenerated": image}).img_generated
    except ValidationError as e:
        raise InputValidationError(field_errors(e), message="Invalid generated image") from e
