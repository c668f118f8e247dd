from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from tryon_studio.imaging import ImageMetadata, ProcessingOptions
from tryon_studio.storage import ProcessingStatus


class HealthResponse(BaseModel):
    status: str
    provider: str


class FieldErrorDetail(BaseModel):
    field: str
    message: str


class ErrorResponse(BaseModel):
    error: str
    details: list[FieldErrorDetail] | str | None = None


class TryOnResponse(BaseModel):
    img_generated: str


class ResizeRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    image_b64: str = Field(alias="imageB64")
    options: dict | None = None


class ResizeMetadata(BaseModel):
    original: ImageMetadata
    resized: ImageMetadata


class ResizeInfo(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    options: ProcessingOptions
    compression_ratio: float = Field(alias="compressionRatio")


class ResizeResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    message: str = "Image resized successfully"
    resized_b64: str = Field(alias="resizedB64")
    metadata: ResizeMetadata
    resize_info: ResizeInfo = Field(alias="resizeInfo")


class StylizeRequest(BaseModel):
    selfie: str | None = None


class StylizeResponse(BaseModel):
    image: str


class UploadedImage(BaseModel):
    id: str
    original_name: str
    filename: str
    size: int
    content_type: str
    uploaded_at: datetime
    metadata: ImageMetadata | None = None
    processing_status: ProcessingStatus
    error_message: str | None = None


class UploadResponse(BaseModel):
    status: str
    image: UploadedImage
