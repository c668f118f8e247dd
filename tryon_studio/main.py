import asyncio
import logging
import os

import uvicorn
from fastapi import APIRouter, FastAPI, File, Request, UploadFile
from fastapi.responses import JSONResponse, Response
from pydantic import ValidationError

from tryon_studio.config import Settings, load_config
from tryon_studio.errors import FieldError, GenerationError, InputValidationError, StorageError
from tryon_studio.generation import TryOnGenerator
from tryon_studio.imaging import DEFAULT_QUALITY, ProcessingOptions
from tryon_studio.models import (
    ErrorResponse, HealthResponse, ResizeInfo, ResizeMetadata, ResizeRequest,
    ResizeResponse, StylizeRequest, StylizeResponse, TryOnResponse,
    UploadedImage, UploadResponse,
)
from tryon_studio.pipeline import create_generator, create_stylizer, run_tryon
from tryon_studio.resizing import resize
from tryon_studio.schema import field_errors, validate_image
from tryon_studio.storage import ImageStore, StorageStats
from tryon_studio.stylize import OpenAIStylizeGenerator

logger = logging.getLogger(__name__)

router = APIRouter()


def cors_headers(request: Request, settings: Settings) -> dict[str, str]:
    """Echo the caller's origin, falling back to the configured base URL."""
    return {
        "Access-Control-Allow-Origin": request.headers.get("origin") or settings.base_url or "",
        "Access-Control-Allow-Methods": "POST, OPTIONS",
        "Access-Control-Allow-Headers": "Content-Type",
    }


def validation_response(exc: InputValidationError, headers: dict[str, str] | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={"error": "Validation failed", "details": [e.to_dict() for e in exc.errors]},
        headers=headers,
    )


def internal_error_response(exc: Exception, settings: Settings, headers: dict[str, str] | None = None) -> JSONResponse:
    message = str(exc) if settings.expose_errors else "Internal Server Error"
    return JSONResponse(status_code=500, content={"error": message}, headers=headers)


async def json_object(request: Request) -> dict:
    """Parse the body; invalid JSON propagates, non-object JSON is a field error."""
    payload = await request.json()
    if not isinstance(payload, dict):
        raise InputValidationError([FieldError(field="body", message="Request body must be a JSON object")])
    return payload


@router.get("/health", response_model=HealthResponse)
async def health(request: Request) -> HealthResponse:
    return HealthResponse(status="ok", provider=request.app.state.settings.provider)


@router.options("/api/tryon")
async def tryon_preflight(request: Request) -> Response:
    return Response(status_code=200, headers=cors_headers(request, request.app.state.settings))


@router.post(
    "/api/tryon",
    response_model=TryOnResponse,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def tryon(request: Request):
    settings: Settings = request.app.state.settings
    generator: TryOnGenerator = request.app.state.generator
    headers = cors_headers(request, settings)

    try:
        result = await run_tryon(generator, await json_object(request))
    except InputValidationError as e:
        logger.info("Rejected try-on request: %s", e)
        return validation_response(e, headers)
    except GenerationError as e:
        logger.exception("Try-on generation failed")
        return internal_error_response(e, settings, headers)
    except Exception as e:
        logger.exception("Unexpected error in /api/tryon")
        return internal_error_response(e, settings, headers)

    return JSONResponse(content=TryOnResponse(img_generated=result.img_generated).model_dump(), headers=headers)


@router.post(
    "/api/resize",
    response_model=ResizeResponse,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def resize_image(request: Request):
    settings: Settings = request.app.state.settings
    try:
        payload = await json_object(request)
        if payload.get("options") is None:
            return JSONResponse(status_code=400, content={"error": "Options must be provided"})

        body = ResizeRequest.model_validate(payload)
        options = ProcessingOptions.model_validate({
            **body.options,
            "format": body.options.get("format") or "jpeg",
            "quality": body.options.get("quality") or DEFAULT_QUALITY,
        })
    except InputValidationError as e:
        return validation_response(e)
    except ValidationError as e:
        return validation_response(InputValidationError(field_errors(e)))
    except Exception as e:
        logger.exception("Unexpected error in /api/resize")
        return internal_error_response(e, settings)

    result = await asyncio.to_thread(resize, body.image_b64, options, context="api_resize")
    if not result.success:
        return JSONResponse(
            status_code=500,
            content={"error": "Image resizing failed", "details": result.error},
        )

    return ResizeResponse(
        resized_b64=result.resized_blob,
        metadata=ResizeMetadata(original=result.metadata.original, resized=result.metadata.resized),
        resize_info=ResizeInfo(options=result.applied_options, compression_ratio=result.compression_ratio),
    )


@router.post(
    "/api/stylize",
    response_model=StylizeResponse,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def stylize(request: Request):
    stylizer: OpenAIStylizeGenerator = request.app.state.stylizer
    try:
        body = StylizeRequest.model_validate(await json_object(request))
    except (InputValidationError, ValidationError):
        return JSONResponse(status_code=400, content={"error": "Missing selfie parameter"})
    except Exception:
        logger.exception("Unexpected error in /api/stylize")
        return JSONResponse(status_code=500, content={"error": "Failed to generate stylized portrait"})

    if not body.selfie:
        return JSONResponse(status_code=400, content={"error": "Missing selfie parameter"})
    try:
        validate_image(body.selfie)
    except ValueError:
        return JSONResponse(status_code=400, content={"error": "Invalid base64 image format"})

    try:
        image = await stylizer.stylize(body.selfie)
    except GenerationError:
        logger.exception("Stylize failed")
        return JSONResponse(status_code=500, content={"error": "Failed to generate stylized portrait"})
    return StylizeResponse(image=image)


@router.post("/api/uploads", response_model=UploadResponse, responses={400: {"model": ErrorResponse}})
async def upload_image(request: Request, file: UploadFile = File(...)):
    store: ImageStore = request.app.state.store
    content = await file.read()
    try:
        stored = await asyncio.to_thread(
            store.store, file.filename or "", file.content_type or "", content
        )
    except StorageError as e:
        logger.info("Rejected upload %s: %s", file.filename, e)
        return JSONResponse(status_code=400, content={"error": str(e)})
    return UploadResponse(status="uploaded", image=UploadedImage.model_validate(stored.model_dump()))


@router.get("/api/uploads", response_model=list[UploadedImage])
async def list_uploads(request: Request) -> list[UploadedImage]:
    store: ImageStore = request.app.state.store
    return [UploadedImage.model_validate(image.model_dump()) for image in store.list_images()]


@router.get("/api/uploads/stats", response_model=StorageStats)
async def upload_stats(request: Request) -> StorageStats:
    return request.app.state.store.stats()


@router.get("/api/uploads/{image_id}", response_model=UploadedImage, responses={404: {"model": ErrorResponse}})
async def get_upload(request: Request, image_id: str):
    image = request.app.state.store.get(image_id)
    if image is None:
        return JSONResponse(status_code=404, content={"error": f"Image {image_id} not found"})
    return UploadedImage.model_validate(image.model_dump())


@router.delete("/api/uploads/{image_id}", responses={404: {"model": ErrorResponse}})
async def delete_upload(request: Request, image_id: str):
    store: ImageStore = request.app.state.store
    if not await asyncio.to_thread(store.delete, image_id):
        return JSONResponse(status_code=404, content={"error": f"Image {image_id} not found"})
    return {"status": "deleted", "id": image_id}


def create_app(
    settings: Settings | None = None,
    generator: TryOnGenerator | None = None,
    stylizer: OpenAIStylizeGenerator | None = None,
    store: ImageStore | None = None,
) -> FastAPI:
    """Build the app. Collaborators default to what ``settings`` describes."""
    settings = settings or load_config()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = FastAPI(title="Try-On Studio")
    app.state.settings = settings
    app.state.generator = generator or create_generator(settings)
    app.state.stylizer = stylizer or create_stylizer(settings)
    app.state.store = store or ImageStore(settings.uploads_dir, max_file_size=settings.max_upload_bytes)
    app.include_router(router)

    logger.info("Try-On Studio ready (provider=%s, env=%s)", settings.provider, settings.environment)
    return app


if __name__ == "__main__":
    uvicorn.run(create_app(), host="0.0.0.0", port=int(os.environ.get("PORT", "8000")))
