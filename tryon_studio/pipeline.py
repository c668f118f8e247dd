"""Backend selection and the try-on request flow: validate -> generate -> result."""

import logging
from typing import Any

from tryon_studio.config import Settings
from tryon_studio.gemini_tryon import GeminiTryOnGenerator
from tryon_studio.generation import TryOnGenerator
from tryon_studio.openai_tryon import OpenAIImageEditGenerator
from tryon_studio.retry import RetryPolicy
from tryon_studio.schema import TryOnResult, validate_request
from tryon_studio.stylize import OpenAIStylizeGenerator

logger = logging.getLogger(__name__)


def create_generator(settings: Settings) -> TryOnGenerator:
    retry = RetryPolicy(max_attempts=settings.tryon_max_attempts, base_delay=settings.retry_base_delay)

    if settings.provider == "GOOGLE":
        logger.info("Using Gemini try-on backend (%s)", settings.google_model)
        return GeminiTryOnGenerator(
            settings.google_model,
            api_key=settings.google_api_key,
            mock_image_path=settings.mock_image_path,
            retry=retry,
        )

    logger.info("Using OpenAI try-on backend (%s)", settings.openai_model)
    return OpenAIImageEditGenerator(
        settings.openai_model,
        api_key=settings.openai_api_key,
        mock_image_path=settings.mock_image_path,
        retry=retry,
    )


def create_stylizer(settings: Settings) -> OpenAIStylizeGenerator:
    return OpenAIStylizeGenerator(
        settings.stylize_model,
        api_key=settings.openai_api_key,
        mock_image_path=settings.mock_image_path,
        retry=RetryPolicy(max_attempts=settings.stylize_max_attempts, base_delay=settings.retry_base_delay),
    )


async def run_tryon(generator: TryOnGenerator, payload: Any) -> TryOnResult:
    """Validate ``payload``, generate, and wrap the image.

    Raises InputValidationError for a bad payload and GenerationError when
    the backend fails.
    """
    params = validate_request(payload)
    image = await generator.generate(params)
    return TryOnResult(img_generated=image)
