"""Selfie -> anime portrait, via the OpenAI Images Edit endpoint."""

import asyncio
import logging
from pathlib import Path

import openai
from openai import OpenAI

from tryon_studio.config import DEFAULT_MOCK_IMAGE, DEFAULT_OPENAI_MODEL, MOCK_MODEL
from tryon_studio.errors import ProviderResponseError, TransportError
from tryon_studio.generation import file_part, generation_error, load_mock_image
from tryon_studio.retry import RetryPolicy
from tryon_studio.schema import to_data_url, validate_image, validate_result

logger = logging.getLogger(__name__)

STYLIZE_PROMPT = (
    "Create a high-quality anime portrait with transparent background. "
    "The character should have a friendly, approachable expression."
)

DEFAULT_STYLIZE_RETRY = RetryPolicy(max_attempts=3, base_delay=1.0)


def extract_b64(response) -> str:
    data = getattr(response, "data", None)
    if not data:
        raise ProviderResponseError("No image data received from OpenAI")
    item = data[0]
    if getattr(item, "b64_json", None):
        return item.b64_json
    if getattr(item, "url", None):
        raise ProviderResponseError("URL response not supported - use b64_json format")
    raise ProviderResponseError("Invalid response format from OpenAI Images API")


class OpenAIStylizeGenerator:
    def __init__(
        self,
        model: str = DEFAULT_OPENAI_MODEL,
        *,
        api_key: str | None = None,
        client: OpenAI | None = None,
        mock_image_path: Path = Path(DEFAULT_MOCK_IMAGE),
        retry: RetryPolicy = DEFAULT_STYLIZE_RETRY,
    ):
        self.model = model
        self.mock_image_path = mock_image_path
        self.retry = retry
        self._api_key = api_key
        self._client = client

    @property
    def client(self) -> OpenAI:
        if self._client is None:
            self._client = OpenAI(api_key=self._api_key)
        return self._client

    async def _edit(self, selfie: str) -> str:
        try:
            response = await asyncio.to_thread(
                self.client.images.edit,
                model=self.model,
                image=file_part(selfie, "selfie"),
                prompt=STYLIZE_PROMPT,
                n=1,
                size="1024x1024",
                quality="low",
            )
        except openai.OpenAIError as e:
            raise TransportError(f"OpenAI request failed: {e}") from e
        logger.info("OpenAI Images API response received")
        return extract_b64(response)

    async def stylize(self, selfie: str) -> str:
        """Return the portrait as a ``data:image/png;base64,`` URL."""
        try:
            validate_image(selfie)
            if self.model == MOCK_MODEL:
                logger.info("Using mock model, returning %s", self.mock_image_path)
                image = load_mock_image(self.mock_image_path)
            else:
                image = await self.retry.run(lambda: self._edit(selfie), label="Stylize")
            return to_data_url(validate_result(image))
        except Exception as e:
            raise generation_error(e, operation="stylize") from e
