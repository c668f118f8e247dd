"""OpenAI Images Edit backend: model photo + apparel photo -> try-on image."""

import asyncio
import logging
from pathlib import Path

import openai
from openai import OpenAI

from tryon_studio.config import DEFAULT_MOCK_IMAGE, DEFAULT_OPENAI_MODEL, MOCK_MODEL
from tryon_studio.errors import ProviderResponseError, TransportError
from tryon_studio.generation import EDIT_PROMPT, file_part, generation_error, load_mock_image
from tryon_studio.retry import NO_RETRY, RetryPolicy
from tryon_studio.schema import TryOnParams, validate_request, validate_result

logger = logging.getLogger(__name__)

OUTPUT_SIZE = "1024x1536"


def extract_image(response) -> str:
    """First ``b64_json`` payload of an images response."""
    data = getattr(response, "data", None)
    if not data:
        raise ProviderResponseError("No response data received from OpenAI API")
    b64_json = getattr(data[0], "b64_json", None)
    if not b64_json:
        raise ProviderResponseError("No image data received from OpenAI API")
    return b64_json


class OpenAIImageEditGenerator:
    """Sends both photos as multipart files to ``images.edit``.

    Only the first apparel image is used. With ``model="mock"`` the demo
    image is returned and no client is ever created.
    """

    def __init__(
        self,
        model: str = DEFAULT_OPENAI_MODEL,
        *,
        api_key: str | None = None,
        client: OpenAI | None = None,
        mock_image_path: Path = Path(DEFAULT_MOCK_IMAGE),
        retry: RetryPolicy = NO_RETRY,
        size: str = OUTPUT_SIZE,
        quality: str = "high",
        input_fidelity: str = "high",
    ):
        self.model = model
        self.mock_image_path = mock_image_path
        self.retry = retry
        self.size = size
        self.quality = quality
        self.input_fidelity = input_fidelity
        self._api_key = api_key
        self._client = client

    @property
    def client(self) -> OpenAI:
        if self._client is None:
            self._client = OpenAI(api_key=self._api_key)
        return self._client

    async def _edit(self, params: TryOnParams) -> str:
        images = [
            file_part(params.model_image, "model"),
            file_part(params.primary_apparel, "apparel"),
        ]
        try:
            response = await asyncio.to_thread(
                self.client.images.edit,
                model=self.model,
                image=images,
                prompt=EDIT_PROMPT,
                input_fidelity=self.input_fidelity,
                size=self.size,
                quality=self.quality,
            )
        except openai.OpenAIError as e:
            raise TransportError(f"OpenAI request failed: {e}") from e
        return extract_image(response)

    async def generate(self, params: TryOnParams) -> str:
        try:
            params = validate_request(params)

            if self.model == MOCK_MODEL:
                logger.info("Using mock model, returning %s", self.mock_image_path)
                return validate_result(load_mock_image(self.mock_image_path))

            image = await self.retry.run(lambda: self._edit(params), label="OpenAI try-on")
            logger.info("Generated image length: %d", len(image))
            return validate_result(image)
        except Exception as e:
            raise generation_error(e) from e
