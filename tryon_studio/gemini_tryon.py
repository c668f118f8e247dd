"""Gemini multimodal backend: both photos go inline in a single user turn."""

import asyncio
import logging
from pathlib import Path

import httpx
from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from tryon_studio.config import DEFAULT_GOOGLE_MODEL, DEFAULT_MOCK_IMAGE, MOCK_MODEL
from tryon_studio.errors import ProviderResponseError, TransportError
from tryon_studio.generation import CHAT_PROMPT, generation_error, load_mock_image
from tryon_studio.retry import NO_RETRY, RetryPolicy
from tryon_studio.schema import (
    TryOnParams,
    decode_image,
    detect_mime_type,
    encode_image,
    validate_request,
    validate_result,
)

logger = logging.getLogger(__name__)


def inline_part(image: str) -> types.Part:
    """Image part with the data URL prefix stripped and the payload decoded."""
    return types.Part.from_bytes(data=decode_image(image), mime_type=detect_mime_type(image))


def extract_image(response) -> str:
    """Return the first inline image of the first candidate, base64 encoded."""
    candidates = getattr(response, "candidates", None)
    if not candidates:
        raise ProviderResponseError("No candidates returned from Gemini API")

    content = getattr(candidates[0], "content", None)
    parts = getattr(content, "parts", None) if content is not None else None
    if not parts:
        raise ProviderResponseError("No content parts returned from Gemini API")

    for part in parts:
        inline_data = getattr(part, "inline_data", None)
        if inline_data is not None and inline_data.data:
            data = inline_data.data
            return data if isinstance(data, str) else encode_image(data)
        if getattr(part, "text", None):
            logger.info("Gemini returned text: %s", part.text)

    raise ProviderResponseError("No image data found in Gemini API response")


class GeminiTryOnGenerator:
    def __init__(
        self,
        model: str = DEFAULT_GOOGLE_MODEL,
        *,
        api_key: str | None = None,
        client: genai.Client | None = None,
        mock_image_path: Path = Path(DEFAULT_MOCK_IMAGE),
        retry: RetryPolicy = NO_RETRY,
        temperature: float = 0.1,
    ):
        self.model = model
        self.mock_image_path = mock_image_path
        self.retry = retry
        self.temperature = temperature
        self._api_key = api_key
        self._client = client

    @property
    def client(self) -> genai.Client:
        if self._client is None:
            self._client = genai.Client(api_key=self._api_key)
        return self._client

    async def _generate_content(self, params: TryOnParams) -> str:
        contents = [
            types.Content(
                role="user",
                parts=[
                    types.Part.from_text(text=CHAT_PROMPT),
                    inline_part(params.model_image),
                    inline_part(params.primary_apparel),
                ],
            )
        ]
        try:
            response = await asyncio.to_thread(
                self.client.models.generate_content,
                model=self.model,
                contents=contents,
                config=types.GenerateContentConfig(temperature=self.temperature),
            )
        except (genai_errors.APIError, httpx.HTTPError) as e:
            raise TransportError(f"Gemini request failed: {e}") from e
        return extract_image(response)

    async def generate(self, params: TryOnParams) -> str:
        try:
            params = validate_request(params)

            if self.model == MOCK_MODEL:
                logger.info("Using mock model, returning %s", self.mock_image_path)
                return validate_result(load_mock_image(self.mock_image_path))

            image = await self.retry.run(lambda: self._generate_content(params), label="Gemini try-on")
            logger.info("Generated image length: %d", len(image))
            return validate_result(image)
        except Exception as e:
            raise generation_error(e) from e
