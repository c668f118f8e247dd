"""Tests for the Gemini multimodal try-on backend."""

import base64
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import httpx
import pytest

from tryon_studio.errors import GenerationError, ProviderResponseError, TransportError
from tryon_studio.gemini_tryon import GeminiTryOnGenerator, extract_image
from tryon_studio.generation import CHAT_PROMPT


def _part(text=None, data=None, mime_type="image/png"):
    inline = SimpleNamespace(data=data, mime_type=mime_type) if data is not None else None
    return SimpleNamespace(text=text, inline_data=inline)


def _response(*parts):
    return SimpleNamespace(candidates=[SimpleNamespace(content=SimpleNamespace(parts=list(parts)))])


@pytest.fixture
def client(png_bytes):
    client = MagicMock()
    client.models.generate_content.return_value = _response(_part(text="Here you go"), _part(data=png_bytes))
    return client


@pytest.fixture
def payload(png_data_url, jpeg_b64, png_b64):
    return {"modelImage": png_data_url, "apparelImages": [jpeg_b64, png_b64]}


class TestGenerate:

    @pytest.mark.asyncio
    async def test_returns_first_inline_image(self, client, payload, png_b64):
        generator = GeminiTryOnGenerator("gemini-test", client=client)

        assert await generator.generate(payload) == png_b64

    @pytest.mark.asyncio
    async def test_request_contents(self, client, payload, png_bytes, jpeg_bytes):
        await GeminiTryOnGenerator("gemini-test", client=client).generate(payload)

        kwargs = client.models.generate_content.call_args.kwargs
        assert kwargs["model"] == "gemini-test"
        assert kwargs["config"].temperature == 0.1

        (content,) = kwargs["contents"]
        assert content.role == "user"
        text, model_part, apparel_part = content.parts
        assert text.text == CHAT_PROMPT
        assert model_part.inline_data.data == png_bytes
        assert model_part.inline_data.mime_type == "image/png"
        assert apparel_part.inline_data.data == jpeg_bytes
        assert apparel_part.inline_data.mime_type == "image/jpeg"

    @pytest.mark.asyncio
    async def test_string_inline_data_passes_through(self, client, payload, png_b64):
        client.models.generate_content.return_value = _response(_part(data=png_b64))

        assert await GeminiTryOnGenerator(client=client).generate(payload) == png_b64


class TestExtractImage:

    @pytest.mark.parametrize("response", [SimpleNamespace(candidates=[]), SimpleNamespace(candidates=None)])
    def test_no_candidates(self, response):
        with pytest.raises(ProviderResponseError, match="No candidates returned from Gemini API"):
            extract_image(response)

    @pytest.mark.parametrize("candidate", [
        SimpleNamespace(content=None),
        SimpleNamespace(content=SimpleNamespace(parts=[])),
    ])
    def test_no_parts(self, candidate):
        with pytest.raises(ProviderResponseError, match="No content parts returned from Gemini API"):
            extract_image(SimpleNamespace(candidates=[candidate]))

    def test_text_only(self):
        with pytest.raises(ProviderResponseError, match="No image data found in Gemini API response"):
            extract_image(_response(_part(text="I can't do that")))


class TestFailures:

    @pytest.mark.asyncio
    async def test_provider_errors_are_wrapped(self, client, payload):
        client.models.generate_content.return_value = SimpleNamespace(candidates=[])

        with pytest.raises(GenerationError) as exc_info:
            await GeminiTryOnGenerator(client=client).generate(payload)

        assert str(exc_info.value) == "generate_tryon failed: No candidates returned from Gemini API"
        assert isinstance(exc_info.value.cause, ProviderResponseError)

    @pytest.mark.asyncio
    async def test_transport_error(self, client, payload):
        client.models.generate_content.side_effect = httpx.ConnectError("connection refused")

        with pytest.raises(GenerationError) as exc_info:
            await GeminiTryOnGenerator(client=client).generate(payload)

        assert isinstance(exc_info.value.cause, TransportError)
        assert "Gemini request failed" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_invalid_request(self, client, png_b64):
        with pytest.raises(GenerationError) as exc_info:
            await GeminiTryOnGenerator(client=client).generate({"modelImage": "%%%", "apparelImages": [png_b64]})

        assert exc_info.value.is_validation_error
        client.models.generate_content.assert_not_called()


class TestMockMode:

    @pytest.mark.asyncio
    async def test_returns_demo_image_without_client(self, payload, demo_image):
        with patch("tryon_studio.gemini_tryon.genai.Client") as client_cls:
            result = await GeminiTryOnGenerator("mock", mock_image_path=demo_image).generate(payload)

        assert base64.b64decode(result) == demo_image.read_bytes()
        client_cls.assert_not_called()
