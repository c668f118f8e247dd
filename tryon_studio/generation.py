"""Shared contract for try-on generation backends.

A backend is anything with ``async generate(params) -> base64 image``. The
OpenAI and Gemini implementations live in their own modules and are picked
by ``tryon_studio.pipeline.create_generator``.
"""

import base64
from pathlib import Path
from typing import Protocol, runtime_checkable

from tryon_studio.errors import GenerationError
from tryon_studio.schema import TryOnParams, decode_image, detect_mime_type

IDENTITY_ANCHOR = (
    "Keep every other element of the base image intact: the person's face, skin, hair, "
    "pose, body proportions, environment and shadows. Do not modify anything outside the outfit area."
)

EXTRAPOLATION_ANCHOR = (
    "Do not invent or extrapolate beyond what is shown in the base image. "
    "Match the outfit's visible length to the base image's crop."
)

EDIT_PROMPT = (
    "Use the base image (first image) as the person and scene reference. "
    "Replace the entire outfit in the base image with the outfit from the second image, "
    "fully adopting its design, shape, silhouette, style and texture. "
    "Fit the outfit naturally to the person's body posture, keeping correct scale, "
    "orientation, lighting and perspective. "
    f"{EXTRAPOLATION_ANCHOR} {IDENTITY_ANCHOR}"
)

CHAT_PROMPT = (
    "Use the base image (first image) as the person and scene reference. "
    "Completely remove the outfit in the base image, then render a realistic, high quality "
    "replacement using the outfit from the second image, fully adopting its design, shape, "
    "silhouette, style and texture. The outfit must fit the person's body posture with correct "
    "scale, orientation, lighting and perspective. "
    f"{EXTRAPOLATION_ANCHOR} {IDENTITY_ANCHOR}\n\n"
    "Outfit definition: all visible clothing and accessories (upper and lower garments, "
    "footwear, hats, jewelry, belts, handbags and glasses)."
)


@runtime_checkable
class TryOnGenerator(Protocol):
    async def generate(self, params: TryOnParams) -> str:
        """Return the generated image as raw base64, or raise GenerationError."""
        ...


def load_mock_image(path: Path) -> str:
    """Read the demo image used instead of a provider call, as base64."""
    return base64.b64encode(Path(path).read_bytes()).decode("ascii")


def file_part(image: str, stem: str) -> tuple[str, bytes, str]:
    """Turn a base64 image into an upload tuple ``(filename, bytes, mime)``."""
    mime_type = detect_mime_type(image)
    return f"{stem}.{mime_type.split('/')[-1]}", decode_image(image), mime_type


def generation_error(err: BaseException, operation: str = "generate_tryon") -> GenerationError:
    """Wrap ``err``; raise the result ``from err`` to keep the cause chain."""
    return GenerationError(f"{operation} failed: {err}")
