import os
from collections.abc import Mapping
from pathlib import Path
from typing import Literal

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict

from tryon_studio.errors import ConfigError

MOCK_MODEL = "mock"

DEFAULT_OPENAI_MODEL = "gpt-image-1"
DEFAULT_GOOGLE_MODEL = "gemini-2.5-flash-image-preview"
DEFAULT_MOCK_IMAGE = "assets/demo/tryon-demo.png"

VALID_PROVIDERS = ("OPENAI", "GOOGLE")
VALID_ENVIRONMENTS = ("development", "production", "test")
VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class Settings(BaseModel):
    model_config = ConfigDict(frozen=True)

    provider: Literal["OPENAI", "GOOGLE"]
    openai_api_key: str | None = None
    openai_model: str = DEFAULT_OPENAI_MODEL
    google_api_key: str | None = None
    google_model: str = DEFAULT_GOOGLE_MODEL
    stylize_model: str = DEFAULT_OPENAI_MODEL

    base_url: str = ""
    environment: Literal["development", "production", "test"] = "production"
    log_level: str = "INFO"

    mock_image_path: Path = Path(DEFAULT_MOCK_IMAGE)
    uploads_dir: Path = Path("uploads")
    max_upload_bytes: int = 5 * 1024 * 1024

    tryon_max_attempts: int = 1
    stylize_max_attempts: int = 3
    retry_base_delay: float = 1.0

    @property
    def expose_errors(self) -> bool:
        """Internal error messages are only returned to clients outside production."""
        return self.environment != "production"


def _get(env: Mapping[str, str], name: str, default: str | None = None) -> str | None:
    value = env.get(name)
    if value is None or not value.strip():
        return default
    return value.strip()


def _positive_int(env: Mapping[str, str], name: str, default: int, problems: list[str]) -> int:
    raw = _get(env, name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        problems.append(f"{name} must be a positive integer")
        return default
    if value <= 0:
        problems.append(f"{name} must be a positive integer")
        return default
    return value


def _non_negative_float(env: Mapping[str, str], name: str, default: float, problems: list[str]) -> float:
    raw = _get(env, name)
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError:
        problems.append(f"{name} must be a number")
        return default
    if value < 0:
        problems.append(f"{name} must not be negative")
        return default
    return value


def load_config(environ: Mapping[str, str] | None = None) -> Settings:
    """Read and validate settings once, at startup.

    With no argument the process environment is used, after loading a
    ``.env`` file if one exists. All problems are reported together.
    """
    if environ is None:
        load_dotenv()
        environ = os.environ

    problems: list[str] = []

    provider = (_get(environ, "VISION_PROVIDER") or "").upper()
    if provider not in VALID_PROVIDERS:
        problems.append("VISION_PROVIDER must be one of: OPENAI, GOOGLE")

    environment = (_get(environ, "APP_ENV") or "production").lower()
    if environment not in VALID_ENVIRONMENTS:
        problems.append(f"APP_ENV must be one of: {', '.join(VALID_ENVIRONMENTS)}")

    log_level = (_get(environ, "LOG_LEVEL") or "INFO").upper()
    if log_level not in VALID_LOG_LEVELS:
        problems.append(f"LOG_LEVEL must be one of: {', '.join(VALID_LOG_LEVELS)}")

    openai_model = _get(environ, "OPENAI_VISION_MODEL", DEFAULT_OPENAI_MODEL)
    google_model = _get(environ, "GOOGLE_GEMINI_VISION_MODEL", DEFAULT_GOOGLE_MODEL)
    openai_key = _get(environ, "OPENAI_API_KEY")
    google_key = _get(environ, "GOOGLE_GEMINI_API_KEY")

    # keys are only needed by a backend that will reach the network
    if provider == "OPENAI" and openai_model != MOCK_MODEL and not openai_key:
        problems.append("OPENAI_API_KEY not found")
    if provider == "GOOGLE" and google_model != MOCK_MODEL and not google_key:
        problems.append("GOOGLE_GEMINI_API_KEY not found")

    max_upload_bytes = _positive_int(environ, "MAX_UPLOAD_BYTES", 5 * 1024 * 1024, problems)
    tryon_attempts = _positive_int(environ, "TRYON_MAX_ATTEMPTS", 1, problems)
    stylize_attempts = _positive_int(environ, "STYLIZE_MAX_ATTEMPTS", 3, problems)
    base_delay = _non_negative_float(environ, "RETRY_BASE_DELAY", 1.0, problems)

    if problems:
        raise ConfigError(problems)

    return Settings(
        provider=provider,
        openai_api_key=openai_key,
        openai_model=openai_model,
        google_api_key=google_key,
        google_model=google_model,
        stylize_model=_get(environ, "OPENAI_STYLIZE_MODEL", DEFAULT_OPENAI_MODEL),
        base_url=_get(environ, "BASE_URL", ""),
        environment=environment,
        log_level=log_level,
        mock_image_path=Path(_get(environ, "MOCK_IMAGE_PATH", DEFAULT_MOCK_IMAGE)),
        uploads_dir=Path(_get(environ, "UPLOADS_DIR", "uploads")),
        max_upload_bytes=max_upload_bytes,
        tryon_max_attempts=tryon_attempts,
        stylize_max_attempts=stylize_attempts,
        retry_base_delay=base_delay,
    )
