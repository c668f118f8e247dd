"""Exception types shared by the codec, imaging, providers and the API layer."""

from dataclasses import dataclass


class TryOnStudioError(Exception):
    """Base class for every error raised by tryon_studio."""


class ConfigError(TryOnStudioError):
    def __init__(self, problems: list[str]):
        self.problems = problems
        super().__init__("Invalid configuration: " + "; ".join(problems))


@dataclass(frozen=True)
class FieldError:
    field: str
    message: str

    def to_dict(self) -> dict[str, str]:
        return {"field": self.field, "message": self.message}


class InputValidationError(TryOnStudioError):
    """One or more request fields failed validation."""

    def __init__(self, errors: list[FieldError], message: str = "Validation failed"):
        self.errors = errors
        detail = ", ".join(f"{e.field}: {e.message}" for e in errors)
        super().__init__(f"{message} ({detail})" if detail else message)

    @property
    def fields(self) -> list[str]:
        return [e.field for e in self.errors]


class InvalidImageError(TryOnStudioError, ValueError):
    """A single image string is not a usable base64 image."""


class ImageProcessingError(TryOnStudioError):
    """Image bytes could not be decoded, transformed or encoded."""


class ProviderResponseError(TryOnStudioError):
    """The provider answered, but without the image data we asked for."""


class TransportError(TryOnStudioError):
    """Network, credential or SDK failure while talking to a provider."""


class GenerationError(TryOnStudioError):
    """Raised by every generator; the triggering error is kept as the cause."""

    @property
    def cause(self) -> BaseException | None:
        return self.__cause__

    @property
    def is_validation_error(self) -> bool:
        return isinstance(self.__cause__, InputValidationError)


class StorageError(TryOnStudioError):
    """An upload was rejected or could not be written."""
