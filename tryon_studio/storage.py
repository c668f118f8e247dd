import json
import logging
import threading
import uuid
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ValidationError

from tryon_studio.errors import ImageProcessingError, StorageError
from tryon_studio.imaging import ImageMetadata, read_metadata

logger = logging.getLogger(__name__)

ProcessingStatus = Literal["uploaded", "processing", "processed", "error"]

STATUSES: tuple[ProcessingStatus, ...] = ("uploaded", "processing", "processed", "error")
ALLOWED_TYPES = ("image/jpeg", "image/jpg", "image/png", "image/gif", "image/webp")
DEFAULT_MAX_FILE_SIZE = 5 * 1024 * 1024
REGISTRY_FILENAME = ".image-registry.json"

_EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
    "image/webp": ".webp",
}


class StoredImage(BaseModel):
    id: str
    original_name: str
    filename: str
    path: Path
    size: int
    content_type: str
    uploaded_at: datetime
    metadata: ImageMetadata | None = None
    processing_status: ProcessingStatus = "uploaded"
    error_message: str | None = None


class StorageStats(BaseModel):
    total_images: int
    total_size: int
    status_counts: dict[str, int]


class ImageStore:
    """Uploaded images on disk, indexed by a JSON registry in the same directory."""

    def __init__(
        self,
        upload_dir: Path,
        max_file_size: int = DEFAULT_MAX_FILE_SIZE,
        allowed_types: tuple[str, ...] = ALLOWED_TYPES,
    ):
        self.upload_dir = Path(upload_dir)
        self.max_file_size = max_file_size
        self.allowed_types = allowed_types
        self.registry_file = self.upload_dir / REGISTRY_FILENAME
        self.upload_dir.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._images = self._load_registry()

    def _load_registry(self) -> dict[str, StoredImage]:
        try:
            raw = json.loads(self.registry_file.read_text(encoding="utf-8"))
            return {image_id: StoredImage.model_validate(entry) for image_id, entry in raw.items()}
        except FileNotFoundError:
            return {}
        except (ValueError, AttributeError, ValidationError) as e:
            logger.warning("Ignoring unreadable image registry %s: %s", self.registry_file, e)
            return {}

    def _save_registry(self) -> None:
        # Caller holds self._lock.
        data = {image_id: image.model_dump(mode="json") for image_id, image in dict(self._images).items()}
        self.registry_file.write_text(json.dumps(data, indent=2), encoding="utf-8")

    def _extension(self, original_name: str, content_type: str) -> str:
        ext = Path(original_name).suffix if original_name else ""
        return ext or _EXTENSIONS.get(content_type, ".jpg")

    def store(self, original_name: str, content_type: str, data: bytes) -> StoredImage:
        if content_type not in self.allowed_types:
            raise StorageError(
                f"Invalid file type: {content_type}. Allowed types: {', '.join(self.allowed_types)}"
            )
        if len(data) > self.max_file_size:
            raise StorageError(f"File too large. Maximum size: {self.max_file_size} bytes")

        image_id = uuid.uuid4().hex
        filename = f"{image_id}{self._extension(original_name, content_type)}"
        filepath = self.upload_dir / filename
        try:
            filepath.write_bytes(data)
        except OSError as e:
            raise StorageError(f"Failed to store image: {e}") from e

        try:
            metadata = read_metadata(data)
        except ImageProcessingError as e:
            logger.warning("Failed to extract image metadata for %s: %s", filename, e)
            metadata = None

        image = StoredImage(
            id=image_id,
            original_name=original_name,
            filename=filename,
            path=filepath,
            size=len(data),
            content_type=content_type,
            uploaded_at=datetime.now(timezone.utc),
            metadata=metadata,
        )
        with self._lock:
            self._images[image_id] = image
            self._save_registry()
        logger.info("Stored upload %s (%d bytes)", filename, image.size)
        return image

    def get(self, image_id: str) -> StoredImage | None:
        return self._images.get(image_id)

    def list_images(self) -> list[StoredImage]:
        with self._lock:
            return list(self._images.values())

    def read_bytes(self, image_id: str) -> bytes | None:
        image = self._images.get(image_id)
        if image is None:
            return None
        try:
            return image.path.read_bytes()
        except OSError as e:
            logger.error("Failed to read image %s: %s", image_id, e)
            return None

    def update_status(self, image_id: str, status: ProcessingStatus, error_message: str | None = None) -> StoredImage | None:
        update = {"processing_status": status}
        if error_message:
            update["error_message"] = error_message
        with self._lock:
            image = self._images.get(image_id)
            if image is None:
                return None
            image = image.model_copy(update=update)
            self._images[image_id] = image
            self._save_registry()
        return image

    def delete(self, image_id: str) -> bool:
        with self._lock:
            image = self._images.get(image_id)
            if image is None:
                return False
            try:
                image.path.unlink(missing_ok=True)
            except OSError as e:
                logger.error("Failed to delete image %s: %s", image_id, e)
                return False
            del self._images[image_id]
            self._save_registry()
        return True

    def stats(self) -> StorageStats:
        counts = {status: 0 for status in STATUSES}
        with self._lock:
            images = list(self._images.values())
        for image in images:
            counts[image.processing_status] += 1
        return StorageStats(
            total_images=len(images),
            total_size=sum(image.size for image in images),
            status_counts=counts,
        )

    def cleanup(self, max_age: timedelta = timedelta(days=7), now: datetime | None = None) -> list[str]:
        """Remove ``uploaded`` images older than ``max_age``. Returns the removed ids."""
        cutoff = (now or datetime.now(timezone.utc)) - max_age
        removed = []
        with self._lock:
            for image_id, image in list(self._images.items()):
                if image.processing_status != "uploaded" or image.uploaded_at >= cutoff:
                    continue
                try:
                    image.path.unlink(missing_ok=True)
                except OSError as e:
                    logger.warning("Failed to clean up %s: %s", image.filename, e)
                    continue
                del self._images[image_id]
                removed.append(image_id)
            if removed:
                self._save_registry()
        if removed:
            logger.info("Cleaned up %d stale uploads", len(removed))
        return removed
