"""Persistence of provider outputs into our own storage."""

import hashlib
import io
import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Protocol
from urllib.parse import urlparse

import httpx
from PIL import Image, UnidentifiedImageError

from portrait_studio.adapters.supabase_storage import (
    ObjectStorage,
    build_job_object_path,
    guess_content_type,
)
from portrait_studio.domain.jobs import ResultImage

logger = logging.getLogger(__name__)

RESULT_URL_TTL_SECONDS = 300
DEFAULT_RETENTION_DAYS = 30


class ImageRepository(Protocol):
    """Persistence interface for stored result images."""

    def insert_image(  # noqa: PLR0913
        self,
        job_id: object,
        storage_bucket: str,
        storage_path: str,
        variant_name: str,
        mime: str,
        filesize: int,
        width: int | None,
        height: int | None,
        file_hash: str,
        meta: dict[str, object],
        retention_expires_at: datetime,
    ) -> ResultImage:
        """Insert a result image row and return it."""

    def list_expired(self, now: datetime, limit: int) -> list[ResultImage]:
        """Return images whose retention has elapsed."""

    def delete_images(self, image_ids: list[object]) -> int:
        """Delete image rows and return the number removed."""


@dataclass(frozen=True)
class StoredResult:
    """Outcome of copying a provider output into storage."""

    image: ResultImage
    signed_url: str


@dataclass
class ResultStore:
    """Downloads provider outputs and keeps a retained copy."""

    storage: ObjectStorage
    image_repository: ImageRepository
    http_client: httpx.AsyncClient
    retention_days: int = DEFAULT_RETENTION_DAYS

    async def store(
        self,
        job_id: object,
        output_url: str,
        provider_meta: dict[str, object] | None = None,
        variant_name: str = "final",
    ) -> StoredResult:
        """Copy one provider output and return a short-lived URL to it."""
        response = await self.http_client.get(output_url, timeout=60)
        response.raise_for_status()
        content = response.content

        filename = f"{variant_name}{infer_extension(output_url)}"
        path = build_job_object_path(job_id, filename)
        mime = guess_content_type(filename) or "image/jpeg"
        width, height = image_dimensions(content)

        stored = self.storage.upload(path, content, content_type=mime)
        now = datetime.now(tz=UTC)
        image = self.image_repository.insert_image(
            job_id=job_id,
            storage_bucket=stored.bucket,
            storage_path=stored.path,
            variant_name=variant_name,
            mime=mime,
            filesize=len(content),
            width=width,
            height=height,
            file_hash=hashlib.sha256(content).hexdigest(),
            meta={**(provider_meta or {}), "stored_at": now.isoformat()},
            retention_expires_at=now + timedelta(days=self.retention_days),
        )
        signed_url = self.storage.create_signed_url(
            stored.path, expires_in=RESULT_URL_TTL_SECONDS, bucket=stored.bucket
        )
        logger.info("Stored result for job %s at %s", job_id, stored.path)
        return StoredResult(image=image, signed_url=signed_url)


def infer_extension(url: str) -> str:
    """Pick a file extension from the output URL path."""
    path = urlparse(url).path.lower()
    if path.endswith(".png"):
        return ".png"
    if path.endswith(".webp"):
        return ".webp"
    return ".jpg"


def image_dimensions(content: bytes) -> tuple[int | None, int | None]:
    """Read width and height; unknown formats yield (None, None)."""
    try:
        with Image.open(io.BytesIO(content)) as image:
            return image.width, image.height
    except (UnidentifiedImageError, OSError):
        logger.warning("Could not read result image dimensions")
        return None, None
