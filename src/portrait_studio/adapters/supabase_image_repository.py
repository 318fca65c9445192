"""Supabase-backed result image repository."""

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from supabase import Client

from portrait_studio.adapters.supabase_rows import optional_str, parse_timestamp
from portrait_studio.domain.jobs import ResultImage
from portrait_studio.services.results import ImageRepository

_COLUMNS = (
    "id, job_id, variant_name, mime, filesize, width, height, file_hash, "
    "storage_bucket, storage_path, retention_expires_at"
)


@dataclass
class SupabaseImageRepository(ImageRepository):
    """Supabase implementation for the images table."""

    client: Client

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
        """Insert an image row and return it."""
        response = (
            self.client.table("images")
            .insert(
                {
                    "job_id": str(job_id),
                    "variant_name": variant_name,
                    "mime": mime,
                    "filesize": filesize,
                    "width": width,
                    "height": height,
                    "file_hash": file_hash,
                    "storage_bucket": storage_bucket,
                    "storage_path": storage_path,
                    "meta": meta,
                    "retention_expires_at": retention_expires_at.isoformat(),
                    "is_original": False,
                    "version": 1,
                }
            )
            .execute()
        )
        if not response.data:
            raise RuntimeError("Failed to insert image")
        return _to_image(response.data[0])

    def list_expired(self, now: datetime, limit: int) -> list[ResultImage]:
        """Return images whose retention has elapsed, oldest first."""
        response = (
            self.client.table("images")
            .select(_COLUMNS)
            .lt("retention_expires_at", now.isoformat())
            .order("retention_expires_at")
            .limit(limit)
            .execute()
        )
        return [_to_image(row) for row in response.data or []]

    def delete_images(self, image_ids: list[object]) -> int:
        """Delete image rows by id."""
        if not image_ids:
            return 0
        response = (
            self.client.table("images")
            .delete()
            .in_("id", [str(image_id) for image_id in image_ids])
            .execute()
        )
        return len(response.data or [])


def _to_image(row: dict[str, object]) -> ResultImage:
    return ResultImage(
        id=UUID(str(row["id"])),
        job_id=UUID(str(row["job_id"])),
        storage_bucket=str(row["storage_bucket"]),
        storage_path=str(row["storage_path"]),
        variant_name=str(row.get("variant_name") or "final"),
        mime=optional_str(row.get("mime")),
        filesize=row.get("filesize"),
        width=row.get("width"),
        height=row.get("height"),
        file_hash=optional_str(row.get("file_hash")),
        retention_expires_at=parse_timestamp(row.get("retention_expires_at")),
    )
