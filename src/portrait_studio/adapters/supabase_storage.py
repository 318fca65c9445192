"""Supabase Storage adapter for image blobs."""

from dataclasses import dataclass
from typing import Protocol

from supabase import Client


@dataclass(frozen=True)
class StoredObject:
    """Location of an uploaded object."""

    bucket: str
    path: str


class ObjectStorage(Protocol):
    """Interface for a blob store with signed download URLs."""

    def upload(
        self,
        path: str,
        data: bytes,
        content_type: str | None = None,
        upsert: bool = True,
    ) -> StoredObject:
        """Upload bytes to a path in the default bucket."""

    def create_signed_url(
        self, path: str, expires_in: int = 300, bucket: str | None = None
    ) -> str:
        """Return a time-limited download URL for an object."""

    def delete(self, path: str, bucket: str | None = None) -> None:
        """Delete an object."""


@dataclass
class SupabaseObjectStorage(ObjectStorage):
    """Supabase Storage implementation."""

    client: Client
    bucket: str = "uploads"

    def upload(
        self,
        path: str,
        data: bytes,
        content_type: str | None = None,
        upsert: bool = True,
    ) -> StoredObject:
        """Upload bytes to the configured bucket."""
        file_options = {
            "content-type": content_type or "application/octet-stream",
            "cache-control": "3600",
            "upsert": "true" if upsert else "false",
        }
        self.client.storage.from_(self.bucket).upload(
            path=path, file=data, file_options=file_options
        )
        return StoredObject(bucket=self.bucket, path=path)

    def create_signed_url(
        self, path: str, expires_in: int = 300, bucket: str | None = None
    ) -> str:
        """Create a signed URL for an object."""
        response = self.client.storage.from_(bucket or self.bucket).create_signed_url(
            path, expires_in
        )
        signed_url = None
        if isinstance(response, dict):
            signed_url = response.get("signedURL") or response.get("signedUrl")
        if not signed_url:
            raise RuntimeError(f"No signed URL returned for {path}")
        return str(signed_url)

    def delete(self, path: str, bucket: str | None = None) -> None:
        """Remove an object from storage."""
        self.client.storage.from_(bucket or self.bucket).remove([path])


def guess_content_type(filename: str) -> str | None:
    """Guess an image MIME type from a filename extension."""
    extension = filename.lower().rsplit(".", maxsplit=1)[-1] if "." in filename else ""
    return {
        "jpg": "image/jpeg",
        "jpeg": "image/jpeg",
        "png": "image/png",
        "webp": "image/webp",
    }.get(extension)


def build_session_object_path(session_id: object, filename: str) -> str:
    """Build the storage path for a collected session image."""
    return f"sessions/{session_id}/{filename.lstrip('/')}"


def build_job_object_path(job_id: object, filename: str) -> str:
    """Build the storage path for a job result."""
    return f"jobs/{job_id}/{filename.lstrip('/')}"
