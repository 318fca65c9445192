"""Supabase admin data access."""

from dataclasses import dataclass
from datetime import datetime

from supabase import Client

from portrait_studio.services.admin import AdminRepository


@dataclass
class SupabaseAdminRepository(AdminRepository):
    """Supabase implementation for admin queries."""

    client: Client

    def list_jobs(self, limit: int) -> list[dict[str, object]]:
        """Return recent jobs."""
        response = (
            self.client.table("jobs")
            .select(
                "id, telegram_chat_id, provider, provider_job_id, status, "
                "attempts, result_url, error, created_at, updated_at"
            )
            .order("created_at", desc=True)
            .limit(limit)
            .execute()
        )
        return response.data or []

    def list_images(self, limit: int) -> list[dict[str, object]]:
        """Return recent stored images."""
        response = (
            self.client.table("images")
            .select(
                "id, job_id, variant_name, mime, filesize, width, height, "
                "storage_bucket, storage_path, created_at, retention_expires_at"
            )
            .order("created_at", desc=True)
            .limit(limit)
            .execute()
        )
        return response.data or []

    def list_sessions(self, limit: int) -> list[dict[str, object]]:
        """Return recently updated sessions."""
        response = (
            self.client.table("sessions")
            .select(
                "id, telegram_chat_id, status, image_count, job_id, "
                "error_message, created_at, updated_at"
            )
            .order("updated_at", desc=True)
            .limit(limit)
            .execute()
        )
        return response.data or []

    def count_jobs_since(self, since: datetime) -> int:
        """Return the number of jobs created since a timestamp."""
        response = (
            self.client.table("jobs")
            .select("id", count="exact")
            .gte("created_at", since.isoformat())
            .execute()
        )
        if response.count is not None:
            return response.count
        return len(response.data or [])
