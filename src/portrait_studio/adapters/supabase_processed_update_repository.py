"""Supabase-backed processed update markers."""

from dataclasses import dataclass
from datetime import UTC, datetime

from supabase import Client

from portrait_studio.services.idempotency import ProcessedUpdateRepository


@dataclass
class SupabaseProcessedUpdateRepository(ProcessedUpdateRepository):
    """Supabase implementation keyed by the unique Telegram update id."""

    client: Client

    def exists(self, update_id: int) -> bool:
        """Return true when a marker exists for the update."""
        response = (
            self.client.table("processed_updates")
            .select("update_id")
            .eq("update_id", update_id)
            .limit(1)
            .execute()
        )
        return bool(response.data)

    def insert_if_absent(self, update_id: int, chat_id: str | None, kind: str) -> bool:
        """Insert ignoring conflicts; only a fresh insert returns a row."""
        response = (
            self.client.table("processed_updates")
            .upsert(
                {
                    "update_id": update_id,
                    "chat_id": chat_id,
                    "update_type": kind,
                    "processed_at": datetime.now(tz=UTC).isoformat(),
                },
                on_conflict="update_id",
                ignore_duplicates=True,
            )
            .execute()
        )
        return bool(response.data)

    def delete_older_than(self, cutoff: datetime) -> int:
        """Delete markers processed before the cutoff."""
        response = (
            self.client.table("processed_updates")
            .delete()
            .lt("processed_at", cutoff.isoformat())
            .execute()
        )
        return len(response.data or [])
