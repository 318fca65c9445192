"""Supabase-backed session repository."""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from uuid import UUID

from supabase import Client

from portrait_studio.adapters.supabase_rows import (
    optional_str,
    optional_uuid,
    parse_timestamp,
)
from portrait_studio.domain.sessions import (
    ACTIVE_STATUSES,
    DEFAULT_ASPECT_RATIO,
    DEFAULT_OUTPUT_FORMAT,
    DEFAULT_RESOLUTION,
    MAX_SESSION_IMAGES,
    SessionImage,
    SessionRecord,
    SessionStatus,
)
from portrait_studio.services.sessions import (
    ConcurrentUpdateError,
    SessionClosedError,
    SessionImageLimitError,
    SessionRepository,
)

logger = logging.getLogger(__name__)

_COLUMNS = (
    "id, telegram_chat_id, telegram_user_id, status, image_input, prompt, "
    "aspect_ratio, resolution, output_format, job_id, error_message, "
    "created_at, updated_at"
)
MAX_APPEND_ATTEMPTS = 5


@dataclass
class SupabaseSessionRepository(SessionRepository):
    """Supabase implementation for portrait sessions.

    Appends are compare-and-swap updates keyed on the generated
    ``image_count`` column, so two concurrent uploads cannot overwrite
    each other's image list.
    """

    client: Client
    max_append_attempts: int = MAX_APPEND_ATTEMPTS

    def create_session(
        self, telegram_chat_id: str, telegram_user_id: str | None
    ) -> SessionRecord:
        """Create a collecting session row and return it."""
        response = (
            self.client.table("sessions")
            .insert(
                {
                    "telegram_chat_id": telegram_chat_id,
                    "telegram_user_id": telegram_user_id,
                    "status": SessionStatus.COLLECTING.value,
                    "image_input": [],
                    "aspect_ratio": DEFAULT_ASPECT_RATIO,
                    "resolution": DEFAULT_RESOLUTION,
                    "output_format": DEFAULT_OUTPUT_FORMAT,
                }
            )
            .execute()
        )
        if not response.data:
            raise RuntimeError("Failed to create session")
        return _to_session(response.data[0])

    def get_session(self, session_id: UUID) -> SessionRecord | None:
        """Return a session by id, if present."""
        response = (
            self.client.table("sessions")
            .select(_COLUMNS)
            .eq("id", str(session_id))
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return _to_session(response.data[0])

    def get_active_session(self, telegram_chat_id: str) -> SessionRecord | None:
        """Return the newest collecting or processing session for a chat."""
        response = (
            self.client.table("sessions")
            .select(_COLUMNS)
            .eq("telegram_chat_id", telegram_chat_id)
            .in_("status", sorted(status.value for status in ACTIVE_STATUSES))
            .order("created_at", desc=True)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return _to_session(response.data[0])

    def get_session_by_job_id(self, job_id: UUID) -> SessionRecord | None:
        """Return the session a job was submitted for."""
        response = (
            self.client.table("sessions")
            .select(_COLUMNS)
            .eq("job_id", str(job_id))
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return _to_session(response.data[0])

    def append_image(self, session_id: UUID, image: SessionImage) -> SessionRecord:
        """Append an image with a bounded optimistic retry loop."""
        for _ in range(self.max_append_attempts):
            session = self.get_session(session_id)
            if session is None:
                raise RuntimeError(f"Session {session_id} not found")
            if session.status != SessionStatus.COLLECTING:
                raise SessionClosedError(f"Session {session_id} is {session.status}")
            if session.has_message(image.telegram_message_id):
                return session
            if len(session.images) >= MAX_SESSION_IMAGES:
                raise SessionImageLimitError(
                    f"Session {session_id} already has {MAX_SESSION_IMAGES} images"
                )
            images = [*session.images, image]
            response = (
                self.client.table("sessions")
                .update(
                    {
                        "image_input": [item.to_json() for item in images],
                        "updated_at": datetime.now(tz=UTC).isoformat(),
                    }
                )
                .eq("id", str(session_id))
                .eq("status", SessionStatus.COLLECTING.value)
                .eq("image_count", len(session.images))
                .execute()
            )
            if response.data:
                return _to_session(response.data[0])
            logger.info("Concurrent append on session %s, retrying", session_id)
        raise ConcurrentUpdateError(f"Could not append to session {session_id}")

    def update_status(
        self,
        session_id: UUID,
        status: SessionStatus,
        expected_status: SessionStatus | None = None,
        error_message: str | None = None,
    ) -> bool:
        """Set the status; with expected_status this is a conditional update."""
        values: dict[str, object] = {
            "status": status.value,
            "updated_at": datetime.now(tz=UTC).isoformat(),
        }
        if error_message is not None:
            values["error_message"] = error_message
        query = (
            self.client.table("sessions").update(values).eq("id", str(session_id))
        )
        if expected_status is not None:
            query = query.eq("status", expected_status.value)
        response = query.execute()
        return bool(response.data)

    def attach_job(self, session_id: UUID, job_id: UUID, prompt: str) -> bool:
        """Set job_id only while it is still null."""
        response = (
            self.client.table("sessions")
            .update(
                {
                    "job_id": str(job_id),
                    "prompt": prompt,
                    "updated_at": datetime.now(tz=UTC).isoformat(),
                }
            )
            .eq("id", str(session_id))
            .is_("job_id", "null")
            .execute()
        )
        return bool(response.data)


def _to_session(row: dict[str, object]) -> SessionRecord:
    raw_images = row.get("image_input") or []
    return SessionRecord(
        id=UUID(str(row["id"])),
        telegram_chat_id=str(row["telegram_chat_id"]),
        telegram_user_id=optional_str(row.get("telegram_user_id")),
        status=SessionStatus(row["status"]),
        images=[_to_image(item) for item in raw_images],
        prompt=optional_str(row.get("prompt")),
        aspect_ratio=str(row.get("aspect_ratio") or DEFAULT_ASPECT_RATIO),
        resolution=str(row.get("resolution") or DEFAULT_RESOLUTION),
        output_format=str(row.get("output_format") or DEFAULT_OUTPUT_FORMAT),
        job_id=optional_uuid(row.get("job_id")),
        error_message=optional_str(row.get("error_message")),
        created_at=parse_timestamp(row.get("created_at")),
        updated_at=parse_timestamp(row.get("updated_at")),
    )


def _to_image(raw: dict[str, object]) -> SessionImage:
    return SessionImage(
        telegram_file_id=str(raw["telegram_file_id"]),
        telegram_message_id=str(raw["telegram_message_id"]),
        storage_bucket=optional_str(raw.get("storage_bucket")),
        storage_path=optional_str(raw.get("storage_path")),
        original_filename=optional_str(raw.get("original_filename")),
        added_at=parse_timestamp(raw.get("added_at")),
    )
