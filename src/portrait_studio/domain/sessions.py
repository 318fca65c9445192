"""Domain models for portrait collection sessions."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from uuid import UUID

MAX_SESSION_IMAGES = 14

DEFAULT_ASPECT_RATIO = "4:3"
DEFAULT_RESOLUTION = "2K"
DEFAULT_OUTPUT_FORMAT = "png"


class SessionStatus(str, Enum):
    """Lifecycle states of a session."""

    COLLECTING = "collecting"
    PROCESSING = "processing"
    DONE = "done"
    FAILED = "failed"
    CANCELLED = "cancelled"


ACTIVE_STATUSES = frozenset({SessionStatus.COLLECTING, SessionStatus.PROCESSING})


@dataclass(frozen=True)
class SessionImage:
    """An image collected into a session."""

    telegram_file_id: str
    telegram_message_id: str
    storage_bucket: str | None = None
    storage_path: str | None = None
    original_filename: str | None = None
    added_at: datetime | None = None

    def to_json(self) -> dict[str, object]:
        """Serialize for the JSONB image list."""
        return {
            "telegram_file_id": self.telegram_file_id,
            "telegram_message_id": self.telegram_message_id,
            "storage_bucket": self.storage_bucket,
            "storage_path": self.storage_path,
            "original_filename": self.original_filename,
            "added_at": self.added_at.isoformat() if self.added_at else None,
        }


@dataclass(frozen=True)
class SessionRecord:
    """Represents a persisted portrait session."""

    id: UUID
    telegram_chat_id: str
    status: SessionStatus
    images: list[SessionImage] = field(default_factory=list)
    telegram_user_id: str | None = None
    prompt: str | None = None
    aspect_ratio: str = DEFAULT_ASPECT_RATIO
    resolution: str = DEFAULT_RESOLUTION
    output_format: str = DEFAULT_OUTPUT_FORMAT
    job_id: UUID | None = None
    error_message: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_active(self) -> bool:
        """Whether the session still blocks a new one for the chat."""
        return self.status in ACTIVE_STATUSES

    def has_message(self, telegram_message_id: str) -> bool:
        """Whether an image from this Telegram message was already added."""
        return any(
            image.telegram_message_id == telegram_message_id for image in self.images
        )
