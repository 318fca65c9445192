"""Domain models for provider generation jobs."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from uuid import UUID


class JobStatus(str, Enum):
    """Status of an external generation job."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"


OPEN_JOB_STATUSES = frozenset({JobStatus.PENDING, JobStatus.RUNNING})


@dataclass(frozen=True)
class JobRecord:
    """Represents one submission to the generation provider."""

    id: UUID
    telegram_chat_id: str
    status: JobStatus
    webhook_secret: str | None
    user_id: str | None = None
    telegram_message_id: str | None = None
    provider: str | None = None
    provider_job_id: str | None = None
    attempts: int = 0
    input: dict[str, object] = field(default_factory=dict)
    output: dict[str, object] = field(default_factory=dict)
    result_url: str | None = None
    error: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def session_id(self) -> UUID | None:
        """Session id echoed into the job input at submission time."""
        raw = self.input.get("session_id")
        if not isinstance(raw, str):
            return None
        try:
            return UUID(raw)
        except ValueError:
            return None


@dataclass(frozen=True)
class ResultImage:
    """Metadata row for a stored provider output."""

    id: UUID
    job_id: UUID
    storage_bucket: str
    storage_path: str
    variant_name: str = "final"
    mime: str | None = None
    filesize: int | None = None
    width: int | None = None
    height: int | None = None
    file_hash: str | None = None
    retention_expires_at: datetime | None = None
