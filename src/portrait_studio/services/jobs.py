"""Job ledger for provider submissions."""

import hashlib
import hmac
import secrets
from dataclasses import dataclass
from typing import Protocol
from uuid import UUID

from portrait_studio.domain.jobs import JobRecord


class JobRepository(Protocol):
    """Persistence interface for generation jobs."""

    def create_job(  # noqa: PLR0913
        self,
        telegram_chat_id: str,
        user_id: str | None,
        telegram_message_id: str | None,
        input_payload: dict[str, object],
        webhook_secret: str,
    ) -> JobRecord:
        """Create a pending job and return it."""

    def get_job(self, job_id: UUID) -> JobRecord | None:
        """Return a job by id, if present."""

    def mark_running(
        self, job_id: UUID, provider: str, provider_job_id: str
    ) -> JobRecord | None:
        """Move a pending job to running; return None if not pending."""

    def mark_success(
        self, job_id: UUID, result_url: str, output: dict[str, object]
    ) -> JobRecord | None:
        """Move an open job to success; return None if already terminal."""

    def mark_failed(self, job_id: UUID, error: str) -> JobRecord | None:
        """Move an open job to failed; return None if already terminal."""


@dataclass
class JobService:
    """Creates jobs and authenticates their provider callbacks."""

    repository: JobRepository

    def create_job(
        self,
        telegram_chat_id: str,
        user_id: str | None,
        input_payload: dict[str, object],
        telegram_message_id: str | None = None,
    ) -> JobRecord:
        """Create a pending job with a fresh per-job callback secret."""
        return self.repository.create_job(
            telegram_chat_id=telegram_chat_id,
            user_id=user_id,
            telegram_message_id=telegram_message_id,
            input_payload=input_payload,
            webhook_secret=secrets.token_hex(16),
        )

    def get_job(self, job_id: UUID) -> JobRecord | None:
        """Return a job by id, if present."""
        return self.repository.get_job(job_id)

    def mark_running(
        self, job_id: UUID, provider: str, provider_job_id: str
    ) -> JobRecord | None:
        """Record that the provider accepted the job."""
        return self.repository.mark_running(job_id, provider, provider_job_id)

    def mark_success(
        self, job_id: UUID, result_url: str, output: dict[str, object]
    ) -> JobRecord | None:
        """Record a successful outcome once."""
        return self.repository.mark_success(job_id, result_url, output)

    def mark_failed(self, job_id: UUID, error: str) -> JobRecord | None:
        """Record a failed outcome once."""
        return self.repository.mark_failed(job_id, error)

    def sign(self, job: JobRecord) -> str:
        """Return the callback signature for a job."""
        return compute_signature(job.webhook_secret or "", str(job.id))

    def verify_signature(self, job: JobRecord, signature: str | None) -> bool:
        """Check a callback signature in constant time."""
        if not job.webhook_secret or not signature:
            return False
        return hmac.compare_digest(
            self.sign(job).encode("utf-8"), signature.strip().lower().encode("utf-8")
        )


def compute_signature(secret: str, job_reference: str) -> str:
    """HMAC-SHA256 of the job reference keyed by the per-job secret."""
    return hmac.new(
        secret.encode("utf-8"), job_reference.encode("utf-8"), hashlib.sha256
    ).hexdigest()
