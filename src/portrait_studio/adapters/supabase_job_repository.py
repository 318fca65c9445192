"""Supabase-backed job repository."""

from dataclasses import dataclass
from datetime import UTC, datetime
from uuid import UUID

from supabase import Client

from portrait_studio.adapters.supabase_rows import optional_str, parse_timestamp
from portrait_studio.domain.jobs import OPEN_JOB_STATUSES, JobRecord, JobStatus
from portrait_studio.services.jobs import JobRepository

_COLUMNS = (
    "id, user_id, telegram_chat_id, telegram_message_id, provider, "
    "provider_job_id, status, attempts, input, output, result_url, error, "
    "webhook_secret, created_at, updated_at"
)
_OPEN_STATUSES = sorted(status.value for status in OPEN_JOB_STATUSES)


@dataclass
class SupabaseJobRepository(JobRepository):
    """Supabase implementation for generation jobs.

    Terminal transitions are conditional on the job still being open, so
    only one of several concurrent callbacks wins.
    """

    client: Client

    def create_job(  # noqa: PLR0913
        self,
        telegram_chat_id: str,
        user_id: str | None,
        telegram_message_id: str | None,
        input_payload: dict[str, object],
        webhook_secret: str,
    ) -> JobRecord:
        """Insert a pending job and return it."""
        response = (
            self.client.table("jobs")
            .insert(
                {
                    "telegram_chat_id": telegram_chat_id,
                    "user_id": user_id,
                    "telegram_message_id": telegram_message_id,
                    "status": JobStatus.PENDING.value,
                    "attempts": 0,
                    "input": input_payload,
                    "output": {},
                    "webhook_secret": webhook_secret,
                }
            )
            .execute()
        )
        if not response.data:
            raise RuntimeError("Failed to create job")
        return _to_job(response.data[0])

    def get_job(self, job_id: UUID) -> JobRecord | None:
        """Return a job by id, if present."""
        response = (
            self.client.table("jobs")
            .select(_COLUMNS)
            .eq("id", str(job_id))
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return _to_job(response.data[0])

    def mark_running(
        self, job_id: UUID, provider: str, provider_job_id: str
    ) -> JobRecord | None:
        """Record provider acceptance and bump the attempt counter."""
        job = self.get_job(job_id)
        if job is None or job.status != JobStatus.PENDING:
            return None
        response = (
            self.client.table("jobs")
            .update(
                {
                    "status": JobStatus.RUNNING.value,
                    "provider": provider,
                    "provider_job_id": provider_job_id,
                    "attempts": job.attempts + 1,
                    "updated_at": datetime.now(tz=UTC).isoformat(),
                }
            )
            .eq("id", str(job_id))
            .eq("status", JobStatus.PENDING.value)
            .execute()
        )
        if not response.data:
            return None
        return _to_job(response.data[0])

    def mark_success(
        self, job_id: UUID, result_url: str, output: dict[str, object]
    ) -> JobRecord | None:
        """Move an open job to success."""
        return self._finish(
            job_id,
            {
                "status": JobStatus.SUCCESS.value,
                "result_url": result_url,
                "output": output,
                "error": None,
            },
        )

    def mark_failed(self, job_id: UUID, error: str) -> JobRecord | None:
        """Move an open job to failed."""
        return self._finish(
            job_id, {"status": JobStatus.FAILED.value, "error": error}
        )

    def _finish(self, job_id: UUID, values: dict[str, object]) -> JobRecord | None:
        response = (
            self.client.table("jobs")
            .update({**values, "updated_at": datetime.now(tz=UTC).isoformat()})
            .eq("id", str(job_id))
            .in_("status", _OPEN_STATUSES)
            .execute()
        )
        if not response.data:
            return None
        return _to_job(response.data[0])


def _to_job(row: dict[str, object]) -> JobRecord:
    return JobRecord(
        id=UUID(str(row["id"])),
        telegram_chat_id=str(row["telegram_chat_id"]),
        status=JobStatus(row["status"]),
        webhook_secret=optional_str(row.get("webhook_secret")),
        user_id=optional_str(row.get("user_id")),
        telegram_message_id=optional_str(row.get("telegram_message_id")),
        provider=optional_str(row.get("provider")),
        provider_job_id=optional_str(row.get("provider_job_id")),
        attempts=int(row.get("attempts") or 0),
        input=dict(row.get("input") or {}),
        output=dict(row.get("output") or {}),
        result_url=optional_str(row.get("result_url")),
        error=optional_str(row.get("error")),
        created_at=parse_timestamp(row.get("created_at")),
        updated_at=parse_timestamp(row.get("updated_at")),
    )
