"""Reconciliation of provider completion callbacks."""

import logging
from dataclasses import dataclass
from enum import Enum
from uuid import UUID

from portrait_studio.adapters.telegram_client import TelegramClient
from portrait_studio.api.provider_models import ProviderCallback
from portrait_studio.domain.jobs import JobRecord, JobStatus
from portrait_studio.domain.sessions import SessionRecord, SessionStatus
from portrait_studio.services.jobs import JobService
from portrait_studio.services.results import ResultStore
from portrait_studio.services.sessions import SessionRepository

logger = logging.getLogger(__name__)

FAILURE_TEXT = "Sorry, processing failed. Please try again."
NO_OUTPUT_TEXT = "Sorry, no image output received. Please try again."
INTERNAL_ERROR_TEXT = "Sorry, something went wrong processing your image."
DELIVERY_FALLBACK_TEXT = (
    "Your portrait is ready, but I couldn't send it as a photo. "
    "Download it here (link valid for 5 minutes):"
)
DONE_NOTICE_TEXT = "Done ✅"
RESULT_CAPTION = "Here is your studio family portrait."
CANCELLED_RESULT_CAPTION = (
    "Here is your portrait. It finished after the session was cancelled."
)


class CallbackAuthError(Exception):
    """Raised when a callback signature does not verify."""


class CallbackOutcome(str, Enum):
    """How a callback delivery was resolved."""

    IGNORED = "ignored"
    DUPLICATE = "duplicate"
    FAILED = "failed"
    SUCCEEDED = "succeeded"


@dataclass
class CallbackReconciler:
    """Applies terminal provider outcomes to jobs and sessions exactly once."""

    job_service: JobService
    session_repository: SessionRepository
    result_store: ResultStore
    telegram_client: TelegramClient

    async def reconcile(
        self,
        job_id: str | None,
        signature: str | None,
        payload: ProviderCallback,
    ) -> CallbackOutcome:
        """Process one delivery; raises CallbackAuthError on a bad signature."""
        job = self._find_job(job_id)
        if job is None:
            logger.info("Callback for unknown job %s", job_id)
            return CallbackOutcome.IGNORED
        if job.status == JobStatus.SUCCESS:
            logger.info("Job %s already succeeded", job.id)
            return CallbackOutcome.DUPLICATE
        if not self.job_service.verify_signature(job, signature):
            logger.warning("Rejected callback with bad signature for job %s", job.id)
            raise CallbackAuthError(f"Invalid callback signature for job {job.id}")

        if payload.status in {"failed", "canceled"}:
            error = payload.error or f"Provider status: {payload.status}"
            return await self._fail(job, error, FAILURE_TEXT)
        if payload.status != "succeeded":
            logger.info("Ignoring %s callback for job %s", payload.status, job.id)
            return CallbackOutcome.IGNORED

        output_url = payload.output_url()
        if output_url is None:
            return await self._fail(job, "No output URL from provider", NO_OUTPUT_TEXT)
        try:
            return await self._succeed(job, output_url, payload)
        except Exception:
            logger.exception("Failed to deliver result for job %s", job.id)
            return await self._fail(
                job, "Failed to store provider output", INTERNAL_ERROR_TEXT
            )

    async def _succeed(
        self, job: JobRecord, output_url: str, payload: ProviderCallback
    ) -> CallbackOutcome:
        stored = await self.result_store.store(
            job.id,
            output_url,
            provider_meta={
                "provider": job.provider or "replicate",
                "provider_job_id": payload.id or job.provider_job_id,
            },
        )
        updated = self.job_service.mark_success(
            job.id,
            stored.signed_url,
            {
                **payload.model_dump(mode="json"),
                "storage": {
                    "bucket": stored.image.storage_bucket,
                    "path": stored.image.storage_path,
                },
                "last_image_id": str(stored.image.id),
            },
        )
        if updated is None:
            logger.info("Job %s was completed concurrently", job.id)
            return CallbackOutcome.DUPLICATE

        session = self._session_for(job)
        caption = RESULT_CAPTION
        if session is not None:
            if self.session_repository.update_status(
                session.id, SessionStatus.DONE, expected_status=SessionStatus.PROCESSING
            ):
                logger.info("Session %s done", session.id)
            elif session.status == SessionStatus.CANCELLED:
                caption = CANCELLED_RESULT_CAPTION

        await self._mark_notice_done(job)
        await self._deliver(job, stored.signed_url, caption)
        return CallbackOutcome.SUCCEEDED

    async def _deliver(self, job: JobRecord, signed_url: str, caption: str) -> None:
        """Send the result; the job is already success, so fall back to a link."""
        try:
            await self.telegram_client.send_photo(
                job.telegram_chat_id, signed_url, caption=caption
            )
            return
        except Exception:
            logger.exception("Failed to send result photo for job %s", job.id)
        try:
            await self.telegram_client.send_message(
                chat_id=job.telegram_chat_id,
                text=f"{DELIVERY_FALLBACK_TEXT}\n{signed_url}",
            )
        except Exception:
            logger.exception("Failed to send result link for job %s", job.id)

    async def _fail(self, job: JobRecord, error: str, text: str) -> CallbackOutcome:
        if self.job_service.mark_failed(job.id, error) is None:
            logger.info("Job %s already terminal, not failing it again", job.id)
            return CallbackOutcome.DUPLICATE
        session = self._session_for(job)
        if session is not None:
            self.session_repository.update_status(
                session.id,
                SessionStatus.FAILED,
                expected_status=SessionStatus.PROCESSING,
                error_message=error,
            )
        logger.warning("Job %s failed: %s", job.id, error)
        await self.telegram_client.send_message(chat_id=job.telegram_chat_id, text=text)
        return CallbackOutcome.FAILED

    async def _mark_notice_done(self, job: JobRecord) -> None:
        if not job.telegram_message_id or not job.telegram_message_id.isdigit():
            return
        try:
            await self.telegram_client.edit_message_text(
                job.telegram_chat_id, int(job.telegram_message_id), DONE_NOTICE_TEXT
            )
        except Exception:
            logger.info("Could not edit processing notice for job %s", job.id)

    def _find_job(self, job_id: str | None) -> JobRecord | None:
        if not job_id:
            return None
        try:
            return self.job_service.get_job(UUID(job_id))
        except ValueError:
            return None

    def _session_for(self, job: JobRecord) -> SessionRecord | None:
        if job.session_id is not None:
            session = self.session_repository.get_session(job.session_id)
            if session is not None:
                return session
        return self.session_repository.get_session_by_job_id(job.id)
