"""Submission of sessions to the generation provider."""

import logging
from dataclasses import dataclass
from urllib.parse import urlencode

from portrait_studio.adapters.replicate_client import (
    GenerationClient,
    ProviderSubmission,
)
from portrait_studio.adapters.supabase_storage import ObjectStorage
from portrait_studio.domain.jobs import JobRecord
from portrait_studio.domain.sessions import SessionRecord
from portrait_studio.services.jobs import JobService

logger = logging.getLogger(__name__)

INPUT_URL_TTL_SECONDS = 900
SAFETY_FILTER_LEVEL = "block_only_high"


@dataclass
class GenerationService:
    """Builds provider requests from a session and records acceptance."""

    client: GenerationClient
    storage: ObjectStorage
    job_service: JobService
    base_url: str

    async def submit(self, job: JobRecord, session: SessionRecord) -> ProviderSubmission:
        """Submit the full image set of a session as one provider job."""
        image_urls = [
            self.storage.create_signed_url(
                image.storage_path,
                expires_in=INPUT_URL_TTL_SECONDS,
                bucket=image.storage_bucket,
            )
            for image in session.images
            if image.storage_path
        ]
        input_payload: dict[str, object] = {
            "prompt": session.prompt or "",
            "image_input": image_urls,
            "aspect_ratio": session.aspect_ratio,
            "resolution": session.resolution,
            "output_format": session.output_format,
            "safety_filter_level": SAFETY_FILTER_LEVEL,
        }
        submission = await self.client.create_prediction(
            input_payload, self.callback_url(job)
        )
        self.job_service.mark_running(
            job.id, submission.provider, submission.provider_job_id
        )
        logger.info(
            "Submitted job %s with %d images as %s",
            job.id,
            len(image_urls),
            submission.provider_job_id,
        )
        return submission

    def callback_url(self, job: JobRecord) -> str:
        """Return the provider webhook URL for a job."""
        query = urlencode({"job_id": str(job.id), "sig": self.job_service.sign(job)})
        return f"{self.base_url.rstrip('/')}/provider/callback?{query}"
