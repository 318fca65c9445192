"""Replicate predictions API client."""

import logging
from dataclasses import dataclass
from typing import Protocol

import httpx

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProviderSubmission:
    """Handle returned by the provider for an accepted job."""

    provider: str
    provider_job_id: str
    raw: dict[str, object]


class GenerationClient(Protocol):
    """Interface for an asynchronous image generation provider."""

    async def create_prediction(
        self, input_payload: dict[str, object], webhook_url: str
    ) -> ProviderSubmission:
        """Submit a job and return the provider's handle."""


@dataclass
class HttpxReplicateClient(GenerationClient):
    """HTTPX-backed Replicate client."""

    api_token: str | None
    model: str
    model_version: str | None
    http_client: httpx.AsyncClient
    base_url: str = "https://api.replicate.com/v1"

    @classmethod
    def create(
        cls, api_token: str | None, model: str, model_version: str | None = None
    ) -> "HttpxReplicateClient":
        """Create a Replicate client with a managed httpx session."""
        return cls(
            api_token=api_token,
            model=model,
            model_version=model_version,
            http_client=httpx.AsyncClient(),
        )

    async def create_prediction(
        self, input_payload: dict[str, object], webhook_url: str
    ) -> ProviderSubmission:
        """Create a prediction that reports completion to the webhook URL."""
        if not self.api_token:
            raise RuntimeError("Replicate API token is not configured")
        payload: dict[str, object] = {
            "input": input_payload,
            "webhook": webhook_url,
            "webhook_events_filter": ["completed"],
        }
        if self.model_version:
            url = f"{self.base_url}/predictions"
            payload["version"] = self.model_version
        else:
            url = f"{self.base_url}/models/{self.model}/predictions"
        response = await self.http_client.post(
            url,
            headers={"Authorization": f"Token {self.api_token}"},
            json=payload,
            timeout=30,
        )
        response.raise_for_status()
        data = response.json()
        if data.get("error"):
            raise RuntimeError(f"Replicate rejected the prediction: {data['error']}")
        prediction_id = data.get("id")
        if not prediction_id:
            raise RuntimeError("Replicate returned no prediction id")
        logger.info("Replicate prediction created: %s", prediction_id)
        return ProviderSubmission(
            provider="replicate", provider_job_id=str(prediction_id), raw=data
        )

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        await self.http_client.aclose()
