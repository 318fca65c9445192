"""Pydantic models for generation provider webhooks."""

from pydantic import BaseModel, ConfigDict


class ProviderCallback(BaseModel):
    """Replicate prediction payload delivered to the callback endpoint."""

    model_config = ConfigDict(extra="allow")

    id: str | None = None
    status: str | None = None
    output: str | list[object] | None = None
    error: str | None = None

    def output_url(self) -> str | None:
        """Return the first output URL, if any."""
        if isinstance(self.output, str):
            return self.output or None
        if self.output:
            first = self.output[0]
            return first if isinstance(first, str) and first else None
        return None
