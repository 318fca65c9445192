"""Telegram file download client."""

from dataclasses import dataclass
from typing import Protocol

import httpx


@dataclass(frozen=True)
class TelegramFile:
    """Downloaded Telegram file contents and metadata."""

    content: bytes
    file_path: str | None = None
    file_size: int | None = None

    @property
    def file_name(self) -> str | None:
        """Basename of the Telegram file path, if any."""
        if not self.file_path:
            return None
        return self.file_path.rsplit("/", maxsplit=1)[-1] or None


class TelegramFileClient(Protocol):
    """Interface for downloading Telegram files."""

    async def download_file(self, file_id: str) -> TelegramFile:
        """Download a Telegram file by its transport file id."""


@dataclass
class HttpxTelegramFileClient(TelegramFileClient):
    """Telegram file client using httpx."""

    bot_token: str
    http_client: httpx.AsyncClient

    @classmethod
    def create(cls, bot_token: str) -> "HttpxTelegramFileClient":
        """Create a Telegram file client with a managed httpx session."""
        return cls(bot_token=bot_token, http_client=httpx.AsyncClient())

    async def download_file(self, file_id: str) -> TelegramFile:
        """Download Telegram file bytes via getFile."""
        get_file_url = f"https://api.telegram.org/bot{self.bot_token}/getFile"
        response = await self.http_client.get(
            get_file_url, params={"file_id": file_id}, timeout=10
        )
        response.raise_for_status()
        payload = response.json()
        if not payload.get("ok"):
            raise RuntimeError("Telegram getFile failed")
        file_path = payload["result"]["file_path"]
        download_url = f"https://api.telegram.org/file/bot{self.bot_token}/{file_path}"
        file_response = await self.http_client.get(download_url, timeout=40)
        file_response.raise_for_status()
        return TelegramFile(
            content=file_response.content,
            file_path=file_path,
            file_size=payload["result"].get("file_size"),
        )

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        await self.http_client.aclose()
