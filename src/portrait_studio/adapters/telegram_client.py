"""Telegram API client adapter."""

from dataclasses import dataclass
from typing import Protocol

import httpx


class TelegramClient(Protocol):
    """Interface for Telegram API interactions."""

    async def send_message(
        self,
        chat_id: int | str,
        text: str,
        reply_markup: dict | None = None,
        parse_mode: str | None = None,
    ) -> int | None:
        """Send a text message and return its message id, if known."""

    async def send_photo(
        self, chat_id: int | str, photo: str, caption: str | None = None
    ) -> int | None:
        """Send a photo by URL or file id with an optional caption."""

    async def edit_message_text(
        self, chat_id: int | str, message_id: int, text: str
    ) -> None:
        """Replace the text of a previously sent message."""

    async def edit_message_reply_markup(
        self, chat_id: int | str, message_id: int, reply_markup: dict | None = None
    ) -> None:
        """Replace or remove the inline keyboard of a message."""

    async def answer_callback_query(
        self,
        callback_query_id: str,
        text: str | None = None,
        show_alert: bool = False,
    ) -> None:
        """Answer a Telegram callback query."""

    async def set_my_commands(self, commands: list[dict[str, str]]) -> None:
        """Set the bot command list."""

    async def set_chat_menu_button(
        self, menu_button: dict[str, object] | None = None
    ) -> None:
        """Set the chat menu button."""


@dataclass
class HttpxTelegramClient:
    """Telegram client implemented with httpx."""

    bot_token: str
    http_client: httpx.AsyncClient

    @classmethod
    def create(cls, bot_token: str) -> "HttpxTelegramClient":
        """Create a Telegram client with a managed httpx session."""
        return cls(bot_token=bot_token, http_client=httpx.AsyncClient())

    async def send_message(
        self,
        chat_id: int | str,
        text: str,
        reply_markup: dict | None = None,
        parse_mode: str | None = None,
    ) -> int | None:
        """Send a message using Telegram's sendMessage API."""
        payload: dict[str, object] = {"chat_id": chat_id, "text": text}
        if reply_markup is not None:
            payload["reply_markup"] = reply_markup
        if parse_mode is not None:
            payload["parse_mode"] = parse_mode
        result = await self._post("sendMessage", payload)
        return _message_id(result)

    async def send_photo(
        self, chat_id: int | str, photo: str, caption: str | None = None
    ) -> int | None:
        """Send a photo using Telegram's sendPhoto API."""
        payload: dict[str, object] = {"chat_id": chat_id, "photo": photo}
        if caption is not None:
            payload["caption"] = caption
        result = await self._post("sendPhoto", payload, timeout=30)
        return _message_id(result)

    async def edit_message_text(
        self, chat_id: int | str, message_id: int, text: str
    ) -> None:
        """Edit a message using Telegram's editMessageText API."""
        await self._post(
            "editMessageText",
            {"chat_id": chat_id, "message_id": message_id, "text": text},
        )

    async def edit_message_reply_markup(
        self, chat_id: int | str, message_id: int, reply_markup: dict | None = None
    ) -> None:
        """Edit or clear an inline keyboard via editMessageReplyMarkup."""
        payload: dict[str, object] = {"chat_id": chat_id, "message_id": message_id}
        if reply_markup is not None:
            payload["reply_markup"] = reply_markup
        await self._post("editMessageReplyMarkup", payload)

    async def answer_callback_query(
        self,
        callback_query_id: str,
        text: str | None = None,
        show_alert: bool = False,
    ) -> None:
        """Answer a callback query using Telegram's API."""
        payload: dict[str, object] = {"callback_query_id": callback_query_id}
        if text is not None:
            payload["text"] = text
        if show_alert:
            payload["show_alert"] = True
        await self._post("answerCallbackQuery", payload)

    async def close(self) -> None:
        """Close the underlying HTTP client session."""
        await self.http_client.aclose()

    async def set_my_commands(self, commands: list[dict[str, str]]) -> None:
        """Set the bot command list."""
        await self._post("setMyCommands", {"commands": commands})

    async def set_chat_menu_button(
        self, menu_button: dict[str, object] | None = None
    ) -> None:
        """Set the chat menu button."""
        await self._post(
            "setChatMenuButton", {"menu_button": menu_button or {"type": "commands"}}
        )

    async def _post(
        self, method: str, payload: dict[str, object], timeout: float = 10
    ) -> object:
        url = f"https://api.telegram.org/bot{self.bot_token}/{method}"
        response = await self.http_client.post(url, json=payload, timeout=timeout)
        response.raise_for_status()
        body = response.json()
        if not body.get("ok"):
            raise RuntimeError(
                f"Telegram {method} failed: {body.get('description', 'unknown error')}"
            )
        return body.get("result")


def _message_id(result: object) -> int | None:
    if isinstance(result, dict) and isinstance(result.get("message_id"), int):
        return result["message_id"]
    return None
