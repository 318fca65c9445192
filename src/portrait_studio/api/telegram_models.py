"""Pydantic models for the subset of Telegram updates the bot reads.

Unknown fields are ignored so new Bot API additions never break parsing.
"""

from pydantic import BaseModel, ConfigDict, Field


class _TelegramModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class TelegramUser(_TelegramModel):
    id: int
    is_bot: bool | None = None
    username: str | None = None


class TelegramChat(_TelegramModel):
    id: int
    type: str | None = None


class TelegramPhotoSize(_TelegramModel):
    """One rendition of a compressed photo."""

    file_id: str
    file_unique_id: str | None = None
    width: int
    height: int
    file_size: int | None = None

    @property
    def area(self) -> int:
        return self.width * self.height


class TelegramDocument(_TelegramModel):
    """A file sent uncompressed, possibly an image."""

    file_id: str
    file_unique_id: str | None = None
    file_name: str | None = None
    mime_type: str | None = None
    file_size: int | None = None


class TelegramMessage(_TelegramModel):
    message_id: int
    date: int | None = None
    chat: TelegramChat
    from_user: TelegramUser | None = Field(default=None, alias="from")
    text: str | None = None
    caption: str | None = None
    photo: list[TelegramPhotoSize] | None = None
    document: TelegramDocument | None = None

    def largest_photo(self) -> TelegramPhotoSize | None:
        """Return the highest-resolution photo rendition, if any."""
        if not self.photo:
            return None
        return max(self.photo, key=lambda size: size.area)


class TelegramCallbackQuery(_TelegramModel):
    """Inline keyboard button press."""

    id: str
    from_user: TelegramUser = Field(alias="from")
    message: TelegramMessage | None = None
    data: str | None = None


class TelegramUpdate(_TelegramModel):
    update_id: int
    message: TelegramMessage | None = None
    edited_message: TelegramMessage | None = None
    callback_query: TelegramCallbackQuery | None = None

    @property
    def chat_id(self) -> int | None:
        """Chat the update belongs to, wherever Telegram put it."""
        for message in (self.message, self.edited_message):
            if message is not None:
                return message.chat.id
        if self.callback_query and self.callback_query.message:
            return self.callback_query.message.chat.id
        return None
