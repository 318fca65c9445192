"""Closed classification of inbound Telegram updates."""

from dataclasses import dataclass
from enum import Enum


class CommandName(str, Enum):
    """Slash commands the bot acts on."""

    START = "start"
    DONE = "done"
    CANCEL = "cancel"
    HELP = "help"


class SessionAction(str, Enum):
    """Inline keyboard callback payloads."""

    DONE = "session:done"
    CANCEL = "session:cancel"
    TIPS = "session:tips"


@dataclass(frozen=True)
class ImageInput:
    """Attachment-agnostic reference to an uploaded image."""

    file_id: str
    message_id: int
    is_document: bool = False
    file_name: str | None = None
    mime_type: str | None = None
    file_size: int | None = None


@dataclass(frozen=True)
class CommandUpdate:
    """A recognised slash command."""

    chat_id: int
    user_id: int | None
    command: CommandName

    kind = "command"


@dataclass(frozen=True)
class ImageUpload:
    """A message carrying a photo or an image file."""

    chat_id: int
    user_id: int | None
    image: ImageInput

    kind = "image"


@dataclass(frozen=True)
class CallbackAction:
    """A button press; action is None for payloads the bot does not know."""

    callback_query_id: str
    chat_id: int | None
    user_id: int
    action: SessionAction | None
    message_id: int | None = None

    kind = "callback"


@dataclass(frozen=True)
class Unrecognized:
    """Anything else. Handling it must never start a session."""

    chat_id: int | None
    reason: str
    reply_with_guidance: bool = False

    kind = "unrecognized"


ClassifiedUpdate = CommandUpdate | ImageUpload | CallbackAction | Unrecognized
