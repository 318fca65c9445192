"""Classification and routing of inbound Telegram updates."""

import logging
from dataclasses import dataclass

from portrait_studio.adapters.telegram_client import TelegramClient
from portrait_studio.api.telegram_models import (
    TelegramCallbackQuery,
    TelegramMessage,
    TelegramUpdate,
)
from portrait_studio.domain.updates import (
    CallbackAction,
    ClassifiedUpdate,
    CommandName,
    CommandUpdate,
    ImageInput,
    ImageUpload,
    SessionAction,
    Unrecognized,
)
from portrait_studio.services.idempotency import IdempotencyLedger
from portrait_studio.services.sessions import SessionService

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = frozenset({"jpg", "jpeg", "png", "webp"})
GUIDANCE_TEXT = "Please send a photo or image file."


def classify_update(update: TelegramUpdate) -> ClassifiedUpdate:
    """Map an update onto exactly one handled shape."""
    if update.callback_query is not None:
        return _classify_callback(update.callback_query)
    if update.message is None:
        kind = "edited_message" if update.edited_message else "unsupported_update"
        return Unrecognized(chat_id=update.chat_id, reason=kind)

    message = update.message
    chat_id = message.chat.id
    user_id = message.from_user.id if message.from_user else None
    if message.text and message.text.strip().startswith("/"):
        command = _parse_command(message.text)
        if command is None:
            return Unrecognized(
                chat_id=chat_id, reason="unknown_command", reply_with_guidance=True
            )
        return CommandUpdate(chat_id=chat_id, user_id=user_id, command=command)

    image = extract_image(message)
    if image is not None:
        return ImageUpload(chat_id=chat_id, user_id=user_id, image=image)
    return Unrecognized(chat_id=chat_id, reason="no_image", reply_with_guidance=True)


def extract_image(message: TelegramMessage) -> ImageInput | None:
    """Return the image carried by a message as a photo or an image file."""
    largest = message.largest_photo()
    if largest is not None:
        return ImageInput(
            file_id=largest.file_id,
            message_id=message.message_id,
            file_size=largest.file_size,
        )
    document = message.document
    if document is not None and is_image_document(
        document.mime_type, document.file_name
    ):
        return ImageInput(
            file_id=document.file_id,
            message_id=message.message_id,
            is_document=True,
            file_name=document.file_name,
            mime_type=document.mime_type,
            file_size=document.file_size,
        )
    return None


def is_image_document(mime_type: str | None, file_name: str | None) -> bool:
    """Whether a file attachment should be treated as an image."""
    if mime_type and mime_type.lower().startswith("image/"):
        return True
    if not file_name or "." not in file_name:
        return False
    return file_name.rsplit(".", maxsplit=1)[-1].lower() in IMAGE_EXTENSIONS


def _parse_command(text: str) -> CommandName | None:
    token = text.strip().split(maxsplit=1)[0]
    name = token[1:].split("@", maxsplit=1)[0].lower()
    try:
        return CommandName(name)
    except ValueError:
        return None


def _classify_callback(callback: TelegramCallbackQuery) -> CallbackAction:
    try:
        action = SessionAction(callback.data) if callback.data else None
    except ValueError:
        action = None
    message = callback.message
    return CallbackAction(
        callback_query_id=callback.id,
        chat_id=message.chat.id if message else None,
        user_id=callback.from_user.id,
        action=action,
        message_id=message.message_id if message else None,
    )


@dataclass
class UpdateDispatcher:
    """Routes classified updates to the session lifecycle."""

    ledger: IdempotencyLedger
    session_service: SessionService
    telegram_client: TelegramClient

    async def dispatch(self, update: TelegramUpdate) -> ClassifiedUpdate | None:
        """Handle one update at most once; returns None for duplicates."""
        classified = classify_update(update)
        chat_id = getattr(classified, "chat_id", None)
        if not self.ledger.claim(
            update.update_id,
            str(chat_id) if chat_id is not None else None,
            classified.kind,
        ):
            return None

        if isinstance(classified, CommandUpdate):
            await self._handle_command(classified)
        elif isinstance(classified, ImageUpload):
            await self.session_service.ingest_image(
                classified.chat_id, classified.user_id, classified.image
            )
        elif isinstance(classified, CallbackAction):
            await self._handle_callback(classified)
        else:
            await self._handle_unrecognized(classified)
        return classified

    async def _handle_command(self, update: CommandUpdate) -> None:
        if update.command is CommandName.START:
            await self.session_service.begin(update.chat_id)
        elif update.command is CommandName.DONE:
            await self.session_service.finalize(update.chat_id, update.user_id)
        elif update.command is CommandName.CANCEL:
            await self.session_service.cancel(update.chat_id)
        else:
            await self.session_service.help(update.chat_id)

    async def _handle_callback(self, update: CallbackAction) -> None:
        if update.action is None or update.chat_id is None:
            logger.info("Ignoring callback %s", update.callback_query_id)
            await self.telegram_client.answer_callback_query(update.callback_query_id)
            return
        if update.action is SessionAction.DONE:
            await self.session_service.finalize(
                update.chat_id,
                update.user_id,
                callback_query_id=update.callback_query_id,
                message_id=update.message_id,
            )
        elif update.action is SessionAction.CANCEL:
            await self.session_service.cancel(
                update.chat_id,
                callback_query_id=update.callback_query_id,
                message_id=update.message_id,
            )
        else:
            await self.session_service.tips(
                update.chat_id, callback_query_id=update.callback_query_id
            )

    async def _handle_unrecognized(self, update: Unrecognized) -> None:
        logger.info("Unrecognized update (%s)", update.reason)
        if update.reply_with_guidance and update.chat_id is not None:
            await self.telegram_client.send_message(
                chat_id=update.chat_id, text=GUIDANCE_TEXT
            )
