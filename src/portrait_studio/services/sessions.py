"""Session lifecycle for multi-photo portrait requests."""

import asyncio
import logging
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from typing import Protocol
from uuid import UUID

from portrait_studio.adapters.supabase_storage import (
    ObjectStorage,
    StoredObject,
    build_session_object_path,
    guess_content_type,
)
from portrait_studio.adapters.telegram_client import TelegramClient
from portrait_studio.adapters.telegram_file_client import TelegramFileClient
from portrait_studio.domain.sessions import (
    MAX_SESSION_IMAGES,
    SessionImage,
    SessionRecord,
    SessionStatus,
)
from portrait_studio.domain.updates import ImageInput, SessionAction
from portrait_studio.services.generation import GenerationService
from portrait_studio.services.jobs import JobService
from portrait_studio.services.prompts import build_portrait_prompt

logger = logging.getLogger(__name__)

DEFAULT_MAX_IMAGE_BYTES = 20 * 1024 * 1024
DEFAULT_DOWNLOAD_TIMEOUT_SECONDS = 45.0

WELCOME_TEXT = (
    "Welcome! Send me 1-14 photos of family members.\n"
    "- One person per photo is fine\n"
    "- Best quality: send them as File / Document\n"
    "- When you're finished, press Done\n\n"
    "I'll create a professional studio family portrait."
)
HELP_TEXT = (
    "How it works:\n"
    "1. Send up to 14 photos (as photos or image files).\n"
    "2. Press Done or send /done.\n"
    "3. I'll send the portrait here when it's ready.\n\n"
    "Send /cancel to discard the current photos."
)
TIPS_TEXT = (
    "Tips for best results:\n"
    "- Send clear, well-lit photos\n"
    "- One person per photo works great\n"
    "- Send as File/Document for the highest quality\n"
    "- Include everyone you want in the portrait\n"
    "- Up to 14 photos in total\n\n"
    "Press Done when ready!"
)
ALREADY_PROCESSING_TEXT = (
    "Your portrait is already being created. I'll send it here when it's ready."
)
NO_ACTIVE_SESSION_TEXT = "No active session. Send a photo to begin."
SEND_PHOTO_FIRST_TEXT = "Please send at least one photo first."
NOTHING_TO_CANCEL_TEXT = "No active session to cancel. Send a photo to begin."
CANCELLED_TEXT = "Session cancelled. Send a photo to start a new one."
MAX_IMAGES_TEXT = (
    f"Maximum {MAX_SESSION_IMAGES} photos reached. "
    "Press Done to create your portrait."
)
TOO_LARGE_TEXT = "Image too large. Please send an image smaller than 20MB."
DOWNLOAD_TIMEOUT_TEXT = (
    "Download took too long. Please try a smaller file or a better connection."
)
UNUSABLE_FILE_TEXT = "I couldn't use that file. Please send a JPG or PNG photo."
START_FAILED_TEXT = (
    "I couldn't start creating the portrait. Please try again in a few minutes."
)


class SessionImageLimitError(Exception):
    """Raised when an append would exceed the per-session image limit."""


class SessionClosedError(Exception):
    """Raised when appending to a session that is no longer collecting."""


class ConcurrentUpdateError(Exception):
    """Raised when an optimistic session update keeps losing races."""


class SessionRepository(Protocol):
    """Persistence interface for portrait sessions."""

    def create_session(
        self, telegram_chat_id: str, telegram_user_id: str | None
    ) -> SessionRecord:
        """Create a collecting session with no images."""

    def get_session(self, session_id: UUID) -> SessionRecord | None:
        """Return a session by id, if present."""

    def get_active_session(self, telegram_chat_id: str) -> SessionRecord | None:
        """Return the chat's collecting or processing session, if any."""

    def get_session_by_job_id(self, job_id: UUID) -> SessionRecord | None:
        """Return the session linked to a job, if any."""

    def append_image(self, session_id: UUID, image: SessionImage) -> SessionRecord:
        """Append an image unless its message id is already present.

        Raises SessionImageLimitError or SessionClosedError without mutating.
        """

    def update_status(
        self,
        session_id: UUID,
        status: SessionStatus,
        expected_status: SessionStatus | None = None,
        error_message: str | None = None,
    ) -> bool:
        """Set the status, optionally only from an expected status."""

    def attach_job(self, session_id: UUID, job_id: UUID, prompt: str) -> bool:
        """Link a job only if the session has none yet."""


@dataclass
class SessionService:
    """State machine for collecting photos and submitting a portrait job."""

    session_repository: SessionRepository
    job_service: JobService
    generation_service: GenerationService
    storage: ObjectStorage
    telegram_client: TelegramClient
    telegram_file_client: TelegramFileClient
    download_timeout_seconds: float = DEFAULT_DOWNLOAD_TIMEOUT_SECONDS
    max_image_bytes: int = DEFAULT_MAX_IMAGE_BYTES
    debug_errors: bool = False

    async def begin(self, chat_id: int) -> None:
        """Send instructions; sessions are only created by the first photo."""
        await self.telegram_client.send_message(
            chat_id=chat_id, text=WELCOME_TEXT, reply_markup=session_keyboard()
        )

    async def help(self, chat_id: int) -> None:
        """Send usage help."""
        await self.telegram_client.send_message(chat_id=chat_id, text=HELP_TEXT)

    async def tips(self, chat_id: int, callback_query_id: str | None = None) -> None:
        """Send photo tips."""
        if callback_query_id:
            await self.telegram_client.answer_callback_query(callback_query_id)
        await self.telegram_client.send_message(chat_id=chat_id, text=TIPS_TEXT)

    async def ingest_image(  # noqa: PLR0911
        self, chat_id: int, user_id: int | None, image: ImageInput
    ) -> SessionRecord:
        """Add one uploaded image to the chat's collecting session."""
        chat_key = str(chat_id)
        session = self.session_repository.get_active_session(chat_key)
        if session is None:
            try:
                session = self.session_repository.create_session(
                    telegram_chat_id=chat_key,
                    telegram_user_id=str(user_id) if user_id is not None else None,
                )
            except Exception:
                # The partial unique index allows one active session per chat.
                session = self.session_repository.get_active_session(chat_key)
                if session is None:
                    raise
            logger.info("Using session %s for chat %s", session.id, chat_key)

        if session.status != SessionStatus.COLLECTING:
            await self.telegram_client.send_message(
                chat_id=chat_id, text=ALREADY_PROCESSING_TEXT
            )
            return session

        message_key = str(image.message_id)
        if session.has_message(message_key):
            logger.info(
                "Image from message %s already in session %s", message_key, session.id
            )
            return session
        if len(session.images) >= MAX_SESSION_IMAGES:
            await self.telegram_client.send_message(chat_id=chat_id, text=MAX_IMAGES_TEXT)
            return session
        if image.file_size is not None and image.file_size > self.max_image_bytes:
            await self.telegram_client.send_message(chat_id=chat_id, text=TOO_LARGE_TEXT)
            return session

        try:
            downloaded = await asyncio.wait_for(
                self.telegram_file_client.download_file(image.file_id),
                timeout=self.download_timeout_seconds,
            )
        except TimeoutError:
            logger.warning(
                "Telegram download timed out", extra={"file_id": image.file_id}
            )
            await self.telegram_client.send_message(
                chat_id=chat_id, text=DOWNLOAD_TIMEOUT_TEXT
            )
            return session
        except Exception as exc:
            logger.exception(
                "Failed to download Telegram file", extra={"file_id": image.file_id}
            )
            await self.telegram_client.send_message(
                chat_id=chat_id, text=self._error_text(UNUSABLE_FILE_TEXT, exc)
            )
            return session

        if len(downloaded.content) > self.max_image_bytes:
            await self.telegram_client.send_message(chat_id=chat_id, text=TOO_LARGE_TEXT)
            return session

        filename = image.file_name or downloaded.file_name or "original.jpg"
        stored = None
        try:
            stored = self.storage.upload(
                build_session_object_path(
                    session.id, f"input_{message_key}{_extension(filename)}"
                ),
                downloaded.content,
                content_type=guess_content_type(filename),
            )
            session = self.session_repository.append_image(
                session.id,
                SessionImage(
                    telegram_file_id=image.file_id,
                    telegram_message_id=message_key,
                    storage_bucket=stored.bucket,
                    storage_path=stored.path,
                    original_filename=filename,
                    added_at=datetime.now(tz=UTC),
                ),
            )
        except SessionImageLimitError:
            self._discard_upload(stored)
            await self.telegram_client.send_message(chat_id=chat_id, text=MAX_IMAGES_TEXT)
            return session
        except SessionClosedError:
            self._discard_upload(stored)
            await self.telegram_client.send_message(
                chat_id=chat_id, text=ALREADY_PROCESSING_TEXT
            )
            return session
        except Exception as exc:
            logger.exception("Failed to store image", extra={"session_id": session.id})
            await self.telegram_client.send_message(
                chat_id=chat_id, text=self._error_text(UNUSABLE_FILE_TEXT, exc)
            )
            return session

        await self.telegram_client.send_message(
            chat_id=chat_id,
            text=_confirmation_text(len(session.images), image.is_document),
            reply_markup=session_keyboard(),
        )
        logger.info(
            "Added image to session %s (%d total)", session.id, len(session.images)
        )
        return session

    async def finalize(
        self,
        chat_id: int,
        user_id: int | None,
        callback_query_id: str | None = None,
        message_id: int | None = None,
    ) -> SessionRecord | None:
        """Close collection and submit exactly one generation job."""
        session = self.session_repository.get_active_session(str(chat_id))
        if session is None:
            await self._reply(chat_id, callback_query_id, NO_ACTIVE_SESSION_TEXT)
            return None
        if session.status != SessionStatus.COLLECTING:
            await self._reply(chat_id, callback_query_id, ALREADY_PROCESSING_TEXT)
            return session
        image_count = len(session.images)
        if image_count == 0:
            await self._reply(chat_id, callback_query_id, SEND_PHOTO_FIRST_TEXT)
            return session
        if not self.session_repository.update_status(
            session.id,
            SessionStatus.PROCESSING,
            expected_status=SessionStatus.COLLECTING,
        ):
            await self._reply(chat_id, callback_query_id, ALREADY_PROCESSING_TEXT)
            return session

        await self._clear_keyboard(chat_id, message_id)
        if callback_query_id:
            await self.telegram_client.answer_callback_query(
                callback_query_id, text=f"Processing {_photos(image_count)}..."
            )
        notice_id = await self.telegram_client.send_message(
            chat_id=chat_id,
            text=(
                "Creating your professional studio family portrait from "
                f"{_photos(image_count)}...\n\n"
                "This may take a few minutes. "
                "I'll send the result here when it's ready."
            ),
        )
        try:
            await self._start_generation(session.id, user_id, notice_id)
        except Exception:
            logger.exception(
                "Failed to start generation", extra={"session_id": session.id}
            )
            if self.session_repository.update_status(
                session.id,
                SessionStatus.FAILED,
                expected_status=SessionStatus.PROCESSING,
                error_message="Failed to start generation",
            ):
                await self.telegram_client.send_message(
                    chat_id=chat_id, text=START_FAILED_TEXT
                )
        return self.session_repository.get_session(session.id)

    async def cancel(
        self,
        chat_id: int,
        callback_query_id: str | None = None,
        message_id: int | None = None,
    ) -> bool:
        """Cancel the chat's active session, if there is one."""
        session = self.session_repository.get_active_session(str(chat_id))
        cancelled = session is not None and self.session_repository.update_status(
            session.id, SessionStatus.CANCELLED, expected_status=session.status
        )
        if not cancelled:
            await self._reply(chat_id, callback_query_id, NOTHING_TO_CANCEL_TEXT)
            return False
        await self._clear_keyboard(chat_id, message_id)
        if callback_query_id:
            await self.telegram_client.answer_callback_query(
                callback_query_id, text="Session cancelled."
            )
        await self.telegram_client.send_message(chat_id=chat_id, text=CANCELLED_TEXT)
        return True

    async def _start_generation(
        self, session_id: UUID, user_id: int | None, notice_id: int | None
    ) -> None:
        session = self.session_repository.get_session(session_id)
        if session is None or session.status != SessionStatus.PROCESSING:
            raise RuntimeError(f"Session {session_id} is not awaiting submission")
        if session.job_id is not None:
            logger.info(
                "Session %s already has job %s, skipping submission",
                session.id,
                session.job_id,
            )
            return

        prompt = build_portrait_prompt(len(session.images))
        job = self.job_service.create_job(
            telegram_chat_id=session.telegram_chat_id,
            user_id=str(user_id) if user_id is not None else session.telegram_user_id,
            telegram_message_id=str(notice_id) if notice_id is not None else None,
            input_payload={
                "session_id": str(session.id),
                "image_count": len(session.images),
                "prompt": prompt,
                "images": [image.to_json() for image in session.images],
            },
        )
        if not self.session_repository.attach_job(session.id, job.id, prompt):
            logger.warning(
                "Session %s got a job concurrently, discarding job %s",
                session.id,
                job.id,
            )
            self.job_service.mark_failed(job.id, "Superseded by a concurrent submission")
            return

        try:
            await self.generation_service.submit(
                job, replace(session, job_id=job.id, prompt=prompt)
            )
        except Exception:
            self.job_service.mark_failed(job.id, "Provider submission failed")
            raise

    async def _reply(
        self, chat_id: int, callback_query_id: str | None, text: str
    ) -> None:
        """Answer a button press as an alert, or a command with a message."""
        if callback_query_id:
            await self.telegram_client.answer_callback_query(
                callback_query_id, text=text, show_alert=True
            )
            return
        await self.telegram_client.send_message(chat_id=chat_id, text=text)

    async def _clear_keyboard(self, chat_id: int, message_id: int | None) -> None:
        if message_id is None:
            return
        try:
            await self.telegram_client.edit_message_reply_markup(chat_id, message_id)
        except Exception:
            logger.info("Could not remove keyboard from message %s", message_id)

    def _discard_upload(self, stored: StoredObject | None) -> None:
        if stored is None:
            return
        try:
            self.storage.delete(stored.path, bucket=stored.bucket)
        except Exception:
            logger.warning("Could not remove unused upload %s", stored.path)

    def _error_text(self, fallback: str, exc: Exception) -> str:
        """Return a user-facing error message with local debug info."""
        if self.debug_errors:
            detail = f"{type(exc).__name__}: {exc}".strip()
            if detail:
                return f"{fallback} (debug: {detail})"
        return fallback


def session_keyboard() -> dict:
    """Inline keyboard shown while collecting photos."""
    return _inline_keyboard(
        [
            [("Done", SessionAction.DONE.value), ("Cancel", SessionAction.CANCEL.value)],
            [("Tips", SessionAction.TIPS.value)],
        ]
    )


def _inline_keyboard(rows: list[list[tuple[str, str]]]) -> dict:
    """Build a Telegram inline keyboard payload."""
    return {
        "inline_keyboard": [
            [{"text": label, "callback_data": callback} for label, callback in row]
            for row in rows
        ]
    }


def _photos(count: int) -> str:
    return f"{count} photo" if count == 1 else f"{count} photos"


def _confirmation_text(count: int, is_document: bool) -> str:
    if is_document:
        return f"Got it ({_photos(count)}). Send more or press Done."
    return (
        f"Added ({_photos(count)}). For best quality, send as File/Document. "
        "Press Done when ready."
    )


def _extension(filename: str) -> str:
    if "." not in filename:
        return ".jpg"
    return "." + filename.rsplit(".", maxsplit=1)[-1].lower()
