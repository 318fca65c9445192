"""Tests for the session lifecycle."""

import asyncio
from dataclasses import replace

from portrait_studio.domain.jobs import JobStatus
from portrait_studio.domain.sessions import MAX_SESSION_IMAGES, SessionStatus
from portrait_studio.domain.updates import ImageInput
from portrait_studio.services.sessions import SessionImageLimitError, SessionService
from tests.conftest import (
    FakeGenerationClient,
    FakeObjectStorage,
    FakeTelegramClient,
    FakeTelegramFileClient,
    InMemoryJobRepository,
    InMemorySessionRepository,
)

CHAT_ID = 42
USER_ID = 7


def _image(message_id: int, is_document: bool = False) -> ImageInput:
    return ImageInput(
        file_id=f"file-{message_id}",
        message_id=message_id,
        is_document=is_document,
        file_name="family.png" if is_document else None,
    )


def _ingest(service: SessionService, *message_ids: int) -> None:
    for message_id in message_ids:
        asyncio.run(service.ingest_image(CHAT_ID, USER_ID, _image(message_id)))


def test_ingest_keeps_insertion_order(
    session_service: SessionService,
    session_repository: InMemorySessionRepository,
    storage: FakeObjectStorage,
) -> None:
    _ingest(session_service, 11, 12, 13)

    session = session_repository.get_active_session(str(CHAT_ID))
    assert session is not None
    assert [image.telegram_message_id for image in session.images] == [
        "11",
        "12",
        "13",
    ]
    assert f"sessions/{session.id}/input_11.jpg" in storage.objects


def test_ingest_same_message_twice_is_silent(
    session_service: SessionService,
    session_repository: InMemorySessionRepository,
    telegram_client: FakeTelegramClient,
    telegram_file_client: FakeTelegramFileClient,
) -> None:
    _ingest(session_service, 11, 11)

    session = session_repository.get_active_session(str(CHAT_ID))
    assert session is not None
    assert len(session.images) == 1
    assert len(telegram_client.messages) == 1
    assert telegram_file_client.downloads == ["file-11"]


def test_fifteenth_image_is_rejected(
    session_service: SessionService,
    session_repository: InMemorySessionRepository,
    telegram_client: FakeTelegramClient,
    telegram_file_client: FakeTelegramFileClient,
) -> None:
    _ingest(session_service, *range(1, MAX_SESSION_IMAGES + 2))

    session = session_repository.get_active_session(str(CHAT_ID))
    assert session is not None
    assert len(session.images) == MAX_SESSION_IMAGES
    assert "Maximum 14 photos reached" in telegram_client.texts()[-1]
    assert len(telegram_file_client.downloads) == MAX_SESSION_IMAGES


def test_document_confirmation_wording(
    session_service: SessionService, telegram_client: FakeTelegramClient
) -> None:
    asyncio.run(session_service.ingest_image(CHAT_ID, USER_ID, _image(5, True)))

    assert telegram_client.texts() == ["Got it (1 photo). Send more or press Done."]


def test_download_timeout_has_distinct_message(
    session_service: SessionService,
    session_repository: InMemorySessionRepository,
    telegram_client: FakeTelegramClient,
    telegram_file_client: FakeTelegramFileClient,
) -> None:
    telegram_file_client.delay_seconds = 0.5
    session_service.download_timeout_seconds = 0.01

    _ingest(session_service, 1)

    session = session_repository.get_active_session(str(CHAT_ID))
    assert session is not None
    assert session.images == []
    assert "took too long" in telegram_client.texts()[-1]


def test_download_failure_reports_unusable_file(
    session_service: SessionService,
    telegram_client: FakeTelegramClient,
    telegram_file_client: FakeTelegramFileClient,
) -> None:
    telegram_file_client.error = RuntimeError("Telegram getFile failed")

    _ingest(session_service, 1)

    assert telegram_client.texts() == [
        "I couldn't use that file. Please send a JPG or PNG photo."
    ]


def test_oversized_image_is_not_uploaded(
    session_service: SessionService,
    storage: FakeObjectStorage,
    telegram_client: FakeTelegramClient,
    telegram_file_client: FakeTelegramFileClient,
) -> None:
    session_service.max_image_bytes = 4
    telegram_file_client.content = b"too many bytes"

    _ingest(session_service, 1)

    assert storage.objects == {}
    assert "too large" in telegram_client.texts()[-1]


def test_finalize_without_images_keeps_collecting(
    session_service: SessionService,
    session_repository: InMemorySessionRepository,
    job_repository: InMemoryJobRepository,
    telegram_client: FakeTelegramClient,
) -> None:
    session = session_repository.create_session(str(CHAT_ID), str(USER_ID))

    asyncio.run(session_service.finalize(CHAT_ID, USER_ID))

    assert session_repository.sessions[session.id].status == SessionStatus.COLLECTING
    assert telegram_client.texts() == ["Please send at least one photo first."]
    assert job_repository.jobs == {}


def test_finalize_submits_all_images(
    session_service: SessionService,
    session_repository: InMemorySessionRepository,
    job_repository: InMemoryJobRepository,
    telegram_client: FakeTelegramClient,
    generation_client: FakeGenerationClient,
) -> None:
    _ingest(session_service, 1, 2)
    telegram_client.messages.clear()

    result = asyncio.run(
        session_service.finalize(CHAT_ID, USER_ID, callback_query_id="cb-1", message_id=9)
    )

    assert result is not None
    assert result.status == SessionStatus.PROCESSING
    (job,) = job_repository.jobs.values()
    assert result.job_id == job.id
    assert job.status == JobStatus.RUNNING
    assert job.session_id == result.id
    assert [image["telegram_message_id"] for image in job.input["images"]] == [
        "1",
        "2",
    ]
    assert job.telegram_message_id == str(telegram_client.next_message_id)
    assert len(telegram_client.messages) == 1
    assert "from 2 photos" in telegram_client.messages[0][1]
    assert telegram_client.cleared_keyboards == [(CHAT_ID, 9)]
    (payload, webhook_url) = generation_client.submissions[0]
    assert len(payload["image_input"]) == 2
    assert payload["aspect_ratio"] == "4:3"
    assert "of 2 family members together" in str(payload["prompt"])
    assert webhook_url.startswith(
        f"https://bot.example.com/provider/callback?job_id={job.id}&sig="
    )


def test_finalize_twice_creates_one_job(
    session_service: SessionService,
    job_repository: InMemoryJobRepository,
    generation_client: FakeGenerationClient,
    telegram_client: FakeTelegramClient,
) -> None:
    _ingest(session_service, 1)

    asyncio.run(session_service.finalize(CHAT_ID, USER_ID))
    asyncio.run(session_service.finalize(CHAT_ID, USER_ID))

    assert len(job_repository.jobs) == 1
    assert len(generation_client.submissions) == 1
    assert "already being created" in telegram_client.texts()[-1]


def test_existing_job_blocks_resubmission(
    session_service: SessionService,
    session_repository: InMemorySessionRepository,
    job_repository: InMemoryJobRepository,
    generation_client: FakeGenerationClient,
) -> None:
    _ingest(session_service, 1)
    asyncio.run(session_service.finalize(CHAT_ID, USER_ID))
    session = session_repository.get_active_session(str(CHAT_ID))
    assert session is not None
    # A stale reader that still saw the session as collecting.
    session_repository.sessions[session.id] = replace(
        session, status=SessionStatus.COLLECTING
    )

    asyncio.run(session_service.finalize(CHAT_ID, USER_ID))

    assert len(job_repository.jobs) == 1
    assert len(generation_client.submissions) == 1
    assert session_repository.attach_calls == 1


def test_provider_rejection_fails_session_and_job(
    session_service: SessionService,
    session_repository: InMemorySessionRepository,
    job_repository: InMemoryJobRepository,
    telegram_client: FakeTelegramClient,
    generation_client: FakeGenerationClient,
) -> None:
    generation_client.error = RuntimeError("Replicate rejected the prediction")
    _ingest(session_service, 1)

    result = asyncio.run(session_service.finalize(CHAT_ID, USER_ID))

    assert result is not None
    assert result.status == SessionStatus.FAILED
    assert result.error_message == "Failed to start generation"
    (job,) = job_repository.jobs.values()
    assert job.status == JobStatus.FAILED
    assert "couldn't start creating the portrait" in telegram_client.texts()[-1]
    assert session_repository.get_active_session(str(CHAT_ID)) is None


def test_cancel_is_repeatable(
    session_service: SessionService,
    session_repository: InMemorySessionRepository,
    telegram_client: FakeTelegramClient,
) -> None:
    _ingest(session_service, 1)
    telegram_client.messages.clear()

    first = asyncio.run(session_service.cancel(CHAT_ID))
    second = asyncio.run(session_service.cancel(CHAT_ID))

    assert first is True
    assert second is False
    (session,) = session_repository.sessions.values()
    assert session.status == SessionStatus.CANCELLED
    assert telegram_client.texts() == [
        "Session cancelled. Send a photo to start a new one.",
        "No active session to cancel. Send a photo to begin.",
    ]


def test_photo_after_cancel_starts_new_session(
    session_service: SessionService, session_repository: InMemorySessionRepository
) -> None:
    _ingest(session_service, 1)
    asyncio.run(session_service.cancel(CHAT_ID))

    _ingest(session_service, 2)

    statuses = sorted(s.status.value for s in session_repository.sessions.values())
    assert statuses == ["cancelled", "collecting"]


def test_finalize_callback_without_session_answers_alert(
    session_service: SessionService, telegram_client: FakeTelegramClient
) -> None:
    asyncio.run(session_service.finalize(CHAT_ID, USER_ID, callback_query_id="cb-9"))

    assert telegram_client.callbacks == [
        ("cb-9", "No active session. Send a photo to begin.")
    ]
    assert telegram_client.messages == []


def test_start_and_tips_create_no_session(
    session_service: SessionService,
    session_repository: InMemorySessionRepository,
    telegram_client: FakeTelegramClient,
) -> None:
    asyncio.run(session_service.begin(CHAT_ID))
    asyncio.run(session_service.tips(CHAT_ID, callback_query_id="cb-2"))
    asyncio.run(session_service.help(CHAT_ID))

    assert session_repository.sessions == {}
    assert len(telegram_client.messages) == 3
    assert telegram_client.keyboards[0] == {
        "inline_keyboard": [
            [
                {"text": "Done", "callback_data": "session:done"},
                {"text": "Cancel", "callback_data": "session:cancel"},
            ],
            [{"text": "Tips", "callback_data": "session:tips"}],
        ]
    }


def test_cancel_during_submission_keeps_session_cancelled(
    session_service: SessionService,
    session_repository: InMemorySessionRepository,
    job_repository: InMemoryJobRepository,
    telegram_client: FakeTelegramClient,
    generation_client: FakeGenerationClient,
) -> None:
    async def cancel_then_fail(input_payload, webhook_url):  # type: ignore[no-untyped-def]
        await session_service.cancel(CHAT_ID)
        raise RuntimeError("Replicate unavailable")

    generation_client.create_prediction = cancel_then_fail  # type: ignore[method-assign]
    _ingest(session_service, 1)

    result = asyncio.run(session_service.finalize(CHAT_ID, USER_ID))

    assert result is not None
    assert result.status == SessionStatus.CANCELLED
    (job,) = job_repository.jobs.values()
    assert job.status == JobStatus.FAILED
    assert telegram_client.texts()[-1] == (
        "Session cancelled. Send a photo to start a new one."
    )
    assert not any(
        "couldn't start creating the portrait" in text
        for text in telegram_client.texts()
    )


def test_rejected_append_removes_upload(
    session_service: SessionService,
    session_repository: InMemorySessionRepository,
    storage: FakeObjectStorage,
    telegram_client: FakeTelegramClient,
) -> None:
    _ingest(session_service, 1)

    def full(session_id, image):  # type: ignore[no-untyped-def]
        raise SessionImageLimitError("limit reached concurrently")

    session_repository.append_image = full  # type: ignore[method-assign]
    _ingest(session_service, 2)

    assert not any("input_2" in path for path in storage.objects)
    assert any("input_1" in path for path in storage.objects)
    assert any("input_2" in path for path in storage.deleted)
    assert "Maximum 14 photos reached" in telegram_client.texts()[-1]
