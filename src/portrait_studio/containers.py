"""Dependency container for the application."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass

import httpx
from supabase import create_client

from portrait_studio.adapters.replicate_client import HttpxReplicateClient
from portrait_studio.adapters.supabase_admin_repository import SupabaseAdminRepository
from portrait_studio.adapters.supabase_image_repository import SupabaseImageRepository
from portrait_studio.adapters.supabase_job_repository import SupabaseJobRepository
from portrait_studio.adapters.supabase_processed_update_repository import (
    SupabaseProcessedUpdateRepository,
)
from portrait_studio.adapters.supabase_session_repository import (
    SupabaseSessionRepository,
)
from portrait_studio.adapters.supabase_storage import SupabaseObjectStorage
from portrait_studio.adapters.telegram_client import (
    HttpxTelegramClient,
    TelegramClient,
)
from portrait_studio.adapters.telegram_file_client import (
    HttpxTelegramFileClient,
    TelegramFileClient,
)
from portrait_studio.config import Settings, is_production
from portrait_studio.services.admin import AdminService
from portrait_studio.services.callbacks import CallbackReconciler
from portrait_studio.services.dispatcher import UpdateDispatcher
from portrait_studio.services.generation import GenerationService
from portrait_studio.services.idempotency import IdempotencyLedger
from portrait_studio.services.jobs import JobService
from portrait_studio.services.maintenance import MaintenanceService
from portrait_studio.services.results import ResultStore
from portrait_studio.services.sessions import SessionService


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    telegram_client: TelegramClient
    telegram_file_client: TelegramFileClient
    dispatcher: UpdateDispatcher
    session_service: SessionService
    job_service: JobService
    callback_reconciler: CallbackReconciler
    maintenance_service: MaintenanceService
    admin_service: AdminService
    close_resources: Callable[[], Awaitable[None]]


def build_container(settings: Settings | None = None) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    supabase_client = create_client(
        resolved_settings.supabase_url, resolved_settings.supabase_service_key
    )
    session_repository = SupabaseSessionRepository(supabase_client)
    job_repository = SupabaseJobRepository(supabase_client)
    processed_update_repository = SupabaseProcessedUpdateRepository(supabase_client)
    image_repository = SupabaseImageRepository(supabase_client)
    admin_repository = SupabaseAdminRepository(supabase_client)
    storage = SupabaseObjectStorage(supabase_client, resolved_settings.storage_bucket)

    telegram_client = HttpxTelegramClient.create(resolved_settings.telegram_bot_token)
    telegram_file_client = HttpxTelegramFileClient.create(
        resolved_settings.telegram_bot_token
    )
    replicate_client = HttpxReplicateClient.create(
        api_token=resolved_settings.replicate_api_token,
        model=resolved_settings.replicate_model,
        model_version=resolved_settings.replicate_model_version,
    )
    download_client = httpx.AsyncClient(follow_redirects=True)

    job_service = JobService(job_repository)
    ledger = IdempotencyLedger(processed_update_repository)
    generation_service = GenerationService(
        client=replicate_client,
        storage=storage,
        job_service=job_service,
        base_url=resolved_settings.base_url,
    )
    session_service = SessionService(
        session_repository=session_repository,
        job_service=job_service,
        generation_service=generation_service,
        storage=storage,
        telegram_client=telegram_client,
        telegram_file_client=telegram_file_client,
        download_timeout_seconds=resolved_settings.download_timeout_seconds,
        max_image_bytes=resolved_settings.max_image_bytes,
        debug_errors=not is_production(resolved_settings),
    )
    dispatcher = UpdateDispatcher(
        ledger=ledger,
        session_service=session_service,
        telegram_client=telegram_client,
    )
    result_store = ResultStore(
        storage=storage,
        image_repository=image_repository,
        http_client=download_client,
        retention_days=resolved_settings.retention_days,
    )
    callback_reconciler = CallbackReconciler(
        job_service=job_service,
        session_repository=session_repository,
        result_store=result_store,
        telegram_client=telegram_client,
    )
    maintenance_service = MaintenanceService(
        ledger=ledger,
        image_repository=image_repository,
        storage=storage,
        processed_update_retention_days=(
            resolved_settings.processed_update_retention_days
        ),
    )
    admin_service = AdminService(
        admin_repository=admin_repository,
        maintenance_service=maintenance_service,
    )

    async def close_resources() -> None:
        await telegram_client.close()
        await telegram_file_client.close()
        await replicate_client.close()
        await download_client.aclose()

    return AppContainer(
        settings=resolved_settings,
        telegram_client=telegram_client,
        telegram_file_client=telegram_file_client,
        dispatcher=dispatcher,
        session_service=session_service,
        job_service=job_service,
        callback_reconciler=callback_reconciler,
        maintenance_service=maintenance_service,
        admin_service=admin_service,
        close_resources=close_resources,
    )
