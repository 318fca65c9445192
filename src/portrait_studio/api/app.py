"""FastAPI application factory."""

import hmac
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Header, HTTPException, Request, status
from pydantic import ValidationError

from portrait_studio.api.admin import router as admin_router
from portrait_studio.api.provider_models import ProviderCallback
from portrait_studio.api.telegram_models import TelegramUpdate
from portrait_studio.app_logging import configure_logging
from portrait_studio.config import is_production
from portrait_studio.containers import AppContainer
from portrait_studio.services.callbacks import CallbackAuthError
from portrait_studio.telegram_commands import CHAT_MENU_BUTTON, telegram_commands

GENERIC_ERROR_TEXT = "Sorry, something went wrong. Please try again."


def create_app(container: AppContainer) -> FastAPI:
    """Create a FastAPI app configured with dependencies."""
    configure_logging()
    logger = logging.getLogger(__name__)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        try:
            await app.state.container.telegram_client.set_my_commands(
                telegram_commands()
            )
            await app.state.container.telegram_client.set_chat_menu_button(
                CHAT_MENU_BUTTON
            )
        except Exception:
            logger.exception("Failed to sync Telegram bot commands")
        yield
        await app.state.container.close_resources()

    app = FastAPI(lifespan=lifespan)
    app.state.container = container

    app.include_router(admin_router)

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Simple health check endpoint."""
        return {"status": "ok"}

    @app.post("/telegram/webhook")
    async def telegram_webhook(
        request: Request,
        x_telegram_bot_api_secret_token: str | None = Header(default=None),
    ) -> dict[str, bool]:
        """Handle Telegram webhook updates."""
        state_container: AppContainer = request.app.state.container
        _check_webhook_secret(state_container, x_telegram_bot_api_secret_token)
        try:
            update = TelegramUpdate.model_validate(await request.json())
        except (ValueError, ValidationError):
            logger.warning("Ignoring malformed Telegram update")
            return {"ok": True}

        try:
            await state_container.dispatcher.dispatch(update)
        except Exception:
            logger.exception(
                "Failed to handle Telegram update", extra={"update_id": update.update_id}
            )
            chat_id = update.chat_id
            if chat_id is not None:
                try:
                    await state_container.telegram_client.send_message(
                        chat_id=chat_id, text=GENERIC_ERROR_TEXT
                    )
                except Exception:
                    logger.exception("Failed to notify chat %s", chat_id)
        return {"ok": True}

    @app.post("/provider/callback")
    async def provider_callback(
        request: Request,
        job_id: str | None = None,
        sig: str | None = None,
        x_callback_signature: str | None = Header(default=None),
    ) -> dict[str, bool]:
        """Handle generation provider completion webhooks."""
        state_container: AppContainer = request.app.state.container
        try:
            payload = ProviderCallback.model_validate(await request.json())
        except (ValueError, ValidationError):
            logger.warning("Ignoring malformed provider callback for job %s", job_id)
            return {"ok": True}

        try:
            outcome = await state_container.callback_reconciler.reconcile(
                job_id, x_callback_signature or sig, payload
            )
        except CallbackAuthError as exc:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED) from exc
        except Exception:
            logger.exception("Failed to reconcile callback for job %s", job_id)
            return {"ok": True}
        logger.info("Callback for job %s: %s", job_id, outcome.value)
        return {"ok": True}

    return app


def _check_webhook_secret(container: AppContainer, provided: str | None) -> None:
    """Reject webhook calls that do not carry the configured secret."""
    expected = container.settings.telegram_webhook_secret
    if not expected:
        if is_production(container.settings):
            logging.getLogger(__name__).error(
                "Telegram webhook secret is not configured in production"
            )
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)
        return
    if not provided or not hmac.compare_digest(
        provided.encode("utf-8"), expected.encode("utf-8")
    ):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)
