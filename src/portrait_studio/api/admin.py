"""Admin API endpoints with simple token auth."""

from __future__ import annotations

import hmac
from typing import TYPE_CHECKING

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status

from portrait_studio.services.admin import DEFAULT_LIST_LIMIT

if TYPE_CHECKING:
    from portrait_studio.containers import AppContainer

router = APIRouter(prefix="/admin", tags=["admin"])


def _get_admin_token(request: Request) -> str | None:
    container: AppContainer = request.app.state.container
    return container.settings.admin_token


async def require_admin(
    x_admin_token: str | None = Header(default=None),
    admin_token: str | None = Depends(_get_admin_token),
) -> None:
    """Ensure requests include a valid admin token."""
    if (
        not admin_token
        or not x_admin_token
        or not hmac.compare_digest(
            x_admin_token.encode("utf-8"), admin_token.encode("utf-8")
        )
    ):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)


@router.get("/health", dependencies=[Depends(require_admin)])
async def admin_health() -> dict[str, str]:
    """Admin health check endpoint."""
    return {"status": "ok"}


@router.get("/jobs", dependencies=[Depends(require_admin)])
async def list_jobs(
    request: Request, limit: int = DEFAULT_LIST_LIMIT
) -> dict[str, object]:
    """Return recent generation jobs."""
    container: AppContainer = request.app.state.container
    return {"jobs": container.admin_service.list_jobs(limit)}


@router.get("/images", dependencies=[Depends(require_admin)])
async def list_images(
    request: Request, limit: int = DEFAULT_LIST_LIMIT
) -> dict[str, object]:
    """Return recently stored result images."""
    container: AppContainer = request.app.state.container
    return {"images": container.admin_service.list_images(limit)}


@router.get("/sessions", dependencies=[Depends(require_admin)])
async def list_sessions(
    request: Request, limit: int = DEFAULT_LIST_LIMIT
) -> dict[str, object]:
    """Return recent portrait sessions."""
    container: AppContainer = request.app.state.container
    return {"sessions": container.admin_service.list_sessions(limit)}


@router.get("/last-webhook", dependencies=[Depends(require_admin)])
async def last_webhook(request: Request) -> dict[str, object]:
    """Return the latest job and the job count for the last 24 hours."""
    container: AppContainer = request.app.state.container
    return container.admin_service.last_webhook()


@router.post("/maintenance/cleanup", dependencies=[Depends(require_admin)])
async def run_cleanup(request: Request) -> dict[str, object]:
    """Delete processed updates and result images past retention."""
    container: AppContainer = request.app.state.container
    return {"cleanup": container.admin_service.run_cleanup()}
