"""Admin service for operational reporting."""

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Protocol

from portrait_studio.services.maintenance import MaintenanceService

DEFAULT_LIST_LIMIT = 20
MAX_LIST_LIMIT = 100


class AdminRepository(Protocol):
    """Persistence interface for admin data."""

    def list_jobs(self, limit: int) -> list[dict[str, object]]:
        """Return recent jobs, newest first."""

    def list_images(self, limit: int) -> list[dict[str, object]]:
        """Return recent stored result images, newest first."""

    def list_sessions(self, limit: int) -> list[dict[str, object]]:
        """Return recently updated sessions."""

    def count_jobs_since(self, since: datetime) -> int:
        """Return the number of jobs created after a timestamp."""


@dataclass
class AdminService:
    """Service for admin endpoints."""

    admin_repository: AdminRepository
    maintenance_service: MaintenanceService

    def list_jobs(self, limit: int = DEFAULT_LIST_LIMIT) -> list[dict[str, object]]:
        """Return recent jobs without their callback secrets."""
        return [
            {key: value for key, value in job.items() if key != "webhook_secret"}
            for job in self.admin_repository.list_jobs(clamp_limit(limit))
        ]

    def list_images(self, limit: int = DEFAULT_LIST_LIMIT) -> list[dict[str, object]]:
        """Return recent stored images."""
        return self.admin_repository.list_images(clamp_limit(limit))

    def list_sessions(
        self, limit: int = DEFAULT_LIST_LIMIT
    ) -> list[dict[str, object]]:
        """Return recent sessions."""
        return self.admin_repository.list_sessions(clamp_limit(limit))

    def last_webhook(self, now: datetime | None = None) -> dict[str, object]:
        """Summarize the latest job and the last day's volume."""
        current = now or datetime.now(tz=UTC)
        latest = self.list_jobs(1)
        return {
            "last_job": latest[0] if latest else None,
            "jobs_last_24h": self.admin_repository.count_jobs_since(
                current - timedelta(hours=24)
            ),
        }

    def run_cleanup(self) -> dict[str, int]:
        """Run the retention sweep."""
        return self.maintenance_service.cleanup().as_dict()


def clamp_limit(limit: int) -> int:
    """Keep list sizes between 1 and the admin maximum."""
    return max(1, min(limit, MAX_LIST_LIMIT))
