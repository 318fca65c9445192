"""Retention sweep for processed updates and stored results."""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from portrait_studio.adapters.supabase_storage import ObjectStorage
from portrait_studio.services.idempotency import IdempotencyLedger
from portrait_studio.services.results import ImageRepository

logger = logging.getLogger(__name__)

CLEANUP_BATCH_SIZE = 100


@dataclass(frozen=True)
class CleanupReport:
    """Counts of records removed by one sweep."""

    processed_updates_deleted: int
    images_deleted: int
    storage_errors: int

    def as_dict(self) -> dict[str, int]:
        """Serialize for the admin API."""
        return {
            "processed_updates_deleted": self.processed_updates_deleted,
            "images_deleted": self.images_deleted,
            "storage_errors": self.storage_errors,
        }


@dataclass
class MaintenanceService:
    """Deletes data past its retention window."""

    ledger: IdempotencyLedger
    image_repository: ImageRepository
    storage: ObjectStorage
    processed_update_retention_days: int = 7
    batch_size: int = CLEANUP_BATCH_SIZE

    def cleanup(self, now: datetime | None = None) -> CleanupReport:
        """Run one sweep and report what was removed."""
        current = now or datetime.now(tz=UTC)
        updates_deleted = self.ledger.purge_older_than(
            current - timedelta(days=self.processed_update_retention_days)
        )

        images_deleted = 0
        storage_errors = 0
        while True:
            expired = self.image_repository.list_expired(current, self.batch_size)
            if not expired:
                break
            for image in expired:
                try:
                    self.storage.delete(image.storage_path, bucket=image.storage_bucket)
                except Exception:
                    storage_errors += 1
                    logger.exception(
                        "Failed to delete stored image %s", image.storage_path
                    )
            removed = self.image_repository.delete_images([image.id for image in expired])
            images_deleted += removed
            if removed == 0 or len(expired) < self.batch_size:
                break

        logger.info(
            "Cleanup removed %d processed updates and %d images",
            updates_deleted,
            images_deleted,
        )
        return CleanupReport(
            processed_updates_deleted=updates_deleted,
            images_deleted=images_deleted,
            storage_errors=storage_errors,
        )
