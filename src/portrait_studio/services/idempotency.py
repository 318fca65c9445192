"""Idempotency ledger for inbound Telegram updates."""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

logger = logging.getLogger(__name__)


class ProcessedUpdateRepository(Protocol):
    """Persistence interface for processed update markers."""

    def exists(self, update_id: int) -> bool:
        """Return true when the update id was recorded."""

    def insert_if_absent(self, update_id: int, chat_id: str | None, kind: str) -> bool:
        """Insert a marker; return true only if this call created it."""

    def delete_older_than(self, cutoff: datetime) -> int:
        """Delete markers processed before the cutoff and return the count."""


@dataclass
class IdempotencyLedger:
    """Gate that suppresses duplicate handling of the same update.

    Store failures fail open: they are logged and the update is processed.
    """

    repository: ProcessedUpdateRepository

    def has_been_processed(self, update_id: int) -> bool:
        """Return whether the update was already handled."""
        try:
            return self.repository.exists(update_id)
        except Exception:
            logger.exception(
                "Idempotency lookup failed", extra={"update_id": update_id}
            )
            return False

    def mark_processed(self, update_id: int, chat_id: str | None, kind: str) -> None:
        """Record the update; duplicates are silently ignored."""
        try:
            self.repository.insert_if_absent(update_id, chat_id, kind)
        except Exception:
            logger.exception(
                "Failed to record processed update", extra={"update_id": update_id}
            )

    def claim(self, update_id: int, chat_id: str | None, kind: str) -> bool:
        """Atomically record the update; false means another delivery owns it."""
        try:
            claimed = self.repository.insert_if_absent(update_id, chat_id, kind)
        except Exception:
            logger.exception(
                "Idempotency claim failed, processing anyway",
                extra={"update_id": update_id},
            )
            return True
        if not claimed:
            logger.info("Skipping duplicate update %s", update_id)
        return claimed

    def purge_older_than(self, cutoff: datetime) -> int:
        """Drop markers older than the retention cutoff."""
        return self.repository.delete_older_than(cutoff)
