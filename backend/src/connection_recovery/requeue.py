"""
Requeue pending uploads once a connection is healthy again.
"""
import logging
from dataclasses import dataclass, field
from typing import Any

from .config import RecoveryConfig
from .types import ErrorKind, Scheduler, WorkItem, WorkStore

logger = logging.getLogger(__name__)

MISSING_SOURCE_REASON = "Local file no longer exists"


@dataclass
class RequeueSummary:
    """What one requeue pass did."""
    principal_id: str | int
    provider: str
    found: int = 0
    dispatched: int = 0
    skipped: int = 0
    batches: int = 0
    dispatched_ids: list[Any] = field(default_factory=list)
    skipped_ids: list[Any] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "principal_id": self.principal_id,
            "provider": self.provider,
            "found": self.found,
            "dispatched": self.dispatched,
            "skipped": self.skipped,
            "batches": self.batches,
            "errors": list(self.errors),
        }


def chunked(items: list, size: int) -> list[list]:
    return [items[start:start + size] for start in range(0, len(items), size)]


class PendingUploadRequeuer:
    """Dispatches a principal's pending uploads in delayed batches.

    Items go out oldest first. Each batch is delayed a further
    ``requeue_batch_delay_seconds`` so a freshly recovered connection is
    not flooded. Items whose local source disappeared are marked skipped
    instead of being dispatched.
    """

    def __init__(self, work_store: WorkStore, scheduler: Scheduler, config: RecoveryConfig | None = None):
        self.work_store = work_store
        self.scheduler = scheduler
        self.config = config or RecoveryConfig()

    def find_retryable(self, principal_id: str | int, provider: str) -> list[WorkItem]:
        items = self.work_store.find_pending(principal_id, provider, ErrorKind.recoverable_kinds())
        retryable = [item for item in items if item.can_be_retried()]
        return sorted(retryable, key=lambda item: item.created_at)

    def retry_pending_uploads(self, principal_id: str | int, provider: str) -> RequeueSummary:
        summary = RequeueSummary(principal_id=principal_id, provider=provider)
        try:
            items = self.find_retryable(principal_id, provider)
        except Exception as exc:
            logger.error(f"Failed to load pending uploads for principal {principal_id} on {provider}: {exc}")
            summary.errors.append(str(exc))
            return summary
        summary.found = len(items)

        if not items:
            logger.info(f"No pending uploads to retry for principal {principal_id} on {provider}")
            return summary

        for batch_index, batch in enumerate(chunked(items, self.config.requeue_batch_size)):
            delay = batch_index * self.config.requeue_batch_delay_seconds
            summary.batches += 1
            for item in batch:
                self._dispatch(item, principal_id, provider, delay, summary)

        logger.info(
            f"Requeued {summary.dispatched} pending uploads for principal {principal_id} on {provider} "
            f"in {summary.batches} batches ({summary.skipped} skipped)"
        )
        return summary

    def _dispatch(
        self,
        item: WorkItem,
        principal_id: str | int,
        provider: str,
        delay: int,
        summary: RequeueSummary
    ) -> None:
        try:
            if not item.local_source_exists():
                item.mark_recovery_skipped(MISSING_SOURCE_REASON)
                summary.skipped += 1
                summary.skipped_ids.append(item.id)
                logger.warning(f"Skipping upload {item.id}: {MISSING_SOURCE_REASON}")
                return
        except Exception as exc:
            logger.error(f"Failed to check source of upload {item.id}: {exc}")
            summary.errors.append(f"{item.id}: {exc}")
            return

        try:
            self.scheduler.enqueue(
                self.config.upload_job,
                {"upload_id": item.id, "principal_id": principal_id, "provider": provider},
                delay,
                self.config.recovery_lane,
            )
        except Exception as exc:
            logger.error(f"Failed to requeue upload {item.id}: {exc}")
            summary.errors.append(f"{item.id}: {exc}")
            return

        summary.dispatched += 1
        summary.dispatched_ids.append(item.id)
