"""
Scheduled batch refresh of credentials that are about to expire.
"""
import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from .classification import ErrorClassifier
from .config import BatchRefreshConfig
from .exceptions import ConfigurationError
from .metrics import MetricsAggregator
from .requeue import chunked
from .store import BaseStore, make_key
from .types import Clock, CredentialSource, HealthProbe, TokenRefreshCoordinator, utc_now

logger = logging.getLogger(__name__)

RESULTS_NAMESPACE = "batch_refresh"


class BatchStatus:
    COMPLETED = "completed"
    CIRCUIT_BROKEN = "circuit_broken"
    ALREADY_RUNNING = "already_running"
    FAILED = "failed"


@dataclass
class BatchRun:
    """Summary of one batch refresh run."""
    batch_id: str
    status: str = BatchStatus.COMPLETED
    message: str = ""
    dry_run: bool = False
    total_tokens: int = 0
    processed: int = 0
    successful: int = 0
    failed: int = 0
    skipped: int = 0
    batches_processed: int = 0
    success_rate: float = 0.0
    circuit_broken: bool = False
    processing_time_ms: float = 0.0
    completed_at: datetime | None = None
    errors: list[dict[str, Any]] = field(default_factory=list)

    @property
    def failure_rate(self) -> float:
        return self.failed / self.processed if self.processed else 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "batch_id": self.batch_id,
            "status": self.status,
            "message": self.message,
            "dry_run": self.dry_run,
            "total_tokens": self.total_tokens,
            "processed": self.processed,
            "successful": self.successful,
            "failed": self.failed,
            "skipped": self.skipped,
            "batches_processed": self.batches_processed,
            "success_rate": self.success_rate,
            "circuit_broken": self.circuit_broken,
            "processing_time_ms": self.processing_time_ms,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "errors": list(self.errors),
        }


class BatchRefreshOrchestrator:
    """Refreshes expiring credentials in chunks under a global lock.

    Only one run proceeds at a time; a run that finds the lock held returns
    immediately with status ``already_running``. The lock expires after the
    batch timeout so a crashed run cannot block later ones. Processing
    stops early once the cumulative failure rate exceeds the configured
    maximum over a large enough sample.
    """

    def __init__(
        self,
        store: BaseStore,
        credential_source: CredentialSource,
        refresh_coordinator: TokenRefreshCoordinator,
        metrics: MetricsAggregator | None = None,
        health_probe: HealthProbe | None = None,
        classifier: ErrorClassifier | None = None,
        config: BatchRefreshConfig | None = None,
        clock: Clock = utc_now
    ):
        self.store = store
        self.credential_source = credential_source
        self.refresh_coordinator = refresh_coordinator
        self.metrics = metrics
        self.health_probe = health_probe
        self.classifier = classifier or ErrorClassifier()
        self.config = config or BatchRefreshConfig()
        self.clock = clock

    def process_batch_refresh(
        self,
        expiration_minutes: int | None = None,
        batch_size: int | None = None,
        dry_run: bool = False
    ) -> BatchRun:
        if expiration_minutes is None:
            expiration_minutes = self.config.expiration_window_minutes
        if batch_size is None:
            batch_size = self.config.batch_size
        run = BatchRun(batch_id=f"batch_{uuid.uuid4().hex}", dry_run=dry_run)
        started = time.monotonic()

        lock = self.store.lock(self.config.lock_name, self.config.batch_timeout_seconds)
        try:
            acquired = lock.acquire()
        except Exception as exc:
            logger.error(f"Batch {run.batch_id} could not take the refresh lock: {exc}")
            self._fail(run, exc)
            return self._finish(run, started)

        if not acquired:
            logger.warning("Batch token refresh already running, skipping this run")
            run.status = BatchStatus.ALREADY_RUNNING
            run.message = "Batch refresh already running"
            return run

        try:
            if batch_size < 1:
                raise ConfigurationError(f"batch_size must be at least 1, got {batch_size}", "BATCH_SIZE")

            credentials = self.credential_source.find_expiring(expiration_minutes)
            run.total_tokens = len(credentials)
            logger.info(
                f"Batch {run.batch_id}: {run.total_tokens} credentials expiring within "
                f"{expiration_minutes} minutes (batch size {batch_size}, dry_run={dry_run})"
            )

            for chunk in chunked(credentials, batch_size):
                self._process_chunk(chunk, run, dry_run)
                run.batches_processed += 1

                if self._should_stop(run):
                    run.circuit_broken = True
                    run.status = BatchStatus.CIRCUIT_BROKEN
                    run.message = (
                        f"Stopped after {run.processed} credentials: failure rate "
                        f"{run.failure_rate:.0%} exceeds {self.config.max_failure_rate:.0%}"
                    )
                    logger.error(f"Batch {run.batch_id}: {run.message}")
                    break
            else:
                run.message = f"Processed {run.processed} of {run.total_tokens} credentials"

        except Exception as exc:
            logger.error(f"Batch {run.batch_id} failed: {exc}", exc_info=True)
            self._fail(run, exc)
        finally:
            self._release(lock)

        return self._finish(run, started)

    def process_batch_health_validation(
        self,
        principal_ids: list[str | int],
        provider: str,
        batch_size: int | None = None
    ) -> dict[str, Any]:
        """Probe many connections for one provider, chunk by chunk."""
        if self.health_probe is None:
            raise ValueError("A health probe is required for batch health validation")

        if batch_size is None:
            batch_size = self.config.batch_size
        if batch_size < 1:
            raise ValueError(f"batch_size must be at least 1, got {batch_size}")
        summary: dict[str, Any] = {
            "provider": provider,
            "total": len(principal_ids),
            "healthy": 0,
            "unhealthy": 0,
            "errors": 0,
            "results": {},
        }

        for chunk in chunked(list(principal_ids), batch_size):
            for principal_id in chunk:
                try:
                    health = self.health_probe.validate_connection_health(principal_id, provider)
                except Exception as exc:
                    logger.warning(f"Health validation failed for principal {principal_id} on {provider}: {exc}")
                    summary["errors"] += 1
                    summary["results"][principal_id] = {"status": "error", "error": str(exc)}
                    continue

                if health.is_healthy():
                    summary["healthy"] += 1
                else:
                    summary["unhealthy"] += 1
                summary["results"][principal_id] = {
                    "status": health.status.value,
                    "consecutive_failures": health.consecutive_failures,
                    "requires_reconnection": health.requires_reconnection,
                }

        logger.info(
            f"Batch health validation on {provider}: {summary['healthy']} healthy, "
            f"{summary['unhealthy']} unhealthy, {summary['errors']} errors"
        )
        return summary

    def get_recent_batch_results(self, hours: int = 24) -> list[dict[str, Any]]:
        """Cached run summaries completed within ``hours``, newest first."""
        cutoff = self.clock() - timedelta(hours=hours)
        results = []
        for key in self.store.keys(make_key(RESULTS_NAMESPACE, "results", "")):
            result = self.store.get(key)
            if not result or not result.get("completed_at"):
                continue
            if datetime.fromisoformat(result["completed_at"]) >= cutoff:
                results.append(result)
        return sorted(results, key=lambda result: result["completed_at"], reverse=True)

    def get_batch_processing_stats(self, hours: int = 24) -> dict[str, Any]:
        results = self.get_recent_batch_results(hours)
        processed = sum(result["processed"] for result in results)
        successful = sum(result["successful"] for result in results)
        return {
            "runs": len(results),
            "tokens_processed": processed,
            "tokens_successful": successful,
            "tokens_failed": sum(result["failed"] for result in results),
            "circuit_breaks": sum(1 for result in results if result["circuit_broken"]),
            "success_rate": successful / processed * 100 if processed else 0.0,
            "avg_processing_time_ms": (
                sum(result["processing_time_ms"] for result in results) / len(results) if results else 0.0
            ),
            "is_running": self.store.has(self.config.lock_name),
        }

    def _process_chunk(self, chunk: list, run: BatchRun, dry_run: bool) -> None:
        for credential in chunk:
            run.processed += 1
            if dry_run:
                run.successful += 1
                continue

            principal_id, provider = credential.principal_id, credential.provider
            try:
                result = self.refresh_coordinator.coordinate_refresh(principal_id, provider)
            except Exception as exc:
                error_kind = self.classifier.classify(exc, provider)
                logger.warning(f"Refresh raised for principal {principal_id} on {provider}: {exc}")
                run.failed += 1
                run.errors.append({
                    "principal_id": principal_id,
                    "provider": provider,
                    "error": str(exc),
                    "error_kind": error_kind.value,
                })
                continue

            if result.is_successful:
                run.successful += 1
            elif result.in_progress:
                run.skipped += 1
            else:
                run.failed += 1
                run.errors.append({
                    "principal_id": principal_id,
                    "provider": provider,
                    "error": result.message,
                    "error_kind": result.error_kind.value if result.error_kind else None,
                })

    def _should_stop(self, run: BatchRun) -> bool:
        return (
            run.processed >= self.config.min_sample_size
            and run.failure_rate > self.config.max_failure_rate
        )

    def _fail(self, run: BatchRun, exc: Exception) -> None:
        run.status = BatchStatus.FAILED
        run.message = f"Batch refresh failed: {exc}"
        run.errors.append({"error": str(exc)})

    def _release(self, lock) -> None:
        try:
            lock.release()
        except Exception as exc:
            logger.error(f"Failed to release batch lock {lock.name}: {exc}")

    def _finish(self, run: BatchRun, started: float) -> BatchRun:
        run.success_rate = run.successful / run.processed * 100 if run.processed else 0.0
        run.processing_time_ms = (time.monotonic() - started) * 1000
        run.completed_at = self.clock()
        self._record(run)
        return run

    def _record(self, run: BatchRun) -> None:
        summary = run.to_dict()
        try:
            self.store.put(
                make_key(RESULTS_NAMESPACE, "results", run.batch_id), summary, self.config.results_ttl_seconds
            )
            if self.metrics is not None:
                self.metrics.record_batch_run(summary)
        except Exception as exc:
            logger.error(f"Failed to record batch {run.batch_id} results: {exc}")
        logger.info(
            f"Batch {run.batch_id} {run.status}: {run.successful} successful, {run.failed} failed, "
            f"{run.skipped} skipped in {run.batches_processed} batches ({run.processing_time_ms:.0f}ms)"
        )
