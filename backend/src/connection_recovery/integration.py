"""
Wiring for the connection recovery engine.

The host application supplies its provider adapters (health probe, token
refresh, work store, notifications, expiring credential lookup) once at
startup through ``configure_services``; background tasks then fetch the
assembled components with ``get_services``.
"""
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from .batch import BatchRefreshOrchestrator
from .classification import ErrorClassifier, RecoveryStrategyResolver
from .config import Settings
from .coordinator import SingleFlightRefreshCoordinator, TokenRefresher
from .metrics import LoggingMetricsSink, MetricsAggregator
from .recovery import RecoveryExecutor
from .requeue import PendingUploadRequeuer
from .store import BaseStore, create_store
from .tracking import ErrorTracker
from .types import (
    CredentialSource,
    HealthProbe,
    MetricsSink,
    Notifier,
    Scheduler,
    TokenRefreshCoordinator,
    WorkStore,
)

logger = logging.getLogger(__name__)


@dataclass
class RecoveryServices:
    """All engine components sharing one store and configuration."""
    settings: Settings
    store: BaseStore
    classifier: ErrorClassifier
    resolver: RecoveryStrategyResolver
    tracker: ErrorTracker
    metrics: MetricsAggregator
    requeuer: PendingUploadRequeuer
    executor: RecoveryExecutor
    batch: BatchRefreshOrchestrator
    work_store: WorkStore | None = None
    upload_handler: Callable[[Any, str | int, str], None] | None = None


def build_services(
    health_probe: HealthProbe,
    work_store: WorkStore,
    scheduler: Scheduler,
    credential_source: CredentialSource,
    refresh_coordinator: TokenRefreshCoordinator | None = None,
    refresher: TokenRefresher | None = None,
    notifier: Notifier | None = None,
    sink: MetricsSink | None = None,
    store: BaseStore | None = None,
    settings: Settings | None = None,
    upload_handler: Callable[[Any, str | int, str], None] | None = None
) -> RecoveryServices:
    """Assemble the engine.

    Pass either a ready ``refresh_coordinator`` or a raw ``refresher``,
    which is then wrapped in a single-flight coordinator. ``upload_handler``
    performs one requeued upload given (upload_id, principal_id, provider).
    """
    settings = settings or Settings.from_env()
    store = store or create_store(settings.store)
    sink = sink or LoggingMetricsSink()
    classifier = ErrorClassifier()
    resolver = RecoveryStrategyResolver()

    if refresh_coordinator is None:
        if refresher is None:
            raise ValueError("Either refresh_coordinator or refresher is required")
        refresh_coordinator = SingleFlightRefreshCoordinator(store, refresher, classifier)

    metrics = MetricsAggregator(store, settings.metrics, sink)
    tracker = ErrorTracker(store, settings.alerts, notifier, sink)
    requeuer = PendingUploadRequeuer(work_store, scheduler, settings.recovery)
    executor = RecoveryExecutor(
        health_probe=health_probe,
        refresh_coordinator=refresh_coordinator,
        requeuer=requeuer,
        store=store,
        classifier=classifier,
        resolver=resolver,
        notifier=notifier,
        work_store=work_store,
        scheduler=scheduler,
        metrics=metrics,
        config=settings.recovery,
    )
    batch = BatchRefreshOrchestrator(
        store=store,
        credential_source=credential_source,
        refresh_coordinator=refresh_coordinator,
        metrics=metrics,
        health_probe=health_probe,
        classifier=classifier,
        config=settings.batch,
    )

    logger.info(f"Connection recovery engine initialized with {settings.store.backend} store")
    return RecoveryServices(
        settings=settings,
        store=store,
        classifier=classifier,
        resolver=resolver,
        tracker=tracker,
        metrics=metrics,
        requeuer=requeuer,
        executor=executor,
        batch=batch,
        work_store=work_store,
        upload_handler=upload_handler,
    )


_services: RecoveryServices | None = None


def configure_services(services: RecoveryServices) -> None:
    global _services
    _services = services


def get_services() -> RecoveryServices:
    if _services is None:
        raise RuntimeError("Connection recovery services are not configured; call configure_services() first")
    return _services


def reset_services() -> None:
    """Forget configured services. Useful for testing."""
    global _services
    _services = None
