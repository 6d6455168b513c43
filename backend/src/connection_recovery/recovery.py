"""
Automatic connection recovery.

The executor probes a connection, works out why it is failing, runs the
recovery strategy for that kind of failure and, once the connection is
back, requeues the work that piled up while it was down.
"""
import logging
import time
import uuid
from collections.abc import Callable

from .classification import ErrorClassifier, RecoveryStrategyResolver
from .config import RecoveryConfig
from .metrics import MetricsAggregator
from .requeue import PendingUploadRequeuer
from .store import BaseStore, make_key
from .types import (
    ErrorKind,
    HealthProbe,
    HealthStatus,
    Notifier,
    RecoveryResult,
    RecoveryStrategy,
    Scheduler,
    TokenRefreshCoordinator,
    WorkStore,
)

logger = logging.getLogger(__name__)

USER_ACTIONS: dict[ErrorKind, str] = {
    ErrorKind.TOKEN_EXPIRED: "Reconnect your account to grant fresh access",
    ErrorKind.INVALID_CREDENTIALS: "Reconnect your account with valid credentials",
    ErrorKind.INSUFFICIENT_PERMISSIONS: "Reconnect and grant the requested permissions",
    ErrorKind.FOLDER_ACCESS_DENIED: "Check that the target folder exists and is shared with this account",
    ErrorKind.STORAGE_QUOTA_EXCEEDED: "Free up space or upgrade your storage plan",
    ErrorKind.FILE_TOO_LARGE: "Upload a smaller file or split it into parts",
    ErrorKind.INVALID_FILE_TYPE: "Convert the file to a supported type",
}
DEFAULT_USER_ACTION = "Check your cloud storage connection settings"


def user_action_for(error_kind: ErrorKind | None) -> str:
    return USER_ACTIONS.get(error_kind, DEFAULT_USER_ACTION)


class RecoveryExecutor:
    """Runs one automatic recovery attempt for a (principal, provider) pair.

    ``attempt_automatic_recovery`` never raises; every outcome, including
    unexpected exceptions, comes back as a RecoveryResult.
    """

    def __init__(
        self,
        health_probe: HealthProbe,
        refresh_coordinator: TokenRefreshCoordinator,
        requeuer: PendingUploadRequeuer,
        store: BaseStore,
        classifier: ErrorClassifier | None = None,
        resolver: RecoveryStrategyResolver | None = None,
        notifier: Notifier | None = None,
        work_store: WorkStore | None = None,
        scheduler: Scheduler | None = None,
        metrics: MetricsAggregator | None = None,
        config: RecoveryConfig | None = None
    ):
        self.health_probe = health_probe
        self.refresh_coordinator = refresh_coordinator
        self.requeuer = requeuer
        self.store = store
        self.classifier = classifier or ErrorClassifier()
        self.resolver = resolver or RecoveryStrategyResolver()
        self.notifier = notifier
        self.work_store = work_store
        self.scheduler = scheduler
        self.metrics = metrics
        self.config = config or RecoveryConfig()

        self._executors: dict[RecoveryStrategy, Callable[[str | int, str, ErrorKind | None], RecoveryResult]] = {
            RecoveryStrategy.TOKEN_REFRESH: self._execute_token_refresh,
            RecoveryStrategy.NETWORK_RETRY: self._execute_live_api_test,
            RecoveryStrategy.QUOTA_WAIT: self._execute_live_api_test,
            RecoveryStrategy.SERVICE_RETRY: self._execute_live_api_test,
            RecoveryStrategy.HEALTH_CHECK_RETRY: self._execute_health_check,
            RecoveryStrategy.USER_INTERVENTION_REQUIRED: self._execute_user_intervention,
        }

    def attempt_automatic_recovery(self, principal_id: str | int, provider: str) -> RecoveryResult:
        operation_id = uuid.uuid4().hex
        started = time.monotonic()
        logger.info(f"[{operation_id}] Starting automatic recovery for principal {principal_id} on {provider}")

        try:
            health = self.health_probe.validate_connection_health(principal_id, provider)

            if health.is_healthy():
                logger.info(f"[{operation_id}] Connection already healthy, requeuing pending uploads")
                self.requeuer.retry_pending_uploads(principal_id, provider)
                self._clear_attempts(principal_id, provider)
                result = RecoveryResult(
                    success=True,
                    message="Connection is healthy, no recovery needed",
                    strategy=RecoveryStrategy.NO_ACTION_NEEDED,
                    operation_id=operation_id,
                )
            else:
                error_kind = self.determine_error_kind(principal_id, provider, health)
                strategy = self.resolver.resolve(error_kind)
                logger.info(
                    f"[{operation_id}] Error kind {error_kind.value if error_kind else 'none'}, "
                    f"using strategy {strategy.value}"
                )

                result = self.execute_strategy(strategy, principal_id, provider, error_kind)
                result.operation_id = operation_id

                if result.success:
                    self._handle_success(principal_id, provider, result)
                else:
                    self._handle_failure(principal_id, provider, strategy, result)

        except Exception as exc:
            logger.error(
                f"[{operation_id}] Automatic recovery failed for principal {principal_id} "
                f"on {provider}: {exc}",
                exc_info=True,
            )
            result = RecoveryResult(
                success=False,
                message=f"Recovery attempt failed: {exc}",
                strategy=RecoveryStrategy.UNKNOWN,
                cause=str(exc),
                operation_id=operation_id,
            )

        if self.metrics is not None:
            self.metrics.record_operation(
                provider,
                "recovery",
                (time.monotonic() - started) * 1000,
                result.success,
                principal_id=principal_id,
                error_kind=None if result.success else result.error_kind,
            )
        return result

    def determine_error_kind(
        self,
        principal_id: str | int,
        provider: str,
        health: HealthStatus
    ) -> ErrorKind | None:
        """Best available explanation of why the connection is failing."""
        if health.last_error_kind is not None:
            return health.last_error_kind

        classified = None
        if health.last_error_message:
            classified = self.classifier.classify(health.last_error_message, provider)
            if classified != ErrorKind.UNKNOWN:
                return classified

        if self.work_store is not None:
            recent = self.work_store.most_recent_error_kind(principal_id, provider)
            if recent is not None:
                return recent

        return classified

    def execute_strategy(
        self,
        strategy: RecoveryStrategy,
        principal_id: str | int,
        provider: str,
        error_kind: ErrorKind | None
    ) -> RecoveryResult:
        executor = self._executors.get(strategy)
        if executor is None:
            return RecoveryResult(
                success=False,
                message=f"Unsupported recovery strategy: {strategy.value}",
                strategy=strategy,
                error_kind=error_kind,
            )
        return executor(principal_id, provider, error_kind)

    def _execute_token_refresh(self, principal_id: str | int, provider: str, error_kind: ErrorKind | None) -> RecoveryResult:
        refresh = self.refresh_coordinator.coordinate_refresh(principal_id, provider)
        if refresh.is_successful:
            message = "Token was already valid" if refresh.was_already_valid else "Token refreshed successfully"
            return RecoveryResult(True, message, RecoveryStrategy.TOKEN_REFRESH, error_kind=error_kind)

        result = RecoveryResult(
            success=False,
            message=refresh.message or "Token refresh failed",
            strategy=RecoveryStrategy.TOKEN_REFRESH,
            cause=refresh.cause,
            error_kind=refresh.error_kind or error_kind,
        )
        if refresh.in_progress:
            # Another worker owns the refresh; its outcome decides what happens next.
            result.cause = "refresh_in_progress"
        return result

    def _execute_live_api_test(self, principal_id: str | int, provider: str, error_kind: ErrorKind | None) -> RecoveryResult:
        strategy = self.resolver.resolve(error_kind)
        test = self.health_probe.perform_live_api_test(principal_id, provider)
        if test.is_successful:
            return RecoveryResult(True, "Provider API is reachable again", strategy, error_kind=error_kind)
        return RecoveryResult(
            success=False,
            message=test.message or "Provider API test failed",
            strategy=strategy,
            error_kind=test.error_kind or error_kind,
        )

    def _execute_health_check(self, principal_id: str | int, provider: str, error_kind: ErrorKind | None) -> RecoveryResult:
        health = self.health_probe.validate_connection_health(principal_id, provider)
        if health.is_healthy():
            return RecoveryResult(
                True, "Connection healthy on re-check", RecoveryStrategy.HEALTH_CHECK_RETRY, error_kind=error_kind
            )
        return RecoveryResult(
            success=False,
            message=health.last_error_message or f"Connection still {health.status.value}",
            strategy=RecoveryStrategy.HEALTH_CHECK_RETRY,
            error_kind=health.last_error_kind or error_kind,
        )

    def _execute_user_intervention(self, principal_id: str | int, provider: str, error_kind: ErrorKind | None) -> RecoveryResult:
        action = user_action_for(error_kind)
        attempts = int(self.store.get(self._attempts_key(principal_id, provider), 0))
        self._notify_failure(principal_id, provider, error_kind, attempts, action)
        return RecoveryResult(
            success=False,
            message=f"User intervention required: {action}",
            strategy=RecoveryStrategy.USER_INTERVENTION_REQUIRED,
            error_kind=error_kind,
        )

    def _handle_success(self, principal_id: str | int, provider: str, result: RecoveryResult) -> None:
        logger.info(f"[{result.operation_id}] Recovery succeeded for principal {principal_id} on {provider}")
        self._clear_attempts(principal_id, provider)
        self.requeuer.retry_pending_uploads(principal_id, provider)
        if self.notifier is not None:
            try:
                self.notifier.send_connection_restored(principal_id, provider)
            except Exception as exc:
                logger.error(f"Failed to send connection restored notification: {exc}")

    def _handle_failure(
        self,
        principal_id: str | int,
        provider: str,
        strategy: RecoveryStrategy,
        result: RecoveryResult
    ) -> None:
        if strategy == RecoveryStrategy.USER_INTERVENTION_REQUIRED or result.cause == "refresh_in_progress":
            return

        error_kind = result.error_kind or ErrorKind.UNKNOWN
        attempts = self.store.increment(
            self._attempts_key(principal_id, provider), 1, self.config.attempts_ttl_seconds
        )

        if error_kind.requires_user_intervention:
            self._notify_failure(principal_id, provider, error_kind, attempts, result.message)
            return

        policy = self.resolver.retry_policy(error_kind)
        if policy.should_retry(error_kind, attempts):
            if self.scheduler is not None and self.config.automatic_retry_enabled:
                delay = policy.calculate_delay(attempts)
                self.scheduler.enqueue(
                    self.config.recovery_job,
                    {"principal_id": principal_id, "provider": provider},
                    delay,
                    self.config.recovery_lane,
                )
                result.retry_scheduled = True
                logger.info(
                    f"[{result.operation_id}] Retry {attempts + 1} for principal {principal_id} "
                    f"on {provider} scheduled in {delay:.0f}s ({policy.name})"
                )
            return

        result.retries_exhausted = True
        logger.error(
            f"[{result.operation_id}] Recovery retries exhausted for principal {principal_id} "
            f"on {provider} after {attempts} attempts: {error_kind.value}: {result.message}"
        )

    def _notify_failure(
        self,
        principal_id: str | int,
        provider: str,
        error_kind: ErrorKind | None,
        attempts: int,
        detail: str
    ) -> None:
        if self.notifier is None:
            logger.warning(f"No notifier configured; user not told about {provider} failure: {detail}")
            return
        try:
            self.notifier.send_refresh_failure(principal_id, provider, error_kind, attempts, detail)
        except Exception as exc:
            logger.error(f"Failed to send refresh failure notification: {exc}")

    def _clear_attempts(self, principal_id: str | int, provider: str) -> None:
        self.store.delete(self._attempts_key(principal_id, provider))

    @staticmethod
    def _attempts_key(principal_id: str | int, provider: str) -> str:
        return make_key("recovery_attempts", provider, principal_id)
