"""
Tests for RecoveryExecutor.
"""
from datetime import timedelta
from unittest.mock import Mock

from backend.src.connection_recovery.metrics import MetricsAggregator
from backend.src.connection_recovery.recovery import RecoveryExecutor, user_action_for
from backend.src.connection_recovery.requeue import PendingUploadRequeuer
from backend.src.connection_recovery.types import (
    ErrorKind,
    LiveTestResult,
    RecoveryStrategy,
    RefreshResult,
)

from conftest import FakeWorkItem, FakeWorkStore, failing_status, healthy_status

PROVIDER = "google-drive"
PRINCIPAL = 42


def enqueued(scheduler, job):
    return [call.args for call in scheduler.enqueue.call_args_list if call.args[0] == job]


class TestRecoveryExecutor:
    """Test cases for RecoveryExecutor."""

    def setup_method(self):
        self.probe = Mock()

    def make_executor(self, store, coordinator, notifier, scheduler, work_store=None, metrics=None):
        work_store = work_store or FakeWorkStore()
        return RecoveryExecutor(
            self.probe,
            coordinator,
            PendingUploadRequeuer(work_store, scheduler),
            store,
            notifier=notifier,
            work_store=work_store,
            scheduler=scheduler,
            metrics=metrics,
        )

    def test_healthy_connection_needs_no_action(self, store, clock, coordinator, notifier, scheduler):
        """Test a healthy connection skips refresh and requeues work."""
        self.probe.validate_connection_health.return_value = healthy_status()
        work_store = FakeWorkStore([
            FakeWorkItem(1, PROVIDER, clock.now),
            FakeWorkItem(2, PROVIDER, clock.now + timedelta(minutes=1)),
        ])
        executor = self.make_executor(store, coordinator, notifier, scheduler, work_store)

        result = executor.attempt_automatic_recovery(PRINCIPAL, PROVIDER)

        assert result.success is True
        assert result.strategy == RecoveryStrategy.NO_ACTION_NEEDED
        assert result.operation_id
        coordinator.coordinate_refresh.assert_not_called()
        assert len(enqueued(scheduler, "retry_pending_upload")) == 2

    def test_token_refresh_success(self, store, clock, coordinator, notifier, scheduler):
        self.probe.validate_connection_health.return_value = failing_status(error_kind=ErrorKind.TOKEN_EXPIRED)
        work_store = FakeWorkStore([FakeWorkItem(1, PROVIDER, clock.now)])
        executor = self.make_executor(store, coordinator, notifier, scheduler, work_store)

        result = executor.attempt_automatic_recovery(PRINCIPAL, PROVIDER)

        assert result.success is True
        assert result.strategy == RecoveryStrategy.TOKEN_REFRESH
        coordinator.coordinate_refresh.assert_called_once_with(PRINCIPAL, PROVIDER)
        notifier.send_connection_restored.assert_called_once_with(PRINCIPAL, PROVIDER)
        assert enqueued(scheduler, "retry_pending_upload") == [
            ("retry_pending_upload", {"upload_id": 1, "principal_id": PRINCIPAL, "provider": PROVIDER}, 0, "recovery"),
        ]

    def test_token_refresh_failure_notifies_user(self, store, coordinator, notifier, scheduler):
        """Test an expired token that cannot be refreshed asks the user to reconnect."""
        self.probe.validate_connection_health.return_value = failing_status(error_kind=ErrorKind.TOKEN_EXPIRED)
        coordinator.coordinate_refresh.return_value = RefreshResult(
            is_successful=False, message="invalid_grant", error_kind=ErrorKind.TOKEN_EXPIRED
        )
        executor = self.make_executor(store, coordinator, notifier, scheduler)

        result = executor.attempt_automatic_recovery(PRINCIPAL, PROVIDER)

        assert result.success is False
        assert result.retry_scheduled is False
        notifier.send_refresh_failure.assert_called_once_with(
            PRINCIPAL, PROVIDER, ErrorKind.TOKEN_EXPIRED, 1, "invalid_grant"
        )
        assert enqueued(scheduler, "attempt_connection_recovery") == []
        notifier.send_connection_restored.assert_not_called()

    def test_refresh_in_progress_is_left_alone(self, store, coordinator, notifier, scheduler):
        self.probe.validate_connection_health.return_value = failing_status(error_kind=ErrorKind.TOKEN_EXPIRED)
        coordinator.coordinate_refresh.return_value = RefreshResult(
            is_successful=False, message="Token refresh already in progress", in_progress=True
        )
        executor = self.make_executor(store, coordinator, notifier, scheduler)

        result = executor.attempt_automatic_recovery(PRINCIPAL, PROVIDER)

        assert result.success is False
        assert result.cause == "refresh_in_progress"
        notifier.send_refresh_failure.assert_not_called()
        scheduler.enqueue.assert_not_called()

    def test_network_retries_then_exhausts(self, store, coordinator, notifier, scheduler):
        """Test silent retries with growing delays until the attempt limit."""
        self.probe.validate_connection_health.return_value = failing_status(error_kind=ErrorKind.NETWORK_ERROR)
        self.probe.perform_live_api_test.return_value = LiveTestResult(
            False, "Connection refused", ErrorKind.NETWORK_ERROR
        )
        executor = self.make_executor(store, coordinator, notifier, scheduler)

        first = executor.attempt_automatic_recovery(PRINCIPAL, PROVIDER)
        second = executor.attempt_automatic_recovery(PRINCIPAL, PROVIDER)
        third = executor.attempt_automatic_recovery(PRINCIPAL, PROVIDER)

        assert first.strategy == RecoveryStrategy.NETWORK_RETRY
        assert first.retry_scheduled and second.retry_scheduled
        assert not third.retry_scheduled
        assert third.retries_exhausted is True
        assert enqueued(scheduler, "attempt_connection_recovery") == [
            ("attempt_connection_recovery", {"principal_id": PRINCIPAL, "provider": PROVIDER}, 30, "recovery"),
            ("attempt_connection_recovery", {"principal_id": PRINCIPAL, "provider": PROVIDER}, 60, "recovery"),
        ]
        notifier.send_refresh_failure.assert_not_called()
        coordinator.coordinate_refresh.assert_not_called()

    def test_user_intervention(self, store, coordinator, notifier, scheduler):
        """Test permission problems notify once and make no provider calls."""
        self.probe.validate_connection_health.return_value = failing_status(
            error_kind=ErrorKind.INSUFFICIENT_PERMISSIONS
        )
        executor = self.make_executor(store, coordinator, notifier, scheduler)

        result = executor.attempt_automatic_recovery(PRINCIPAL, PROVIDER)

        assert result.success is False
        assert result.strategy == RecoveryStrategy.USER_INTERVENTION_REQUIRED
        notifier.send_refresh_failure.assert_called_once_with(
            PRINCIPAL, PROVIDER, ErrorKind.INSUFFICIENT_PERMISSIONS, 0,
            user_action_for(ErrorKind.INSUFFICIENT_PERMISSIONS),
        )
        coordinator.coordinate_refresh.assert_not_called()
        self.probe.perform_live_api_test.assert_not_called()
        scheduler.enqueue.assert_not_called()

    def test_success_clears_attempts(self, store, coordinator, notifier, scheduler):
        self.probe.validate_connection_health.return_value = failing_status(error_kind=ErrorKind.SERVICE_UNAVAILABLE)
        self.probe.perform_live_api_test.side_effect = [
            LiveTestResult(False, "Service Unavailable"),
            LiveTestResult(True),
        ]
        executor = self.make_executor(store, coordinator, notifier, scheduler)

        failed = executor.attempt_automatic_recovery(PRINCIPAL, PROVIDER)
        assert failed.strategy == RecoveryStrategy.SERVICE_RETRY
        assert store.get(f"recovery_attempts:{PROVIDER}:{PRINCIPAL}") == 1

        recovered = executor.attempt_automatic_recovery(PRINCIPAL, PROVIDER)
        assert recovered.success is True
        assert store.get(f"recovery_attempts:{PROVIDER}:{PRINCIPAL}") is None

    def test_error_kind_from_message(self, store, coordinator, notifier, scheduler):
        self.probe.validate_connection_health.return_value = failing_status(message="Connection refused")
        self.probe.perform_live_api_test.return_value = LiveTestResult(True)
        executor = self.make_executor(store, coordinator, notifier, scheduler)

        result = executor.attempt_automatic_recovery(PRINCIPAL, PROVIDER)

        assert result.success is True
        assert result.strategy == RecoveryStrategy.NETWORK_RETRY

    def test_error_kind_from_recent_work(self, store, coordinator, notifier, scheduler):
        self.probe.validate_connection_health.return_value = failing_status(message="gibberish")
        self.probe.perform_live_api_test.return_value = LiveTestResult(True)
        work_store = FakeWorkStore(recent_kind=ErrorKind.API_QUOTA_EXCEEDED)
        executor = self.make_executor(store, coordinator, notifier, scheduler, work_store)

        health = failing_status(message="gibberish")
        assert executor.determine_error_kind(PRINCIPAL, PROVIDER, health) == ErrorKind.API_QUOTA_EXCEEDED
        assert executor.attempt_automatic_recovery(PRINCIPAL, PROVIDER).strategy == RecoveryStrategy.QUOTA_WAIT

    def test_no_clue_falls_back_to_health_check(self, store, coordinator, notifier, scheduler):
        self.probe.validate_connection_health.side_effect = [failing_status(), healthy_status()]
        executor = self.make_executor(store, coordinator, notifier, scheduler)

        result = executor.attempt_automatic_recovery(PRINCIPAL, PROVIDER)

        assert result.success is True
        assert result.strategy == RecoveryStrategy.HEALTH_CHECK_RETRY
        assert self.probe.validate_connection_health.call_count == 2

    def test_unexpected_exception_is_contained(self, store, coordinator, notifier, scheduler):
        self.probe.validate_connection_health.side_effect = RuntimeError("probe down")
        executor = self.make_executor(store, coordinator, notifier, scheduler)

        result = executor.attempt_automatic_recovery(PRINCIPAL, PROVIDER)

        assert result.success is False
        assert result.strategy == RecoveryStrategy.UNKNOWN
        assert result.cause == "probe down"

    def test_notifier_failure_does_not_fail_recovery(self, store, coordinator, notifier, scheduler):
        self.probe.validate_connection_health.return_value = failing_status(error_kind=ErrorKind.TOKEN_EXPIRED)
        notifier.send_connection_restored.side_effect = RuntimeError("smtp down")
        executor = self.make_executor(store, coordinator, notifier, scheduler)

        assert executor.attempt_automatic_recovery(PRINCIPAL, PROVIDER).success is True

    def test_requeue_failure_does_not_fail_recovery(self, store, coordinator, notifier, scheduler):
        """Test a broken work store after a successful refresh still reports success."""
        self.probe.validate_connection_health.return_value = failing_status(error_kind=ErrorKind.TOKEN_EXPIRED)
        work_store = FakeWorkStore()
        work_store.find_pending = Mock(side_effect=RuntimeError("database down"))
        executor = self.make_executor(store, coordinator, notifier, scheduler, work_store)

        result = executor.attempt_automatic_recovery(PRINCIPAL, PROVIDER)

        assert result.success is True
        assert result.strategy == RecoveryStrategy.TOKEN_REFRESH
        notifier.send_connection_restored.assert_called_once_with(PRINCIPAL, PROVIDER)

    def test_records_recovery_metrics(self, store, clock, coordinator, notifier, scheduler):
        self.probe.validate_connection_health.return_value = healthy_status()
        metrics = MetricsAggregator(store, clock=clock)
        executor = self.make_executor(store, coordinator, notifier, scheduler, metrics=metrics)

        executor.attempt_automatic_recovery(PRINCIPAL, PROVIDER)

        recovery = metrics.get_operation_metrics(PROVIDER, "recovery")
        assert recovery["total_operations"] == 1
        assert recovery["successful_operations"] == 1

    def test_records_failed_recovery_metrics(self, store, clock, coordinator, notifier, scheduler):
        self.probe.validate_connection_health.return_value = failing_status(error_kind=ErrorKind.NETWORK_ERROR)
        self.probe.perform_live_api_test.return_value = LiveTestResult(
            is_successful=False, message="Connection refused", error_kind=ErrorKind.NETWORK_ERROR
        )
        metrics = MetricsAggregator(store, clock=clock)
        executor = self.make_executor(store, coordinator, notifier, scheduler, metrics=metrics)

        executor.attempt_automatic_recovery(PRINCIPAL, PROVIDER)

        recovery = metrics.get_operation_metrics(PROVIDER, "recovery")
        assert recovery["total_operations"] == 1
        assert recovery["failed_operations"] == 1
