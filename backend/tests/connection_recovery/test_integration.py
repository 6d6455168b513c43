"""
Tests for service wiring, the Celery scheduler and background tasks.
"""
from unittest.mock import Mock

import pytest
import requests
from sqlalchemy import create_engine

from backend.src.connection_recovery import tasks
from backend.src.connection_recovery.classification import ErrorClassifier
from backend.src.connection_recovery.config import Settings
from backend.src.connection_recovery.coordinator import SingleFlightRefreshCoordinator
from backend.src.connection_recovery.integration import (
    build_services,
    configure_services,
    get_services,
    reset_services,
)
from backend.src.connection_recovery.persistence import SQLAlchemyWorkStore
from backend.src.connection_recovery.requeue import PendingUploadRequeuer
from backend.src.connection_recovery.scheduling import CeleryScheduler
from backend.src.connection_recovery.types import ErrorKind, RecoveryResult, RecoveryStrategy

from conftest import FakeWorkStore, healthy_status


class TestCeleryScheduler:
    """Test cases for CeleryScheduler."""

    def test_enqueue_prefixes_task_name(self):
        app = Mock()
        CeleryScheduler(app).enqueue(
            "attempt_connection_recovery", {"principal_id": 42, "provider": "google-drive"}, 30, "recovery"
        )
        app.send_task.assert_called_once_with(
            "connection_recovery.attempt_connection_recovery",
            kwargs={"principal_id": 42, "provider": "google-drive"},
            countdown=30,
            queue="recovery",
        )

    def test_dotted_names_pass_through(self):
        app = Mock()
        CeleryScheduler(app).enqueue("uploads.retry", {}, -5, "recovery")
        app.send_task.assert_called_once_with("uploads.retry", kwargs={}, countdown=0, queue="recovery")


class TestBuildServices:
    """Test cases for build_services."""

    def test_wraps_raw_refresher(self, store):
        services = build_services(
            health_probe=Mock(),
            work_store=FakeWorkStore(),
            scheduler=Mock(),
            credential_source=Mock(),
            refresher=Mock(),
            store=store,
            settings=Settings(),
        )

        assert isinstance(services.executor.refresh_coordinator, SingleFlightRefreshCoordinator)
        assert services.batch.refresh_coordinator is services.executor.refresh_coordinator
        assert services.tracker.store is store
        assert services.metrics.store is store
        assert isinstance(services.work_store, FakeWorkStore)

    def test_requires_refresh(self, store):
        with pytest.raises(ValueError):
            build_services(Mock(), FakeWorkStore(), Mock(), Mock(), store=store, settings=Settings())

    def test_end_to_end_healthy_recovery(self, store):
        probe = Mock()
        probe.validate_connection_health.return_value = healthy_status()
        services = build_services(
            health_probe=probe,
            work_store=FakeWorkStore(),
            scheduler=Mock(),
            credential_source=Mock(),
            refresh_coordinator=Mock(),
            store=store,
            settings=Settings(),
            sink=Mock(),
        )

        result = services.executor.attempt_automatic_recovery(42, "google-drive")

        assert result.strategy == RecoveryStrategy.NO_ACTION_NEEDED
        assert services.metrics.get_operation_metrics("google-drive", "recovery")["total_operations"] == 1


class TestTasks:
    """Test cases for the Celery task bodies."""

    def setup_method(self):
        self.services = Mock()
        self.services.classifier = ErrorClassifier()
        configure_services(self.services)

    def teardown_method(self):
        reset_services()

    def test_services_must_be_configured(self):
        reset_services()
        with pytest.raises(RuntimeError):
            get_services()

    def test_attempt_connection_recovery(self):
        self.services.executor.attempt_automatic_recovery.return_value = RecoveryResult(
            True, "Connection is healthy, no recovery needed", RecoveryStrategy.NO_ACTION_NEEDED
        )

        result = tasks.attempt_connection_recovery(42, "google-drive")

        assert result["strategy"] == "no_action_needed"
        self.services.executor.attempt_automatic_recovery.assert_called_once_with(42, "google-drive")

    def test_retry_pending_upload_success(self):
        self.services.upload_handler = Mock()

        assert tasks.retry_pending_upload(5, 42, "google-drive") is True
        self.services.work_store.record_recovery_attempt.assert_called_once_with(5)
        self.services.upload_handler.assert_called_once_with(5, 42, "google-drive")
        self.services.tracker.track_success.assert_called_once_with("google-drive", 42, "upload")

    def test_retry_pending_upload_failure_is_tracked(self):
        self.services.upload_handler = Mock(side_effect=requests.ConnectionError("Connection refused"))

        with pytest.raises(requests.ConnectionError):
            tasks.retry_pending_upload(5, 42, "google-drive")

        args = self.services.tracker.track_error.call_args.args
        assert args[:4] == ("google-drive", 42, ErrorKind.NETWORK_ERROR, "upload")
        assert self.services.tracker.track_error.call_args.kwargs["context"] == {"upload_id": 5}
        self.services.work_store.record_failure.assert_called_once_with(
            5, ErrorKind.NETWORK_ERROR, "Connection refused"
        )

    def test_retry_pending_upload_without_handler(self):
        self.services.upload_handler = None
        assert tasks.retry_pending_upload(5, 42, "google-drive") is False

    def test_failing_upload_stops_being_requeued(self, tmp_path):
        """Test an upload that keeps failing drops out once its retry limit is reached."""
        engine = create_engine(f"sqlite:///{tmp_path / 'uploads.db'}")
        work_store = SQLAlchemyWorkStore(engine)
        work_store.create_schema()
        source = tmp_path / "report.pdf"
        source.write_bytes(b"%PDF-1.7")
        upload_id = work_store.add_pending(42, "google-drive", str(source))
        requeuer = PendingUploadRequeuer(work_store, Mock())
        self.services.work_store = work_store
        self.services.upload_handler = Mock(side_effect=requests.ConnectionError("Connection refused"))

        runs = 0
        for _ in range(10):
            if requeuer.retry_pending_uploads(42, "google-drive").dispatched_ids != [upload_id]:
                break
            runs += 1
            with pytest.raises(requests.ConnectionError):
                tasks.retry_pending_upload(upload_id, 42, "google-drive")

        model = work_store.get(upload_id)
        assert runs == 3
        assert model.retry_count == 3
        assert model.recovery_attempts == 3
        assert model.error_kind == "network_error"
        assert requeuer.find_retryable(42, "google-drive") == []
        assert work_store.most_recent_error_kind(42, "google-drive") == ErrorKind.NETWORK_ERROR
        engine.dispose()
