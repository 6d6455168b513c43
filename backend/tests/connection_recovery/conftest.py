"""
Shared fixtures and fakes for connection recovery tests.
"""
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from unittest.mock import Mock

import pytest

from backend.src.connection_recovery.store import MemoryStore
from backend.src.connection_recovery.types import (
    ErrorKind,
    HealthState,
    HealthStatus,
    RefreshResult,
)


class FakeClock:
    """Controllable clock; call it to read the current time."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2026, 3, 10, 12, 30, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@dataclass
class FakeWorkItem:
    id: int
    provider: str
    created_at: datetime
    source_exists: bool = True
    retryable: bool = True
    skipped_reason: str | None = None

    def local_source_exists(self) -> bool:
        return self.source_exists

    def can_be_retried(self) -> bool:
        return self.retryable

    def mark_recovery_skipped(self, reason: str) -> None:
        self.skipped_reason = reason


class FakeWorkStore:
    def __init__(self, items=None, recent_kind=None):
        self.items = list(items or [])
        self.recent_kind = recent_kind
        self.requested_kinds = None

    def find_pending(self, principal_id, provider, recoverable_kinds):
        self.requested_kinds = recoverable_kinds
        return [
            item for item in self.items
            if item.provider == provider and item.skipped_reason is None
        ]

    def most_recent_error_kind(self, principal_id, provider):
        return self.recent_kind

    def record_recovery_attempt(self, upload_id):
        pass

    def record_failure(self, upload_id, error_kind, message):
        pass


def healthy_status(provider: str = "google-drive") -> HealthStatus:
    return HealthStatus(provider=provider, status=HealthState.HEALTHY)


def failing_status(
    provider: str = "google-drive",
    error_kind: ErrorKind | None = None,
    message: str | None = None,
    failures: int = 1
) -> HealthStatus:
    return HealthStatus(
        provider=provider,
        status=HealthState.DEGRADED,
        consecutive_failures=failures,
        last_error_kind=error_kind,
        last_error_message=message,
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return MemoryStore(clock=clock)


@pytest.fixture
def notifier():
    return Mock()


@pytest.fixture
def scheduler():
    return Mock()


@pytest.fixture
def coordinator():
    coordinator = Mock()
    coordinator.coordinate_refresh.return_value = RefreshResult(
        is_successful=True, message="Token refreshed successfully"
    )
    return coordinator
