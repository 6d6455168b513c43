"""
Shared type definitions for the connection recovery engine.
"""
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, NamedTuple, Protocol, runtime_checkable


Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Default clock used by every component."""
    return datetime.now(UTC)


class ErrorKindFacts(NamedTuple):
    """Static properties of an error kind."""
    recoverable: bool
    requires_user_intervention: bool
    max_retry_attempts: int


class ErrorKind(Enum):
    """Closed set of provider failure kinds."""
    TOKEN_EXPIRED = "token_expired"
    TOKEN_REFRESH_RATE_LIMITED = "token_refresh_rate_limited"
    INVALID_CREDENTIALS = "invalid_credentials"
    INSUFFICIENT_PERMISSIONS = "insufficient_permissions"
    API_QUOTA_EXCEEDED = "api_quota_exceeded"
    STORAGE_QUOTA_EXCEEDED = "storage_quota_exceeded"
    NETWORK_ERROR = "network_error"
    SERVICE_UNAVAILABLE = "service_unavailable"
    TIMEOUT = "timeout"
    FILE_NOT_FOUND = "file_not_found"
    FOLDER_ACCESS_DENIED = "folder_access_denied"
    INVALID_FILE_TYPE = "invalid_file_type"
    FILE_TOO_LARGE = "file_too_large"
    INVALID_FILE_CONTENT = "invalid_file_content"
    PROVIDER_NOT_CONFIGURED = "provider_not_configured"
    FEATURE_NOT_SUPPORTED = "feature_not_supported"
    UNKNOWN = "unknown"

    @property
    def facts(self) -> ErrorKindFacts:
        return ERROR_KIND_FACTS[self]

    @property
    def is_recoverable(self) -> bool:
        return self.facts.recoverable

    @property
    def requires_user_intervention(self) -> bool:
        return self.facts.requires_user_intervention

    @property
    def max_retry_attempts(self) -> int:
        return self.facts.max_retry_attempts

    @classmethod
    def recoverable_kinds(cls) -> frozenset["ErrorKind"]:
        return frozenset(kind for kind in cls if kind.is_recoverable)

    @classmethod
    def parse(cls, value: "ErrorKind | str | None") -> "ErrorKind | None":
        """Coerce a stored value back into an ErrorKind; unknown strings map to UNKNOWN."""
        if value is None or isinstance(value, ErrorKind):
            return value
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


ERROR_KIND_FACTS: dict[ErrorKind, ErrorKindFacts] = {
    ErrorKind.TOKEN_EXPIRED: ErrorKindFacts(True, True, 1),
    ErrorKind.TOKEN_REFRESH_RATE_LIMITED: ErrorKindFacts(True, False, 5),
    ErrorKind.INVALID_CREDENTIALS: ErrorKindFacts(False, True, 0),
    ErrorKind.INSUFFICIENT_PERMISSIONS: ErrorKindFacts(False, True, 0),
    ErrorKind.API_QUOTA_EXCEEDED: ErrorKindFacts(True, False, 5),
    ErrorKind.STORAGE_QUOTA_EXCEEDED: ErrorKindFacts(False, True, 0),
    ErrorKind.NETWORK_ERROR: ErrorKindFacts(True, False, 3),
    ErrorKind.SERVICE_UNAVAILABLE: ErrorKindFacts(True, False, 3),
    ErrorKind.TIMEOUT: ErrorKindFacts(True, False, 3),
    ErrorKind.FILE_NOT_FOUND: ErrorKindFacts(False, False, 0),
    ErrorKind.FOLDER_ACCESS_DENIED: ErrorKindFacts(False, True, 0),
    ErrorKind.INVALID_FILE_TYPE: ErrorKindFacts(False, True, 0),
    ErrorKind.FILE_TOO_LARGE: ErrorKindFacts(False, True, 0),
    ErrorKind.INVALID_FILE_CONTENT: ErrorKindFacts(False, True, 0),
    ErrorKind.PROVIDER_NOT_CONFIGURED: ErrorKindFacts(False, True, 0),
    ErrorKind.FEATURE_NOT_SUPPORTED: ErrorKindFacts(False, True, 0),
    ErrorKind.UNKNOWN: ErrorKindFacts(True, False, 1),
}


class RecoveryStrategy(Enum):
    """Recovery actions the executor knows how to perform."""
    NO_ACTION_NEEDED = "no_action_needed"
    TOKEN_REFRESH = "token_refresh"
    NETWORK_RETRY = "network_retry"
    QUOTA_WAIT = "quota_wait"
    SERVICE_RETRY = "service_retry"
    HEALTH_CHECK_RETRY = "health_check_retry"
    USER_INTERVENTION_REQUIRED = "user_intervention_required"
    UNKNOWN = "unknown"


class HealthState(Enum):
    """Connection health states."""
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"
    DISCONNECTED = "disconnected"


def _frozen_mapping(data: Mapping[str, Any] | None) -> Mapping[str, Any]:
    return MappingProxyType(dict(data or {}))


@dataclass(frozen=True)
class HealthStatus:
    """Snapshot of one principal's connection to one provider.

    Instances are never mutated; build a new one with ``dataclasses.replace``
    or ``connection_recovery.health.derive_health_status``.
    """
    provider: str
    status: HealthState
    last_successful_operation: datetime | None = None
    consecutive_failures: int = 0
    last_error_kind: ErrorKind | None = None
    last_error_message: str | None = None
    token_expires_at: datetime | None = None
    requires_reconnection: bool = False
    provider_specific_data: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(
            self, "provider_specific_data", _frozen_mapping(self.provider_specific_data)
        )

    def is_healthy(self) -> bool:
        return self.status == HealthState.HEALTHY


@dataclass
class RecoveryResult:
    """Outcome of one automatic recovery attempt."""
    success: bool
    message: str
    strategy: RecoveryStrategy
    cause: str | None = None
    error_kind: ErrorKind | None = None
    retry_scheduled: bool = False
    retries_exhausted: bool = False
    operation_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "message": self.message,
            "strategy": self.strategy.value,
            "cause": self.cause,
            "error_kind": self.error_kind.value if self.error_kind else None,
            "retry_scheduled": self.retry_scheduled,
            "retries_exhausted": self.retries_exhausted,
            "operation_id": self.operation_id,
        }


@dataclass
class RefreshResult:
    """Outcome reported by a token refresh coordinator."""
    is_successful: bool
    was_already_valid: bool = False
    message: str = ""
    error_kind: ErrorKind | None = None
    cause: str | None = None
    in_progress: bool = False


@dataclass
class LiveTestResult:
    """Outcome of a live provider API call."""
    is_successful: bool
    message: str = ""
    error_kind: ErrorKind | None = None


@dataclass
class MetricEvent:
    """Structured event handed to a MetricsSink."""
    provider: str
    operation: str
    outcome: str
    timestamp: datetime = field(default_factory=utc_now)
    principal_id: str | int | None = None
    error_kind: ErrorKind | None = None
    duration_ms: float | None = None
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "provider": self.provider,
            "principal_id": self.principal_id,
            "operation": self.operation,
            "error_kind": self.error_kind.value if self.error_kind else None,
            "duration_ms": self.duration_ms,
            "outcome": self.outcome,
            **self.details,
        }


# Collaborator contracts supplied by the host application.

class TokenRefreshCoordinator(Protocol):
    def coordinate_refresh(self, principal_id: str | int, provider: str) -> RefreshResult:
        ...


class HealthProbe(Protocol):
    def validate_connection_health(self, principal_id: str | int, provider: str) -> HealthStatus:
        ...

    def perform_live_api_test(self, principal_id: str | int, provider: str) -> LiveTestResult:
        ...


@runtime_checkable
class WorkItem(Protocol):
    id: Any
    provider: str
    created_at: datetime

    def local_source_exists(self) -> bool:
        ...

    def can_be_retried(self) -> bool:
        ...

    def mark_recovery_skipped(self, reason: str) -> None:
        ...


class WorkStore(Protocol):
    def find_pending(
        self,
        principal_id: str | int,
        provider: str,
        recoverable_kinds: frozenset[ErrorKind],
    ) -> list[WorkItem]:
        ...

    def most_recent_error_kind(self, principal_id: str | int, provider: str) -> ErrorKind | None:
        ...

    def record_recovery_attempt(self, upload_id: Any) -> None:
        ...

    def record_failure(self, upload_id: Any, error_kind: ErrorKind, message: str) -> None:
        ...


class Notifier(Protocol):
    def send_connection_restored(self, principal_id: str | int, provider: str) -> None:
        ...

    def send_refresh_failure(
        self,
        principal_id: str | int,
        provider: str,
        error_kind: ErrorKind | None,
        attempt_count: int,
        detail: str,
    ) -> None:
        ...

    def send_error_alert(
        self,
        principal_id: str | int,
        provider: str,
        alert_type: str,
        message: str,
        details: dict[str, Any],
    ) -> None:
        ...


class Scheduler(Protocol):
    def enqueue(self, job: str, payload: dict[str, Any], delay_seconds: float, lane: str) -> None:
        ...


class MetricsSink(Protocol):
    def record(self, event: MetricEvent) -> None:
        ...


class ExpiringCredential(Protocol):
    principal_id: str | int
    provider: str
    expires_at: datetime | None


class CredentialSource(Protocol):
    def find_expiring(self, within_minutes: int) -> list[ExpiringCredential]:
        ...
