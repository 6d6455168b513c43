"""
Configuration for the connection recovery engine.

Every setting has a default and can be overridden through a
``CONNECTION_RECOVERY_*`` environment variable via ``Settings.from_env()``.
"""
import os
from collections.abc import Mapping
from dataclasses import dataclass, field

from .exceptions import ConfigurationError

ENV_PREFIX = "CONNECTION_RECOVERY_"


def _env(environ: Mapping[str, str], name: str, default, cast=str):
    raw = environ.get(ENV_PREFIX + name)
    if raw is None or raw == "":
        return default
    if cast is bool:
        return raw.strip().lower() in ("1", "true", "yes", "on")
    try:
        return cast(raw)
    except ValueError as exc:
        raise ConfigurationError(
            f"Invalid value for {ENV_PREFIX + name}: {raw!r}", setting=name
        ) from exc


@dataclass
class RecoveryConfig:
    """Automatic recovery and pending upload requeue settings."""
    requeue_batch_size: int = 10
    requeue_batch_delay_seconds: int = 30
    recovery_lane: str = "recovery"
    upload_job: str = "retry_pending_upload"
    recovery_job: str = "attempt_connection_recovery"
    automatic_retry_enabled: bool = True
    attempts_ttl_seconds: int = 86400

    def __post_init__(self):
        if self.requeue_batch_size < 1:
            raise ConfigurationError("requeue_batch_size must be positive", "requeue_batch_size")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "RecoveryConfig":
        environ = os.environ if environ is None else environ
        return cls(
            requeue_batch_size=_env(environ, "REQUEUE_BATCH_SIZE", cls.requeue_batch_size, int),
            requeue_batch_delay_seconds=_env(
                environ, "REQUEUE_BATCH_DELAY", cls.requeue_batch_delay_seconds, int
            ),
            recovery_lane=_env(environ, "RECOVERY_QUEUE", cls.recovery_lane),
            automatic_retry_enabled=_env(
                environ, "AUTOMATIC_RETRY", cls.automatic_retry_enabled, bool
            ),
        )


@dataclass
class BatchRefreshConfig:
    """Batch token refresh settings."""
    batch_size: int = 20
    batch_timeout_seconds: int = 300
    max_failure_rate: float = 0.3
    min_sample_size: int = 10
    results_ttl_seconds: int = 1800
    expiration_window_minutes: int = 30
    lock_name: str = "batch_refresh:processing"

    def __post_init__(self):
        if self.batch_size < 1:
            raise ConfigurationError("batch_size must be positive", "batch_size")
        if not 0.0 <= self.max_failure_rate <= 1.0:
            raise ConfigurationError("max_failure_rate must be within [0, 1]", "max_failure_rate")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "BatchRefreshConfig":
        environ = os.environ if environ is None else environ
        return cls(
            batch_size=_env(environ, "BATCH_SIZE", cls.batch_size, int),
            batch_timeout_seconds=_env(environ, "BATCH_TIMEOUT", cls.batch_timeout_seconds, int),
            max_failure_rate=_env(environ, "BATCH_MAX_FAILURE_RATE", cls.max_failure_rate, float),
            min_sample_size=_env(environ, "BATCH_MIN_SAMPLE", cls.min_sample_size, int),
            results_ttl_seconds=_env(environ, "BATCH_RESULTS_TTL", cls.results_ttl_seconds, int),
            expiration_window_minutes=_env(
                environ, "EXPIRATION_WINDOW_MINUTES", cls.expiration_window_minutes, int
            ),
        )


@dataclass
class AlertConfig:
    """Error tracking and alert thresholds."""
    error_rate_threshold: int = 10
    escalation_threshold: int = 20
    consecutive_failure_threshold: int = 5
    throttle_seconds: int = 3600
    error_ttl_seconds: int = 86400
    max_records_per_hour: int = 100
    alerts_enabled: bool = True

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "AlertConfig":
        environ = os.environ if environ is None else environ
        return cls(
            error_rate_threshold=_env(
                environ, "ERROR_RATE_THRESHOLD", cls.error_rate_threshold, int
            ),
            escalation_threshold=_env(
                environ, "ESCALATION_THRESHOLD", cls.escalation_threshold, int
            ),
            consecutive_failure_threshold=_env(
                environ, "CONSECUTIVE_FAILURE_THRESHOLD", cls.consecutive_failure_threshold, int
            ),
            throttle_seconds=_env(environ, "ALERT_THROTTLE", cls.throttle_seconds, int),
            alerts_enabled=_env(environ, "ALERTS_ENABLED", cls.alerts_enabled, bool),
        )


@dataclass
class MetricsConfig:
    """Performance metrics settings."""
    max_duration_samples: int = 1000
    metrics_ttl_seconds: int = 86400
    slow_operation_ms: float = 5000.0
    tracked_operations: tuple[str, ...] = ("upload", "download", "delete", "list", "auth")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "MetricsConfig":
        environ = os.environ if environ is None else environ
        return cls(
            max_duration_samples=_env(
                environ, "MAX_DURATION_SAMPLES", cls.max_duration_samples, int
            ),
            metrics_ttl_seconds=_env(environ, "METRICS_TTL", cls.metrics_ttl_seconds, int),
            slow_operation_ms=_env(environ, "SLOW_OPERATION_MS", cls.slow_operation_ms, float),
        )


@dataclass
class StoreConfig:
    """Key-value store backend selection."""
    backend: str = "memory"
    redis_url: str = "redis://localhost:6379/0"
    key_prefix: str = "cloud_storage"

    def __post_init__(self):
        if self.backend not in ("memory", "redis"):
            raise ConfigurationError(f"Unknown store backend: {self.backend}", "backend")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "StoreConfig":
        environ = os.environ if environ is None else environ
        return cls(
            backend=_env(environ, "STORE_BACKEND", cls.backend),
            redis_url=_env(environ, "REDIS_URL", cls.redis_url),
            key_prefix=_env(environ, "KEY_PREFIX", cls.key_prefix),
        )


@dataclass
class Settings:
    """All engine settings."""
    recovery: RecoveryConfig = field(default_factory=RecoveryConfig)
    batch: BatchRefreshConfig = field(default_factory=BatchRefreshConfig)
    alerts: AlertConfig = field(default_factory=AlertConfig)
    metrics: MetricsConfig = field(default_factory=MetricsConfig)
    store: StoreConfig = field(default_factory=StoreConfig)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Settings":
        return cls(
            recovery=RecoveryConfig.from_env(environ),
            batch=BatchRefreshConfig.from_env(environ),
            alerts=AlertConfig.from_env(environ),
            metrics=MetricsConfig.from_env(environ),
            store=StoreConfig.from_env(environ),
        )
