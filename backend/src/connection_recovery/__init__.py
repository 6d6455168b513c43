"""
Connection health, error classification and recovery for cloud-storage providers.
"""
from .batch import BatchRefreshOrchestrator, BatchRun
from .classification import ErrorClassifier, RecoveryStrategyResolver
from .config import (
    AlertConfig,
    BatchRefreshConfig,
    MetricsConfig,
    RecoveryConfig,
    Settings,
    StoreConfig,
)
from .coordinator import SingleFlightRefreshCoordinator
from .exceptions import (
    ConfigurationError,
    ConnectionRecoveryError,
    LockError,
    ProviderError,
    StoreError,
)
from .health import CredentialState, ProbeOutcome, derive_health_status
from .metrics import LoggingMetricsSink, MetricsAggregator
from .recovery import RecoveryExecutor
from .requeue import PendingUploadRequeuer, RequeueSummary
from .tracking import ErrorRecord, ErrorTracker
from .types import (
    ErrorKind,
    HealthState,
    HealthStatus,
    LiveTestResult,
    MetricEvent,
    RecoveryResult,
    RecoveryStrategy,
    RefreshResult,
)

__all__ = [
    # Types
    'ErrorKind',
    'RecoveryStrategy',
    'HealthState',
    'HealthStatus',
    'RecoveryResult',
    'RefreshResult',
    'LiveTestResult',
    'MetricEvent',
    'ErrorRecord',
    'BatchRun',
    'RequeueSummary',
    'CredentialState',
    'ProbeOutcome',
    'derive_health_status',

    # Components
    'ErrorClassifier',
    'RecoveryStrategyResolver',
    'MetricsAggregator',
    'LoggingMetricsSink',
    'ErrorTracker',
    'RecoveryExecutor',
    'PendingUploadRequeuer',
    'BatchRefreshOrchestrator',
    'SingleFlightRefreshCoordinator',

    # Configuration
    'Settings',
    'RecoveryConfig',
    'BatchRefreshConfig',
    'AlertConfig',
    'MetricsConfig',
    'StoreConfig',

    # Exceptions
    'ConnectionRecoveryError',
    'ProviderError',
    'StoreError',
    'LockError',
    'ConfigurationError',
]
