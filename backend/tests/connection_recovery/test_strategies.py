"""
Tests for recovery strategy resolution and retry delay policies.
"""
import pytest

from backend.src.connection_recovery.backoff import (
    ExponentialBackoff,
    FixedDelay,
    LinearBackoff,
    backoff_for,
)
from backend.src.connection_recovery.classification import RecoveryStrategyResolver
from backend.src.connection_recovery.types import ErrorKind, RecoveryStrategy


class TestRecoveryStrategyResolver:
    """Test cases for RecoveryStrategyResolver."""

    def setup_method(self):
        self.resolver = RecoveryStrategyResolver()

    @pytest.mark.parametrize("kind", list(ErrorKind))
    def test_resolution_is_deterministic(self, kind):
        """Test every kind resolves to the same strategy every time."""
        first = self.resolver.resolve(kind)
        assert isinstance(first, RecoveryStrategy)
        assert all(self.resolver.resolve(kind) == first for _ in range(5))

    def test_credential_kinds(self):
        """Test credential problems resolve to a token refresh."""
        assert self.resolver.resolve(ErrorKind.TOKEN_EXPIRED) == RecoveryStrategy.TOKEN_REFRESH
        assert self.resolver.resolve(ErrorKind.INVALID_CREDENTIALS) == RecoveryStrategy.TOKEN_REFRESH

    def test_transport_kinds(self):
        """Test transient failures resolve to retries."""
        assert self.resolver.resolve(ErrorKind.NETWORK_ERROR) == RecoveryStrategy.NETWORK_RETRY
        assert self.resolver.resolve(ErrorKind.TIMEOUT) == RecoveryStrategy.NETWORK_RETRY
        assert self.resolver.resolve(ErrorKind.API_QUOTA_EXCEEDED) == RecoveryStrategy.QUOTA_WAIT
        assert self.resolver.resolve(ErrorKind.SERVICE_UNAVAILABLE) == RecoveryStrategy.SERVICE_RETRY

    def test_user_intervention_kinds(self):
        """Test kinds only the user can fix."""
        for kind in (
            ErrorKind.INSUFFICIENT_PERMISSIONS,
            ErrorKind.FOLDER_ACCESS_DENIED,
            ErrorKind.STORAGE_QUOTA_EXCEEDED,
            ErrorKind.FILE_TOO_LARGE,
            ErrorKind.INVALID_FILE_TYPE,
        ):
            assert self.resolver.resolve(kind) == RecoveryStrategy.USER_INTERVENTION_REQUIRED

    def test_fallback(self):
        """Test unknown, unmapped and missing kinds fall back to a health check."""
        assert self.resolver.resolve(None) == RecoveryStrategy.HEALTH_CHECK_RETRY
        assert self.resolver.resolve(ErrorKind.UNKNOWN) == RecoveryStrategy.HEALTH_CHECK_RETRY
        assert self.resolver.resolve(ErrorKind.TOKEN_REFRESH_RATE_LIMITED) \
            == RecoveryStrategy.HEALTH_CHECK_RETRY
        assert self.resolver.resolve(ErrorKind.FILE_NOT_FOUND) == RecoveryStrategy.HEALTH_CHECK_RETRY

    def test_overrides(self):
        """Test deployments can override single entries."""
        resolver = RecoveryStrategyResolver({ErrorKind.TIMEOUT: RecoveryStrategy.SERVICE_RETRY})
        assert resolver.resolve(ErrorKind.TIMEOUT) == RecoveryStrategy.SERVICE_RETRY
        assert resolver.resolve(ErrorKind.NETWORK_ERROR) == RecoveryStrategy.NETWORK_RETRY
        assert self.resolver.resolve(ErrorKind.TIMEOUT) == RecoveryStrategy.NETWORK_RETRY


class TestBackoffPolicies:
    """Test cases for delay calculation."""

    def test_exponential(self):
        backoff = ExponentialBackoff(initial_delay=30, backoff_factor=2, max_delay=1800)
        delays = [backoff.calculate_delay(attempt) for attempt in range(1, 9)]
        assert delays == [30, 60, 120, 240, 480, 960, 1800, 1800]

    def test_exponential_jitter_stays_in_range(self):
        """Test jitter never strays beyond its spread."""
        backoff = ExponentialBackoff(initial_delay=100, jitter=True, jitter_range=0.1)
        for _ in range(50):
            assert 90 <= backoff.calculate_delay(1) <= 110

    def test_linear(self):
        backoff = LinearBackoff(initial_delay=60, increment=60, max_delay=300)
        delays = [backoff.calculate_delay(attempt) for attempt in range(1, 7)]
        assert delays == [60, 120, 180, 240, 300, 300]

    def test_fixed(self):
        backoff = FixedDelay(600)
        assert backoff.calculate_delay(1) == 600
        assert backoff.calculate_delay(7) == 600


class TestBackoffSelection:
    """Test cases for choosing a policy per error kind."""

    def test_network_error(self):
        backoff = backoff_for(ErrorKind.NETWORK_ERROR)
        assert backoff.calculate_delay(1) == 30
        assert backoff.calculate_delay(2) == 60

    def test_service_unavailable(self):
        backoff = backoff_for(ErrorKind.SERVICE_UNAVAILABLE)
        assert backoff.calculate_delay(1) == 60
        assert backoff.calculate_delay(3) == 240

    def test_timeout(self):
        backoff = backoff_for(ErrorKind.TIMEOUT)
        assert isinstance(backoff, LinearBackoff)
        assert backoff.calculate_delay(2) == 120

    def test_quota_honours_retry_after(self):
        """Test the provider's wait hint replaces the default quota wait."""
        assert backoff_for(ErrorKind.API_QUOTA_EXCEEDED).calculate_delay(1) == 600
        assert backoff_for(ErrorKind.API_QUOTA_EXCEEDED, retry_after=120).calculate_delay(1) == 120

    def test_default_policy(self):
        assert backoff_for(None).calculate_delay(1) == 30
        assert backoff_for(ErrorKind.UNKNOWN).calculate_delay(20) == 300


class TestShouldRetry:
    """Test cases for the retry decision."""

    def test_attempts_bounded_by_kind(self):
        """Test retries stop at the kind's attempt limit."""
        backoff = backoff_for(ErrorKind.NETWORK_ERROR)
        assert backoff.should_retry(ErrorKind.NETWORK_ERROR, 1)
        assert backoff.should_retry(ErrorKind.NETWORK_ERROR, 2)
        assert not backoff.should_retry(ErrorKind.NETWORK_ERROR, 3)

    def test_user_intervention_never_retries(self):
        backoff = backoff_for(ErrorKind.TOKEN_EXPIRED)
        assert not backoff.should_retry(ErrorKind.TOKEN_EXPIRED, 0)
        assert not backoff.should_retry(ErrorKind.INSUFFICIENT_PERMISSIONS, 0)

    def test_unrecoverable_never_retries(self):
        assert not backoff_for(None).should_retry(ErrorKind.FILE_NOT_FOUND, 0)

    def test_missing_kind_treated_as_unknown(self):
        backoff = backoff_for(None)
        assert backoff.should_retry(None, 0)
        assert not backoff.should_retry(None, 1)
