"""
Tests for single-flight token refresh coordination.
"""
from unittest.mock import Mock

from backend.src.connection_recovery.coordinator import SingleFlightRefreshCoordinator
from backend.src.connection_recovery.exceptions import ProviderError
from backend.src.connection_recovery.types import ErrorKind

PROVIDER = "google-drive"
PRINCIPAL = 42


class TestSingleFlightRefreshCoordinator:
    """Test cases for SingleFlightRefreshCoordinator."""

    def setup_method(self):
        self.refresher = Mock()

    def test_refresh_success(self, store):
        self.refresher.refresh.return_value = True
        result = SingleFlightRefreshCoordinator(store, self.refresher).coordinate_refresh(PRINCIPAL, PROVIDER)

        assert result.is_successful is True
        assert result.was_already_valid is False
        self.refresher.refresh.assert_called_once_with(PRINCIPAL, PROVIDER)

    def test_token_still_valid(self, store):
        self.refresher.refresh.return_value = False
        result = SingleFlightRefreshCoordinator(store, self.refresher).coordinate_refresh(PRINCIPAL, PROVIDER)

        assert result.is_successful is True
        assert result.was_already_valid is True

    def test_second_caller_does_not_refresh(self, store):
        """Test only one refresh runs while the lock is held."""
        coordinator = SingleFlightRefreshCoordinator(store, self.refresher)
        holder = store.lock(f"token_refresh:{PRINCIPAL}:{PROVIDER}", 30)
        holder.acquire()

        result = coordinator.coordinate_refresh(PRINCIPAL, PROVIDER)

        assert result.is_successful is False
        assert result.in_progress is True
        self.refresher.refresh.assert_not_called()

    def test_nested_call_sees_in_progress(self, store):
        """Test a refresh triggered during another refresh is refused."""
        coordinator = SingleFlightRefreshCoordinator(store, self.refresher)
        nested = []

        def refresh(principal_id, provider):
            nested.append(coordinator.coordinate_refresh(principal_id, provider))
            return True

        self.refresher.refresh.side_effect = refresh

        assert coordinator.coordinate_refresh(PRINCIPAL, PROVIDER).is_successful is True
        assert nested[0].in_progress is True
        assert self.refresher.refresh.call_count == 1

    def test_lock_scoped_per_principal_and_provider(self, store):
        self.refresher.refresh.return_value = True
        coordinator = SingleFlightRefreshCoordinator(store, self.refresher)
        store.lock(f"token_refresh:{PRINCIPAL}:{PROVIDER}", 30).acquire()

        assert coordinator.coordinate_refresh(PRINCIPAL, "amazon-s3").is_successful is True
        assert coordinator.coordinate_refresh(7, PROVIDER).is_successful is True

    def test_failure_is_classified_and_lock_released(self, store):
        self.refresher.refresh.side_effect = ProviderError(
            "invalid_grant: Token has been expired or revoked.", status_code=400
        )
        coordinator = SingleFlightRefreshCoordinator(store, self.refresher)

        result = coordinator.coordinate_refresh(PRINCIPAL, PROVIDER)

        assert result.is_successful is False
        assert result.in_progress is False
        assert result.error_kind == ErrorKind.TOKEN_EXPIRED
        assert "invalid_grant" in result.cause

        self.refresher.refresh.side_effect = None
        self.refresher.refresh.return_value = True
        assert coordinator.coordinate_refresh(PRINCIPAL, PROVIDER).is_successful is True
