"""Health status derivation.

A HealthStatus is rebuilt from the stored credential state and the latest
probe outcome; nothing else feeds into it.
"""
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from .types import ErrorKind, HealthState, HealthStatus

UNHEALTHY_FAILURE_THRESHOLD = 5

RECONNECTION_KINDS = frozenset({
    ErrorKind.TOKEN_EXPIRED,
    ErrorKind.INVALID_CREDENTIALS,
    ErrorKind.INSUFFICIENT_PERMISSIONS,
})


@dataclass(frozen=True)
class CredentialState:
    """What is stored for a principal's provider credential."""

    expires_at: datetime | None = None
    has_refresh_token: bool = True

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and self.expires_at <= now


@dataclass(frozen=True)
class ProbeOutcome:
    """Result of checking a credential and calling the provider API."""

    token_valid: bool
    api_connected: bool
    checked_at: datetime
    error_kind: ErrorKind | None = None
    error_message: str | None = None
    data: Mapping[str, Any] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.token_valid and self.api_connected


def derive_health_status(
    provider: str,
    credential: CredentialState | None,
    probe: ProbeOutcome,
    previous: HealthStatus | None = None,
) -> HealthStatus:
    """Build the HealthStatus for ``provider`` from credential and probe.

    ``previous`` only supplies the running failure streak and the time of
    the last success; it is never modified.
    """
    prior_failures = previous.consecutive_failures if previous else 0
    last_success = previous.last_successful_operation if previous else None

    if credential is None:
        return HealthStatus(
            provider=provider,
            status=HealthState.DISCONNECTED,
            last_successful_operation=last_success,
            consecutive_failures=prior_failures,
            last_error_kind=ErrorKind.PROVIDER_NOT_CONFIGURED,
            last_error_message="No credential is stored for this provider",
            requires_reconnection=True,
            provider_specific_data=probe.data,
        )

    if probe.succeeded:
        return HealthStatus(
            provider=provider,
            status=HealthState.HEALTHY,
            last_successful_operation=probe.checked_at,
            consecutive_failures=0,
            token_expires_at=credential.expires_at,
            provider_specific_data=probe.data,
        )

    failures = prior_failures + 1
    if probe.error_kind is not None:
        error_kind = probe.error_kind
    elif not probe.token_valid:
        error_kind = ErrorKind.TOKEN_EXPIRED
    else:
        error_kind = ErrorKind.UNKNOWN

    if not probe.token_valid or failures >= UNHEALTHY_FAILURE_THRESHOLD:
        status = HealthState.UNHEALTHY
    else:
        status = HealthState.DEGRADED

    requires_reconnection = error_kind in RECONNECTION_KINDS or (
        credential.is_expired(probe.checked_at) and not credential.has_refresh_token
    )

    return HealthStatus(
        provider=provider,
        status=status,
        last_successful_operation=last_success,
        consecutive_failures=failures,
        last_error_kind=error_kind,
        last_error_message=probe.error_message,
        token_expires_at=credential.expires_at,
        requires_reconnection=requires_reconnection,
        provider_specific_data=probe.data,
    )
