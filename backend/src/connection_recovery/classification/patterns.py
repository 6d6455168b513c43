"""Message patterns for classifying provider errors by their text.

Order matters: the first matching pattern wins, so narrower phrases sit
ahead of the broader ones they overlap with.
"""
from dataclasses import dataclass

from ..types import ErrorKind


@dataclass(frozen=True)
class MessagePattern:
    """Substrings that identify one error kind in a lowercased message."""

    kind: ErrorKind
    indicators: tuple[str, ...]

    def matches(self, message: str) -> bool:
        return any(indicator in message for indicator in self.indicators)


TOKEN_REFRESH_RATE_LIMIT_PATTERN = MessagePattern(
    kind=ErrorKind.TOKEN_REFRESH_RATE_LIMITED,
    indicators=(
        "token refresh rate limit",
        "refresh rate limit",
        "too many refresh",
        "too many token refresh",
    ),
)

TIMEOUT_PATTERN = MessagePattern(
    kind=ErrorKind.TIMEOUT,
    indicators=("timed out", "timeout", "deadline exceeded"),
)

NETWORK_PATTERN = MessagePattern(
    kind=ErrorKind.NETWORK_ERROR,
    indicators=(
        "connection refused",
        "connection reset",
        "connection aborted",
        "network unreachable",
        "network is unreachable",
        "name resolution",
        "could not resolve",
        "failed to resolve",
        "dns",
        "network error",
        "ssl",
    ),
)

TOKEN_EXPIRED_PATTERN = MessagePattern(
    kind=ErrorKind.TOKEN_EXPIRED,
    indicators=(
        "invalid_grant",
        "token expired",
        "token has expired",
        "expired token",
        "token has been expired or revoked",
        "expiredtoken",
    ),
)

INVALID_CREDENTIALS_PATTERN = MessagePattern(
    kind=ErrorKind.INVALID_CREDENTIALS,
    indicators=(
        "invalid credentials",
        "invalid_client",
        "unauthorized_client",
        "invalidaccesskeyid",
        "signaturedoesnotmatch",
        "access key id you provided does not exist",
    ),
)

STORAGE_QUOTA_PATTERN = MessagePattern(
    kind=ErrorKind.STORAGE_QUOTA_EXCEEDED,
    indicators=(
        "storage quota",
        "storagequotaexceeded",
        "insufficient storage",
        "storage limit",
        "drive is full",
    ),
)

API_QUOTA_PATTERN = MessagePattern(
    kind=ErrorKind.API_QUOTA_EXCEEDED,
    indicators=(
        "rate limit",
        "ratelimitexceeded",
        "quota exceeded",
        "quotaexceeded",
        "too many requests",
        "slow down",
        "slowdown",
        "throttl",
    ),
)

FOLDER_ACCESS_PATTERN = MessagePattern(
    kind=ErrorKind.FOLDER_ACCESS_DENIED,
    indicators=(
        "folder access denied",
        "denied to folder",
        "cannot access folder",
        "folder not accessible",
        "access to folder",
        "access to the folder",
    ),
)

PERMISSION_PATTERN = MessagePattern(
    kind=ErrorKind.INSUFFICIENT_PERMISSIONS,
    indicators=(
        "insufficient permission",
        "does not have sufficient permission",
        "insufficientpermissions",
        "permission denied",
        "access denied",
        "accessdenied",
        "forbidden",
    ),
)

FILE_TOO_LARGE_PATTERN = MessagePattern(
    kind=ErrorKind.FILE_TOO_LARGE,
    indicators=("too large", "entitytoolarge", "exceeds the maximum", "exceeds maximum"),
)

INVALID_FILE_TYPE_PATTERN = MessagePattern(
    kind=ErrorKind.INVALID_FILE_TYPE,
    indicators=("invalid file type", "unsupported file type", "file type not", "invalid mime type"),
)

INVALID_FILE_CONTENT_PATTERN = MessagePattern(
    kind=ErrorKind.INVALID_FILE_CONTENT,
    indicators=("invalid file content", "corrupt", "checksum mismatch", "baddigest", "invalid content"),
)

FILE_NOT_FOUND_PATTERN = MessagePattern(
    kind=ErrorKind.FILE_NOT_FOUND,
    indicators=("file not found", "nosuchkey", "no such file", "does not exist", "not found"),
)

SERVICE_UNAVAILABLE_PATTERN = MessagePattern(
    kind=ErrorKind.SERVICE_UNAVAILABLE,
    indicators=(
        "service unavailable",
        "temporarily unavailable",
        "backend error",
        "backenderror",
        "internal error",
        "internal server error",
        "bad gateway",
    ),
)

PROVIDER_NOT_CONFIGURED_PATTERN = MessagePattern(
    kind=ErrorKind.PROVIDER_NOT_CONFIGURED,
    indicators=("not configured", "no credentials configured", "missing configuration"),
)

FEATURE_NOT_SUPPORTED_PATTERN = MessagePattern(
    kind=ErrorKind.FEATURE_NOT_SUPPORTED,
    indicators=("not supported", "not implemented", "notimplemented"),
)


MESSAGE_PATTERNS: list[MessagePattern] = [
    TOKEN_REFRESH_RATE_LIMIT_PATTERN,
    TIMEOUT_PATTERN,
    NETWORK_PATTERN,
    TOKEN_EXPIRED_PATTERN,
    INVALID_CREDENTIALS_PATTERN,
    STORAGE_QUOTA_PATTERN,
    API_QUOTA_PATTERN,
    FOLDER_ACCESS_PATTERN,
    PERMISSION_PATTERN,
    FILE_TOO_LARGE_PATTERN,
    INVALID_FILE_TYPE_PATTERN,
    INVALID_FILE_CONTENT_PATTERN,
    SERVICE_UNAVAILABLE_PATTERN,
    PROVIDER_NOT_CONFIGURED_PATTERN,
    FEATURE_NOT_SUPPORTED_PATTERN,
    FILE_NOT_FOUND_PATTERN,
]


def match_message(message: str, patterns: list[MessagePattern] | None = None) -> ErrorKind | None:
    """Return the kind of the first pattern matching ``message``."""
    lowered = message.lower()
    for pattern in patterns if patterns is not None else MESSAGE_PATTERNS:
        if pattern.matches(lowered):
            return pattern.kind
    return None
