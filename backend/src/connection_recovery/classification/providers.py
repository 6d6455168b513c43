"""Provider-specific error handlers.

Each handler maps the raw facts of a provider failure (HTTP status, the
provider's reason or error code, the message) to an ErrorKind. Handlers
return None when they cannot tell; the classifier then falls back to
``ErrorKind.UNKNOWN``.
"""
from dataclasses import dataclass

from ..types import ErrorKind
from .patterns import match_message


@dataclass
class ErrorDetails:
    """Provider-neutral facts extracted from an exception or message."""

    message: str = ""
    status_code: int | None = None
    reason: str | None = None
    error_code: str | None = None
    exception_type: str | None = None
    is_timeout: bool = False
    is_network: bool = False
    retry_after: int | None = None

    @property
    def lowered(self) -> str:
        return self.message.lower()


class BaseProviderErrorHandler:
    """Generic handler used for providers without a dedicated one."""

    provider = "generic"

    STATUS_KINDS: dict[int, ErrorKind] = {
        401: ErrorKind.TOKEN_EXPIRED,
        403: ErrorKind.INSUFFICIENT_PERMISSIONS,
        404: ErrorKind.FILE_NOT_FOUND,
        408: ErrorKind.TIMEOUT,
        413: ErrorKind.FILE_TOO_LARGE,
        415: ErrorKind.INVALID_FILE_TYPE,
        429: ErrorKind.API_QUOTA_EXCEEDED,
        500: ErrorKind.SERVICE_UNAVAILABLE,
        502: ErrorKind.SERVICE_UNAVAILABLE,
        503: ErrorKind.SERVICE_UNAVAILABLE,
        504: ErrorKind.TIMEOUT,
    }

    def classify(self, details: ErrorDetails) -> ErrorKind | None:
        if details.is_timeout:
            return ErrorKind.TIMEOUT
        if details.is_network:
            return ErrorKind.NETWORK_ERROR

        kind = self.classify_code(details)
        if kind is None and details.status_code is not None:
            kind = self.classify_status(details)
        if kind is None and details.message:
            kind = match_message(details.message)
        return kind

    def classify_code(self, details: ErrorDetails) -> ErrorKind | None:
        """Map a provider reason or error code; generic providers have none."""
        return None

    def classify_status(self, details: ErrorDetails) -> ErrorKind | None:
        return self.STATUS_KINDS.get(details.status_code)


class GoogleDriveErrorHandler(BaseProviderErrorHandler):
    """Google Drive API errors (status code plus ``errors[].reason``)."""

    provider = "google-drive"

    REASON_KINDS: dict[str, ErrorKind] = {
        "notFound": ErrorKind.FILE_NOT_FOUND,
        "authError": ErrorKind.TOKEN_EXPIRED,
        "unauthorized": ErrorKind.TOKEN_EXPIRED,
        "insufficientPermissions": ErrorKind.INSUFFICIENT_PERMISSIONS,
        "quotaExceeded": ErrorKind.API_QUOTA_EXCEEDED,
        "rateLimitExceeded": ErrorKind.API_QUOTA_EXCEEDED,
        "userRateLimitExceeded": ErrorKind.API_QUOTA_EXCEEDED,
        "storageQuotaExceeded": ErrorKind.STORAGE_QUOTA_EXCEEDED,
        "backendError": ErrorKind.SERVICE_UNAVAILABLE,
        "internalError": ErrorKind.SERVICE_UNAVAILABLE,
        "serviceUnavailable": ErrorKind.SERVICE_UNAVAILABLE,
        "invalidFileType": ErrorKind.INVALID_FILE_TYPE,
        "fileTooLarge": ErrorKind.FILE_TOO_LARGE,
    }

    def classify(self, details: ErrorDetails) -> ErrorKind | None:
        if details.is_timeout:
            return ErrorKind.TIMEOUT
        if details.is_network:
            return ErrorKind.NETWORK_ERROR

        # Status first: 401 and 403 need the reason and message to disambiguate.
        kind = None
        if details.status_code is not None:
            kind = self.classify_status(details)
        if kind is None:
            kind = self.classify_code(details)
        if kind is None and details.message:
            kind = match_message(details.message)
        return kind

    def classify_code(self, details: ErrorDetails) -> ErrorKind | None:
        if details.reason:
            return self.REASON_KINDS.get(details.reason)
        return None

    def classify_status(self, details: ErrorDetails) -> ErrorKind | None:
        if details.status_code == 401:
            return self._classify_unauthorized(details)
        if details.status_code == 403:
            return self._classify_forbidden(details)
        if details.status_code in (404, 413, 429, 500, 502, 503):
            return self.STATUS_KINDS[details.status_code]
        return None

    def _classify_unauthorized(self, details: ErrorDetails) -> ErrorKind:
        message = details.lowered
        if details.reason == "authError" or "invalid_grant" in message:
            return ErrorKind.TOKEN_EXPIRED
        if "credentials" in message or "client" in message:
            return ErrorKind.INVALID_CREDENTIALS
        return ErrorKind.TOKEN_EXPIRED

    def _classify_forbidden(self, details: ErrorDetails) -> ErrorKind:
        message = details.lowered
        reason = details.reason
        if reason == "insufficientPermissions" or "insufficient" in message:
            return ErrorKind.INSUFFICIENT_PERMISSIONS
        if reason in ("rateLimitExceeded", "userRateLimitExceeded") or "rate limit" in message:
            return ErrorKind.API_QUOTA_EXCEEDED
        if reason in ("quotaExceeded", "storageQuotaExceeded") or "quota" in message:
            return ErrorKind.STORAGE_QUOTA_EXCEEDED
        if "folder" in message or "directory" in message:
            return ErrorKind.FOLDER_ACCESS_DENIED
        return ErrorKind.INSUFFICIENT_PERMISSIONS


class S3ErrorHandler(BaseProviderErrorHandler):
    """Amazon S3 errors (``Error.Code`` plus HTTP status)."""

    provider = "amazon-s3"

    STATUS_KINDS = {
        **BaseProviderErrorHandler.STATUS_KINDS,
        401: ErrorKind.INVALID_CREDENTIALS,
        504: ErrorKind.SERVICE_UNAVAILABLE,
    }

    CODE_KINDS: dict[str, ErrorKind] = {
        "NoSuchBucket": ErrorKind.PROVIDER_NOT_CONFIGURED,
        "InvalidBucketName": ErrorKind.PROVIDER_NOT_CONFIGURED,
        "InvalidRegion": ErrorKind.PROVIDER_NOT_CONFIGURED,
        "BucketNotEmpty": ErrorKind.FOLDER_ACCESS_DENIED,
        "InvalidAccessKeyId": ErrorKind.INVALID_CREDENTIALS,
        "SignatureDoesNotMatch": ErrorKind.INVALID_CREDENTIALS,
        "TokenRefreshRequired": ErrorKind.INVALID_CREDENTIALS,
        "ExpiredToken": ErrorKind.TOKEN_EXPIRED,
        "UnauthorizedOperation": ErrorKind.INSUFFICIENT_PERMISSIONS,
        "NoSuchKey": ErrorKind.FILE_NOT_FOUND,
        "EntityTooLarge": ErrorKind.FILE_TOO_LARGE,
        "BadDigest": ErrorKind.INVALID_FILE_CONTENT,
        "SlowDown": ErrorKind.API_QUOTA_EXCEEDED,
        "RequestTimeTooSkewed": ErrorKind.API_QUOTA_EXCEEDED,
        "RequestLimitExceeded": ErrorKind.API_QUOTA_EXCEEDED,
        "Throttling": ErrorKind.API_QUOTA_EXCEEDED,
        "ServiceUnavailable": ErrorKind.SERVICE_UNAVAILABLE,
        "InternalError": ErrorKind.SERVICE_UNAVAILABLE,
        "InternalFailure": ErrorKind.SERVICE_UNAVAILABLE,
        "NotImplemented": ErrorKind.FEATURE_NOT_SUPPORTED,
        "RequestTimeout": ErrorKind.NETWORK_ERROR,
    }

    def classify_code(self, details: ErrorDetails) -> ErrorKind | None:
        code = details.error_code
        if not code:
            return None
        if code == "AccessDenied":
            return self._classify_access_denied(details)
        if code == "InvalidRequest":
            return self._classify_invalid_request(details)
        return self.CODE_KINDS.get(code)

    def _classify_access_denied(self, details: ErrorDetails) -> ErrorKind:
        message = details.lowered
        if "bucket" in message or "folder" in message:
            return ErrorKind.FOLDER_ACCESS_DENIED
        return ErrorKind.INSUFFICIENT_PERMISSIONS

    def _classify_invalid_request(self, details: ErrorDetails) -> ErrorKind | None:
        message = details.lowered
        if "too large" in message or "size" in message or "exceeds" in message:
            return ErrorKind.FILE_TOO_LARGE
        if "content-type" in message or "invalid content" in message:
            return ErrorKind.INVALID_FILE_TYPE
        return None


PROVIDER_HANDLERS: dict[str, type[BaseProviderErrorHandler]] = {
    "google-drive": GoogleDriveErrorHandler,
    "amazon-s3": S3ErrorHandler,
}

PROVIDER_ALIASES = {
    "google": "google-drive",
    "gdrive": "google-drive",
    "s3": "amazon-s3",
    "aws-s3": "amazon-s3",
}


def normalize_provider(provider: str | None) -> str:
    """Canonical provider name, e.g. ``Google_Drive`` -> ``google-drive``."""
    if not provider:
        return "generic"
    name = provider.strip().lower().replace("_", "-")
    return PROVIDER_ALIASES.get(name, name)
