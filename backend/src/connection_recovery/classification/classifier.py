"""Error classifier: raw provider failures in, ErrorKind out."""
import logging
from typing import Any

import requests

from ..exceptions import ProviderError
from ..types import ErrorKind
from .providers import (
    PROVIDER_HANDLERS,
    BaseProviderErrorHandler,
    ErrorDetails,
    normalize_provider,
)

logger = logging.getLogger(__name__)

MAX_CACHE_SIZE = 1000


def _int_or_none(value: Any) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


class ErrorClassifier:
    """Classifies provider failures into the closed ErrorKind set.

    ``classify`` is total: any input, including ones that break extraction,
    yields a kind, with ``ErrorKind.UNKNOWN`` as the fallback. This is the
    only place in the engine that inspects raw error text.
    """

    def __init__(
        self,
        handlers: dict[str, BaseProviderErrorHandler] | None = None,
        default_handler: BaseProviderErrorHandler | None = None
    ):
        self.handlers = {name: handler_cls() for name, handler_cls in PROVIDER_HANDLERS.items()}
        if handlers:
            self.handlers.update(handlers)
        self.default_handler = default_handler or BaseProviderErrorHandler()
        self._classification_cache: dict[tuple, ErrorKind] = {}

    def classify(self, error: BaseException | str | None, provider: str | None = None) -> ErrorKind:
        """Classify an exception or a bare error message for ``provider``.

        Args:
            error: The exception raised by a provider adapter, or its message
            provider: Provider name, e.g. ``google-drive``

        Returns:
            The error kind; never raises

        """
        try:
            return self._classify(error, provider)
        except Exception as exc:
            logger.warning(f"Error classification failed, treating as unknown: {exc}")
            return ErrorKind.UNKNOWN

    def _classify(self, error: BaseException | str | None, provider: str | None) -> ErrorKind:
        if error is None:
            return ErrorKind.UNKNOWN
        if isinstance(error, ProviderError) and error.error_kind != ErrorKind.UNKNOWN:
            return error.error_kind

        details = self.extract_details(error)
        provider_name = normalize_provider(provider or getattr(error, "provider", None))
        cache_key = (
            provider_name,
            details.exception_type,
            details.status_code,
            details.reason,
            details.error_code,
            details.is_timeout,
            details.is_network,
            details.message,
        )
        cached = self._classification_cache.get(cache_key)
        if cached is not None:
            return cached

        handler = self.handlers.get(provider_name, self.default_handler)
        kind = handler.classify(details) or ErrorKind.UNKNOWN

        if len(self._classification_cache) >= MAX_CACHE_SIZE:
            self._classification_cache.clear()
        self._classification_cache[cache_key] = kind

        logger.debug(
            f"Classified {details.exception_type or 'message'} for {provider_name} "
            f"as {kind.value} (status={details.status_code}, "
            f"reason={details.reason}, code={details.error_code})"
        )
        return kind

    def extract_details(self, error: BaseException | str) -> ErrorDetails:
        """Pull status code, reason and error code out of known error shapes."""
        if isinstance(error, str):
            return ErrorDetails(message=error)

        details = ErrorDetails(
            message=str(error),
            exception_type=type(error).__name__,
            is_timeout=isinstance(error, (requests.Timeout, TimeoutError)),
            is_network=isinstance(error, (requests.ConnectionError, ConnectionError)),
        )

        if isinstance(error, ProviderError):
            details.status_code = error.status_code
            details.reason = error.reason
            details.error_code = error.error_code
            details.retry_after = error.retry_after
            return details

        response = getattr(error, "response", None)
        if isinstance(response, requests.Response):
            self._extract_http_response(response, details)
        elif isinstance(response, dict):
            self._extract_botocore_response(response, details)

        if details.status_code is None:
            details.status_code = _int_or_none(
                getattr(error, "status_code", None) or getattr(error, "status", None)
            )
        return details

    @staticmethod
    def _extract_http_response(response: requests.Response, details: ErrorDetails) -> None:
        details.status_code = response.status_code
        details.retry_after = _int_or_none(response.headers.get("Retry-After"))
        try:
            payload = response.json()
        except ValueError:
            return
        error = payload.get("error") if isinstance(payload, dict) else None
        if isinstance(error, dict):
            errors = error.get("errors") or []
            if errors and isinstance(errors[0], dict):
                details.reason = errors[0].get("reason")
            if error.get("message"):
                details.message = str(error["message"])
        elif isinstance(error, str):
            # OAuth token endpoint: {"error": "invalid_grant", ...}
            details.error_code = error
            details.message = f"{error}: {payload.get('error_description', details.message)}"

    @staticmethod
    def _extract_botocore_response(response: dict, details: ErrorDetails) -> None:
        error = response.get("Error") or {}
        metadata = response.get("ResponseMetadata") or {}
        details.error_code = error.get("Code")
        if error.get("Message"):
            details.message = f"{details.message} {error['Message']}".strip()
        details.status_code = _int_or_none(metadata.get("HTTPStatusCode"))

    def clear_cache(self) -> None:
        """Clear the classification cache."""
        self._classification_cache.clear()
