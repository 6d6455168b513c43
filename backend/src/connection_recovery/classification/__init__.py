"""
Error classification and recovery strategy resolution.
"""
from .classifier import ErrorClassifier
from .patterns import MESSAGE_PATTERNS, MessagePattern, match_message
from .providers import (
    BaseProviderErrorHandler,
    ErrorDetails,
    GoogleDriveErrorHandler,
    S3ErrorHandler,
    normalize_provider,
)
from .strategies import RecoveryStrategyResolver

__all__ = [
    'ErrorClassifier',
    'RecoveryStrategyResolver',
    'BaseProviderErrorHandler',
    'GoogleDriveErrorHandler',
    'S3ErrorHandler',
    'ErrorDetails',
    'MessagePattern',
    'MESSAGE_PATTERNS',
    'match_message',
    'normalize_provider',
]
