"""
GlowMarkt (Bright) API client for smart-meter readings.
Provides token management, resource discovery and windowed reading retrieval.
"""

__all__ = [
    'GlowmarktClient', 'FetchResult', 'GlowmarktSettings', 'Resource', 'Reading',
    'Authenticator', 'AuthToken', 'TokenStore', 'DateRange', 'split_range', 'default_range',
    'GlowmarktError', 'AuthError', 'ApiError', 'TransientApiError',
]

from .auth import Authenticator, AuthToken, TokenStore
from .client import FetchResult, GlowmarktClient
from .config import GlowmarktSettings, Reading, Resource
from .errors import ApiError, AuthError, GlowmarktError, TransientApiError
from .windows import DateRange, default_range, split_range
