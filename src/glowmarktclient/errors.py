from __future__ import annotations


class GlowmarktError(Exception):
    pass


class AuthError(GlowmarktError):
    """Bad credentials, or the API kept answering 401 after a fresh login."""


class ApiError(GlowmarktError):
    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class TransientApiError(ApiError):
    """Timeouts, 429 and 5xx responses; safe to retry."""
