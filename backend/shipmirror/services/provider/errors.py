from __future__ import annotations

from typing import Optional


class ProviderError(Exception):
    """Base class for failed provider calls."""

    def __init__(self, message: str, *, status_code: Optional[int] = None, path: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.path = path

    def __str__(self) -> str:
        if self.status_code is not None:
            return f"{self.message} (status={self.status_code} path={self.path})"
        return f"{self.message} (path={self.path})"


class ProviderAuthError(ProviderError):
    """401/403: the client's credential is rejected."""


class ProviderRateLimitError(ProviderError):
    """429: rate limited. Not retried within the same run."""

    def __init__(self, message: str, *, retry_after: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.retry_after = retry_after


class ProviderNotFoundError(ProviderError):
    """404 on a single-resource lookup."""


class ProviderServerError(ProviderError):
    """5xx from the provider."""


class ProviderNetworkError(ProviderError):
    """Transport failure (timeout, connection reset, DNS)."""


class ProviderClientError(ProviderError):
    """Any other 4xx, or a body that is not valid JSON."""
