"""Errors raised by the Tutorbook API client."""

from __future__ import annotations

from typing import Any

from tutorbook.core.constants import NETWORK_ERROR_MESSAGE


class ClientError(Exception):
    """Base error for API request failures."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code
        self.details = details or {}


class ClientConnectionError(ClientError):
    """Raised when the API could not be reached; never retried automatically."""

    def __init__(self, message: str = NETWORK_ERROR_MESSAGE) -> None:
        super().__init__(message)


class ClientAuthError(ClientError):
    """Raised when the API rejects the caller (401/403)."""


class ClientNotFoundError(ClientError):
    """Raised when the API resource is not found."""


class ClientRequestError(ClientError):
    """Raised for any other 4xx/5xx answer."""
