"""Error taxonomy for Bankly calls.

Every failure surfaced by :class:`bankly.client.BanklyClient` is one of:

* :class:`ValidationError` – a payload was rejected locally, nothing was sent.
* :class:`AuthenticationError` – the token exchange failed or was malformed.
* :class:`TransportError` – the round trip to Bankly could not be completed.
* :class:`ApiRequestError` – Bankly answered with a non-2xx status.
"""
from __future__ import annotations

from typing import Any, Optional

__all__ = [
    "BanklyError",
    "ValidationError",
    "AuthenticationError",
    "TransportError",
    "ApiRequestError",
]


class BanklyError(Exception):
    """Base class for all errors raised by this package."""


class ValidationError(BanklyError, ValueError):
    """A payload failed local validation before any network call."""


class AuthenticationError(BanklyError):
    """The client-credentials exchange failed or returned a malformed payload."""

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        body: Any = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class TransportError(BanklyError):
    """DNS, timeout, TLS handshake or connection failure."""


class ApiRequestError(BanklyError):
    """Bankly responded with HTTP status >= 400.

    ``body`` holds the decoded JSON error payload when the response was JSON,
    otherwise the raw text.
    """

    def __init__(self, status_code: int, body: Any = None, response: Any = None) -> None:
        super().__init__(f"Bankly API request failed with HTTP {status_code}")
        self.status_code = status_code
        self.body = body
        self.response = response
