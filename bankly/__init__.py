"""Bankly API client package.

This package provides the client for the Bankly banking-as-a-service API:
accounts, transfers, billets, PIX, document analysis, webhooks and limits.
"""

from .auth import (
    Credential,
    CredentialManager,
    CredentialStore,
    InMemoryCredentialStore,
    default_manager,
    default_store,
)
from .client import BanklyClient
from .errors import (
    ApiRequestError,
    AuthenticationError,
    BanklyError,
    TransportError,
    ValidationError,
)

__version__ = "0.1.0"

__all__ = [
    "BanklyClient",
    "Credential",
    "CredentialManager",
    "CredentialStore",
    "InMemoryCredentialStore",
    "default_manager",
    "default_store",
    "BanklyError",
    "ValidationError",
    "AuthenticationError",
    "TransportError",
    "ApiRequestError",
]
