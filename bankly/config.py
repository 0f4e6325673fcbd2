"""Environment-driven defaults for the Bankly client.

Values are read once at import. A ``.env`` file in the working directory is
loaded first (existing environment variables win).
"""
from __future__ import annotations

import os
from typing import Final, Optional

from dotenv import find_dotenv, load_dotenv

from .common.secrets import get_secret

_env_file = find_dotenv(usecwd=True)
if _env_file:
    load_dotenv(dotenv_path=_env_file, override=False)

BANKLY_API_URL: Final[str] = os.getenv(
    "BANKLY_API_URL", "https://api.sandbox.bankly.com.br"
).rstrip("/")
BANKLY_LOGIN_URL: Final[str] = os.getenv(
    "BANKLY_LOGIN_URL", "https://login.sandbox.bankly.com.br"
).rstrip("/")
BANKLY_API_VERSION: Final[str] = os.getenv("BANKLY_API_VERSION", "1")
BANKLY_TIMEOUT: Final[float] = float(os.getenv("BANKLY_TIMEOUT", "30"))

TOKEN_PATH: Final[str] = "/connect/token"

# Endpoints that never receive an auto-generated x-correlation-id.
CORRELATION_EXEMPT_PATHS: Final[frozenset] = frozenset({"/banklist", TOKEN_PATH})


def token_url(login_url: str = BANKLY_LOGIN_URL) -> str:
    return f"{login_url.rstrip('/')}{TOKEN_PATH}"


def mtls_settings() -> tuple[Optional[str], Optional[str], Optional[str]]:
    """Return ``(cert_path, key_path, passphrase)`` from secrets/env."""
    return (
        get_secret("BANKLY_MTLS_CERT_PATH"),
        get_secret("BANKLY_MTLS_KEY_PATH"),
        get_secret("BANKLY_MTLS_PASSPHRASE"),
    )
