"""Access-token lifecycle for the Bankly API.

A :class:`Credential` is cached in a :class:`CredentialStore`. By default one
store is shared by every client in the process, so a single token serves all
of them until it expires. :class:`CredentialManager` re-acquires the token
through the OAuth2 client-credentials exchange when the cache is empty or
stale.
"""
from __future__ import annotations

import logging
import threading
import time
import weakref
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol, runtime_checkable

import requests

from . import config
from .common.secrets import get_secret
from .errors import AuthenticationError
from .metrics import token_errors_total, token_expiry_seconds, tokens_issued_total

__all__ = [
    "Credential",
    "CredentialStore",
    "InMemoryCredentialStore",
    "CredentialManager",
    "default_store",
    "default_manager",
    "reset_default_manager",
]

_log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Credential:
    """Bearer token plus the epoch second it stops being valid."""

    access_token: str
    expires_at: int
    # refresh this many seconds before expires_at
    refresh_skew: int = 0

    def is_valid(self, now: Optional[float] = None) -> bool:
        now = time.time() if now is None else now
        return bool(self.access_token) and now < self.expires_at - self.refresh_skew


@runtime_checkable
class CredentialStore(Protocol):
    """Holds at most one credential; replaced wholesale on every set."""

    def get(self) -> Optional[Credential]:
        ...

    def set(self, credential: Optional[Credential]) -> None:
        ...


class InMemoryCredentialStore:
    def __init__(self, credential: Optional[Credential] = None) -> None:
        self._credential = credential
        # guards the read-check-exchange-write sequence in CredentialManager
        self.lock = threading.Lock()

    def get(self) -> Optional[Credential]:
        return self._credential

    def set(self, credential: Optional[Credential]) -> None:
        self._credential = credential


_DEFAULT_STORE = InMemoryCredentialStore()
_DEFAULT_MANAGER: Optional["CredentialManager"] = None
_DEFAULT_MANAGER_LOCK = threading.Lock()


_STORE_LOCKS: weakref.WeakKeyDictionary = weakref.WeakKeyDictionary()
_STORE_LOCKS_GUARD = threading.Lock()


def _lock_for(store: CredentialStore) -> threading.Lock:
    """One lock per store object, shared by every manager using that store."""
    lock = getattr(store, "lock", None)
    if lock is not None:
        return lock
    with _STORE_LOCKS_GUARD:
        return _STORE_LOCKS.setdefault(store, threading.Lock())


def default_store() -> InMemoryCredentialStore:
    """Return the process-wide credential store."""
    return _DEFAULT_STORE


class CredentialManager:
    """Client-credentials token cache/refresh.

    - ``get_valid_token()`` returns the cached token while it is valid and
      performs no network I/O.
    - Otherwise exactly one exchange is made against ``token_url`` and the
      result replaces the cached credential.
    - Skew = max(1s, min(60s, expires_in // 3)) so very short-lived tokens
      are not refreshed immediately.
    """

    def __init__(
        self,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        scope: Optional[str] = None,
        token_url: Optional[str] = None,
        *,
        store: Optional[CredentialStore] = None,
        session: Optional[requests.Session] = None,
        verify: bool | str = True,
        timeout: float = config.BANKLY_TIMEOUT,
    ) -> None:
        self.client_id = client_id
        self.client_secret = client_secret
        self.scope = scope
        self.token_url = token_url or config.token_url()
        self.store = store if store is not None else _DEFAULT_STORE
        self.session = session
        self.verify = verify
        self.timeout = timeout
        self._lock = _lock_for(self.store)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def get_valid_token(self) -> str:
        cached = self.store.get()
        if cached is not None and cached.is_valid():
            return cached.access_token

        with self._lock:
            # another thread may have refreshed while we waited
            cached = self.store.get()
            if cached is not None and cached.is_valid():
                return cached.access_token
            credential = self._exchange()
            self.store.set(credential)
            return credential.access_token

    def invalidate(self) -> None:
        """Drop the cached credential; the next call re-authenticates."""
        self.store.set(None)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _post(self, data: Dict[str, Any]) -> requests.Response:
        headers = {"Content-Type": "application/x-www-form-urlencoded"}
        poster = self.session.post if self.session is not None else requests.post
        return poster(
            self.token_url,
            headers=headers,
            data=data,
            timeout=self.timeout,
            verify=self.verify,
        )

    def _exchange(self) -> Credential:
        if not self.client_id or not self.client_secret:
            token_errors_total.labels(reason="missing_credentials").inc()
            raise AuthenticationError("Bankly client_id/client_secret are not configured")

        data = {
            "grant_type": "client_credentials",
            "client_id": self.client_id,
            "client_secret": self.client_secret,
        }
        if self.scope:
            data["scope"] = self.scope

        try:
            resp = self._post(data)
        except requests.RequestException as exc:
            token_errors_total.labels(reason="transport").inc()
            raise AuthenticationError(f"Token exchange failed: {exc}") from exc

        if resp.status_code >= 400:
            token_errors_total.labels(reason="http").inc()
            body = _safe_body(resp)
            _log.warning("Token exchange rejected with HTTP %s", resp.status_code)
            raise AuthenticationError(
                f"Token exchange rejected with HTTP {resp.status_code}",
                status_code=resp.status_code,
                body=body,
            )

        try:
            payload = resp.json()
        except ValueError as exc:
            token_errors_total.labels(reason="malformed").inc()
            raise AuthenticationError("Token response is not JSON") from exc

        if not isinstance(payload, dict) or not payload.get("access_token"):
            token_errors_total.labels(reason="malformed").inc()
            raise AuthenticationError("Token response missing 'access_token'", body=payload)

        now = time.time()
        try:
            if payload.get("expires_in") is not None:
                expires_in = int(payload["expires_in"])
                expires_at = int(now) + expires_in
            elif payload.get("expires_at") is not None:
                expires_at = int(payload["expires_at"])
                expires_in = max(0, expires_at - int(now))
            else:
                raise KeyError("expires_in")
        except (KeyError, TypeError, ValueError) as exc:
            token_errors_total.labels(reason="malformed").inc()
            raise AuthenticationError("Token response missing a usable expiry", body=payload) from exc

        credential = Credential(
            access_token=payload["access_token"],
            expires_at=expires_at,
            refresh_skew=max(1, min(60, expires_in // 3)),
        )
        tokens_issued_total.inc()
        token_expiry_seconds.set(expires_at - now)
        _log.debug("Issued client_credentials token; scope=%s expires_in=%s", self.scope, expires_in)
        return credential


def _safe_body(resp: requests.Response) -> Any:
    try:
        return resp.json()
    except ValueError:
        return resp.text


def default_manager() -> CredentialManager:
    """Return the process-wide manager built from secrets/env on first use."""
    global _DEFAULT_MANAGER
    if _DEFAULT_MANAGER is None:
        with _DEFAULT_MANAGER_LOCK:
            if _DEFAULT_MANAGER is None:
                _DEFAULT_MANAGER = CredentialManager(
                    client_id=get_secret("BANKLY_CLIENT_ID"),
                    client_secret=get_secret("BANKLY_CLIENT_SECRET"),
                    scope=get_secret("BANKLY_SCOPE"),
                    token_url=config.token_url(get_secret("BANKLY_LOGIN_URL", config.BANKLY_LOGIN_URL)),
                    store=_DEFAULT_STORE,
                )
    return _DEFAULT_MANAGER


def reset_default_manager() -> None:
    """Forget the process-wide manager and cached credential (test helper)."""
    global _DEFAULT_MANAGER
    _DEFAULT_MANAGER = None
    _DEFAULT_STORE.set(None)
