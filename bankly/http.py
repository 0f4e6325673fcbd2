"""Request building and HTTP verb dispatch for the Bankly API.

Uses ``requests`` with:
* Base URL + ``api-version`` header from :class:`ClientConfig`
* Bearer token resolved per call (explicit token or :class:`CredentialManager`)
* ``x-correlation-id`` generated per call except on exempt endpoints
* Optional mutual TLS via an :class:`MtlsAdapter` mounted on a dedicated session
* Prometheus counter + histogram (labels: method, status)

No retries: one call in, one result or one typed error out.
"""
from __future__ import annotations

import logging
import ssl
import threading
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Mapping, Optional, Protocol, Tuple
from urllib.parse import urlsplit

import requests
from requests.adapters import HTTPAdapter

from . import config
from .errors import ApiRequestError, AuthenticationError, TransportError
from .metrics import http_latency_seconds, http_requests_total

__all__ = [
    "JSON",
    "FORM",
    "MULTIPART",
    "Attachment",
    "ClientConfig",
    "MtlsOptions",
    "MtlsAdapter",
    "OutboundRequest",
    "RequestBuilder",
    "Dispatcher",
    "build_multipart",
    "requires_correlation_id",
]

_log = logging.getLogger(__name__)

JSON = "json"
FORM = "form"
MULTIPART = "multipart"
_ENCODINGS = frozenset({JSON, FORM, MULTIPART})


class Attachment(Protocol):
    """A single named file sent as a multipart part."""

    field_name: str
    file_contents: bytes
    file_name: str


@dataclass(frozen=True)
class MtlsOptions:
    cert_path: str
    key_path: str
    passphrase: str


@dataclass
class ClientConfig:
    """Per-client settings; mutated only through BanklyClient setters."""

    base_url: str = config.BANKLY_API_URL
    api_version: str = config.BANKLY_API_VERSION
    mtls_cert_path: Optional[str] = None
    mtls_key_path: Optional[str] = None
    mtls_passphrase: Optional[str] = None
    headers: Dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.base_url = self.base_url.rstrip("/")
        self.headers.setdefault("api-version", self.api_version)

    def mtls(self) -> Optional[MtlsOptions]:
        if self.mtls_cert_path and self.mtls_key_path and self.mtls_passphrase:
            return MtlsOptions(self.mtls_cert_path, self.mtls_key_path, self.mtls_passphrase)
        return None


@dataclass
class OutboundRequest:
    """Fully formed request; built fresh for every call and never reused."""

    method: str
    url: str
    path: str
    headers: Dict[str, str]
    params: Any = None
    encoding: str = JSON
    body: Any = None
    files: Optional[Dict[str, Tuple[str, bytes]]] = None
    mtls: Optional[MtlsOptions] = None

    @property
    def correlation_id(self) -> Optional[str]:
        return self.headers.get("x-correlation-id")

    def requests_kwargs(self) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {"headers": self.headers}
        if self.params is not None:
            kwargs["params"] = self.params
        if self.encoding == MULTIPART:
            kwargs["data"] = self.body or {}
            kwargs["files"] = self.files or {}
        elif self.body is not None:
            if self.encoding == JSON:
                kwargs["json"] = self.body
            else:
                kwargs["data"] = self.body
        return kwargs


def requires_correlation_id(path: str) -> bool:
    return path.split("?", 1)[0] not in config.CORRELATION_EXEMPT_PATHS


def build_multipart(
    fields: Optional[Mapping[str, Any]], attachment: Attachment
) -> Tuple[Dict[str, Any], Dict[str, Tuple[str, bytes]]]:
    """Return ``(data, files)`` for a multipart body with one named file."""
    data = {k: v for k, v in (fields or {}).items() if v is not None}
    files = {attachment.field_name: (attachment.file_name, attachment.file_contents)}
    return data, files


class RequestBuilder:
    """Turns endpoint + payload into an :class:`OutboundRequest`."""

    def __init__(self, client_config: ClientConfig, token_resolver: Callable[[], str]) -> None:
        self.config = client_config
        self._resolve_token = token_resolver

    def build(
        self,
        method: str,
        path: str,
        *,
        params: Any = None,
        body: Any = None,
        correlation_id: Optional[str] = None,
        encoding: str = JSON,
        headers: Optional[Mapping[str, str]] = None,
        attachment: Optional[Attachment] = None,
    ) -> OutboundRequest:
        if encoding not in _ENCODINGS:
            raise ValueError(f"Unsupported body encoding: {encoding}")
        path = path if path.startswith("/") else f"/{path}"

        if correlation_id is None and requires_correlation_id(path):
            correlation_id = str(uuid.uuid4())

        # client-wide first, per-call wins on collision
        merged = {**self.config.headers, **(headers or {})}
        if correlation_id is not None:
            merged["x-correlation-id"] = correlation_id

        try:
            token = self._resolve_token()
        except AuthenticationError:
            raise
        except Exception as exc:
            raise AuthenticationError(f"Unable to resolve access token: {exc}") from exc
        if not token:
            raise AuthenticationError("No access token available")
        merged["Authorization"] = f"Bearer {token}"

        files = None
        if attachment is not None:
            encoding = MULTIPART
            body, files = build_multipart(body, attachment)

        return OutboundRequest(
            method=method.upper(),
            url=f"{self.config.base_url}{path}",
            path=path,
            headers=merged,
            params=params,
            encoding=encoding,
            body=body,
            files=files,
            mtls=self.config.mtls(),
        )


class MtlsAdapter(HTTPAdapter):
    """HTTPAdapter presenting a client certificate protected by a passphrase."""

    def __init__(self, options: MtlsOptions, verify: bool | str = True, **kwargs: Any) -> None:
        self._ssl_context = ssl.create_default_context()
        if verify is False:
            # urllib3 sets CERT_NONE on this context, which requires check_hostname off first
            self._ssl_context.check_hostname = False
            self._ssl_context.verify_mode = ssl.CERT_NONE
        self._ssl_context.load_cert_chain(
            certfile=options.cert_path,
            keyfile=options.key_path,
            password=options.passphrase,
        )
        super().__init__(**kwargs)

    def init_poolmanager(self, *args: Any, **kwargs: Any) -> None:
        kwargs["ssl_context"] = self._ssl_context
        return super().init_poolmanager(*args, **kwargs)

    def proxy_manager_for(self, *args: Any, **kwargs: Any):
        kwargs["ssl_context"] = self._ssl_context
        return super().proxy_manager_for(*args, **kwargs)


class Dispatcher:
    """Uniform GET/POST/PUT/PATCH/DELETE wrappers around :class:`RequestBuilder`."""

    def __init__(
        self,
        builder: RequestBuilder,
        *,
        session: Optional[requests.Session] = None,
        timeout: float = config.BANKLY_TIMEOUT,
        verify: bool | str = True,
    ) -> None:
        self.builder = builder
        self.session = session or requests.Session()
        self.timeout = timeout
        self.verify = verify
        # (options, origin) -> (session, adapter); built lazily under _mtls_lock
        self._mtls_sessions: Dict[Tuple[MtlsOptions, str], Tuple[requests.Session, MtlsAdapter]] = {}
        self._mtls_lock = threading.Lock()

    # --- verbs ----------------------------------------------------------------
    def get(
        self,
        path: str,
        params: Any = None,
        correlation_id: Optional[str] = None,
        *,
        headers: Optional[Mapping[str, str]] = None,
        response_json: bool = True,
    ) -> Any:
        req = self.builder.build(
            "GET", path, params=params, correlation_id=correlation_id, headers=headers
        )
        return self.send(req, response_json=response_json)

    def post(
        self,
        path: str,
        body: Any = None,
        correlation_id: Optional[str] = None,
        encoding: str = FORM,
        *,
        headers: Optional[Mapping[str, str]] = None,
        attachment: Optional[Attachment] = None,
    ) -> Any:
        return self._send_body("POST", path, body, correlation_id, encoding, headers, attachment)

    def put(
        self,
        path: str,
        body: Any = None,
        correlation_id: Optional[str] = None,
        encoding: str = FORM,
        *,
        headers: Optional[Mapping[str, str]] = None,
        attachment: Optional[Attachment] = None,
    ) -> Any:
        return self._send_body("PUT", path, body, correlation_id, encoding, headers, attachment)

    def patch(
        self,
        path: str,
        body: Any = None,
        correlation_id: Optional[str] = None,
        encoding: str = FORM,
        *,
        headers: Optional[Mapping[str, str]] = None,
    ) -> Any:
        return self._send_body("PATCH", path, body, correlation_id, encoding, headers, None)

    def delete(
        self,
        path: str,
        body: Any = None,
        correlation_id: Optional[str] = None,
        encoding: str = JSON,
        *,
        headers: Optional[Mapping[str, str]] = None,
    ) -> Any:
        return self._send_body("DELETE", path, body, correlation_id, encoding, headers, None)

    def _send_body(self, method, path, body, correlation_id, encoding, headers, attachment) -> Any:
        req = self.builder.build(
            method,
            path,
            body=body,
            correlation_id=correlation_id,
            encoding=encoding,
            headers=headers,
            attachment=attachment,
        )
        return self.send(req)

    # --- core -----------------------------------------------------------------
    def _session_for(self, req: OutboundRequest) -> requests.Session:
        if req.mtls is None:
            return self.session
        parts = urlsplit(req.url)
        origin = f"{parts.scheme}://{parts.netloc}"
        key = (req.mtls, origin)
        with self._mtls_lock:
            entry = self._mtls_sessions.get(key)
            if entry is None:
                try:
                    adapter = MtlsAdapter(req.mtls, verify=self.verify)
                except (OSError, ssl.SSLError) as exc:
                    raise TransportError(f"Unable to load mTLS client certificate: {exc}") from exc
                entry = (self._derive_session(origin, adapter), adapter)
                self._mtls_sessions[key] = entry
        return entry[0]

    def _derive_session(self, origin: str, adapter: MtlsAdapter) -> requests.Session:
        """Session sharing the caller's settings, with *adapter* mounted for *origin*."""
        session = requests.Session()
        for attr in _SESSION_ATTRS:
            setattr(session, attr, getattr(self.session, attr))
        for prefix, mounted in self.session.adapters.items():
            session.mount(prefix, mounted)
        session.mount(f"{origin}/", adapter)
        return session

    def close(self) -> None:
        """Release pooled connections, including every mTLS adapter."""
        with self._mtls_lock:
            entries = list(self._mtls_sessions.values())
            self._mtls_sessions.clear()
        for _session, adapter in entries:
            # other adapters belong to the caller's session
            adapter.close()
        self.session.close()

    def send(self, req: OutboundRequest, *, response_json: bool = True) -> Any:
        session = self._session_for(req)
        log_extra = {
            "correlation_id": req.correlation_id,
            "endpoint": req.path,
            "method": req.method,
        }
        start = time.perf_counter()
        try:
            resp = session.request(
                req.method,
                req.url,
                timeout=self.timeout,
                verify=self.verify,
                **req.requests_kwargs(),
            )
        except requests.RequestException as exc:
            http_requests_total.labels(req.method, "transport_error").inc()
            _log.warning("%s %s failed: %s", req.method, req.path, exc, extra=log_extra)
            raise TransportError(f"{req.method} {req.path} failed: {exc}") from exc
        finally:
            http_latency_seconds.labels(req.method).observe(time.perf_counter() - start)

        http_requests_total.labels(req.method, str(resp.status_code)).inc()
        _log.debug(
            "%s %s -> %s",
            req.method,
            req.path,
            resp.status_code,
            extra={**log_extra, "status": resp.status_code},
        )

        if resp.status_code >= 400:
            raise ApiRequestError(resp.status_code, _error_body(resp), resp)

        if not response_json:
            return resp
        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as exc:
            raise TransportError(
                f"{req.method} {req.path} returned HTTP {resp.status_code} with a non-JSON body"
            ) from exc


_SESSION_ATTRS = (
    "headers",
    "auth",
    "proxies",
    "hooks",
    "params",
    "stream",
    "verify",
    "cert",
    "max_redirects",
    "trust_env",
    "cookies",
)


def _error_body(resp: requests.Response) -> Any:
    if not resp.content:
        return None
    try:
        return resp.json()
    except ValueError:
        return resp.text
