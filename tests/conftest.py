import json
import time
from typing import Any, List

import pytest
import requests

from bankly import auth as auth_module
from bankly.auth import Credential, CredentialManager, InMemoryCredentialStore
from bankly.client import BanklyClient
from bankly.common import secrets as secrets_module


def pytest_configure(config):
    """If pytest-socket is installed, disable sockets and allow localhost if supported."""
    try:
        import pytest_socket

        pytest_socket.disable_socket()
        if hasattr(pytest_socket, "allow_hosts"):
            pytest_socket.allow_hosts("127.0.0.1", "localhost")
    except ImportError:
        pass


@pytest.fixture(autouse=True)
def _secrets() -> None:
    """Provide default secrets for tests via the secrets manager."""

    secrets_module.secrets.set_override(
        {"BANKLY_CLIENT_ID": "test-client", "BANKLY_CLIENT_SECRET": "test-secret"}
    )
    auth_module.reset_default_manager()
    yield
    auth_module.reset_default_manager()
    secrets_module.secrets.set_override({})


# ---------------------------------------------------------------------------
# Fake HTTP layer
# ---------------------------------------------------------------------------


def make_response(status_code: int = 200, json_data: Any = None, content: bytes = b"") -> requests.Response:
    resp = requests.Response()
    resp.status_code = status_code
    resp.encoding = "utf-8"
    if json_data is not None:
        resp._content = json.dumps(json_data).encode()
        resp.headers["Content-Type"] = "application/json"
    else:
        resp._content = content
    return resp


class FakeHTTP:
    """Records Session.request calls and replays queued responses."""

    def __init__(self) -> None:
        self.calls: List[dict] = []
        self._queue: List[Any] = []

    def respond(self, status_code: int = 200, json_data: Any = None, content: bytes = b"") -> None:
        self._queue.append(make_response(status_code, json_data, content))

    def fail(self, exc: Exception) -> None:
        self._queue.append(exc)

    @property
    def last(self) -> dict:
        return self.calls[-1]

    def __call__(self, session, method, url, **kwargs):
        self.calls.append({"session": session, "method": method, "url": url, **kwargs})
        item = self._queue.pop(0) if self._queue else make_response(200, {})
        if isinstance(item, Exception):
            raise item
        return item


@pytest.fixture
def fake_http(monkeypatch) -> FakeHTTP:
    fake = FakeHTTP()

    def fake_request(self, method, url, **kwargs):
        return fake(self, method, url, **kwargs)

    monkeypatch.setattr(requests.Session, "request", fake_request, raising=True)
    return fake


@pytest.fixture
def valid_store() -> InMemoryCredentialStore:
    return InMemoryCredentialStore(Credential("CACHED_TOKEN", int(time.time()) + 3600))


@pytest.fixture
def client(valid_store) -> BanklyClient:
    manager = CredentialManager("id", "secret", token_url="https://login.test/connect/token", store=valid_store)
    return BanklyClient(base_url="https://api.test", credential_manager=manager)


@pytest.fixture
def make_resp():
    return make_response
