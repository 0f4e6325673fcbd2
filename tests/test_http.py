import ssl
import threading
import time
import uuid

import pytest
import requests
from requests.adapters import HTTPAdapter

import bankly.http as bhttp
from bankly.errors import ApiRequestError, AuthenticationError, TransportError
from bankly.http import ClientConfig, Dispatcher, MtlsOptions, RequestBuilder, build_multipart


def _builder(token="TKN", **config_kw):
    cfg = ClientConfig(base_url="https://api.test/", **config_kw)
    return RequestBuilder(cfg, lambda: token)


def _dispatcher(**config_kw):
    return Dispatcher(_builder(**config_kw))


def _is_uuid4(value: str) -> bool:
    try:
        return uuid.UUID(value).version == 4
    except (TypeError, ValueError):
        return False


# --- RequestBuilder ------------------------------------------------------------


def test_correlation_id_generated_fresh_per_call():
    builder = _builder()
    first = builder.build("POST", "/fund-transfers", body={})
    second = builder.build("POST", "/fund-transfers", body={})

    assert _is_uuid4(first.headers["x-correlation-id"])
    assert _is_uuid4(second.headers["x-correlation-id"])
    assert first.headers["x-correlation-id"] != second.headers["x-correlation-id"]


@pytest.mark.parametrize("path", ["/banklist", "/connect/token", "/banklist?product=None"])
def test_exempt_endpoints_have_no_correlation_id(path):
    req = _builder().build("GET", path)
    assert "x-correlation-id" not in req.headers


def test_caller_correlation_id_used_verbatim_even_when_exempt():
    builder = _builder()
    assert builder.build("GET", "/banklist", correlation_id="abc").headers["x-correlation-id"] == "abc"
    assert builder.build("GET", "/events", correlation_id="xyz").headers["x-correlation-id"] == "xyz"


def test_default_headers_and_bearer():
    req = _builder().build("GET", "account/balance")
    assert req.url == "https://api.test/account/balance"
    assert req.path == "/account/balance"
    assert req.headers["api-version"] == "1"
    assert req.headers["Authorization"] == "Bearer TKN"


def test_per_call_headers_win_over_client_headers():
    builder = _builder(headers={"x-bkly-pix-user-id": "111", "x-extra": "keep"})
    req = builder.build("GET", "/pix/entries/k", headers={"x-bkly-pix-user-id": "222"})

    assert req.headers["x-bkly-pix-user-id"] == "222"
    assert req.headers["x-extra"] == "keep"
    # client-wide headers untouched by per-call headers
    assert builder.config.headers["x-bkly-pix-user-id"] == "111"


def test_token_resolution_failure_is_authentication_error():
    def broken():
        raise RuntimeError("no credentials")

    builder = RequestBuilder(ClientConfig(base_url="https://api.test"), broken)
    with pytest.raises(AuthenticationError):
        builder.build("GET", "/events")


def test_empty_token_is_authentication_error():
    with pytest.raises(AuthenticationError):
        _builder(token="").build("GET", "/events")


def test_unknown_encoding_rejected():
    with pytest.raises(ValueError):
        _builder().build("POST", "/x", body={}, encoding="xml")


def test_mtls_requires_cert_key_and_passphrase():
    full = _builder(mtls_cert_path="c.pem", mtls_key_path="k.pem", mtls_passphrase="pw")
    assert full.build("GET", "/events").mtls == MtlsOptions("c.pem", "k.pem", "pw")

    partial = _builder(mtls_cert_path="c.pem", mtls_key_path="k.pem")
    assert partial.build("GET", "/events").mtls is None


def test_build_multipart_names_single_file():
    class Doc:
        field_name = "image"
        file_contents = b"\x89PNG"
        file_name = "front.png"

    data, files = build_multipart({"documentType": "RG", "provider": None}, Doc())
    assert data == {"documentType": "RG"}
    assert files == {"image": ("front.png", b"\x89PNG")}


def test_requests_kwargs_by_encoding():
    builder = _builder()
    assert builder.build("POST", "/a", body={"x": 1}).requests_kwargs()["json"] == {"x": 1}
    form = builder.build("PUT", "/a", body={"x": 1}, encoding="form").requests_kwargs()
    assert form["data"] == {"x": 1} and "json" not in form
    get = builder.build("GET", "/a", params={"q": 1}).requests_kwargs()
    assert get["params"] == {"q": 1} and "json" not in get and "data" not in get


# --- Dispatcher -----------------------------------------------------------------


def test_get_returns_decoded_json(fake_http):
    fake_http.respond(200, [{"code": "001"}])
    assert _dispatcher().get("/banklist") == [{"code": "001"}]
    assert fake_http.last["method"] == "GET"
    assert fake_http.last["url"] == "https://api.test/banklist"


def test_post_json_body(fake_http):
    fake_http.respond(202, {"ok": True})
    assert _dispatcher().post("/fund-transfers", {"amount": 10}, None, "json") == {"ok": True}
    assert fake_http.last["json"] == {"amount": 10}


def test_post_defaults_to_form_body(fake_http):
    _dispatcher().post("/legacy", {"a": "b"})
    assert fake_http.last["data"] == {"a": "b"}
    assert "json" not in fake_http.last


def test_delete_sends_json_body_and_correlation_id(fake_http):
    _dispatcher().delete("/bankslip/cancel", {"authenticationCode": "x"})
    call = fake_http.last
    assert call["method"] == "DELETE"
    assert call["json"] == {"authenticationCode": "x"}
    assert _is_uuid4(call["headers"]["x-correlation-id"])


def test_empty_success_body_returns_none(fake_http):
    fake_http.respond(204)
    assert _dispatcher().patch("/accounts/1/closure", {"reason": "HOLDER_REQUEST"}) is None


def test_raw_response_mode(fake_http):
    fake_http.respond(200, content=b"%PDF-1.4")
    resp = _dispatcher().get("/bankslip/abc/pdf", response_json=False)
    assert isinstance(resp, requests.Response)
    assert resp.content == b"%PDF-1.4"


@pytest.mark.parametrize("status", [400, 404, 500])
def test_http_errors_raise_api_request_error(fake_http, status):
    body = {"errors": [{"code": "INSUFFICIENT_BALANCE"}]}
    fake_http.respond(status, body)

    with pytest.raises(ApiRequestError) as exc_info:
        _dispatcher().post("/fund-transfers", {}, None, "json")
    assert exc_info.value.status_code == status
    assert exc_info.value.body == body
    assert exc_info.value.response.status_code == status


def test_http_error_with_text_body(fake_http):
    fake_http.respond(502, content=b"bad gateway")
    with pytest.raises(ApiRequestError) as exc_info:
        _dispatcher().get("/events")
    assert exc_info.value.body == "bad gateway"


def test_no_retry_on_server_error(fake_http):
    fake_http.respond(503, {"message": "unavailable"})
    fake_http.respond(200, {"ok": True})
    with pytest.raises(ApiRequestError):
        _dispatcher().get("/events")
    assert len(fake_http.calls) == 1


@pytest.mark.parametrize(
    "exc",
    [requests.ConnectTimeout("t"), requests.ConnectionError("refused"), requests.exceptions.SSLError("tls")],
)
def test_network_failures_raise_transport_error(fake_http, exc):
    fake_http.fail(exc)
    with pytest.raises(TransportError) as exc_info:
        _dispatcher().get("/events")
    assert exc_info.value.__cause__ is exc


def test_non_json_success_body_is_transport_error(fake_http):
    fake_http.respond(200, content=b"<html>oops</html>")
    with pytest.raises(TransportError):
        _dispatcher().get("/events")


def test_auth_failure_aborts_before_network(fake_http):
    def broken():
        raise AuthenticationError("exchange failed")

    dispatcher = Dispatcher(RequestBuilder(ClientConfig(base_url="https://api.test"), broken))
    with pytest.raises(AuthenticationError):
        dispatcher.get("/events")
    assert fake_http.calls == []


def test_timeout_and_verify_forwarded(fake_http):
    dispatcher = Dispatcher(_builder(), timeout=7, verify="/etc/ca.pem")
    dispatcher.get("/events")
    assert fake_http.last["timeout"] == 7
    assert fake_http.last["verify"] == "/etc/ca.pem"


class _RecordingAdapter(HTTPAdapter):
    created = []
    closed = 0

    def __init__(self, options, verify=True, **kwargs):
        _RecordingAdapter.created.append((options, verify))
        super().__init__(**kwargs)

    def close(self):
        _RecordingAdapter.closed += 1
        super().close()


@pytest.fixture
def recording_adapter(monkeypatch):
    _RecordingAdapter.created = []
    _RecordingAdapter.closed = 0
    monkeypatch.setattr(bhttp, "MtlsAdapter", _RecordingAdapter)
    return _RecordingAdapter


_MTLS = dict(mtls_cert_path="c.pem", mtls_key_path="k.pem", mtls_passphrase="pw")


def test_mtls_session_mounts_client_certificate_adapter(fake_http, recording_adapter):
    dispatcher = _dispatcher(**_MTLS)

    dispatcher.get("/events")
    dispatcher.get("/events")

    assert recording_adapter.created == [(MtlsOptions("c.pem", "k.pem", "pw"), True)]
    used = fake_http.last["session"]
    assert used is not dispatcher.session
    assert isinstance(used.get_adapter("https://api.test/events"), recording_adapter)


def test_mtls_adapter_receives_verify_setting(fake_http, recording_adapter):
    dispatcher = Dispatcher(_builder(**_MTLS), verify=False)
    dispatcher.get("/events")

    assert recording_adapter.created == [(MtlsOptions("c.pem", "k.pem", "pw"), False)]
    assert fake_http.last["verify"] is False


def test_mtls_context_accepts_cert_none_when_verify_disabled(monkeypatch):
    monkeypatch.setattr(ssl.SSLContext, "load_cert_chain", lambda self, **kw: None)

    adapter = bhttp.MtlsAdapter(MtlsOptions("c.pem", "k.pem", "pw"), verify=False)
    ctx = adapter._ssl_context
    assert ctx.check_hostname is False
    # urllib3 applies this when verify=False; it must not raise
    ctx.verify_mode = ssl.CERT_NONE
    assert ctx.verify_mode == ssl.CERT_NONE

    strict = bhttp.MtlsAdapter(MtlsOptions("c.pem", "k.pem", "pw"))
    assert strict._ssl_context.check_hostname is True
    assert strict._ssl_context.verify_mode == ssl.CERT_REQUIRED


def test_mtls_session_keeps_caller_session_settings(fake_http, recording_adapter):
    def hook(resp, *args, **kwargs):
        return resp

    custom = HTTPAdapter()
    caller = requests.Session()
    caller.proxies = {"https": "http://proxy.internal:3128"}
    caller.hooks["response"].append(hook)
    caller.headers["User-Agent"] = "treasury/1.0"
    caller.trust_env = False
    caller.mount("https://other.example/", custom)

    dispatcher = Dispatcher(_builder(**_MTLS), session=caller)
    dispatcher.get("/events")

    used = fake_http.last["session"]
    assert used is not caller
    assert used.proxies == {"https": "http://proxy.internal:3128"}
    assert hook in used.hooks["response"]
    assert used.headers["User-Agent"] == "treasury/1.0"
    assert used.trust_env is False
    assert used.get_adapter("https://other.example/x") is custom
    assert isinstance(used.get_adapter("https://api.test/events"), recording_adapter)


def test_concurrent_first_mtls_calls_build_one_session(fake_http, monkeypatch):
    created = []

    class SlowAdapter(HTTPAdapter):
        def __init__(self, options, verify=True, **kwargs):
            created.append(options)
            time.sleep(0.05)
            super().__init__(**kwargs)

    monkeypatch.setattr(bhttp, "MtlsAdapter", SlowAdapter)
    dispatcher = _dispatcher(**_MTLS)
    threads = [threading.Thread(target=dispatcher.get, args=("/events",)) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(created) == 1
    assert len({id(c["session"]) for c in fake_http.calls}) == 1


def test_close_releases_mtls_adapters(fake_http, recording_adapter):
    dispatcher = _dispatcher(**_MTLS)
    dispatcher.get("/events")

    dispatcher.close()

    assert recording_adapter.closed == 1
    dispatcher.get("/events")
    assert len(recording_adapter.created) == 2


def test_plain_tls_uses_default_session(fake_http):
    dispatcher = _dispatcher()
    dispatcher.get("/events")
    assert fake_http.last["session"] is dispatcher.session


def test_unreadable_client_certificate_is_transport_error(fake_http, tmp_path):
    dispatcher = _dispatcher(
        mtls_cert_path=str(tmp_path / "missing.crt"),
        mtls_key_path=str(tmp_path / "missing.key"),
        mtls_passphrase="pw",
    )
    with pytest.raises(TransportError):
        dispatcher.get("/events")
    assert fake_http.calls == []
