import io
import json
import logging
import urllib.error

import pytest

from fxentry.core.logging import ContextFilter, JsonFormatter, bind_session, request_id_ctx
from fxentry.services import http_client
from fxentry.services.http_client import HttpError, build_url, get_json


class _Resp(io.BytesIO):
    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
        return False


def _script(monkeypatch, outcomes):
    calls = []

    def fake_urlopen(req, timeout):
        calls.append(req.full_url)
        outcome = outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return _Resp(json.dumps(outcome).encode("utf-8"))

    monkeypatch.setattr(http_client.urllib.request, "urlopen", fake_urlopen)
    monkeypatch.setattr(http_client.time, "sleep", lambda s: None)
    return calls


def _http_error(code):
    return urllib.error.HTTPError("http://x", code, "err", {}, None)


def test_build_url_appends_query():
    assert build_url("https://api/latest", {"from": "GBP", "to": "USD"}) == (
        "https://api/latest?from=GBP&to=USD"
    )
    assert build_url("https://api/latest?x=1", {"to": "USD"}) == "https://api/latest?x=1&to=USD"
    assert build_url("https://api/latest") == "https://api/latest"


def test_transport_error_is_retried(monkeypatch):
    calls = _script(monkeypatch, [urllib.error.URLError("down"), {"rates": {"USD": 1.265}}])
    assert get_json("https://api/latest", {"from": "GBP"}, retries=2) == {"rates": {"USD": 1.265}}
    assert len(calls) == 2


def test_server_error_retried_until_exhausted(monkeypatch):
    calls = _script(monkeypatch, [_http_error(502), _http_error(503)])
    with pytest.raises(HttpError):
        get_json("https://api/latest", retries=1)
    assert len(calls) == 2


def test_client_error_fails_immediately(monkeypatch):
    calls = _script(monkeypatch, [_http_error(404), {"unused": True}])
    with pytest.raises(HttpError) as exc:
        get_json("https://api/latest", retries=3)
    assert exc.value.status == 404
    assert len(calls) == 1


def test_non_object_payload_rejected(monkeypatch):
    _script(monkeypatch, [[1, 2, 3]])
    with pytest.raises(HttpError):
        get_json("https://api/latest", retries=0)


def test_json_log_line_carries_context():
    record = logging.LogRecord("fxentry.test", logging.INFO, __file__, 1, "hello %s", ("there",), None)
    token = request_id_ctx.set("req-1")
    try:
        with bind_session("sess-9"):
            ContextFilter().filter(record)
    finally:
        request_id_ctx.reset(token)
    line = json.loads(JsonFormatter().format(record))
    assert line["msg"] == "hello there"
    assert line["request_id"] == "req-1"
    assert line["session_id"] == "sess-9"
