# === NAVMAP v1 ===
# {
#   "module": "tests.format_library.test_net",
#   "purpose": "Validates the shared HTTPX client, polite headers, and the Tenacity retry policy.",
#   "sections": [
#     {"id": "tests", "name": "Test Cases", "anchor": "TST", "kind": "tests"}
#   ]
# }
# === /NAVMAP ===

"""Validates the shared HTTPX client, polite headers, and the Tenacity retry policy."""

from __future__ import annotations

import httpx
import pytest

from FormatLibrary import net
from FormatLibrary.errors import DownloadFailure
from FormatLibrary.settings import DownloadConfiguration
from FormatLibrary.testing import use_mock_http_client

URL = "https://registry.example.org/catalog.xml"


def _config(max_retries: int = 2) -> DownloadConfiguration:
    return DownloadConfiguration(max_retries=max_retries, backoff_factor=0.0, user_agent="NetTest/1.0")


def _sequence(*statuses: int):
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        index = min(len(calls), len(statuses)) - 1
        return httpx.Response(statuses[index], content=b"payload")

    return calls, handler


def test_get_http_client_singleton():
    calls, handler = _sequence(200)
    with use_mock_http_client(httpx.MockTransport(handler), default_config=_config()) as client:
        assert net.get_http_client() is client
        assert net.get_http_client() is client
    assert calls == []


def test_reset_builds_fresh_client():
    net.reset_http_client()
    first = net.get_http_client(_config())
    net.reset_http_client()
    second = net.get_http_client(_config())
    assert first is not second
    assert first.is_closed
    net.reset_http_client()


def test_retry_then_success():
    calls, handler = _sequence(503, 200)
    config = _config()
    with use_mock_http_client(httpx.MockTransport(handler), default_config=config):
        response = net.request_with_retry("GET", URL, config=config)
    assert response.status_code == 200
    assert response.content == b"payload"
    assert len(calls) == 2


def test_client_error_is_not_retried():
    calls, handler = _sequence(404)
    config = _config()
    with use_mock_http_client(httpx.MockTransport(handler), default_config=config):
        with pytest.raises(DownloadFailure) as excinfo:
            net.request_with_retry("GET", URL, config=config)
    assert excinfo.value.status_code == 404
    assert excinfo.value.retryable is False
    assert len(calls) == 1


def test_retries_are_bounded():
    calls, handler = _sequence(503)
    config = _config(max_retries=2)
    with use_mock_http_client(httpx.MockTransport(handler), default_config=config):
        with pytest.raises(DownloadFailure) as excinfo:
            net.request_with_retry("GET", URL, config=config)
    assert excinfo.value.status_code == 503
    assert excinfo.value.retryable is True
    assert len(calls) == 3


def test_connect_errors_are_retried():
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        raise httpx.ConnectError("connection refused", request=request)

    config = _config(max_retries=1)
    with use_mock_http_client(httpx.MockTransport(handler), default_config=config):
        with pytest.raises(DownloadFailure, match="ConnectError") as excinfo:
            net.request_with_retry("GET", URL, config=config)
    assert excinfo.value.status_code is None
    assert excinfo.value.retryable is True
    assert len(calls) == 2


def test_polite_headers_and_correlation_id():
    calls, handler = _sequence(200)
    config = _config()
    config.polite_headers = {"From": "archivist@example.org"}
    with use_mock_http_client(httpx.MockTransport(handler), default_config=config):
        net.request_with_retry("GET", URL, config=config, correlation_id="abc123")
    request = calls[0]
    assert request.headers["User-Agent"] == "NetTest/1.0"
    assert request.headers["From"] == "archivist@example.org"
    assert request.headers["X-Request-ID"] == "abc123"


def test_stream_with_retry_reads_body():
    calls, handler = _sequence(500, 200)
    config = _config()
    with use_mock_http_client(httpx.MockTransport(handler), default_config=config):
        with net.stream_with_retry(URL, config=config) as response:
            body = b"".join(response.iter_bytes())
    assert body == b"payload"
    assert len(calls) == 2


def test_retry_policy_attempts():
    policy = net.create_http_retry_policy(DownloadConfiguration(max_retries=4))
    assert policy.stop.max_attempt_number == 5


@pytest.mark.parametrize(
    ("value", "expected"),
    [("3", 3.0), ("0", 0.0), ("soon", None), (None, None), ("Wed, 21 Oct 2015 07:28:00 GMT", 0.0)],
)
def test_parse_retry_after(value, expected):
    assert net._parse_retry_after_value(value) == expected


def test_is_retryable_classification():
    request = httpx.Request("GET", URL)
    throttled = httpx.HTTPStatusError("429", request=request, response=httpx.Response(429, request=request))
    missing = httpx.HTTPStatusError("404", request=request, response=httpx.Response(404, request=request))
    assert net.is_retryable(throttled)
    assert not net.is_retryable(missing)
    assert net.is_retryable(httpx.ReadTimeout("slow", request=request))
    assert not net.is_retryable(ValueError("nope"))
