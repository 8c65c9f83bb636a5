import gzip
from unittest import mock

import pytest
import urllib3

from beacon_sdk.client import get_options
from beacon_sdk.http import (
    ENVELOPE_CONTENT_TYPE,
    Request,
    Response,
    Urllib3HttpClient,
    _error_from_body,
)

from tests.conftest import DSN


def make_client(**kwargs):
    options = get_options(DSN, **kwargs)
    return Urllib3HttpClient(options), options


def pool_response(status=200, headers=None, data=b""):
    response = mock.Mock(status=status, headers=headers or {}, data=data)
    return response


def test_response_headers_are_case_insensitive():
    response = Response(429, {"Retry-After": "30", "X-Sentry-Rate-Limits": "60::"})

    assert response.get_header("retry-after") == "30"
    assert response.get_header("X-SENTRY-RATE-LIMITS") == "60::"
    assert response.get_header("missing", "fallback") == "fallback"


@pytest.mark.parametrize(
    "status,success", [(200, True), (204, True), (299, True), (302, False), (500, False)]
)
def test_response_success(status, success):
    assert Response(status).is_success() is success


def test_response_error():
    assert not Response(200).has_error()
    assert Response(400, error="bad").get_error() == "bad"


@pytest.mark.parametrize(
    "body,expected",
    [
        (b"", ""),
        (b'{"detail":"invalid event"}', "invalid event"),
        (b'{"other":1}', '{"other":1}'),
        (b"plain text", "plain text"),
        (b"[1, 2]", "[1, 2]"),
    ],
)
def test_error_from_body(body, expected):
    assert _error_from_body(body) == expected


def test_needs_dsn():
    with pytest.raises(AssertionError):
        Urllib3HttpClient(get_options())


def test_pool_options(monkeypatch):
    monkeypatch.delenv("HTTPS_PROXY", raising=False)
    monkeypatch.delenv("https_proxy", raising=False)
    monkeypatch.delenv("HTTP_PROXY", raising=False)
    monkeypatch.delenv("http_proxy", raising=False)

    client, _ = make_client(http_timeout=3)

    assert isinstance(client._pool, urllib3.PoolManager)
    assert not isinstance(client._pool, urllib3.ProxyManager)
    assert client._pool.connection_pool_kw["cert_reqs"] == "CERT_REQUIRED"
    assert client._pool.connection_pool_kw["timeout"].total == 3


def test_explicit_proxy():
    client, _ = make_client(https_proxy="http://proxy.internal:3128")

    assert isinstance(client._pool, urllib3.ProxyManager)
    assert client._pool.proxy.host == "proxy.internal"


def test_send_request_gzips_body():
    client, options = make_client()
    pool = mock.Mock()
    pool.request.return_value = pool_response(200, {"X-Sentry-Rate-Limits": "60::"})
    client._pool = pool

    response = client.send_request(Request(b"payload", {"X-Extra": "1"}), options)

    assert response.status_code == 200
    assert response.get_header("x-sentry-rate-limits") == "60::"
    (args, kwargs) = pool.request.call_args
    assert args == ("POST", "https://collector.example.com/api/42/envelope/")
    assert gzip.decompress(kwargs["body"]) == b"payload"
    headers = kwargs["headers"]
    assert headers["Content-Encoding"] == "gzip"
    assert headers["Content-Type"] == ENVELOPE_CONTENT_TYPE
    assert headers["X-Extra"] == "1"
    assert headers["X-Sentry-Auth"].startswith("Sentry sentry_key=public")
    assert headers["User-Agent"].startswith("beacon.python/")
    pool.request.return_value.close.assert_called_once()


def test_send_request_without_compression():
    client, options = make_client(http_compression=False)
    pool = mock.Mock()
    pool.request.return_value = pool_response(200)
    client._pool = pool

    client.send_request(Request(b"payload"), options)

    kwargs = pool.request.call_args[1]
    assert kwargs["body"] == b"payload"
    assert "Content-Encoding" not in kwargs["headers"]


def test_send_request_reads_error_body():
    client, options = make_client()
    pool = mock.Mock()
    pool.request.return_value = pool_response(400, data=b'{"detail":"bad envelope"}')
    client._pool = pool

    response = client.send_request(Request(b"payload"), options)

    assert response.status_code == 400
    assert response.get_error() == "bad envelope"


def test_send_request_propagates_connection_errors():
    client, options = make_client()
    pool = mock.Mock()
    pool.request.side_effect = urllib3.exceptions.HTTPError("refused")
    client._pool = pool

    with pytest.raises(urllib3.exceptions.HTTPError):
        client.send_request(Request(b"payload"), options)
