import gzip
import io
import json
import urllib.request
from abc import ABC, abstractmethod

import certifi
import urllib3

from beacon_sdk.consts import VERSION, DEFAULT_HTTP_TIMEOUT
from beacon_sdk.utils import Dsn, logger

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import Any
    from typing import Dict
    from typing import Mapping
    from typing import Optional
    from typing import Union

    from urllib3.poolmanager import PoolManager
    from urllib3.poolmanager import ProxyManager


ENVELOPE_CONTENT_TYPE = "application/x-sentry-envelope"


class Request:
    """An outgoing request body plus any extra headers."""

    def __init__(
        self, body: bytes = b"", headers: "Optional[Dict[str, str]]" = None
    ) -> None:
        self.body = body
        self.headers = dict(headers or ())

    def __repr__(self) -> str:
        return "<Request %d bytes>" % (len(self.body),)


class Response:
    """
    The part of an HTTP response the transport cares about. Header lookups
    are case insensitive.
    """

    def __init__(
        self,
        status_code: int,
        headers: "Optional[Mapping[str, str]]" = None,
        error: "Optional[str]" = None,
    ) -> None:
        self.status_code = status_code
        self.headers = {k.lower(): v for k, v in (headers or {}).items()}
        self.error = error or ""

    def __repr__(self) -> str:
        return "<Response status_code=%r>" % (self.status_code,)

    def get_header(self, name: str, default: "Optional[str]" = None) -> "Optional[str]":
        return self.headers.get(name.lower(), default)

    def is_success(self) -> bool:
        return 200 <= self.status_code < 300

    def has_error(self) -> bool:
        return bool(self.error)

    def get_error(self) -> str:
        return self.error


class HttpClient(ABC):
    """Sends a serialized payload to the collector configured by the options."""

    @abstractmethod
    def send_request(self, request: "Request", options: "Dict[str, Any]") -> "Response":
        pass


def _error_from_body(body: bytes) -> str:
    if not body:
        return ""
    text = body.decode("utf-8", "replace")
    try:
        detail = json.loads(text).get("detail")
    except (ValueError, AttributeError):
        return text
    return str(detail) if detail else text


class Urllib3HttpClient(HttpClient):
    """The default HTTP client backed by a urllib3 pool."""

    def __init__(self, options: "Dict[str, Any]") -> None:
        assert options.get("dsn"), "the HTTP client needs a DSN"
        self.options = options
        self.parsed_dsn = Dsn(options["dsn"])
        self._auth = self.parsed_dsn.to_auth("beacon.python/%s" % VERSION)
        self._pool = self._make_pool(
            self.parsed_dsn,
            http_proxy=options.get("http_proxy"),
            https_proxy=options.get("https_proxy"),
            ca_certs=options.get("ca_certs"),
        )

    def _get_pool_options(self, ca_certs: "Optional[Any]") -> "Dict[str, Any]":
        return {
            "num_pools": 2,
            "cert_reqs": "CERT_REQUIRED",
            "ca_certs": ca_certs or certifi.where(),
            "timeout": urllib3.Timeout(
                total=self.options.get("http_timeout") or DEFAULT_HTTP_TIMEOUT
            ),
            "retries": False,
        }

    def _in_no_proxy(self, parsed_dsn: "Dsn") -> bool:
        no_proxy = urllib.request.getproxies().get("no")
        if not no_proxy:
            return False
        for host in no_proxy.split(","):
            host = host.strip()
            if parsed_dsn.host.endswith(host) or parsed_dsn.netloc.endswith(host):
                return True
        return False

    def _make_pool(
        self,
        parsed_dsn: "Dsn",
        http_proxy: "Optional[str]",
        https_proxy: "Optional[str]",
        ca_certs: "Optional[Any]",
    ) -> "Union[PoolManager, ProxyManager]":
        proxy = None
        no_proxy = self._in_no_proxy(parsed_dsn)

        # try HTTPS first
        if parsed_dsn.scheme == "https" and (https_proxy != ""):
            proxy = https_proxy or (not no_proxy and urllib.request.getproxies().get("https"))

        # maybe fallback to HTTP proxy
        if not proxy and (http_proxy != ""):
            proxy = http_proxy or (not no_proxy and urllib.request.getproxies().get("http"))

        opts = self._get_pool_options(ca_certs)

        if proxy:
            return urllib3.ProxyManager(proxy, **opts)
        else:
            return urllib3.PoolManager(**opts)

    def _encode_body(self, body: bytes, headers: "Dict[str, str]") -> bytes:
        if not self.options.get("http_compression", True):
            return body

        out = io.BytesIO()
        with gzip.GzipFile(fileobj=out, mode="w") as f:
            f.write(body)
        headers["Content-Encoding"] = "gzip"
        return out.getvalue()

    def send_request(self, request: "Request", options: "Dict[str, Any]") -> "Response":
        headers = {
            "Content-Type": ENVELOPE_CONTENT_TYPE,
            "User-Agent": str(self._auth.client),
            "X-Sentry-Auth": str(self._auth.to_header()),
        }
        headers.update(request.headers)
        body = self._encode_body(request.body, headers)

        logger.debug(
            "Sending request, project:%s host:%s",
            self.parsed_dsn.project_id,
            self.parsed_dsn.host,
        )

        response = self._pool.request(
            "POST",
            self._auth.get_api_url(),
            body=body,
            headers=headers,
        )

        try:
            status = response.status
            error = "" if 200 <= status < 300 else _error_from_body(response.data)
            return Response(status, dict(response.headers), error)
        finally:
            response.close()
