import time

import urllib3

from beacon_sdk.consts import DEFAULT_SPOTLIGHT_URL
from beacon_sdk.http import ENVELOPE_CONTENT_TYPE, Response, _error_from_body
from beacon_sdk.utils import env_to_bool

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import Any
    from typing import Dict
    from typing import Optional

    from beacon_sdk.http import Request


class SpotlightClient:
    """
    A client mirroring payloads to a local Spotlight sidecar.

    After a failed request further payloads are skipped for a growing
    backoff period so an unreachable sidecar is not hammered.
    """

    # Exponential backoff settings
    INITIAL_RETRY_DELAY = 1.0  # Start with 1 second
    MAX_RETRY_DELAY = 60.0  # Max 60 seconds

    def __init__(self, url: str) -> None:
        self.url = url
        self.http = urllib3.PoolManager()
        self._retry_delay = self.INITIAL_RETRY_DELAY
        self._last_error_time: float = 0.0

    def in_backoff(self) -> bool:
        if self._last_error_time <= 0:
            return False
        return time.time() - self._last_error_time < self._retry_delay

    def send_request(self, request: "Request") -> "Optional[Response]":
        """
        Returns `None` while backing off. Connection errors are raised to the
        caller after the backoff has been extended.
        """
        if self.in_backoff():
            return None

        try:
            response = self.http.request(
                url=self.url,
                body=request.body,
                method="POST",
                headers={"Content-Type": ENVELOPE_CONTENT_TYPE},
            )
        except Exception:
            self._last_error_time = time.time()
            self._retry_delay = min(self._retry_delay * 2, self.MAX_RETRY_DELAY)
            raise

        try:
            # Success - reset backoff state
            self._retry_delay = self.INITIAL_RETRY_DELAY
            self._last_error_time = 0.0
            status = response.status
            error = "" if 200 <= status < 300 else _error_from_body(response.data)
            return Response(status, dict(response.headers), error)
        finally:
            response.close()


def spotlight_url(options: "Dict[str, Any]") -> "Optional[str]":
    """
    Resolves the `spotlight` option into a URL, or `None` when mirroring is
    disabled. `True` or a truthy string flag selects the default sidecar URL.
    """
    value = options.get("spotlight")
    if value is None or value is False:
        return None
    if value is True:
        return DEFAULT_SPOTLIGHT_URL

    as_bool = env_to_bool(value, strict=True)
    if as_bool is None:
        return str(value)
    return DEFAULT_SPOTLIGHT_URL if as_bool else None


def setup_spotlight(options: "Dict[str, Any]") -> "Optional[SpotlightClient]":
    url = spotlight_url(options)
    if url is None:
        return None
    return SpotlightClient(url)
