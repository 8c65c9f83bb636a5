import threading
from datetime import timedelta
from enum import Enum

from beacon_sdk.consts import DEFAULT_RETRY_AFTER, MAX_RETRY_AFTER
from beacon_sdk.envelope import data_category_for_event
from beacon_sdk.http import Request, Urllib3HttpClient
from beacon_sdk.serializer import EnvelopeSerializer
from beacon_sdk.spotlight import setup_spotlight
from beacon_sdk.utils import Dsn, logger, utc_now

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from datetime import datetime
    from typing import Any
    from typing import Callable
    from typing import Dict
    from typing import Iterable
    from typing import Optional
    from typing import Tuple
    from typing import Type

    from beacon_sdk._types import Clock, Event
    from beacon_sdk.http import HttpClient, Response
    from beacon_sdk.serializer import PayloadSerializer

    DataCategory = Optional[str]


class ResultStatus(Enum):
    """The outcome of a single attempt to send an event."""

    SUCCESS = "success"
    SKIPPED = "skipped"
    RATE_LIMITED = "rate_limited"
    INVALID = "invalid"
    FAILED = "failed"
    UNKNOWN = "unknown"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def from_http_status_code(cls, status_code: int) -> "ResultStatus":
        if 200 <= status_code < 300:
            return cls.SUCCESS
        if status_code == 429:
            return cls.RATE_LIMITED
        if 400 <= status_code < 500:
            return cls.INVALID
        if status_code >= 500:
            return cls.FAILED
        return cls.UNKNOWN


class Result:
    """
    The result of a send. Only a successful send carries the event it sent.
    """

    __slots__ = ("status", "event")

    def __init__(self, status: "ResultStatus", event: "Optional[Event]" = None) -> None:
        self.status = status
        self.event = event

    def __repr__(self) -> str:
        return "<Result status=%s>" % (self.status,)


def _parse_rate_limits(
    header: str, now: "Optional[datetime]" = None
) -> "Iterable[Tuple[DataCategory, datetime]]":
    if now is None:
        now = utc_now()

    for limit in header.split(","):
        try:
            parameters = limit.strip().split(":")
            retry_after_val, categories = parameters[:2]

            retry_after = now + timedelta(seconds=int(retry_after_val))
            for category in categories and categories.split(";") or (None,):
                # `*` is the explicit form of an empty category list
                yield (None if category == "*" else category), retry_after
        except (LookupError, ValueError, OverflowError):
            continue


def _parse_retry_after(value: "Optional[str]") -> int:
    try:
        return min(max(int(value), 0), MAX_RETRY_AFTER)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return DEFAULT_RETRY_AFTER


class RateLimiter:
    """
    Remembers, per data category, until when the collector asked us to stop
    sending. The `None` category stands for every category.
    """

    def __init__(self, clock: "Optional[Clock]" = None) -> None:
        self._clock = clock or utc_now
        self._lock = threading.Lock()
        self._disabled_until: "Dict[DataCategory, datetime]" = {}

    def _disabled(self, category: "DataCategory", now: "datetime") -> bool:
        ts = self._disabled_until.get(category)
        return ts is not None and ts > now

    def is_rate_limited(self, category: "DataCategory") -> bool:
        now = self._clock()
        with self._lock:
            return self._disabled(category, now) or self._disabled(None, now)

    def get_disabled_until(self, category: "DataCategory") -> "Optional[datetime]":
        with self._lock:
            return self._disabled_until.get(category)

    def _extend(self, category: "DataCategory", until: "datetime") -> None:
        with self._lock:
            current = self._disabled_until.get(category)
            # never shorten a back-off that is already in place
            if current is None or until > current:
                self._disabled_until[category] = until

    def handle_response(self, event: "Event", response: "Response") -> "Response":
        now = self._clock()

        # newer collectors send per category limits. We honor this header
        # no matter of the status code to update our internal rate limits.
        header = response.get_header("X-Sentry-Rate-Limits")
        if header:
            limits = list(_parse_rate_limits(header, now))

        # older collectors only communicate global rate limit hits via the
        # retry-after header on 429.
        elif response.status_code == 429:
            retry_after = _parse_retry_after(response.get_header("Retry-After"))
            limits = [(None, now + timedelta(seconds=retry_after))]

        else:
            limits = []

        for category, until in limits:
            self._extend(category, until)
            logger.warning(
                'Rate limited for category "%s" until %s.', category or "*", until
            )

        return response


class Transport:
    """Baseclass for all transports.

    A transport is used to send an event to the collector.
    """

    parsed_dsn: "Optional[Dsn]" = None

    def __init__(self, options: "Optional[Dict[str, Any]]" = None) -> None:
        self.options = options
        if options and options["dsn"] is not None and options["dsn"]:
            self.parsed_dsn = Dsn(options["dsn"])
        else:
            self.parsed_dsn = None

    def send(self, event: "Event") -> "Result":
        """
        Sends the event and reports the outcome. Implementations never raise
        for delivery problems, they report them through the result status.
        """
        raise NotImplementedError()

    def flush(
        self, timeout: float, callback: "Optional[Callable[[int, float], None]]" = None
    ) -> None:
        """Wait `timeout` seconds for the current events to be sent out."""
        pass

    def close(self, timeout: "Optional[float]" = None) -> "Result":
        """
        Drains the transport. Sends happen synchronously, so nothing can be
        outstanding and closing always succeeds.
        """
        self.flush(timeout or 0)
        return Result(ResultStatus.SUCCESS)


class HttpTransport(Transport):
    """The default HTTP transport."""

    def __init__(
        self,
        options: "Dict[str, Any]",
        http_client: "Optional[HttpClient]" = None,
        serializer: "Optional[PayloadSerializer]" = None,
        rate_limiter: "Optional[RateLimiter]" = None,
    ) -> None:
        Transport.__init__(self, options)
        self.options = options

        if http_client is None:
            http_client = options.get("http_client")
        if http_client is None and self.parsed_dsn is not None:
            http_client = Urllib3HttpClient(options)
        self._http_client = http_client

        self._serializer = (
            serializer or options.get("serializer") or EnvelopeSerializer(options)
        )
        self._rate_limiter = rate_limiter or RateLimiter()
        self._spotlight = setup_spotlight(options)

    @property
    def rate_limiter(self) -> "RateLimiter":
        return self._rate_limiter

    def _send_to_spotlight(self, event: "Event") -> None:
        if self._spotlight is None:
            return

        try:
            request = Request(self._serializer.serialize(event))
            response = self._spotlight.send_request(request)
            if response is not None and response.has_error():
                logger.info(
                    'Failed to send the event to Spotlight. Reason: "%s".',
                    response.get_error(),
                )
        except Exception as e:
            logger.info('Failed to send the event to Spotlight. Reason: "%s".', e)

    def send(self, event: "Event") -> "Result":
        self._send_to_spotlight(event)

        if self.parsed_dsn is None or self._http_client is None:
            return Result(ResultStatus.SKIPPED)

        category = data_category_for_event(event)
        if self._rate_limiter.is_rate_limited(category):
            logger.warning(
                'Rate limit exceeded for sending requests of type "%s".', category
            )
            return Result(ResultStatus.RATE_LIMITED)

        try:
            request = Request(self._serializer.serialize(event))
            response = self._http_client.send_request(request, self.options)
        except Exception as e:
            logger.error(
                'Failed to send the event. Reason: "%s".', e, exc_info=True
            )
            return Result(ResultStatus.FAILED)

        response = self._rate_limiter.handle_response(event, response)
        if response.is_success():
            return Result(ResultStatus.SUCCESS, event)

        if response.has_error():
            logger.error(
                'Failed to send the event. Reason: "%s".', response.get_error()
            )

        return Result(ResultStatus.from_http_status_code(response.status_code))


class _FunctionTransport(Transport):
    def __init__(self, func: "Callable[[Event], None]") -> None:
        Transport.__init__(self)
        self._func = func

    def send(self, event: "Event") -> "Result":
        self._func(event)
        return Result(ResultStatus.SUCCESS, event)


def make_transport(options: "Dict[str, Any]") -> "Transport":
    ref_transport = options["transport"]

    # If no transport is given, we use the http transport class
    if ref_transport is None:
        transport_cls: "Type[Transport]" = HttpTransport
    elif isinstance(ref_transport, Transport):
        return ref_transport
    elif isinstance(ref_transport, type) and issubclass(ref_transport, Transport):
        transport_cls = ref_transport
    elif callable(ref_transport):
        return _FunctionTransport(ref_transport)
    else:
        raise TypeError("Invalid transport %r" % (ref_transport,))

    return transport_cls(options)  # type: ignore[call-arg]
