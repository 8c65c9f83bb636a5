import itertools
from enum import Enum
from typing import TYPE_CHECKING


class EndpointType(Enum):
    """
    The type of a collector endpoint. Everything is sent as an envelope, the
    enum keeps room for future endpoints.
    """

    ENVELOPE = "envelope"


if TYPE_CHECKING:
    import beacon_sdk

    from typing import Optional
    from typing import Callable
    from typing import Union
    from typing import Type
    from typing import Dict
    from typing import Any
    from typing import Sequence

    from beacon_sdk._types import (
        BreadcrumbProcessor,
        Event,
        EventProcessor,
        TracesSampler,
    )


DEFAULT_MAX_BREADCRUMBS = 100
DEFAULT_MAX_SPANS = 1000
DEFAULT_HTTP_TIMEOUT = 10.0
DEFAULT_RETRY_AFTER = 60
MAX_RETRY_AFTER = 60 * 60 * 24

DEFAULT_SPOTLIGHT_URL = "http://localhost:8969/stream"

FALSE_VALUES = [
    "false",
    "no",
    "off",
    "n",
    "0",
]


class MonitorStatus:
    IN_PROGRESS = "in_progress"
    OK = "ok"
    ERROR = "error"


class MetricKind:
    COUNTER = "c"
    DISTRIBUTION = "d"
    SET = "s"


class ClientConstructor:

    def __init__(
        self,
        dsn=None,  # type: Optional[str]
        *,
        max_breadcrumbs=DEFAULT_MAX_BREADCRUMBS,  # type: int
        release=None,  # type: Optional[str]
        environment=None,  # type: Optional[str]
        server_name=None,  # type: Optional[str]
        dist=None,  # type: Optional[str]
        shutdown_timeout=2,  # type: float
        integrations=[],  # type: Sequence[beacon_sdk.integrations.Integration]  # noqa: B006
        transport=None,  # type: Optional[Union[beacon_sdk.transport.Transport, Type[beacon_sdk.transport.Transport], Callable[[Event], None]]]
        http_client=None,  # type: Optional[beacon_sdk.http.HttpClient]
        serializer=None,  # type: Optional[beacon_sdk.serializer.PayloadSerializer]
        sample_rate=1.0,  # type: float
        http_proxy=None,  # type: Optional[str]
        https_proxy=None,  # type: Optional[str]
        http_timeout=DEFAULT_HTTP_TIMEOUT,  # type: float
        http_compression=True,  # type: bool
        ca_certs=None,  # type: Optional[str]
        before_send=None,  # type: Optional[EventProcessor]
        before_breadcrumb=None,  # type: Optional[BreadcrumbProcessor]
        debug=None,  # type: Optional[bool]
        enable_tracing=None,  # type: Optional[bool]
        traces_sample_rate=None,  # type: Optional[float]
        traces_sampler=None,  # type: Optional[TracesSampler]
        profiles_sample_rate=None,  # type: Optional[float]
        max_spans=DEFAULT_MAX_SPANS,  # type: int
        spotlight=None,  # type: Optional[Union[bool, str]]
    ):
        # type: (...) -> None
        """Initialize the SDK with the given parameters. All parameters described here can be used in a call to `beacon_sdk.init()`.

        :param dsn: The DSN tells the SDK where to send the events.

            If this option is not set, the SDK will just not send any data.
            Falls back to the `BEACON_DSN` environment variable.

        :param debug: Turns debug mode on or off. When `True`, the SDK prints
            out debugging information about what it is doing to stderr.

        :param max_breadcrumbs: The maximum number of breadcrumbs kept on a
            scope. A value of `0` or below disables breadcrumbs.

        :param before_breadcrumb: Called with every breadcrumb and its hint.
            Return the (possibly modified) breadcrumb, or `None` to drop it.

        :param before_send: Called with every non-transaction event and its
            hint right before it is handed to the transport. Return `None` to
            drop the event.

        :param sample_rate: Sample rate for error events in the range
            `0.0` to `1.0`.

        :param traces_sample_rate: Uniform sample rate for transactions. Tracing
            is enabled as soon as this or `traces_sampler` is set.

        :param traces_sampler: A function receiving the sampling context and
            returning a sample rate for the transaction. Takes precedence over
            `traces_sample_rate` and over the parent sampling decision.

        :param profiles_sample_rate: Sample rate for profiling sampled
            transactions.

        :param transport: A `Transport` instance, a `Transport` subclass or a
            plain callable receiving the event.

        :param http_client: The `HttpClient` used by the HTTP transport.
            Defaults to a urllib3 based client.

        :param spotlight: `True` to mirror every event to a local Spotlight
            sidecar at the default URL, or a URL to mirror to.
        """
        pass


def _get_default_options():
    # type: () -> dict[str, Any]
    import inspect

    a = inspect.getfullargspec(ClientConstructor.__init__)
    defaults = a.defaults or ()
    kwonlydefaults = a.kwonlydefaults or {}

    return dict(
        itertools.chain(
            zip(a.args[-len(defaults) :], defaults),
            kwonlydefaults.items(),
        )
    )


DEFAULT_OPTIONS = _get_default_options()
del _get_default_options


VERSION = "0.4.0"
SDK_INFO = {
    "name": "beacon.python",
    "version": VERSION,
    "packages": [{"name": "pypi:beacon-sdk", "version": VERSION}],
}
