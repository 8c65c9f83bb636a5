import os
import random
import socket
import sys
import uuid
from contextvars import ContextVar

from beacon_sdk.consts import DEFAULT_OPTIONS, SDK_INFO, ClientConstructor
from beacon_sdk.integrations import setup_integrations
from beacon_sdk.transport import make_transport
from beacon_sdk.utils import (
    capture_internal_exception,
    capture_internal_exceptions,
    env_to_bool,
    event_from_exception,
    exc_info_from_error,
    logger,
    utc_now,
)

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import Any
    from typing import Callable
    from typing import Dict
    from typing import Optional
    from typing import Type
    from typing import Union

    from beacon_sdk._types import Event, Hint, LogLevelStr
    from beacon_sdk.integrations import Integration
    from beacon_sdk.scope import Scope
    from beacon_sdk.transport import Result


_client_init_debug = ContextVar("client_init_debug")

# Event types the error `sample_rate` applies to, `None` being a plain error
# or message event.
_ERROR_EVENT_TYPES = (None, "error", "default")


def _get_options(*args: "Optional[str]", **kwargs: "Any") -> "Dict[str, Any]":
    if args and (isinstance(args[0], (bytes, str)) or args[0] is None):
        dsn: "Optional[str]" = args[0]
        args = args[1:]
    else:
        dsn = None

    if len(args) > 1:
        raise TypeError("Only single positional argument is expected")

    rv = dict(DEFAULT_OPTIONS)
    options = dict(*args, **kwargs)
    if dsn is not None and options.get("dsn") is None:
        options["dsn"] = dsn

    for key, value in options.items():
        if key not in rv:
            raise TypeError("Unknown option %r" % (key,))
        rv[key] = value

    if rv["dsn"] is None:
        rv["dsn"] = os.environ.get("BEACON_DSN")

    if rv["release"] is None:
        rv["release"] = os.environ.get("BEACON_RELEASE")

    if rv["environment"] is None:
        rv["environment"] = os.environ.get("BEACON_ENVIRONMENT") or "production"

    if rv["debug"] is None:
        rv["debug"] = env_to_bool(os.environ.get("BEACON_DEBUG", "False"))

    if rv["spotlight"] is None:
        spotlight_env = os.environ.get("BEACON_SPOTLIGHT")
        if spotlight_env:
            as_bool = env_to_bool(spotlight_env, strict=True)
            rv["spotlight"] = as_bool if as_bool is not None else spotlight_env

    if rv["server_name"] is None and hasattr(socket, "gethostname"):
        rv["server_name"] = socket.gethostname()

    if rv["max_breadcrumbs"] is None:
        rv["max_breadcrumbs"] = 0

    return rv


class _Client:
    """The client is internally responsible for capturing the events and
    forwarding them to the collector through the configured transport. It
    takes the client options as keyword arguments and optionally the DSN as
    first argument.
    """

    def __init__(self, *args: "Any", **kwargs: "Any") -> None:
        old_debug = _client_init_debug.get(False)
        try:
            self.options = options = get_options(*args, **kwargs)
            _client_init_debug.set(options["debug"])
            self.transport = make_transport(options)
            self.integrations = setup_integrations(options["integrations"])
        finally:
            _client_init_debug.set(old_debug)

    def __repr__(self) -> str:
        return "<%s dsn=%r>" % (self.__class__.__name__, self.options["dsn"])

    @property
    def dsn(self) -> "Optional[str]":
        """Returns the configured DSN as string."""
        return self.options["dsn"]

    def get_options(self) -> "Dict[str, Any]":
        return self.options

    def is_active(self) -> bool:
        return self.transport is not None

    def get_integration(
        self, name_or_class: "Union[str, Type[Integration]]"
    ) -> "Optional[Integration]":
        """Returns the integration for this client by name or class.
        If the client does not have that integration then `None` is returned.
        """
        if isinstance(name_or_class, str):
            integration_name = name_or_class
        elif name_or_class.identifier is not None:
            integration_name = name_or_class.identifier
        else:
            raise ValueError("Integration has no name")

        return self.integrations.get(integration_name)

    def _prepare_event(
        self,
        event: "Event",
        hint: "Hint",
        scope: "Optional[Scope]",
    ) -> "Optional[Event]":
        if event.get("timestamp") is None:
            event["timestamp"] = utc_now()

        if scope is not None:
            event_ = scope.apply_to_event(event, hint)
            if event_ is None:
                return None
            event = event_

        if event.get("type") == "metric":
            # Metric records are sent as built.
            return event

        for key in "release", "environment", "server_name", "dist":
            if event.get(key) is None and self.options[key] is not None:
                event[key] = str(self.options[key]).strip()

        if event.get("sdk") is None:
            sdk_info = dict(SDK_INFO)
            sdk_info["integrations"] = sorted(self.integrations.keys())
            event["sdk"] = sdk_info

        if event.get("platform") is None:
            event["platform"] = "python"

        before_send = self.options["before_send"]
        if before_send is not None and event.get("type") != "transaction":
            new_event = None
            with capture_internal_exceptions():
                new_event = before_send(event, hint)
            if new_event is None:
                logger.info("before send dropped event (%s)", event.get("event_id"))
            event = new_event

        return event

    def _should_sample_error(self, event: "Event") -> bool:
        if event.get("type") not in _ERROR_EVENT_TYPES:
            return True

        sample_rate = self.options["sample_rate"]
        if sample_rate < 1.0 and random.random() >= sample_rate:
            logger.info("Discarding event %s because of sample_rate", event["event_id"])
            return False

        return True

    def capture_event(
        self,
        event: "Event",
        hint: "Optional[Hint]" = None,
        scope: "Optional[Scope]" = None,
    ) -> "Optional[str]":
        """Captures an event.

        :param event: A ready-made event that can be directly sent.

        :param hint: Contains metadata about the event that can be read from
            `before_send`, such as the original exception object.

        :param scope: An optional scope to use for determining whether this
            event should be captured.

        :returns: The event ID if the transport delivered the event, `None`
            if it was dropped, skipped, rate limited or failed to send.
        """
        if self.transport is None:
            return None

        hint = dict(hint or ())

        event_id = event.get("event_id")
        if event_id is None:
            event["event_id"] = event_id = uuid.uuid4().hex

        if not self._should_sample_error(event):
            return None

        event_opt = self._prepare_event(event, hint, scope)
        if event_opt is None:
            return None

        try:
            result: "Result" = self.transport.send(event_opt)
        except Exception:
            capture_internal_exception(sys.exc_info())
            return None

        if result.event is None:
            logger.debug("Event %s was not sent (%s)", event_id, result.status)
            return None

        return result.event.get("event_id", event_id)

    def capture_message(
        self,
        message: str,
        level: "Optional[LogLevelStr]" = None,
        scope: "Optional[Scope]" = None,
        hint: "Optional[Hint]" = None,
    ) -> "Optional[str]":
        event: "Event" = {"message": message, "level": level or "info"}
        return self.capture_event(event, hint, scope)

    def capture_exception(
        self,
        error: "Optional[BaseException]" = None,
        scope: "Optional[Scope]" = None,
        hint: "Optional[Hint]" = None,
    ) -> "Optional[str]":
        if error is not None:
            exc_info = exc_info_from_error(error)
        else:
            exc_info = sys.exc_info()

        if exc_info[0] is None:
            logger.debug("No exception to capture")
            return None

        event, exc_hint = event_from_exception(
            exc_info, mechanism={"type": "generic", "handled": True}
        )
        exc_hint.update(hint or {})
        return self.capture_event(event, exc_hint, scope)

    def capture_last_error(
        self,
        scope: "Optional[Scope]" = None,
        hint: "Optional[Hint]" = None,
    ) -> "Optional[str]":
        """
        Captures the last unhandled exception recorded by the interpreter, as
        stored in `sys.last_value` by the default exception hook.
        """
        error = getattr(sys, "last_value", None)
        if error is None:
            return None

        event, exc_hint = event_from_exception(
            error, mechanism={"type": "excepthook", "handled": False}
        )
        event["level"] = "fatal"
        exc_hint.update(hint or {})
        return self.capture_event(event, exc_hint, scope)

    def close(
        self,
        timeout: "Optional[float]" = None,
        callback: "Optional[Callable[[int, float], None]]" = None,
    ) -> None:
        """
        Close the client and shut down the transport. Arguments have the same
        semantics as `self.flush()`.
        """
        if self.transport is not None:
            self.flush(timeout=timeout, callback=callback)
            self.transport.close(timeout)
            self.transport = None

    def flush(
        self,
        timeout: "Optional[float]" = None,
        callback: "Optional[Callable[[int, float], None]]" = None,
    ) -> None:
        """
        Wait for the current events to be sent.

        :param timeout: Wait for at most `timeout` seconds. If no `timeout` is
            provided, the `shutdown_timeout` option value is used.
        """
        if self.transport is not None:
            if timeout is None:
                timeout = self.options["shutdown_timeout"]
            self.transport.flush(timeout=timeout, callback=callback)

    def __enter__(self) -> "_Client":
        return self

    def __exit__(self, exc_type: "Any", exc_value: "Any", tb: "Any") -> None:
        self.close()


if TYPE_CHECKING:
    # Make mypy, PyCharm and other static analyzers think `get_options` is a
    # type to have nicer autocompletion for params.
    #
    # Use `ClientConstructor` to define the argument types of `init` and
    # `Dict[str, Any]` to tell static analyzers about the return type.

    class get_options(ClientConstructor, Dict[str, Any]):  # noqa: N801
        pass

    class Client(ClientConstructor, _Client):
        pass

else:
    # Alias `get_options` for actual usage. Go through the lambda indirection
    # to throw PyCharm off of the weakly typed signature (it would otherwise
    # discover both the weakly typed signature of `_init` and our faked `init`
    # type).

    get_options = (lambda: _get_options)()
    Client = (lambda: _Client)()
