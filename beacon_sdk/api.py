import inspect

from beacon_sdk.hub import Hub, init
from beacon_sdk.scope import Scope
from beacon_sdk.tracing import Transaction

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import Any
    from typing import Callable
    from typing import Dict
    from typing import Optional
    from typing import TypeVar

    from beacon_sdk._types import (
        Breadcrumb,
        BreadcrumbHint,
        Event,
        Hint,
        LogLevelStr,
        MetricTags,
        MetricValue,
        MonitorConfig,
        SamplingContext,
    )
    from beacon_sdk.client import Client
    from beacon_sdk.tracing import Span

    T = TypeVar("T")
    F = TypeVar("F", bound=Callable[..., Any])


# When changing this, update __all__ in __init__.py too
__all__ = [
    "init",
    "add_breadcrumb",
    "capture_checkin",
    "capture_event",
    "capture_exception",
    "capture_last_error",
    "capture_message",
    "configure_scope",
    "continue_trace",
    "flush",
    "get_client",
    "get_current_span",
    "get_traceparent",
    "is_initialized",
    "last_event_id",
    "metrics_distribution",
    "metrics_incr",
    "metrics_set",
    "pop_scope",
    "push_scope",
    "set_context",
    "set_extra",
    "set_level",
    "set_tag",
    "set_user",
    "start_transaction",
    "with_scope",
]


def hubmethod(f: "F") -> "F":
    f.__doc__ = "%s\n\n%s" % (
        "Alias for :py:meth:`beacon_sdk.Hub.%s`" % f.__name__,
        inspect.getdoc(getattr(Hub, f.__name__)),
    )
    return f


def scopemethod(f: "F") -> "F":
    f.__doc__ = "%s\n\n%s" % (
        "Alias for :py:meth:`beacon_sdk.Scope.%s`" % f.__name__,
        inspect.getdoc(getattr(Scope, f.__name__)),
    )
    return f


def get_client() -> "Optional[Client]":
    return Hub.current.client


def is_initialized() -> bool:
    """
    Returns whether the SDK has been initialized, that is whether a client
    is bound to the current hub and able to send data.
    """
    client = get_client()
    return client is not None and client.is_active()


@hubmethod
def capture_event(event: "Event", hint: "Optional[Hint]" = None) -> "Optional[str]":
    return Hub.current.capture_event(event, hint)


@hubmethod
def capture_message(
    message: str,
    level: "Optional[LogLevelStr]" = None,
    hint: "Optional[Hint]" = None,
) -> "Optional[str]":
    return Hub.current.capture_message(message, level, hint)


@hubmethod
def capture_exception(
    error: "Optional[BaseException]" = None,
    hint: "Optional[Hint]" = None,
) -> "Optional[str]":
    return Hub.current.capture_exception(error, hint)


@hubmethod
def capture_last_error(hint: "Optional[Hint]" = None) -> "Optional[str]":
    return Hub.current.capture_last_error(hint)


def capture_checkin(
    monitor_slug: "Optional[str]" = None,
    check_in_id: "Optional[str]" = None,
    status: "Optional[str]" = None,
    duration: "Optional[float]" = None,
    monitor_config: "Optional[MonitorConfig]" = None,
) -> "Optional[str]":
    """Captures a cron monitor check-in on the current hub.

    Returns the check-in id, which has to be passed along with the closing
    check-in of the same run.
    """
    return Hub.current.capture_check_in(
        monitor_slug,
        status,
        duration=duration,
        monitor_config=monitor_config,
        check_in_id=check_in_id,
    )


@hubmethod
def add_breadcrumb(
    crumb: "Optional[Breadcrumb]" = None,
    hint: "Optional[BreadcrumbHint]" = None,
    **kwargs: "Any",
) -> bool:
    return Hub.current.add_breadcrumb(crumb, hint, **kwargs)


@hubmethod
def push_scope() -> "Scope":
    return Hub.current.push_scope()


@hubmethod
def pop_scope() -> bool:
    return Hub.current.pop_scope()


@hubmethod
def with_scope(callback: "Optional[Callable[[Scope], T]]" = None) -> "Any":
    return Hub.current.with_scope(callback)


@hubmethod
def configure_scope(callback: "Optional[Callable[[Scope], T]]" = None) -> "Any":
    return Hub.current.configure_scope(callback)


@scopemethod
def set_tag(key: str, value: "Any") -> None:
    return Hub.current.scope.set_tag(key, value)


@scopemethod
def set_context(key: str, value: "Dict[str, Any]") -> None:
    return Hub.current.scope.set_context(key, value)


@scopemethod
def set_extra(key: str, value: "Any") -> None:
    return Hub.current.scope.set_extra(key, value)


@scopemethod
def set_user(value: "Optional[Dict[str, Any]]") -> None:
    return Hub.current.scope.set_user(value)


@scopemethod
def set_level(value: "LogLevelStr") -> None:
    return Hub.current.scope.set_level(value)


@hubmethod
def flush(
    timeout: "Optional[float]" = None,
    callback: "Optional[Callable[[int, float], None]]" = None,
) -> None:
    return Hub.current.flush(timeout=timeout, callback=callback)


@hubmethod
def last_event_id() -> "Optional[str]":
    return Hub.current.last_event_id()


@hubmethod
def start_transaction(
    transaction: "Optional[Transaction]" = None,
    custom_sampling_context: "Optional[SamplingContext]" = None,
    **kwargs: "Any",
) -> "Transaction":
    return Hub.current.start_transaction(
        transaction, custom_sampling_context, **kwargs
    )


@hubmethod
def metrics_incr(
    name: str, value: "MetricValue" = 1, tags: "Optional[MetricTags]" = None
) -> "Optional[str]":
    return Hub.current.metrics_incr(name, value, tags)


@hubmethod
def metrics_distribution(
    name: str,
    value: "MetricValue",
    tags: "Optional[MetricTags]" = None,
    unit: "Optional[str]" = None,
) -> "Optional[str]":
    return Hub.current.metrics_distribution(name, value, tags, unit)


@hubmethod
def metrics_set(
    name: str, value: "MetricValue", tags: "Optional[MetricTags]" = None
) -> "Optional[str]":
    return Hub.current.metrics_set(name, value, tags)


def get_current_span(hub: "Optional[Hub]" = None) -> "Optional[Span]":
    """
    Returns the currently active span if there is one running, otherwise `None`
    """
    if hub is None:
        hub = Hub.current

    return hub.scope.span


def get_traceparent() -> "Optional[str]":
    """
    Returns the traceparent of the active span, if there is one.
    """
    span = get_current_span()
    if span is None:
        return None
    return span.to_traceparent()


def continue_trace(
    headers: "Dict[str, Any]", **kwargs: "Any"
) -> "Transaction":
    """
    Returns a transaction that continues the trace found in the incoming
    headers. It still has to be started with :py:func:`start_transaction`.
    """
    return Transaction.continue_from_headers(headers, **kwargs)
