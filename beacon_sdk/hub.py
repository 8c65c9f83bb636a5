import copy
import sys
from contextlib import contextmanager
from contextvars import ContextVar

from beacon_sdk.client import Client
from beacon_sdk.crons import _create_check_in_event
from beacon_sdk.metrics import counter_event, distribution_event, set_event
from beacon_sdk.profiler import Profile
from beacon_sdk.scope import Scope
from beacon_sdk.tracing import Transaction
from beacon_sdk.tracing_utils import has_tracing_enabled, is_valid_sample_rate, sample
from beacon_sdk.utils import (
    capture_internal_exception,
    capture_internal_exceptions,
    logger,
    utc_now,
)

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import Any
    from typing import Callable
    from typing import ContextManager
    from typing import Dict
    from typing import Generator
    from typing import List
    from typing import Optional
    from typing import Type
    from typing import TypeVar
    from typing import Union

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
    from beacon_sdk.consts import ClientConstructor
    from beacon_sdk.integrations import Integration
    from beacon_sdk.tracing import Span

    T = TypeVar("T")


_local: "ContextVar[Hub]" = ContextVar("beacon_current_hub")


class _InitGuard:
    def __init__(self, client: "Client") -> None:
        self._client = client

    def __enter__(self) -> "_InitGuard":
        return self

    def __exit__(self, exc_type: "Any", exc_value: "Any", tb: "Any") -> None:
        c = self._client
        if c is not None:
            c.close()


def _init(*args: "Optional[str]", **kwargs: "Any") -> "ContextManager[Any]":
    """Initializes the SDK and optionally integrations.

    This takes the same arguments as the client constructor.
    """
    client = Client(*args, **kwargs)
    Hub.current.bind_client(client)
    return _InitGuard(client)


if TYPE_CHECKING:
    # Make mypy, PyCharm and other static analyzers think `init` is a type to
    # have nicer autocompletion for params.
    #
    # Use `ClientConstructor` to define the argument types of `init` and
    # `ContextManager[Any]` to tell static analyzers about the return type.

    class init(ClientConstructor, ContextManager[Any]):  # noqa: N801
        pass

else:
    # Alias `init` for actual usage. Go through the lambda indirection to throw
    # PyCharm off of the weakly typed signature (it would otherwise discover
    # both the weakly typed signature of `_init` and our faked `init` type).

    init = (lambda: _init)()


class Layer:
    """A client bound together with the scope it captures with."""

    __slots__ = ("client", "scope")

    def __init__(self, client: "Optional[Client]", scope: "Scope") -> None:
        self.client = client
        self.scope = scope

    def __repr__(self) -> str:
        return "<Layer client=%r scope=%r>" % (self.client, self.scope)


class HubMeta(type):
    @property
    def current(cls) -> "Hub":
        """Returns the current instance of the hub."""
        rv = _local.get(None)
        if rv is None:
            rv = Hub(GLOBAL_HUB)
            _local.set(rv)
        return rv

    @property
    def main(cls) -> "Hub":
        """Returns the main instance of the hub."""
        return GLOBAL_HUB


class _ScopeManager:
    def __init__(self, hub: "Hub") -> None:
        self._hub = hub
        self._original_len = len(hub._stack)
        self._layer = hub._stack[-1]

    def __enter__(self) -> "Scope":
        return self._layer.scope

    def __exit__(self, exc_type: "Any", exc_value: "Any", tb: "Any") -> None:
        current_len = len(self._hub._stack)
        if current_len < self._original_len:
            logger.error(
                "Scope popped too soon. Popped %s scopes too many.",
                self._original_len - current_len,
            )
            return
        elif current_len > self._original_len:
            logger.warning(
                "Leaked %s scopes: %s",
                current_len - self._original_len,
                self._hub._stack[self._original_len :],
            )

        layer = self._hub._stack[self._original_len - 1]
        del self._hub._stack[self._original_len - 1 :]

        if layer.scope is not self._layer.scope:
            logger.error(
                "Wrong scope found. Meant to pop %s, but popped %s.",
                layer.scope,
                self._layer.scope,
            )
        elif layer.client is not self._layer.client:
            warning = (
                "init() called inside of pushed scope. This might be entirely "
                "legitimate but usually occurs when initializing the SDK inside "
                "a request handler or task/job function. Try to initialize the "
                "SDK as early as possible instead."
            )
            logger.warning(warning)


class Hub(metaclass=HubMeta):
    """The hub wraps the concurrency management of the SDK. Each thread and
    each asyncio task has its own hub, created on first access by cloning
    the top layer of the main hub.

    If the hub is used with a with statement it's temporarily activated.
    """

    _stack: "List[Layer]"

    # Mypy doesn't pick up on the metaclass.
    if TYPE_CHECKING:
        current: "Hub" = None  # type: ignore[assignment]
        main: "Hub" = None  # type: ignore[assignment]

    def __init__(
        self,
        client_or_hub: "Optional[Union[Hub, Client]]" = None,
        scope: "Optional[Scope]" = None,
    ) -> None:
        if isinstance(client_or_hub, Hub):
            hub = client_or_hub
            top = hub._stack[-1]
            client = top.client
            if scope is None:
                scope = copy.copy(top.scope)
        else:
            client = client_or_hub
        if scope is None:
            scope = Scope()

        self._stack = [Layer(client, scope)]
        self._last_event_id: "Optional[str]" = None
        self._old_hubs: "List[Hub]" = []

    def __repr__(self) -> str:
        return "<Hub id=%s layers=%d>" % (hex(id(self)), len(self._stack))

    def __enter__(self) -> "Hub":
        self._old_hubs.append(Hub.current)
        _local.set(self)
        return self

    def __exit__(
        self,
        exc_type: "Optional[type]",
        exc_value: "Optional[BaseException]",
        tb: "Optional[Any]",
    ) -> None:
        old = self._old_hubs.pop()
        _local.set(old)

    def run(self, callback: "Callable[[], T]") -> "T":
        """Runs a callback in the context of the hub. Alternatively the
        with statement can be used on the hub directly.
        """
        with self:
            return callback()

    def get_integration(
        self, name_or_class: "Union[str, Type[Integration]]"
    ) -> "Optional[Integration]":
        """Returns the integration for this hub by name or class. If there
        is no client bound or the client does not have that integration
        then `None` is returned.

        If the return value is not `None` the hub is guaranteed to have a
        client attached.
        """
        client = self.client
        if client is None:
            return None
        return client.get_integration(name_or_class)

    @property
    def client(self) -> "Optional[Client]":
        """Returns the current client on the hub."""
        return self._stack[-1].client

    @property
    def scope(self) -> "Scope":
        """Returns the current scope on the hub."""
        return self._stack[-1].scope

    @property
    def stack(self) -> "List[Layer]":
        return list(self._stack)

    def last_event_id(self) -> "Optional[str]":
        """Returns the last event ID."""
        return self._last_event_id

    def bind_client(self, new: "Optional[Client]") -> None:
        """Binds a new client to the hub. Only the top layer is affected."""
        self._stack[-1].client = new

    def _remember(self, event_id: "Optional[str]") -> "Optional[str]":
        if event_id is not None:
            self._last_event_id = event_id
        return event_id

    def capture_event(
        self, event: "Event", hint: "Optional[Hint]" = None
    ) -> "Optional[str]":
        """Captures an event. The return value is the ID of the event.

        Optionally an event hint dict can be passed that is used by processors
        to extract additional information from it. Typically the event hint
        object would contain exception information.
        """
        layer = self._stack[-1]
        if layer.client is None:
            return None
        return self._remember(layer.client.capture_event(event, hint, layer.scope))

    def capture_message(
        self,
        message: str,
        level: "Optional[LogLevelStr]" = None,
        hint: "Optional[Hint]" = None,
    ) -> "Optional[str]":
        """Captures a message. The message is just a string. If no level
        is provided the default level is `info`.
        """
        layer = self._stack[-1]
        if layer.client is None:
            return None
        return self._remember(
            layer.client.capture_message(message, level, layer.scope, hint)
        )

    def capture_exception(
        self,
        error: "Optional[BaseException]" = None,
        hint: "Optional[Hint]" = None,
    ) -> "Optional[str]":
        """Captures an exception.

        The argument passed can be `None` in which case the exception
        currently being handled will be reported, otherwise an exception
        object or an `exc_info` tuple.
        """
        layer = self._stack[-1]
        if layer.client is None:
            return None
        try:
            return self._remember(
                layer.client.capture_exception(error, layer.scope, hint)
            )
        except Exception:
            capture_internal_exception(sys.exc_info())

        return None

    def capture_last_error(self, hint: "Optional[Hint]" = None) -> "Optional[str]":
        """Captures the last unhandled exception seen by the interpreter."""
        layer = self._stack[-1]
        if layer.client is None:
            return None
        return self._remember(layer.client.capture_last_error(layer.scope, hint))

    def capture_check_in(
        self,
        monitor_slug: "Optional[str]",
        status: "Optional[str]",
        duration: "Optional[float]" = None,
        monitor_config: "Optional[MonitorConfig]" = None,
        check_in_id: "Optional[str]" = None,
    ) -> "Optional[str]":
        """
        Captures a check-in for a cron monitor and returns its check-in id,
        generating one when none is passed.
        """
        client = self.client
        if client is None:
            return None

        check_in_event = _create_check_in_event(
            client.options,
            monitor_slug=monitor_slug,
            check_in_id=check_in_id,
            status=status,
            duration_s=duration,
            monitor_config=monitor_config,
        )
        self.capture_event(check_in_event)

        return check_in_event["check_in_id"]

    def add_breadcrumb(
        self,
        crumb: "Optional[Breadcrumb]" = None,
        hint: "Optional[BreadcrumbHint]" = None,
        **kwargs: "Any",
    ) -> bool:
        """
        Adds a breadcrumb.

        :param crumb: Dictionary with the data as the collector expects.

        :param hint: An optional value that can be used by `before_breadcrumb`
            to customize the breadcrumbs that are emitted.

        :returns: Whether the breadcrumb ended up on the scope.
        """
        layer = self._stack[-1]
        client = layer.client
        if client is None:
            logger.info("Dropped breadcrumb because no client bound")
            return False

        max_breadcrumbs = client.options["max_breadcrumbs"]
        if max_breadcrumbs <= 0:
            return False

        crumb = dict(crumb or ())
        crumb.update(kwargs)
        if not crumb:
            return False

        hint = dict(hint or ())

        if crumb.get("timestamp") is None:
            crumb["timestamp"] = utc_now()
        if crumb.get("type") is None:
            crumb["type"] = "default"

        before_breadcrumb = client.options["before_breadcrumb"]
        if before_breadcrumb is not None:
            new_crumb = None
            with capture_internal_exceptions():
                new_crumb = before_breadcrumb(crumb, hint)
        else:
            new_crumb = crumb

        if new_crumb is None:
            logger.info("before breadcrumb dropped breadcrumb (%s)", crumb)
            return False

        layer.scope.add_breadcrumb(new_crumb, max_breadcrumbs)
        return True

    def start_transaction(
        self,
        transaction: "Optional[Transaction]" = None,
        custom_sampling_context: "Optional[SamplingContext]" = None,
        **kwargs: "Any",
    ) -> "Transaction":
        """
        Start and return a transaction.

        Start an existing transaction if given, otherwise create and start a new
        transaction with kwargs.

        The sampling decision is made here: an explicit `sampled` value wins,
        then `traces_sampler`, then the parent decision and finally
        `traces_sample_rate`. Sampled transactions record their child spans
        and may get a profile attached.

        When the transaction is finished, it will be sent to the collector
        together with all child spans that were finished before it.
        """
        if transaction is None:
            kwargs.setdefault("hub", self)
            transaction = Transaction(**kwargs)

        client = self.client
        options = client.options if client is not None else None

        if options is None or not has_tracing_enabled(options):
            transaction.sampled = False
            return transaction

        sampling_context: "SamplingContext" = {
            "transaction_context": transaction.to_json(),
            "parent_sampled": transaction.parent_sampled,
        }
        if custom_sampling_context:
            sampling_context.update(custom_sampling_context)

        # we don't bother to keep spans if we already know we're not going to
        # send the transaction
        transaction._set_initial_sampling_decision(sampling_context, options)

        if transaction.sampled:
            transaction.init_span_recorder(maxlen=options["max_spans"])
            self._maybe_start_profile(transaction, options)

        return transaction

    def _maybe_start_profile(
        self, transaction: "Transaction", options: "Dict[str, Any]"
    ) -> None:
        profiles_sample_rate = options.get("profiles_sample_rate")
        if profiles_sample_rate is None:
            return

        if not is_valid_sample_rate(profiles_sample_rate, source="Profiling"):
            return

        if not sample(profiles_sample_rate):
            logger.debug(
                "[Profiling] Discarding profile because it's not included in the random sample (sample rate = %s)",
                profiles_sample_rate,
            )
            return

        Profile(transaction).start()

    def metrics_incr(
        self,
        name: str,
        value: "MetricValue" = 1,
        tags: "Optional[MetricTags]" = None,
    ) -> "Optional[str]":
        """Increments a counter metric."""
        return self.capture_event(counter_event(name, value, tags))

    def metrics_distribution(
        self,
        name: str,
        value: "MetricValue",
        tags: "Optional[MetricTags]" = None,
        unit: "Optional[str]" = None,
    ) -> "Optional[str]":
        """Records a value in a distribution metric."""
        return self.capture_event(distribution_event(name, value, tags, unit))

    def metrics_set(
        self,
        name: str,
        value: "MetricValue",
        tags: "Optional[MetricTags]" = None,
    ) -> "Optional[str]":
        """Adds a value to a set metric counting unique values."""
        return self.capture_event(set_event(name, value, tags))

    def push_scope(self) -> "Scope":
        """Pushes a new layer on the scope stack and returns its scope.

        The new scope is a copy of the current one, mutating it leaves the
        scope below untouched. Pair every call with :py:meth:`pop_scope` or
        use :py:meth:`with_scope` instead.
        """
        top = self._stack[-1]
        new_layer = Layer(top.client, copy.copy(top.scope))
        self._stack.append(new_layer)
        return new_layer.scope

    def pop_scope(self) -> bool:
        """Pops the top layer. The root layer is never popped."""
        if len(self._stack) == 1:
            return False
        self._stack.pop()
        return True

    def with_scope(
        self, callback: "Optional[Callable[[Scope], T]]" = None
    ) -> "Any":
        """Runs `callback` with a freshly pushed scope and returns its return
        value. The scope is popped again even if the callback raises.

        Without a callback a context manager is returned that pushes on
        entry and pops on exit.
        """
        if callback is None:
            self.push_scope()
            return _ScopeManager(self)

        scope = self.push_scope()
        try:
            return callback(scope)
        finally:
            self.pop_scope()

    def configure_scope(
        self, callback: "Optional[Callable[[Scope], T]]" = None
    ) -> "Any":
        """Reconfigures the current scope in place.

        With a callback it is invoked with the current scope and its return
        value is returned, otherwise a context manager yielding the current
        scope is returned.
        """
        scope = self._stack[-1].scope
        if callback is not None:
            return callback(scope)

        @contextmanager
        def inner() -> "Generator[Scope, None, None]":
            yield scope

        return inner()

    @property
    def span(self) -> "Optional[Span]":
        """The active span on the current scope."""
        return self.scope.span

    @span.setter
    def span(self, span: "Optional[Span]") -> None:
        self.scope.span = span

    @property
    def transaction(self) -> "Optional[Transaction]":
        """The transaction of the active span, if there is one."""
        return self.scope.transaction

    def flush(
        self,
        timeout: "Optional[float]" = None,
        callback: "Optional[Callable[[int, float], None]]" = None,
    ) -> None:
        """
        Alias for :py:meth:`beacon_sdk.Client.flush`
        """
        client = self.client
        if client is not None:
            return client.flush(timeout=timeout, callback=callback)


GLOBAL_HUB = Hub()
_local.set(GLOBAL_HUB)
