import uuid
from datetime import datetime, timedelta, timezone

import beacon_sdk
from beacon_sdk.tracing_utils import (
    SENTRY_TRACE_HEADER_NAME,
    extract_sentrytrace_data,
    get_sample_rate,
    is_valid_sample_rate,
    normalize_incoming_data,
    sample,
)
from beacon_sdk.utils import capture_internal_exceptions, logger, nanosecond_time

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import Any
    from typing import Dict
    from typing import Iterator
    from typing import List
    from typing import Mapping
    from typing import Optional
    from typing import Tuple

    from beacon_sdk._types import Event, SamplingContext
    from beacon_sdk.hub import Hub
    from beacon_sdk.profiler import Profile


# Transaction source
TRANSACTION_SOURCE_CUSTOM = "custom"
TRANSACTION_SOURCE_URL = "url"
TRANSACTION_SOURCE_ROUTE = "route"
TRANSACTION_SOURCE_TASK = "task"


class _SpanRecorder:
    """Limits the number of spans recorded in a transaction."""

    __slots__ = ("maxlen", "spans")

    def __init__(self, maxlen: int) -> None:
        # The transaction itself is the first recorded span, `maxlen` only
        # limits its children.
        self.maxlen = maxlen
        self.spans: "List[Span]" = []

    def add(self, span: "Span") -> None:
        if len(self.spans) > self.maxlen:
            span._span_recorder = None
        else:
            self.spans.append(span)


class Span:
    """A timed operation that is part of a trace.

    Spans only become visible once their containing transaction is
    finished and sampled.
    """

    __slots__ = (
        "trace_id",
        "span_id",
        "parent_span_id",
        "same_process_as_parent",
        "sampled",
        "op",
        "description",
        "start_timestamp",
        "_start_timestamp_monotonic_ns",
        "status",
        "timestamp",
        "_tags",
        "_data",
        "_span_recorder",
        "hub",
        "_context_manager_state",
        "_containing_transaction",
    )

    def __init__(
        self,
        trace_id: "Optional[str]" = None,
        span_id: "Optional[str]" = None,
        parent_span_id: "Optional[str]" = None,
        same_process_as_parent: bool = True,
        sampled: "Optional[bool]" = None,
        op: "Optional[str]" = None,
        description: "Optional[str]" = None,
        hub: "Optional[Hub]" = None,
        status: "Optional[str]" = None,
        containing_transaction: "Optional[Transaction]" = None,
        start_timestamp: "Optional[datetime]" = None,
    ) -> None:
        self.trace_id = trace_id or uuid.uuid4().hex
        self.span_id = span_id or uuid.uuid4().hex[16:]
        self.parent_span_id = parent_span_id
        self.same_process_as_parent = same_process_as_parent
        self.sampled = sampled
        self.op = op
        self.description = description
        self.status = status
        self.hub = hub
        self._tags: "Dict[str, str]" = {}
        self._data: "Dict[str, Any]" = {}
        self._containing_transaction = containing_transaction
        self.start_timestamp = start_timestamp or datetime.now(timezone.utc)
        # profiling depends on this value and requires that
        # it is measured in nanoseconds
        self._start_timestamp_monotonic_ns = nanosecond_time()

        self.timestamp: "Optional[datetime]" = None
        self._span_recorder: "Optional[_SpanRecorder]" = None

    def __repr__(self) -> str:
        return (
            "<%s(op=%r, description:%r, trace_id=%r, span_id=%r, parent_span_id=%r, sampled=%r)>"
            % (
                self.__class__.__name__,
                self.op,
                self.description,
                self.trace_id,
                self.span_id,
                self.parent_span_id,
                self.sampled,
            )
        )

    def __enter__(self) -> "Span":
        hub = self.hub or beacon_sdk.Hub.current
        scope = hub.scope
        old_span = scope.span
        scope.span = self
        self._context_manager_state = (hub, scope, old_span)
        return self

    def __exit__(self, ty: "Optional[Any]", value: "Optional[Any]", tb: "Optional[Any]") -> None:
        if value is not None:
            self.set_status("internal_error")

        hub, scope, old_span = self._context_manager_state
        del self._context_manager_state

        self.finish(hub)
        scope.span = old_span

    @property
    def containing_transaction(self) -> "Optional[Transaction]":
        """The transaction this span belongs to, if any."""
        return self._containing_transaction

    def start_child(self, **kwargs: "Any") -> "Span":
        """
        Start a sub-span from the current span or transaction.

        Takes the same arguments as the initializer of :py:class:`Span`. The
        trace id, sampling decision and hub are inherited from this span.
        """
        kwargs.setdefault("sampled", self.sampled)

        child = Span(
            trace_id=self.trace_id,
            parent_span_id=self.span_id,
            containing_transaction=self.containing_transaction,
            hub=self.hub,
            **kwargs
        )

        span_recorder = (
            self.containing_transaction and self.containing_transaction._span_recorder
        )
        if span_recorder:
            child._span_recorder = span_recorder
            span_recorder.add(child)

        return child

    @classmethod
    def continue_from_headers(
        cls, headers: "Mapping[str, str]", **kwargs: "Any"
    ) -> "Transaction":
        """
        Create a transaction that continues the trace described by an
        incoming `sentry-trace` header. The upstream sampling decision is
        carried as `parent_sampled`.
        """
        headers = normalize_incoming_data(headers)

        sentrytrace_kwargs = extract_sentrytrace_data(
            headers.get(SENTRY_TRACE_HEADER_NAME)
        )

        if sentrytrace_kwargs is not None:
            kwargs.update(sentrytrace_kwargs)
            kwargs["same_process_as_parent"] = False

        return Transaction(**kwargs)

    def iter_headers(self) -> "Iterator[Tuple[str, str]]":
        yield SENTRY_TRACE_HEADER_NAME, self.to_traceparent()

    def to_traceparent(self) -> str:
        if self.sampled is True:
            sampled = "1"
        elif self.sampled is False:
            sampled = "0"
        else:
            sampled = None

        traceparent = "%s-%s" % (self.trace_id, self.span_id)
        if sampled is not None:
            traceparent += "-%s" % (sampled,)

        return traceparent

    def set_tag(self, key: str, value: "Any") -> None:
        self._tags[key] = value

    def set_data(self, key: str, value: "Any") -> None:
        self._data[key] = value

    def set_status(self, value: str) -> None:
        self.status = value

    def set_http_status(self, http_status: int) -> None:
        self.set_tag("http.status_code", str(http_status))

        if http_status < 400:
            self.set_status("ok")
        elif 400 <= http_status < 500:
            if http_status == 403:
                self.set_status("permission_denied")
            elif http_status == 404:
                self.set_status("not_found")
            elif http_status == 429:
                self.set_status("resource_exhausted")
            else:
                self.set_status("invalid_argument")
        elif 500 <= http_status < 600:
            if http_status == 503:
                self.set_status("unavailable")
            else:
                self.set_status("internal_error")
        else:
            self.set_status("unknown_error")

    def is_success(self) -> bool:
        return self.status == "ok"

    def finish(
        self, hub: "Optional[Hub]" = None, end_timestamp: "Optional[datetime]" = None
    ) -> "Optional[str]":
        # This is a plain span, the containing transaction sends it.
        if self.timestamp is not None:
            # This span is already finished, ignore.
            return None

        if end_timestamp:
            self.timestamp = end_timestamp
        else:
            elapsed = nanosecond_time() - self._start_timestamp_monotonic_ns
            self.timestamp = self.start_timestamp + timedelta(
                microseconds=elapsed / 1000
            )

        return None

    def to_json(self) -> "Dict[str, Any]":
        rv: "Dict[str, Any]" = {
            "trace_id": self.trace_id,
            "span_id": self.span_id,
            "parent_span_id": self.parent_span_id,
            "same_process_as_parent": self.same_process_as_parent,
            "op": self.op,
            "description": self.description,
            "start_timestamp": self.start_timestamp,
            "timestamp": self.timestamp,
        }

        if self.status:
            rv["status"] = self.status

        if self._tags:
            rv["tags"] = self._tags

        if self._data:
            rv["data"] = self._data

        return rv

    def get_trace_context(self) -> "Dict[str, Any]":
        rv: "Dict[str, Any]" = {
            "trace_id": self.trace_id,
            "span_id": self.span_id,
            "parent_span_id": self.parent_span_id,
            "op": self.op,
            "description": self.description,
        }
        if self.status:
            rv["status"] = self.status

        return rv


class Transaction(Span):
    """The root span of a trace, sent to the collector when finished."""

    __slots__ = (
        "name",
        "source",
        "parent_sampled",
        # the resolved rate, kept for downstream introspection
        "sample_rate",
        "_measurements",
        "_contexts",
        "_profile",
    )

    def __init__(
        self,
        name: str = "",
        parent_sampled: "Optional[bool]" = None,
        source: str = TRANSACTION_SOURCE_CUSTOM,
        **kwargs: "Any"
    ) -> None:
        Span.__init__(self, **kwargs)

        self.name = name
        self.source = source
        self.sample_rate: "Optional[float]" = None
        self.parent_sampled = parent_sampled
        self._measurements: "Dict[str, Any]" = {}
        self._contexts: "Dict[str, Any]" = {}
        self._profile: "Optional[Profile]" = None

    def __repr__(self) -> str:
        return (
            "<%s(name=%r, op=%r, trace_id=%r, span_id=%r, parent_span_id=%r, sampled=%r, source=%r)>"
            % (
                self.__class__.__name__,
                self.name,
                self.op,
                self.trace_id,
                self.span_id,
                self.parent_span_id,
                self.sampled,
                self.source,
            )
        )

    @property
    def containing_transaction(self) -> "Transaction":
        # Transactions (as spans) belong to themselves (as transactions). This
        # is a getter rather than a regular attribute to avoid having a circular
        # reference.
        return self

    @property
    def profile(self) -> "Optional[Profile]":
        return self._profile

    def init_span_recorder(self, maxlen: int) -> None:
        if self._span_recorder is None:
            self._span_recorder = _SpanRecorder(maxlen)
            self._span_recorder.add(self)

    def finish(
        self, hub: "Optional[Hub]" = None, end_timestamp: "Optional[datetime]" = None
    ) -> "Optional[str]":
        if self.timestamp is not None:
            # This transaction is already finished, ignore.
            return None

        if self._profile is not None:
            self._profile.stop()

        hub = hub or self.hub or beacon_sdk.Hub.current
        client = hub.client

        if client is None:
            # We have no client and therefore nowhere to send this transaction.
            return None

        # This is a de facto proxy for checking if sampled = False
        if self._span_recorder is None:
            logger.debug("Discarding transaction because sampled = False")
            return None

        if not self.name:
            logger.warning(
                "Transaction has no name, falling back to `<unlabeled transaction>`."
            )
            self.name = "<unlabeled transaction>"

        Span.finish(self, hub, end_timestamp)

        if not self.sampled:
            # At this point a `sampled = None` should have already been resolved
            # to a concrete decision.
            if self.sampled is None:
                logger.warning("Discarding transaction without sampling decision.")

            return None

        finished_spans = [
            span.to_json()
            for span in self._span_recorder.spans
            if span is not self and span.timestamp is not None
        ]

        # we do this to break the circular reference of transaction -> span
        # recorder -> span -> containing transaction (which is where we started)
        # before either the spans or the transaction goes out of scope and has
        # to be garbage collected
        self._span_recorder = None

        contexts = {}
        contexts.update(self._contexts)
        contexts.update({"trace": self.get_trace_context()})

        event: "Event" = {
            "type": "transaction",
            "transaction": self.name,
            "transaction_info": {"source": self.source},
            "contexts": contexts,
            "tags": self._tags,
            "timestamp": self.timestamp,
            "start_timestamp": self.start_timestamp,
            "spans": finished_spans,
        }

        if self._profile is not None and self._profile.valid():
            event["profile"] = self._profile
            contexts.update({"profile": self._profile.get_profile_context()})
            self._profile = None

        event["measurements"] = self._measurements

        return hub.capture_event(event)

    def _set_initial_sampling_decision(
        self, sampling_context: "SamplingContext", options: "Dict[str, Any]"
    ) -> None:
        """
        Sets the transaction's sampling decision, according to the following
        precedence rules:

        1. If a sampling decision is passed to `start_transaction`
        (`start_transaction(name: "my transaction", sampled: True)`), that
        decision will be used, regardless of anything else

        2. If `traces_sampler` is defined, its decision will be used. It can
        choose to keep or ignore any parent sampling decision, or use the
        sampling context data to make its own decision or to choose a sample
        rate for the transaction.

        3. If `traces_sampler` is not defined, but there's a parent sampling
        decision, the parent sampling decision will be used.

        4. If `traces_sampler` is not defined and there's no parent sampling
        decision, `traces_sample_rate` will be used.
        """
        transaction_description = "{op}transaction <{name}>".format(
            op=("<" + self.op + "> " if self.op else ""), name=self.name
        )

        # if the user has forced a sampling decision by passing a `sampled`
        # value when starting the transaction, go with that
        if self.sampled is not None:
            return

        # we would have bailed already if neither `traces_sampler` nor
        # `traces_sample_rate` were defined, so one of these should work; prefer
        # the hook if so
        traces_sampler = options.get("traces_sampler")
        if callable(traces_sampler):
            sample_rate = None
            with capture_internal_exceptions():
                sample_rate = traces_sampler(sampling_context)
        else:
            fallback = options.get("traces_sample_rate")
            if fallback is None:
                fallback = 1.0 if options.get("enable_tracing") else 0
            sample_rate = get_sample_rate(self.parent_sampled, fallback)

        # Since this is coming from the user (or from a function provided by the
        # user), who knows what we might get. (The only valid values are
        # booleans or numbers between 0 and 1.)
        if not is_valid_sample_rate(sample_rate, source="Tracing"):
            logger.warning(
                "[Tracing] Discarding {transaction_description} because of invalid sample rate.".format(
                    transaction_description=transaction_description,
                )
            )
            self.sampled = False
            return

        self.sample_rate = float(sample_rate)

        self.sampled = sample(self.sample_rate)

        if self.sampled:
            logger.debug(
                "[Tracing] Starting {transaction_description}".format(
                    transaction_description=transaction_description,
                )
            )
        else:
            logger.debug(
                "[Tracing] Discarding {transaction_description} because it was not selected by a sample rate of {sample_rate}".format(
                    transaction_description=transaction_description,
                    sample_rate=self.sample_rate,
                )
            )

    def set_measurement(self, name: str, value: float, unit: str = "") -> None:
        self._measurements[name] = {"value": value, "unit": unit}

    def set_context(self, key: str, value: "Any") -> None:
        self._contexts[key] = value

    def to_json(self) -> "Dict[str, Any]":
        rv = super().to_json()

        rv["name"] = self.name
        rv["source"] = self.source
        rv["sampled"] = self.sampled

        return rv
