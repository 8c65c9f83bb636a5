from copy import deepcopy
from collections import deque

from beacon_sdk.utils import capture_internal_exceptions, logger

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import Any
    from typing import Deque
    from typing import Dict
    from typing import List
    from typing import Mapping
    from typing import Optional

    from beacon_sdk._types import (
        Breadcrumb,
        Event,
        EventProcessor,
        Hint,
        LogLevelStr,
    )
    from beacon_sdk.tracing import Span, Transaction


def _attr_setter(fn: "Any") -> "Any":
    return property(fset=fn, doc=fn.__doc__)


class Scope:
    """The scope holds extra information that should be sent with all
    events that belong to it.

    A scope is owned by a single layer of a single hub. Pushing a scope on
    the hub copies it, so mutating the copy never leaks into the scope it
    was copied from.
    """

    __slots__ = (
        "_level",
        "_fingerprint",
        "_user",
        "_tags",
        "_contexts",
        "_extras",
        "_breadcrumbs",
        "_event_processors",
        "_transaction_name",
        "_span",
    )

    def __init__(self) -> None:
        self._event_processors: "List[EventProcessor]" = []
        self.clear()

    def clear(self) -> None:
        """Clears the entire scope."""
        self._level: "Optional[LogLevelStr]" = None
        self._fingerprint: "Optional[List[str]]" = None
        self._user: "Optional[Dict[str, Any]]" = None
        self._transaction_name: "Optional[str]" = None

        self._tags: "Dict[str, Any]" = {}
        self._contexts: "Dict[str, Dict[str, Any]]" = {}
        self._extras: "Dict[str, Any]" = {}

        self.clear_breadcrumbs()

        self._span: "Optional[Span]" = None

    def __copy__(self) -> "Scope":
        """
        Returns a copy of this scope.
        This also creates a copy of all referenced data structures.
        """
        rv: "Scope" = object.__new__(self.__class__)

        rv._level = self._level
        rv._fingerprint = list(self._fingerprint) if self._fingerprint else None
        rv._user = deepcopy(self._user)
        rv._transaction_name = self._transaction_name

        rv._tags = self._tags.copy()
        rv._contexts = deepcopy(self._contexts)
        rv._extras = self._extras.copy()

        rv._breadcrumbs = deepcopy(self._breadcrumbs)
        rv._event_processors = list(self._event_processors)

        rv._span = self._span

        return rv

    def __repr__(self) -> str:
        return "<%s id=%s>" % (self.__class__.__name__, hex(id(self)))

    @_attr_setter
    def level(self, value: "LogLevelStr") -> None:
        """When set this overrides the level."""
        self._level = value

    def set_level(self, value: "LogLevelStr") -> None:
        """Sets the level for the scope."""
        self._level = value

    @_attr_setter
    def fingerprint(self, value: "Optional[List[str]]") -> None:
        """When set this overrides the default fingerprint."""
        self._fingerprint = value

    @property
    def transaction(self) -> "Optional[Transaction]":
        """Return the transaction of the active span, if there is one."""
        if self._span is None:
            return None

        return self._span.containing_transaction

    @transaction.setter
    def transaction(self, value: "Any") -> None:
        # Assigning a string only overrides the name reported on events.
        self._transaction_name = value

    @_attr_setter
    def user(self, value: "Optional[Dict[str, Any]]") -> None:
        """When set a specific user is bound to the scope."""
        self.set_user(value)

    def set_user(self, value: "Optional[Dict[str, Any]]") -> None:
        """Sets a user for the scope."""
        self._user = value

    @property
    def span(self) -> "Optional[Span]":
        """Get/set current tracing span or transaction."""
        return self._span

    @span.setter
    def span(self, span: "Optional[Span]") -> None:
        self._span = span

    def set_tag(self, key: str, value: "Any") -> None:
        """Sets a tag for a key to a specific value."""
        self._tags[key] = value

    def set_tags(self, tags: "Mapping[str, object]") -> None:
        """Sets multiple tags at once."""
        self._tags.update(tags)

    def remove_tag(self, key: str) -> None:
        """Removes a specific tag."""
        self._tags.pop(key, None)

    def set_context(self, key: str, value: "Dict[str, Any]") -> None:
        """Binds a context at a certain key to a specific value."""
        self._contexts[key] = value

    def remove_context(self, key: str) -> None:
        """Removes a context."""
        self._contexts.pop(key, None)

    def set_extra(self, key: str, value: "Any") -> None:
        """Sets an extra key to a specific value."""
        self._extras[key] = value

    def remove_extra(self, key: str) -> None:
        """Removes a specific extra key."""
        self._extras.pop(key, None)

    @property
    def tags(self) -> "Dict[str, Any]":
        return self._tags

    @property
    def extras(self) -> "Dict[str, Any]":
        return self._extras

    @property
    def contexts(self) -> "Dict[str, Dict[str, Any]]":
        return self._contexts

    @property
    def breadcrumbs(self) -> "List[Breadcrumb]":
        return list(self._breadcrumbs)

    def clear_breadcrumbs(self) -> None:
        """Clears breadcrumb buffer."""
        self._breadcrumbs: "Deque[Breadcrumb]" = deque()

    def add_breadcrumb(self, crumb: "Breadcrumb", max_breadcrumbs: int) -> None:
        """
        Appends a breadcrumb that already went through `before_breadcrumb`,
        evicting the oldest ones so at most `max_breadcrumbs` remain.
        """
        self._breadcrumbs.append(crumb)
        while len(self._breadcrumbs) > max_breadcrumbs:
            self._breadcrumbs.popleft()

    def add_event_processor(self, func: "EventProcessor") -> None:
        """Register a scope local event processor on the scope.

        :param func: This function behaves like `before_send.`
        """
        if len(self._event_processors) > 20:
            logger.warning(
                "Too many event processors on scope! Clearing list to free up some memory: %r",
                self._event_processors,
            )
            del self._event_processors[:]

        self._event_processors.append(func)

    def get_trace_context(self) -> "Optional[Dict[str, Any]]":
        if self._span is None:
            return None
        return self._span.get_trace_context()

    def _apply_level_to_event(self, event: "Event") -> None:
        if self._level is not None:
            event["level"] = self._level

    def _apply_breadcrumbs_to_event(self, event: "Event") -> None:
        event.setdefault("breadcrumbs", {}).setdefault("values", []).extend(
            self._breadcrumbs
        )

    def _apply_user_to_event(self, event: "Event") -> None:
        if event.get("user") is None and self._user is not None:
            event["user"] = self._user

    def _apply_transaction_name_to_event(self, event: "Event") -> None:
        if event.get("transaction") is not None:
            return

        if self._transaction_name is not None:
            event["transaction"] = self._transaction_name
        elif self.transaction is not None:
            event["transaction"] = self.transaction.name

    def _apply_fingerprint_to_event(self, event: "Event") -> None:
        if event.get("fingerprint") is None and self._fingerprint is not None:
            event["fingerprint"] = self._fingerprint

    def _apply_extra_to_event(self, event: "Event") -> None:
        if self._extras:
            event.setdefault("extra", {}).update(self._extras)

    def _apply_tags_to_event(self, event: "Event") -> None:
        if self._tags:
            event.setdefault("tags", {}).update(self._tags)

    def _apply_contexts_to_event(self, event: "Event") -> None:
        if self._contexts:
            event.setdefault("contexts", {}).update(self._contexts)

        trace_context = self.get_trace_context()
        if trace_context is not None:
            event.setdefault("contexts", {}).setdefault("trace", trace_context)

    def _drop(self, cause: "Any", ty: str) -> "Optional[Any]":
        logger.info("%s (%s) dropped event", ty, cause)
        return None

    def run_event_processors(self, event: "Event", hint: "Hint") -> "Optional[Event]":
        for event_processor in self._event_processors:
            new_event = event
            with capture_internal_exceptions():
                new_event = event_processor(event, hint)
            if new_event is None:
                return self._drop(event_processor, "event processor")
            event = new_event

        return event

    def apply_to_event(self, event: "Event", hint: "Hint") -> "Optional[Event]":
        """Applies the information contained on the scope to the given event."""
        ty = event.get("type")
        is_transaction = ty == "transaction"
        is_check_in = ty == "check_in"
        is_metric = ty == "metric"

        if is_metric:
            # Metrics carry their own tags and are not enriched.
            return event

        self._apply_contexts_to_event(event)

        if is_check_in:
            # Check-ins only support the trace context, strip all others
            event["contexts"] = {
                "trace": event.setdefault("contexts", {}).get("trace", {})
            }
            return event

        self._apply_level_to_event(event)
        self._apply_fingerprint_to_event(event)
        self._apply_user_to_event(event)
        self._apply_transaction_name_to_event(event)
        self._apply_tags_to_event(event)
        self._apply_extra_to_event(event)

        if not is_transaction:
            self._apply_breadcrumbs_to_event(event)

        return self.run_event_processors(event, hint)
