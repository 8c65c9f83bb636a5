from beacon_sdk.hub import Hub, Layer, init
from beacon_sdk.scope import Scope
from beacon_sdk.transport import HttpTransport, RateLimiter, Result, ResultStatus, Transport
from beacon_sdk.client import Client

from beacon_sdk.api import *  # noqa

from beacon_sdk.consts import VERSION  # noqa

from beacon_sdk.crons import monitor  # noqa
from beacon_sdk.tracing import Span, Transaction  # noqa

__all__ = [  # noqa
    "Hub",
    "Layer",
    "Scope",
    "Client",
    "Transport",
    "HttpTransport",
    "RateLimiter",
    "Result",
    "ResultStatus",
    "Span",
    "Transaction",
    "init",
    "integrations",
    "monitor",
    # From beacon_sdk.api
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

# Initialize the debug support after everything is loaded
from beacon_sdk.debug import init_debug_support

init_debug_support()
del init_debug_support
