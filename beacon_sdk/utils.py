import json
import logging
import os
import sys
import time
import urllib.parse

from contextlib import contextmanager
from datetime import datetime, timezone

from beacon_sdk.consts import FALSE_VALUES, EndpointType

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from types import TracebackType
    from typing import Any
    from typing import Dict
    from typing import Iterator
    from typing import List
    from typing import Optional
    from typing import Tuple
    from typing import Union

    from beacon_sdk._types import Event, ExcInfo, Hint


# The logger is created here but initialized in the debug support module
logger = logging.getLogger("beacon_sdk.errors")

MAX_STRING_LENGTH = 1024


def env_to_bool(value: "Any", *, strict: "Optional[bool]" = False) -> "bool | None":
    """Casts an ENV variable value to boolean using the constants defined above.
    In strict mode, it may return None if the value doesn't match any of the predefined values.
    """
    normalized = str(value).lower() if value is not None else None

    if normalized in FALSE_VALUES:
        return False

    if normalized in {"true", "yes", "on", "y", "1"}:
        return True

    return None if strict else bool(value)


def capture_internal_exception(exc_info: "ExcInfo") -> None:
    """Report an exception that is likely caused by a bug in the SDK itself."""
    logger.error("Internal error in beacon_sdk", exc_info=exc_info)


@contextmanager
def capture_internal_exceptions() -> "Iterator[None]":
    try:
        yield
    except Exception:
        capture_internal_exception(sys.exc_info())


def now() -> float:
    return time.perf_counter()


def nanosecond_time() -> int:
    return time.perf_counter_ns()


def utc_now() -> "datetime":
    return datetime.now(timezone.utc)


def format_timestamp(value: "datetime") -> str:
    """Formats a timestamp in RFC 3339 format.

    Any datetime objects with a non-UTC timezone are converted to UTC, so that all timestamps are formatted in UTC.
    """
    utctime = value.astimezone(timezone.utc)

    # We use this custom formatting rather than isoformat for backwards compatibility (we have used this format for
    # several years now), and isoformat is slightly different.
    return utctime.strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def _json_default(value: "Any") -> "Any":
    if isinstance(value, datetime):
        return format_timestamp(value)
    if isinstance(value, (set, frozenset, tuple)):
        return list(value)
    return safe_repr(value)


def json_dumps(data: "Any") -> bytes:
    """Serialize data into a compact JSON representation encoded as UTF-8."""
    return json.dumps(
        data, allow_nan=False, separators=(",", ":"), default=_json_default
    ).encode("utf-8")


class BadDsn(ValueError):
    """Raised on invalid DSNs."""


class Dsn:
    """Represents a DSN."""

    def __init__(self, value: "Union[Dsn, str]") -> None:
        if isinstance(value, Dsn):
            self.__dict__ = dict(value.__dict__)
            return
        parts = urllib.parse.urlsplit(str(value))

        if parts.scheme not in ("http", "https"):
            raise BadDsn("Unsupported scheme %r" % parts.scheme)
        self.scheme = parts.scheme

        if parts.hostname is None:
            raise BadDsn("Missing hostname")

        self.host = parts.hostname

        if parts.port is None:
            self.port: int = self.scheme == "https" and 443 or 80
        else:
            self.port = parts.port

        if not parts.username:
            raise BadDsn("Missing public key")

        self.public_key = parts.username
        self.secret_key = parts.password

        path = parts.path.rsplit("/", 1)

        try:
            self.project_id = str(int(path.pop()))
        except (ValueError, TypeError):
            raise BadDsn("Invalid project in DSN (%r)" % (parts.path or "")[1:])

        self.path = "/".join(path) + "/"

    @property
    def netloc(self) -> str:
        """The netloc part of a DSN."""
        rv = self.host
        if (self.scheme, self.port) not in (("http", 80), ("https", 443)):
            rv = "%s:%s" % (rv, self.port)
        return rv

    def to_auth(self, client: "Optional[Any]" = None) -> "Auth":
        """Returns the auth info object for this dsn."""
        return Auth(
            scheme=self.scheme,
            host=self.netloc,
            path=self.path,
            project_id=self.project_id,
            public_key=self.public_key,
            secret_key=self.secret_key,
            client=client,
        )

    def __str__(self) -> str:
        return "%s://%s%s@%s%s%s" % (
            self.scheme,
            self.public_key,
            self.secret_key and "@" + self.secret_key or "",
            self.netloc,
            self.path,
            self.project_id,
        )


class Auth:
    """Helper object that represents the auth info."""

    def __init__(
        self,
        scheme: str,
        host: str,
        project_id: str,
        public_key: str,
        secret_key: "Optional[str]" = None,
        version: int = 7,
        client: "Optional[Any]" = None,
        path: str = "/",
    ) -> None:
        self.scheme = scheme
        self.host = host
        self.path = path
        self.project_id = project_id
        self.public_key = public_key
        self.secret_key = secret_key
        self.version = version
        self.client = client

    def get_api_url(self, type: "EndpointType" = EndpointType.ENVELOPE) -> str:
        """Returns the API url for storing events."""
        return "%s://%s%sapi/%s/%s/" % (
            self.scheme,
            self.host,
            self.path,
            self.project_id,
            type.value,
        )

    def to_header(self) -> str:
        """Returns the auth header a string."""
        rv = [("sentry_key", self.public_key), ("sentry_version", self.version)]
        if self.client is not None:
            rv.append(("sentry_client", self.client))
        if self.secret_key is not None:
            rv.append(("sentry_secret", self.secret_key))
        return "Sentry " + ", ".join("%s=%s" % (key, value) for key, value in rv)


def get_type_name(cls: "Optional[type]") -> "Optional[str]":
    return getattr(cls, "__qualname__", None) or getattr(cls, "__name__", None)


def get_type_module(cls: "Optional[type]") -> "Optional[str]":
    mod = getattr(cls, "__module__", None)
    if mod not in (None, "builtins", "__builtins__"):
        return mod
    return None


def safe_str(value: "Any") -> str:
    try:
        return str(value)
    except Exception:
        return safe_repr(value)


def safe_repr(value: "Any") -> str:
    try:
        return repr(value)
    except Exception:
        return "<broken repr>"


def slim_string(value: str, length: int = MAX_STRING_LENGTH) -> str:
    if not value:
        return value
    if len(value) > length:
        return value[: length - 3] + "..."
    return value[:length]


def iter_stacks(tb: "Optional[TracebackType]") -> "Iterator[TracebackType]":
    tb_ = tb
    while tb_ is not None:
        if not should_hide_frame(tb_):
            yield tb_
        tb_ = tb_.tb_next


def should_hide_frame(tb: "TracebackType") -> bool:
    try:
        mod = tb.tb_frame.f_globals["__name__"]
        if mod.startswith("beacon_sdk."):
            return True
    except (AttributeError, KeyError):
        pass

    return bool(tb.tb_frame.f_locals.get("__traceback_hide__"))


def frames_from_traceback(tb: "Optional[TracebackType]") -> "List[Dict[str, Any]]":
    """Light frame records without source context."""
    return [
        {
            "filename": os.path.basename(tb_.tb_frame.f_code.co_filename),
            "abs_path": tb_.tb_frame.f_code.co_filename,
            "function": tb_.tb_frame.f_code.co_name or "<unknown>",
            "module": tb_.tb_frame.f_globals.get("__name__"),
            "lineno": tb_.tb_lineno,
        }
        for tb_ in iter_stacks(tb)
    ]


def single_exception_from_error_tuple(
    exc_type: "Optional[type]",
    exc_value: "Optional[BaseException]",
    tb: "Optional[TracebackType]",
    mechanism: "Optional[Dict[str, Any]]" = None,
) -> "Dict[str, Any]":
    rv: "Dict[str, Any]" = {
        "module": get_type_module(exc_type),
        "type": get_type_name(exc_type),
        "value": slim_string(safe_str(exc_value)),
        "mechanism": mechanism or {"type": "generic", "handled": True},
    }

    frames = frames_from_traceback(tb)
    if frames:
        rv["stacktrace"] = {"frames": frames}

    return rv


def walk_exception_chain(exc_info: "ExcInfo") -> "Iterator[ExcInfo]":
    exc_type, exc_value, tb = exc_info

    seen_exceptions = []
    seen_exception_ids = set()

    while (
        exc_type is not None
        and exc_value is not None
        and id(exc_value) not in seen_exception_ids
    ):
        yield exc_type, exc_value, tb

        # Avoid hashing random types we don't know anything
        # about. Use the list to keep the objects alive.
        seen_exceptions.append(exc_value)
        seen_exception_ids.add(id(exc_value))

        if exc_value.__suppress_context__:
            cause = exc_value.__cause__
        else:
            cause = exc_value.__context__
        if cause is None:
            break
        exc_type = type(cause)
        exc_value = cause
        tb = getattr(cause, "__traceback__", None)


def exceptions_from_error_tuple(
    exc_info: "ExcInfo",
    mechanism: "Optional[Dict[str, Any]]" = None,
) -> "List[Dict[str, Any]]":
    rv = [
        single_exception_from_error_tuple(exc_type, exc_value, tb, mechanism)
        for exc_type, exc_value, tb in walk_exception_chain(exc_info)
    ]

    rv.reverse()

    return rv


def exc_info_from_error(error: "Union[BaseException, ExcInfo]") -> "ExcInfo":
    if isinstance(error, tuple) and len(error) == 3:
        exc_type, exc_value, tb = error
    elif isinstance(error, BaseException):
        tb = getattr(error, "__traceback__", None)
        if tb is not None:
            exc_type = type(error)
            exc_value = error
        else:
            exc_type, exc_value, tb = sys.exc_info()
            if exc_value is not error:
                tb = None
                exc_value = error
                exc_type = type(error)

    else:
        raise ValueError("Expected Exception object to report, got %s!" % type(error))

    return exc_type, exc_value, tb


def event_hint_with_exc_info(exc_info: "Optional[ExcInfo]" = None) -> "Hint":
    """Creates a hint with the exc info filled in."""
    if exc_info is None:
        exc_info = sys.exc_info()
    else:
        exc_info = exc_info_from_error(exc_info)
    if exc_info[0] is None:
        exc_info = None
    return {"exc_info": exc_info}


def event_from_exception(
    exc_info: "Union[BaseException, ExcInfo]",
    mechanism: "Optional[Dict[str, Any]]" = None,
) -> "Tuple[Event, Hint]":
    exc_info = exc_info_from_error(exc_info)
    hint = event_hint_with_exc_info(exc_info)
    return (
        {
            "level": "error",
            "exception": {"values": exceptions_from_error_tuple(exc_info, mechanism)},
        },
        hint,
    )
