import uuid
from functools import wraps
from inspect import iscoroutinefunction

import beacon_sdk
from beacon_sdk.consts import MonitorStatus
from beacon_sdk.utils import now

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from types import TracebackType
    from typing import (
        Any,
        Awaitable,
        Callable,
        Dict,
        Optional,
        ParamSpec,
        Type,
        TypeVar,
        Union,
    )

    from beacon_sdk._types import Event, MonitorConfig

    P = ParamSpec("P")
    R = TypeVar("R")


def _create_check_in_event(
    options: "Dict[str, Any]",
    monitor_slug: "Optional[str]" = None,
    check_in_id: "Optional[str]" = None,
    status: "Optional[str]" = None,
    duration_s: "Optional[float]" = None,
    monitor_config: "Optional[MonitorConfig]" = None,
) -> "Event":
    check_in_id = check_in_id or uuid.uuid4().hex

    check_in: "Event" = {
        "type": "check_in",
        "monitor_slug": monitor_slug,
        "check_in_id": check_in_id,
        "status": status,
        "duration": duration_s,
        "environment": options.get("environment", None),
        "release": options.get("release", None),
    }

    if monitor_config:
        check_in["monitor_config"] = monitor_config

    return check_in


class monitor:  # noqa: N801
    """
    Decorator/context manager to capture checkin events for a monitor.

    Usage (as decorator):
    ```
    import beacon_sdk

    @beacon_sdk.monitor(monitor_slug='my-fancy-slug')
    def nightly_cleanup(arg):
        print(arg)
    ```

    Usage (as context manager):
    ```
    import beacon_sdk

    def nightly_cleanup(arg):
        with beacon_sdk.monitor(monitor_slug='my-fancy-slug'):
            print(arg)
    ```

    An `in_progress` check-in is sent on entry, followed by `ok` or `error`
    together with the measured duration on exit.
    """

    def __init__(
        self,
        monitor_slug: "Optional[str]" = None,
        monitor_config: "Optional[MonitorConfig]" = None,
    ) -> None:
        self.monitor_slug = monitor_slug
        self.monitor_config = monitor_config

    def __enter__(self) -> None:
        self.start_timestamp = now()
        self.check_in_id = beacon_sdk.capture_checkin(
            monitor_slug=self.monitor_slug,
            status=MonitorStatus.IN_PROGRESS,
            monitor_config=self.monitor_config,
        )

    def __exit__(
        self,
        exc_type: "Optional[Type[BaseException]]",
        exc_value: "Optional[BaseException]",
        traceback: "Optional[TracebackType]",
    ) -> None:
        duration_s = now() - self.start_timestamp

        if exc_type is None and exc_value is None and traceback is None:
            status = MonitorStatus.OK
        else:
            status = MonitorStatus.ERROR

        beacon_sdk.capture_checkin(
            monitor_slug=self.monitor_slug,
            check_in_id=self.check_in_id,
            status=status,
            duration=duration_s,
            monitor_config=self.monitor_config,
        )

    def __call__(self, fn: "Callable[P, R]") -> "Callable[P, Union[R, Awaitable[R]]]":
        if iscoroutinefunction(fn):

            @wraps(fn)
            async def inner(*args: "P.args", **kwargs: "P.kwargs") -> "R":
                with self:
                    return await fn(*args, **kwargs)

        else:

            @wraps(fn)
            def inner(*args: "P.args", **kwargs: "P.kwargs") -> "R":
                with self:
                    return fn(*args, **kwargs)

        return inner
