from typing import TYPE_CHECKING

# Re-exported for compat, since code out there in the wild might use this variable.
MYPY = TYPE_CHECKING


if TYPE_CHECKING:
    from datetime import datetime
    from types import TracebackType
    from typing import Any, Callable, Dict, Mapping, Optional, Tuple, Type, Union

    from typing_extensions import Literal, TypedDict

    # "critical" is an alias of "fatal" recognized by the collector
    LogLevelStr = Literal["fatal", "critical", "error", "warning", "info", "debug"]

    Event = Dict[str, Any]
    Hint = Dict[str, Any]

    Breadcrumb = Dict[str, Any]
    BreadcrumbHint = Dict[str, Any]

    SamplingContext = Dict[str, Any]

    ExcInfo = Union[
        Tuple[Type[BaseException], BaseException, Optional[TracebackType]],
        Tuple[None, None, None],
    ]

    BreadcrumbProcessor = Callable[[Breadcrumb, BreadcrumbHint], Optional[Breadcrumb]]
    EventProcessor = Callable[[Event, Hint], Optional[Event]]
    TracesSampler = Callable[[SamplingContext], Union[float, int, bool]]

    # The data categories the collector can rate limit independently
    EventDataCategory = Literal[
        "default",
        "error",
        "transaction",
        "monitor",
        "metric_bucket",
    ]

    MetricType = Literal["c", "d", "s"]
    MetricValue = Union[int, float, str]
    MetricTags = Mapping[str, str]

    Metric = TypedDict(
        "Metric",
        {
            "timestamp": int,
            "width": int,
            "name": str,
            "type": MetricType,
            "value": MetricValue,
            "tags": Dict[str, str],
        },
    )

    MonitorConfigScheduleType = Literal["crontab", "interval"]
    MonitorConfigScheduleUnit = Literal[
        "year",
        "month",
        "week",
        "day",
        "hour",
        "minute",
        "second",
    ]

    MonitorConfigSchedule = TypedDict(
        "MonitorConfigSchedule",
        {
            "type": MonitorConfigScheduleType,
            "value": Union[int, str],
            "unit": MonitorConfigScheduleUnit,
        },
        total=False,
    )

    MonitorConfig = TypedDict(
        "MonitorConfig",
        {
            "schedule": MonitorConfigSchedule,
            "timezone": str,
            "checkin_margin": int,
            "max_runtime": int,
            "failure_issue_threshold": int,
            "recovery_threshold": int,
        },
        total=False,
    )

    Clock = Callable[[], datetime]
