"""
Metric records sent as single-bucket events.

Every helper builds one bucket of zero width stamped with the current time,
the collector takes care of aggregation.
"""

import time

from beacon_sdk.consts import MetricKind
from beacon_sdk.utils import safe_str

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import Dict
    from typing import Optional

    from beacon_sdk._types import (
        Event,
        Metric,
        MetricTags,
        MetricType,
        MetricValue,
    )


def metric_name(kind: "MetricType", name: str, unit: "Optional[str]" = None) -> str:
    """Builds the namespaced name, e.g. ``c:custom/page_load@none``."""
    return "%s:custom/%s@%s" % (kind, name, unit or "none")


def _normalize_tags(tags: "Optional[MetricTags]") -> "Dict[str, str]":
    if not tags:
        return {}
    return {safe_str(key): safe_str(value) for key, value in tags.items()}


def make_metric(
    kind: "MetricType",
    name: str,
    value: "MetricValue",
    tags: "Optional[MetricTags]" = None,
    unit: "Optional[str]" = None,
) -> "Metric":
    return {
        "timestamp": int(time.time()),
        "width": 0,
        "name": metric_name(kind, name, unit),
        "type": kind,
        "value": value,
        "tags": _normalize_tags(tags),
    }


def metric_event(
    kind: "MetricType",
    name: str,
    value: "MetricValue",
    tags: "Optional[MetricTags]" = None,
    unit: "Optional[str]" = None,
) -> "Event":
    return {"type": "metric", "metric": make_metric(kind, name, value, tags, unit)}


def counter_event(
    name: str, value: "MetricValue", tags: "Optional[MetricTags]" = None
) -> "Event":
    return metric_event(MetricKind.COUNTER, name, value, tags)


def distribution_event(
    name: str,
    value: "MetricValue",
    tags: "Optional[MetricTags]" = None,
    unit: "Optional[str]" = None,
) -> "Event":
    return metric_event(MetricKind.DISTRIBUTION, name, value, tags, unit)


def set_event(
    name: str, value: "MetricValue", tags: "Optional[MetricTags]" = None
) -> "Event":
    return metric_event(MetricKind.SET, name, value, tags)
