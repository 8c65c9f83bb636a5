import math
import random
import re
from decimal import Decimal
from numbers import Real

from beacon_sdk.utils import logger

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import Any
    from typing import Dict
    from typing import Mapping
    from typing import Optional
    from typing import Union


SENTRY_TRACE_HEADER_NAME = "sentry-trace"

SENTRY_TRACE_REGEX = re.compile(
    "^[ \t]*"  # whitespace
    "([0-9a-f]{32})?"  # trace_id
    "-?([0-9a-f]{16})?"  # span_id
    "-?([01])?"  # sampled
    "[ \t]*$"  # whitespace
)


def has_tracing_enabled(options: "Optional[Dict[str, Any]]") -> bool:
    """
    Returns True if either traces_sample_rate or traces_sampler is
    defined and enable_tracing is not explicitly set to False.
    """
    if options is None:
        return False

    enable_tracing = options.get("enable_tracing")
    if enable_tracing is not None and not enable_tracing:
        return False

    return bool(
        enable_tracing
        or options.get("traces_sample_rate") is not None
        or options.get("traces_sampler") is not None
    )


def is_valid_sample_rate(rate: "Any", source: str = "Tracing") -> bool:
    """
    Checks the given sample rate to make sure it is valid type and value (a
    boolean or a number between 0 and 1, inclusive).
    """

    # both booleans and NaN are instances of Real, so a) checking for Real
    # checks for the possibility of a boolean also, and b) we have to check
    # separately for NaN and Decimal does not derive from Real so need to check that too
    if not isinstance(rate, (Real, Decimal)) or math.isnan(rate):
        logger.warning(
            "[{source}] Given sample rate is invalid. Sample rate must be a boolean or a number between 0 and 1. Got {rate} of type {type}.".format(
                source=source, rate=rate, type=type(rate)
            )
        )
        return False

    # in case rate is a boolean, it will get cast to 1 if it's True and 0 if it's False
    rate = float(rate)
    if rate < 0 or rate > 1:
        logger.warning(
            "[{source}] Given sample rate is invalid. Sample rate must be between 0 and 1. Got {rate}.".format(
                source=source, rate=rate
            )
        )
        return False

    return True


def get_sample_rate(
    parent_sampled: "Optional[bool]", fallback_sample_rate: "Union[float, int]"
) -> "Union[float, int]":
    """
    A parent decision always wins over the configured static rate.
    """
    if parent_sampled is True:
        return 1.0

    if parent_sampled is False:
        return 0.0

    return fallback_sample_rate


def sample(sample_rate: "Union[float, int, bool]") -> bool:
    """
    Flips a weighted coin. The two edge rates never touch the random
    generator, so a fully disabled or fully enabled sampler is deterministic.
    """
    rate = float(sample_rate)

    if rate == 0.0:
        return False

    if rate == 1.0:
        return True

    # random.random is inclusive of 0, but not of 1, so strict < is safe here.
    return random.random() < rate


def extract_sentrytrace_data(
    header: "Optional[str]",
) -> "Optional[Dict[str, Union[str, bool, None]]]":
    """
    Given a `sentry-trace` header string, return a dictionary of data.
    """
    if not header:
        return None

    match = SENTRY_TRACE_REGEX.match(header)
    if not match:
        return None

    trace_id, parent_span_id, sampled_str = match.groups()
    parent_sampled = None

    if sampled_str:
        parent_sampled = sampled_str != "0"

    return {
        "trace_id": trace_id,
        "parent_span_id": parent_span_id,
        "parent_sampled": parent_sampled,
    }


def normalize_incoming_data(incoming_data: "Mapping[str, Any]") -> "Dict[str, Any]":
    """
    Normalizes incoming data so the keys are all lowercase with dashes instead of underscores and stripped from known prefixes.
    """
    data = {}
    for key, value in incoming_data.items():
        if key.startswith("HTTP_"):
            key = key[5:]

        key = key.replace("_", "-").lower()
        data[key] = value

    return data
