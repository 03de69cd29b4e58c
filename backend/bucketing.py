import logging
import math
import re
from typing import Optional

from clock import Clock, system_clock, to_epoch_ms
from granularity import HOUR, DAY, WEEK, MONTH, GranularityLike, resolve_granularity

logger = logging.getLogger(__name__)

GROUPED_BAR = "groupedBarGraph"

TWENTY_MINUTES = 1_200_000

_BUCKET_UNITS_MS = {
    "m": 60_000,
    "h": HOUR,
    "d": DAY,
}
_BUCKET_PATTERN = re.compile(r"^(\d+)([mhd])$")

# Trailing bucket is dropped always, or while younger than the given age (ms)
_ALWAYS_DROP = {"1m", "30m", "1h"}
_DROP_IF_YOUNGER_THAN = {
    "3h": TWENTY_MINUTES,
    "6h": TWENTY_MINUTES,
    "1d": HOUR,
    "4d": HOUR,
    "21d": HOUR,
}


def select_bucket_size(window_length_ms: Optional[float], chart_mode: Optional[str] = None) -> str:
    """
    Pick the aggregation bucket size for a backend query.

    Keeps the number of returned points roughly constant regardless of the
    window length. Grouped bar charts get wider buckets since fewer, wider
    bars stay legible.

    Args:
        window_length_ms: Length of the queried window in milliseconds
        chart_mode: Chart type; GROUPED_BAR selects the coarse column

    Returns:
        str: Bucket size token understood by the backend ('1m', '30m', ...)
    """
    if not _is_valid_length(window_length_ms):
        logger.warning("Invalid window length %r, using a day window", window_length_ms)
        window_length_ms = DAY

    grouped = chart_mode == GROUPED_BAR
    if window_length_ms <= HOUR:
        return "1m"
    elif window_length_ms <= DAY:
        return "1h" if grouped else "30m"
    elif window_length_ms <= WEEK + DAY:
        return "1d" if grouped else "3h"
    elif window_length_ms <= MONTH + DAY:
        return "4d" if grouped else "6h"
    else:
        return "21d" if grouped else "1d"


def bucket_size_for_granularity(granularity: GranularityLike, chart_mode: Optional[str] = None) -> str:
    """Bucket size for a full window of the given granularity."""
    return select_bucket_size(resolve_granularity(granularity).ms, chart_mode)


def bucket_size_ms(bucket_size: str) -> Optional[int]:
    """Duration of a bucket size token in milliseconds, None if unparseable."""
    match = _BUCKET_PATTERN.match(bucket_size or "")
    if match is None:
        return None
    return int(match.group(1)) * _BUCKET_UNITS_MS[match.group(2)]


def should_drop_last_bucket(bucket_size: str, last_bucket_key_ms: float, clock: Clock = system_clock) -> bool:
    """
    Decide whether the trailing bucket is too fresh to plot.

    Data arrives about every 15 minutes, so sub-hour buckets at the end of a
    window are always partial, multi-hour buckets are partial for their first
    20 minutes and daily buckets for their first hour.
    """
    if bucket_size in _ALWAYS_DROP:
        return True
    min_age = _DROP_IF_YOUNGER_THAN.get(bucket_size)
    if min_age is None:
        return False
    bucket_age = to_epoch_ms(clock()) - last_bucket_key_ms
    return bucket_age < min_age


def _is_valid_length(value) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value) and value > 0
