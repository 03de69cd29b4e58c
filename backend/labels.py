import math
from datetime import datetime, timedelta
from typing import Any

from clock import Clock, system_clock
from granularity import GranularityLike, resolve_granularity


def format_date(date: datetime) -> str:
    """'Dec 25, 23' style short date."""
    return f"{date:%b} {date.day}, {date:%y}"


def window_end(start: datetime, granularity: GranularityLike, clock: Clock = system_clock) -> datetime:
    """End of the window starting at ``start``, clamped to now."""
    nominal_end = start + timedelta(milliseconds=resolve_granularity(granularity).ms)
    return min(nominal_end, clock())


def window_label(start: datetime, granularity: GranularityLike, clock: Clock = system_clock) -> str:
    """
    Label for the displayed window, e.g. 'Dec 24, 23 - Dec 25, 23'.

    A window that is still elapsing reads as ending now rather than at its
    nominal end.
    """
    return f"{format_date(start)} - {format_date(window_end(start, granularity, clock))}"


def round_to_decimals(number: Any, decimals: int) -> float:
    """
    Round to a power-of-ten precision (decimals=100 -> two places).

    NaN, infinities and non-numeric input give 0 so they never reach a chart
    axis.
    """
    try:
        value = float(number)
    except (TypeError, ValueError):
        return 0
    rounded = math.floor(value * decimals + 0.5) / decimals if math.isfinite(value) and decimals else math.nan
    return rounded if math.isfinite(rounded) else 0


def safe_ratio(numerator: Any, denominator: Any) -> float:
    """numerator / denominator, or 0 when that is undefined."""
    try:
        ratio = float(numerator) / float(denominator)
    except (TypeError, ValueError, ZeroDivisionError):
        return 0
    return ratio if math.isfinite(ratio) else 0
