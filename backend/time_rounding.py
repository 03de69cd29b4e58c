from datetime import datetime, timedelta

from clock import Clock, system_clock
from granularity import GranularityLike, resolve_granularity, hour, day


def start_of_current_day(offset_ms: int = 0, clock: Clock = system_clock) -> datetime:
    """
    Local midnight of today, minus an offset.

    Args:
        offset_ms: Milliseconds to subtract from today's midnight
        clock: Source of the current instant

    Returns:
        datetime: today 00:00:00.000 - offset_ms
    """
    midnight = clock().replace(hour=0, minute=0, second=0, microsecond=0)
    return midnight - timedelta(milliseconds=offset_ms)


def end_of_current_day(clock: Clock = system_clock) -> datetime:
    """Local 23:59:59.999 of today."""
    return clock().replace(hour=23, minute=59, second=59, microsecond=999000)


def window_start_for_granularity(granularity: GranularityLike, clock: Clock = system_clock) -> datetime:
    """
    Initial window start for a freshly selected granularity.

    HOUR windows roll (now - 1h). DAY windows start at today's midnight so the
    partial current day is shown. Longer granularities start a full
    granularity before today's midnight.
    """
    gran = resolve_granularity(granularity)
    if gran is hour:
        return clock() - timedelta(milliseconds=gran.ms)
    return start_of_current_day(0 if gran is day else gran.ms, clock)
