from typing import Tuple

import config
from granularity import GranularityLike, resolve_granularity, hour, day
from schemas import Series


def split_day_night(
    series: Series,
    day_start_hour: int = config.DAY_START_HOUR,
    day_end_hour: int = config.DAY_END_HOUR,
) -> Tuple[Series, Series]:
    """
    Partition a series into daylight and night points by local hour.

    A point is daylight when day_start_hour <= hour < day_end_hour. Every
    point lands in exactly one of the two outputs, in its original order.
    This is a fixed-hour heuristic, not a sunrise/sunset calculation.
    """
    day_points = []
    night_points = []
    for point in series.points:
        if day_start_hour <= point.date.hour < day_end_hour:
            day_points.append(point)
        else:
            night_points.append(point)
    return Series(name=series.name, points=day_points), Series(name=series.name, points=night_points)


def split_for_granularity(series: Series, granularity: GranularityLike) -> Tuple[Series, Series]:
    """Split only for hour/day views; longer windows keep a single series."""
    if resolve_granularity(granularity) in (hour, day):
        return split_day_night(series)
    return Series(name=series.name, points=list(series.points)), Series(name=series.name)
