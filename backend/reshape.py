"""
Reshaping of backend aggregation responses into chart series.

RAW RESPONSE
------------

The search backend answers with a date histogram. Each bucket carries either
an overall aggregate or a per-site/per-device breakdown:

    {"aggregations": {"date_histogram#2": {"buckets": [
        {"key": 1703458800000, "avg#1": {"value": 10.0}},
        {"key": 1703462400000, "sterms#terms": {"buckets": [
            {"key": "inverter-a", "avg#1": {"value": 4.0}},
            {"key": "inverter-b", "1": {"value": 6.0}},
        ]}},
    ]}}}

JOIN
----

Both shapes go through one outer join over bucket keys: one row per bucket,
with a value per series present in that bucket. The shape is decided once per
response, so in a stacked response a bucket that lacks its breakdown yields an
empty row rather than a TOTAL value. The overall aggregate is stored under
TOTAL and kept even when missing (it renders as a gap); a named sub-series
missing from a bucket simply has no entry, so it gets no point at that date.
Nothing is ever zero-filled.

Malformed payloads never raise: buckets without a usable key are skipped and
unusable values become gaps.
"""
import logging
import math
from datetime import datetime
from typing import Any, Dict, List, NamedTuple, Optional, Union

from bucketing import bucket_size_ms, should_drop_last_bucket
from clock import Clock, system_clock, from_epoch_ms, to_epoch_ms
from schemas import DataPoint, Series

logger = logging.getLogger(__name__)

DATE_HISTO = "date_histogram#2"
TERMS = "sterms#terms"
AVG = "avg#1"
ALT_AVG = "1"
TOTAL = "total"


class JoinedRow(NamedTuple):
    date: datetime
    values: Dict[str, Optional[float]]


def join_buckets(
    raw: Any,
    bucket_size: Optional[str] = None,
    clock: Clock = system_clock,
    stacked: Optional[bool] = None,
) -> List[JoinedRow]:
    """
    Outer-join every series in the response over the bucket keys.

    The response is read as stacked or as an overall series as a whole; in a
    stacked response a bucket without a breakdown contributes no values.

    Args:
        raw: Search backend response
        bucket_size: Bucket size the query used; when given, a trailing
            bucket that is still filling is dropped
        clock: Source of the current instant
        stacked: Response shape, detected with is_stacked() when None

    Returns:
        list: One JoinedRow per bucket, in bucket order
    """
    if stacked is None:
        stacked = is_stacked(raw)

    rows = []
    for bucket in _histogram_buckets(raw, bucket_size, clock):
        values: Dict[str, Optional[float]] = {}
        terms = bucket.get(TERMS)
        if stacked:
            for sub_bucket in _as_list(_as_dict(terms).get("buckets")):
                if not isinstance(sub_bucket, dict) or sub_bucket.get("key") is None:
                    continue
                value = _metric_value(sub_bucket)
                if value is not None:
                    values[str(sub_bucket["key"])] = value
        else:
            values[TOTAL] = _metric_value(bucket)
        rows.append(JoinedRow(from_epoch_ms(_bucket_key(bucket)), values))
    return rows


def is_stacked(raw: Any) -> bool:
    """True when any bucket carries a per-series breakdown."""
    return any(isinstance(b.get(TERMS), dict) for b in _histogram_buckets(raw))


def reshape_total(raw: Any, bucket_size: Optional[str] = None, clock: Clock = system_clock) -> Series:
    """One point per bucket with the overall aggregate; missing values stay as gaps."""
    return Series(points=[
        DataPoint(date=row.date, value=row.values.get(TOTAL))
        for row in join_buckets(raw, bucket_size, clock, stacked=False)
    ])


def reshape_stacked(
    raw: Any,
    names: Optional[Dict[str, str]] = None,
    bucket_size: Optional[str] = None,
    clock: Clock = system_clock,
) -> List[Series]:
    """
    One series per site/device, in order of first appearance.

    Args:
        raw: Search backend response
        names: Optional id -> display name map for series names
        bucket_size: Bucket size the query used (see join_buckets)
        clock: Source of the current instant

    Returns:
        list: Sparse series; a bucket without a value for a series has no
        point in that series
    """
    names = names or {}
    points_by_key: Dict[str, List[DataPoint]] = {}
    for row in join_buckets(raw, bucket_size, clock, stacked=True):
        for key, value in row.values.items():
            points_by_key.setdefault(key, []).append(DataPoint(date=row.date, value=value))
    return [
        Series(name=names.get(key, key), points=points)
        for key, points in points_by_key.items()
    ]


def reshape(
    raw: Any,
    bucket_size: Optional[str] = None,
    names: Optional[Dict[str, str]] = None,
    clock: Clock = system_clock,
) -> Union[Series, List[Series]]:
    """Reshape a response into a single series, or a list of series when stacked."""
    if is_stacked(raw):
        return reshape_stacked(raw, names, bucket_size, clock)
    return reshape_total(raw, bucket_size, clock)


def condense_stacked_total(raw: Any, bucket_size: Optional[str] = None, clock: Clock = system_clock) -> Series:
    """Sum the present sub-series of each bucket into one overall series."""
    points = []
    for row in join_buckets(raw, bucket_size, clock, stacked=True):
        present = [v for v in row.values.values() if v is not None]
        points.append(DataPoint(date=row.date, value=sum(present) if present else None))
    return Series(name=TOTAL, points=points)


def condense_series(series: Series, bucket_size: str) -> Series:
    """
    Merge adjacent points that fall into the same display bucket.

    Buckets are aligned to the first point; each merged point is the mean of
    the present values in its bucket and is dated at the bucket start.
    """
    width = bucket_size_ms(bucket_size)
    if not width or not series.points:
        return Series(name=series.name, points=list(series.points))

    anchor = to_epoch_ms(series.points[0].date)
    groups: List[List[DataPoint]] = []
    group_indexes: List[int] = []
    for point in series.points:
        index = (to_epoch_ms(point.date) - anchor) // width
        if group_indexes and group_indexes[-1] == index:
            groups[-1].append(point)
        else:
            group_indexes.append(index)
            groups.append([point])

    return Series(name=series.name, points=[
        DataPoint(date=from_epoch_ms(anchor + index * width), value=_mean(group))
        for index, group in zip(group_indexes, groups)
    ])


def condense_to_count(series: Series, max_points: int) -> Series:
    """Merge runs of adjacent points so at most ``max_points`` remain."""
    points = series.points
    if max_points <= 0 or len(points) <= max_points:
        return Series(name=series.name, points=list(points))

    run = math.ceil(len(points) / max_points)
    return Series(name=series.name, points=[
        DataPoint(date=points[i].date, value=_mean(points[i:i + run]))
        for i in range(0, len(points), run)
    ])


def aggregation_value(raw: Any, label: str) -> int:
    """Rounded scalar aggregation (e.g. 'max#max'), 0 when absent."""
    aggregations = raw.get("aggregations") if isinstance(raw, dict) else None
    if not isinstance(aggregations, dict):
        return 0
    value = _number(_as_dict(aggregations.get(label)).get("value"))
    return 0 if value is None else math.floor(value + 0.5)


def _histogram_buckets(raw: Any, bucket_size: Optional[str] = None, clock: Clock = system_clock) -> List[dict]:
    aggregations = raw.get("aggregations") if isinstance(raw, dict) else None
    histogram = _as_dict(aggregations.get(DATE_HISTO)) if isinstance(aggregations, dict) else {}
    buckets = []
    for bucket in _as_list(histogram.get("buckets")):
        if isinstance(bucket, dict) and _bucket_key(bucket) is not None:
            buckets.append(bucket)
        else:
            logger.debug("Skipping malformed bucket %r", bucket)

    if bucket_size and buckets and should_drop_last_bucket(bucket_size, _bucket_key(buckets[-1]), clock):
        buckets = buckets[:-1]
    return buckets


def _bucket_key(bucket: dict) -> Optional[float]:
    key = bucket.get("key")
    if isinstance(key, str):
        try:
            key = float(key)
        except ValueError:
            return None
    return _number(key)


def _metric_value(container: dict) -> Optional[float]:
    metric = container.get(AVG)
    if metric is None:
        metric = container.get(ALT_AVG)
    return _number(_as_dict(metric).get("value"))


def _number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if not math.isfinite(value):
        return None
    return float(value)


def _mean(points: List[DataPoint]) -> Optional[float]:
    present = [p.value for p in points if p.value is not None]
    if not present:
        return None
    return sum(present) / len(present)


def _as_dict(value: Any) -> dict:
    return value if isinstance(value, dict) else {}


def _as_list(value: Any) -> list:
    return value if isinstance(value, list) else []
